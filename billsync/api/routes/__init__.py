"""Route modules for the public API."""

from . import billing

__all__ = [
    "billing",
]
