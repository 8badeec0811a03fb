"""Local user store implementations."""

from .memory import InMemoryUserStore
from .sql import SQLUserStore

__all__ = [
    "InMemoryUserStore",
    "SQLUserStore",
]
