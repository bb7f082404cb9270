"""Persistence contract and its implementations."""

from networth_tracker.store.base import PortfolioStore
from networth_tracker.store.memory import MemoryStore
from networth_tracker.store.sqlite import SQLiteStore

__all__ = [
    "MemoryStore",
    "PortfolioStore",
    "SQLiteStore",
]
