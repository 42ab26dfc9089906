"""
Repository-layer exceptions for price scraping persistence.
"""

from __future__ import annotations


class PersistenceError(Exception):
    """Base exception for repository failures."""


class TrackedURLNotFoundError(PersistenceError):
    """Raised when a referenced tracked URL does not exist."""


class TrackedURLInUseError(PersistenceError):
    """Raised when deleting a tracked URL that still has scrape history."""
