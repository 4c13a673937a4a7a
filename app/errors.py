from __future__ import annotations


class PortfolioError(Exception):
    """Base class for errors surfaced to the user as a rejected operation."""


class ValidationError(PortfolioError):
    """Bad user input; the operation was rejected before any state changed."""


class NotFoundError(PortfolioError):
    pass


class StorageError(PortfolioError):
    """Persistence failed. In-memory state that was already applied is kept."""

    def __init__(self, message: str, key: str | None = None):
        super().__init__(message)
        self.key = key


class PriceFeedError(PortfolioError):
    pass
