"""Custom exception hierarchy for the StarJar package."""

from __future__ import annotations


class StarJarError(Exception):
    """Base class for all StarJar specific errors."""


class ChildNotFoundError(StarJarError):
    """Raised when a child lookup fails."""


class ImportRejectedError(StarJarError):
    """Raised when an export document fails validation and nothing was restored."""


class StoreError(StarJarError):
    """Raised when the backing store cannot read or commit values."""


class RateProviderError(StarJarError):
    """Raised by rate providers that cannot produce a quote."""
