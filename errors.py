"""
errors.py
Exception taxonomy shared by the store, the cache and the workflows.
"""

from __future__ import annotations


class ConsoleError(Exception):
    """Base class for every error raised by the console core."""


class ValidationError(ConsoleError):
    """Rejected before any write was attempted."""


class NotFoundError(ValidationError):
    pass


class InvalidTransitionError(ValidationError):
    pass


class PermissionDeniedError(ValidationError):
    pass


class RemoteStoreError(ConsoleError):
    """The store (or blob store) refused or failed a read/write."""
