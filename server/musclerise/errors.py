"""
Error taxonomy for record stores.

A missing record is not an error: stores return ``None`` for it.
"""

from __future__ import annotations


class StoreError(Exception):
    """Base class for every persistence failure."""


class BackendUnavailable(StoreError):
    """The storage medium could not be reached (network or file I/O)."""


class Timeout(BackendUnavailable):
    """The remote store did not answer within the configured bound."""


class NameResolutionFailed(BackendUnavailable):
    """The remote host name could not be resolved."""


class AuthenticationFailed(StoreError):
    """The remote store rejected the configured credentials."""


class Corrupt(StoreError):
    """Stored content could not be decoded as a valid record."""


class DuplicateUsername(StoreError):
    """A different user already owns the username."""

    def __init__(self, username: str):
        super().__init__(f"username {username!r} is already taken")
        self.username = username


class MigrationError(StoreError):
    """A migration aborted part way; carries what was already committed."""

    def __init__(self, message: str, *, committed: dict, pending: list):
        super().__init__(message)
        self.committed = committed
        self.pending = pending


class RepairError(StoreError):
    """A user removal aborted; ``report`` holds the per-backend outcome so far."""

    def __init__(self, message: str, *, report):
        super().__init__(message)
        self.report = report
