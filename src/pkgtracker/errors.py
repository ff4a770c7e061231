"""Error taxonomy shared by the store, the notifier and the completion workflow.

Each error carries the HTTP status class it maps to so the dashboard can
render it without a lookup table.
"""

from __future__ import annotations


class TrackerError(Exception):
    """Base class for every error raised on purpose by pkgtracker."""

    http_status = 500


class ValidationError(TrackerError, ValueError):
    """Caller supplied a value outside an allowed set."""

    http_status = 400


class AuthorizationError(TrackerError):
    """Credential did not match the configured secret."""

    http_status = 403


class NotFoundError(TrackerError, LookupError):
    """No active record matches the lookup.

    Mapped to 500 because the completion workflow treats a missing
    assignment as a server-side inconsistency.
    """


class StoreError(TrackerError):
    """Persistence failed (I/O, locking, constraint or corruption)."""


class NotifyError(TrackerError):
    """A chat message could not be delivered."""
