"""Custom exception hierarchy for kbinset."""

from __future__ import annotations


class KbInsetError(Exception):
    """Base exception for all kbinset errors."""


class InsetConfigError(KbInsetError):
    """Invalid or missing configuration."""


class NotificationSourceError(KbInsetError):
    """Notification source is unavailable or rejected an operation."""


class SourceClosedError(NotificationSourceError):
    """Subscription attempted on a source that has already been closed."""


class InsetInitializationError(KbInsetError):
    """Controller could not acquire its subscriptions at construction.

    Any subscription acquired before the failure has already been
    released when this is raised; the original error is chained as
    ``__cause__``.
    """

    def __init__(self, message: str, *, kind: str = "") -> None:
        self.kind = kind
        super().__init__(message)
