"""Errors raised while synchronizing remote secrets to their targets.

All of them are temporary errors for kopf, so a handler failing with one of them is retried later.
"""

from typing import Optional

import kopf

from models import ErrorReason


class SecretSyncError(kopf.TemporaryError):
    reason: ErrorReason = ErrorReason.SECRET_UPDATE

    def __init__(self, message: str, reason: Optional[ErrorReason] = None, delay: float = 60) -> None:
        super().__init__(message, delay=delay)
        if reason is not None:
            self.reason = reason


class SecretDataError(SecretSyncError):
    reason = ErrorReason.DATA_FETCH


class StaleDetectionError(SecretSyncError):
    reason = ErrorReason.STALE_DETECTION


class SecretListError(SecretSyncError):
    reason = ErrorReason.LIST_FAILURE


class MarkingError(SecretSyncError):
    reason = ErrorReason.MARKING_FAILURE


class InvalidRemoteSecretError(ValueError):
    """The remote secret does not pass the admission rules."""
