"""
Error taxonomy shared by every layer.

Store errors propagate to the caller. Sync errors are recorded on the record
and only raised to whoever asked for a manual sync.
"""

from mindflow.domain.constants import PERMANENT_REJECTION_STATUSES


class MindFlowError(Exception):
    """Base class for all MindFlow errors."""


class ValidationError(MindFlowError):
    """A required field is missing or a record invariant would be violated."""


class NotFound(MindFlowError):
    """No record exists with the requested id."""

    def __init__(self, record_id: str, kind: str | None = None):
        self.record_id = record_id
        self.kind = kind
        label = f"{getattr(kind, 'value', kind)} " if kind else ""
        super().__init__(f"No {label}record with id '{record_id}'")


class SyncError(MindFlowError):
    """A sync attempt against the backend failed."""

    retryable: bool = True


class AuthError(SyncError):
    """No token, or the backend rejected it. Retried only after auth changes."""

    retryable = False


class NetworkError(SyncError):
    """Transport failure or timeout."""

    retryable = True


class ServerError(SyncError):
    """The backend answered with an error status."""

    def __init__(self, status_code: int, message: str = ""):
        self.status_code = status_code
        self.message = message
        text = f"API error (HTTP {status_code})"
        super().__init__(f"{text}: {message}" if message else text)

    @property
    def retryable(self) -> bool:  # type: ignore[override]
        return self.status_code not in PERMANENT_REJECTION_STATUSES
