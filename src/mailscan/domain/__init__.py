"""Domain layer - core business logic."""

from .errors import SubmitError, SubmitErrorKind, SubmitResult, SubmitStep
from .history import HistoryFilter, HistorySort, HistoryState, HistoryView, project_history
from .models import Credential, ScanRecord, ScanStatus, User

__all__ = [
    "Credential",
    "HistoryFilter",
    "HistorySort",
    "HistoryState",
    "HistoryView",
    "ScanRecord",
    "ScanStatus",
    "SubmitError",
    "SubmitErrorKind",
    "SubmitResult",
    "SubmitStep",
    "User",
    "project_history",
]
