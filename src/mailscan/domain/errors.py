"""Submission outcomes.

The upload workflow never raises across its boundary. Every failure is
reported as a `SubmitError` tagged with its kind and the step it came from,
so callers can pick their own wording and decide whether to offer a retry.
"""

from dataclasses import dataclass, field
from enum import Enum

from .models import ScanRecord


class SubmitStep(str, Enum):
    """Steps of the upload protocol, in order."""

    READ_IMAGE = "read_image"
    REQUEST_SLOT = "request_slot"
    TRANSFER = "transfer"
    TRIGGER = "trigger"


class SubmitErrorKind(str, Enum):
    IMAGE_UNREADABLE = "image_unreadable"
    SLOT_REQUEST_FAILED = "slot_request_failed"
    UPLOAD_TRANSFER_FAILED = "upload_transfer_failed"
    PROCESSING_TRIGGER_FAILED = "processing_trigger_failed"
    NETWORK_UNAVAILABLE = "network_unavailable"
    TIMEOUT = "timeout"
    SUBMISSION_IN_PROGRESS = "submission_in_progress"


@dataclass(frozen=True)
class ValidationDetail:
    """One field-level entry of a 422 response."""

    location: tuple[str | int, ...]
    message: str
    type: str = "unknown"

    @property
    def field(self) -> str | None:
        if not self.location:
            return None
        return str(self.location[-1])


@dataclass(frozen=True)
class SubmitError:
    kind: SubmitErrorKind
    step: SubmitStep | None = None
    status_code: int | None = None
    message: str = ""
    details: tuple[ValidationDetail, ...] = ()

    @property
    def is_validation(self) -> bool:
        return self.status_code == 422

    @property
    def requires_login(self) -> bool:
        return self.status_code == 401

    @property
    def retryable(self) -> bool:
        """Whether resubmitting from step 1 can reasonably succeed."""
        if self.kind in (SubmitErrorKind.NETWORK_UNAVAILABLE, SubmitErrorKind.TIMEOUT):
            return True
        if self.kind in (
            SubmitErrorKind.IMAGE_UNREADABLE,
            SubmitErrorKind.SUBMISSION_IN_PROGRESS,
        ):
            return False
        if self.status_code is None:
            return True
        if self.is_validation or self.requires_login:
            return False
        return self.status_code >= 500 or self.kind == SubmitErrorKind.UPLOAD_TRANSFER_FAILED

    @property
    def user_message(self) -> str:
        if self.kind == SubmitErrorKind.NETWORK_UNAVAILABLE:
            return "No internet connection"
        if self.kind == SubmitErrorKind.TIMEOUT:
            return "The server took too long to respond"
        if self.kind == SubmitErrorKind.SUBMISSION_IN_PROGRESS:
            return "This image is already being submitted"
        if self.kind == SubmitErrorKind.IMAGE_UNREADABLE:
            return f"Could not read image: {self.message}"
        if self.requires_login:
            return "Your session has expired, please log in again"
        if self.is_validation and self.details:
            return ", ".join(
                f"{d.field}: {d.message}" if d.field else d.message for d in self.details
            )
        if self.message:
            return self.message
        return f"Server error: {self.status_code}"


@dataclass
class SubmitResult:
    """Result of a submission attempt."""

    record: ScanRecord | None = None
    error: SubmitError | None = None
    steps_completed: list[SubmitStep] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.error is None and self.record is not None
