"""Domain models."""

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Self


class ScanStatus(str, Enum):
    """Lifecycle status of a scan.

    Declaration order is the lifecycle rank used for sorting.
    """

    PENDING = "pending"
    PROCESSING = "processing"
    PROCESSED = "processed"
    FAILED = "failed"

    @classmethod
    def parse(cls, value: object) -> "ScanStatus":
        """Map a server status string onto a status.

        Unknown, missing or non-string values fall back to PENDING.
        """
        if not isinstance(value, str) or not value:
            return cls.PENDING
        normalized = value.strip().lower()
        if normalized == "completed":
            return cls.PROCESSED
        try:
            return cls(normalized)
        except ValueError:
            return cls.PENDING

    @property
    def rank(self) -> int:
        return _STATUS_RANK[self]

    @property
    def is_terminal(self) -> bool:
        return self in (ScanStatus.PROCESSED, ScanStatus.FAILED)

    @property
    def label(self) -> str:
        return self.value.capitalize()

    def can_advance_to(self, other: "ScanStatus") -> bool:
        """Whether moving from this status to `other` is a forward step."""
        if self.is_terminal:
            return False
        return other.rank > self.rank


_STATUS_RANK = {status: rank for rank, status in enumerate(ScanStatus)}

EXTRACTED_FIELDS = (
    "extracted_text",
    "sender_name",
    "sender_address",
    "sender_pincode",
    "recipient_name",
    "recipient_address",
    "pincode",
    "sorting_center",
)


@dataclass(frozen=True)
class ScanRecord:
    """A submitted letter and its extraction outcome."""

    id: str
    image_location: str
    created_at: datetime
    status: ScanStatus = ScanStatus.PENDING
    extracted_text: str | None = None
    sender_name: str | None = None
    sender_address: str | None = None
    sender_pincode: str | None = None
    recipient_name: str | None = None
    recipient_address: str | None = None
    pincode: str | None = None
    sorting_center: str | None = None
    raw_server_payload: str | None = None  # JSON text of the last server snapshot
    updated_at: datetime | None = None

    def __post_init__(self) -> None:
        # Extracted fields only exist once the server reports success
        if self.status != ScanStatus.PROCESSED:
            for name in EXTRACTED_FIELDS:
                object.__setattr__(self, name, None)

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    @property
    def status_label(self) -> str:
        return self.status.label

    def merge(self, snapshot: "ScanRecord") -> Self:
        """Apply a newer server snapshot of this record.

        Status only moves forward. A snapshot that would regress the status,
        or any snapshot for a terminal record, leaves the record as is.
        The image location and creation time are never replaced.
        """
        if snapshot.id != self.id:
            raise ValueError(f"Snapshot {snapshot.id} does not match record {self.id}")

        if not self.status.can_advance_to(snapshot.status):
            return self

        return replace(
            snapshot,
            image_location=self.image_location,
            created_at=self.created_at,
        )

    def relative_age(self, now: datetime | None = None) -> str:
        """Human-friendly age, e.g. "5 min ago", "Yesterday" or "3/1/2024"."""
        now = now or datetime.now(timezone.utc)
        seconds = max(int((now - self.created_at).total_seconds()), 0)
        days = seconds // 86400

        if days == 0:
            hours = seconds // 3600
            if hours == 0:
                return f"{seconds // 60} min ago"
            return f"{hours}h ago"
        if days == 1:
            return "Yesterday"
        if days < 7:
            return f"{days} days ago"
        created = self.created_at
        return f"{created.day}/{created.month}/{created.year}"


@dataclass(frozen=True)
class Credential:
    """Opaque bearer credential sent with every authenticated call."""

    token: str
    scheme: str = "Bearer"

    @property
    def authorization(self) -> str:
        if not self.scheme:
            return self.token
        scheme = "Bearer" if self.scheme.lower() == "bearer" else self.scheme
        return f"{scheme} {self.token}"

    def __repr__(self) -> str:
        return f"Credential(scheme={self.scheme!r}, token=<redacted>)"


@dataclass(frozen=True)
class User:
    """The single user/session record of this device."""

    id: str
    username: str
    email: str
    created_at: datetime
    auth_token: str | None = None
    token_type: str = "bearer"

    @property
    def is_logged_in(self) -> bool:
        return self.auth_token is not None

    def credential(self) -> Credential | None:
        if self.auth_token is None:
            return None
        return Credential(token=self.auth_token, scheme=self.token_type)

    def logged_out(self) -> Self:
        return replace(self, auth_token=None)


@dataclass(frozen=True)
class UploadSlot:
    """One-time upload destination issued by the server."""

    upload_url: str
    file_key: str


@dataclass(frozen=True)
class RegisteredUser:
    """Identity returned by the registration endpoint."""

    id: str
    username: str
    email: str


@dataclass
class SyncResult:
    """Outcome of refreshing the local store from the remote list."""

    fetched: int = 0
    added: list[str] = field(default_factory=list)
    updated: list[str] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.added or self.updated)
