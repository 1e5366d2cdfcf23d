"""Storage port - interface for local persistence."""

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from ..domain.models import Credential, ScanRecord, User


class StoragePort(ABC):
    """Durable key-value store for the user, scans and settings."""

    # Users

    @abstractmethod
    def save_user(self, user: "User") -> None:
        pass

    @abstractmethod
    def get_user(self) -> "User | None":
        pass

    # Scans

    @abstractmethod
    def save_scan(self, scan: "ScanRecord") -> None:
        """Insert or replace a scan, keyed by its id."""
        pass

    @abstractmethod
    def get_scan(self, scan_id: str) -> "ScanRecord | None":
        pass

    @abstractmethod
    def all_scans(self) -> list["ScanRecord"]:
        """Return all scans in insertion order."""
        pass

    @abstractmethod
    def delete_scan(self, scan_id: str) -> bool:
        """Remove a scan. Returns False if it did not exist."""
        pass

    @abstractmethod
    def clear_scans(self) -> None:
        pass

    # Settings

    @abstractmethod
    def save_setting(self, key: str, value: Any) -> None:
        pass

    @abstractmethod
    def get_setting(self, key: str, default: Any = None) -> Any:
        pass

    @abstractmethod
    def clear_all(self) -> None:
        pass

    # Derived helpers shared by all implementations

    def get_auth_token(self) -> str | None:
        user = self.get_user()
        return user.auth_token if user else None

    def get_credential(self) -> "Credential | None":
        user = self.get_user()
        return user.credential() if user else None

    def is_logged_in(self) -> bool:
        user = self.get_user()
        return user is not None and user.is_logged_in

    def logout(self) -> None:
        """Clear the credential but keep the profile."""
        user = self.get_user()
        if user is not None:
            self.save_user(user.logged_out())

    def scan_count(self) -> int:
        return len(self.all_scans())

    def is_first_launch(self) -> bool:
        return bool(self.get_setting("first_launch", True))

    def complete_first_launch(self) -> None:
        self.save_setting("first_launch", False)
