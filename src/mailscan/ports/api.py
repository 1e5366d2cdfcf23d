"""API ports - interfaces for the remote scanning service."""

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

from ..domain.errors import ValidationDetail

if TYPE_CHECKING:
    from ..domain.models import Credential, RegisteredUser, ScanRecord, UploadSlot


class ApiError(Exception):
    """Base class for failures talking to the remote service."""


class NetworkUnavailableError(ApiError):
    """No network path to the remote service."""


class RequestTimeoutError(ApiError):
    """The request exceeded its deadline."""


class ApiStatusError(ApiError):
    """The service answered with a non-success status."""

    def __init__(
        self,
        status_code: int,
        message: str = "",
        details: tuple[ValidationDetail, ...] = (),
    ) -> None:
        self.status_code = status_code
        self.message = message or f"Server error: {status_code}"
        self.details = details
        super().__init__(self.message)

    @property
    def is_validation(self) -> bool:
        return self.status_code == 422

    @property
    def is_unauthorized(self) -> bool:
        return self.status_code == 401

    @property
    def is_not_found(self) -> bool:
        return self.status_code == 404


class MalformedResponseError(ApiError):
    """The response body did not have the expected shape."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)


class AuthApiPort(ABC):
    """Interface for account registration and login."""

    @abstractmethod
    async def register(self, username: str, email: str, password: str) -> "RegisteredUser":
        pass

    @abstractmethod
    async def login(self, email: str, password: str) -> "Credential":
        pass


class ScanApiPort(ABC):
    """Interface for the upload protocol and scan lookups."""

    @abstractmethod
    async def request_upload_slot(self, credential: "Credential") -> "UploadSlot":
        """Ask for a one-time upload destination and file key."""
        pass

    @abstractmethod
    async def upload_bytes(self, upload_url: str, data: bytes) -> None:
        """Send raw image bytes to an upload destination."""
        pass

    @abstractmethod
    async def trigger_processing(
        self, file_key: str, credential: "Credential", image_location: str | None = None
    ) -> "ScanRecord":
        """Start extraction of an uploaded file.

        Returns the initial server snapshot of the new scan.
        """
        pass

    @abstractmethod
    async def list_scans(
        self, credential: "Credential", limit: int = 20, offset: int = 0
    ) -> list["ScanRecord"]:
        pass

    @abstractmethod
    async def get_scan(self, scan_id: str, credential: "Credential") -> "ScanRecord":
        pass
