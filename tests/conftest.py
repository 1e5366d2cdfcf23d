"""Shared test fixtures."""

from datetime import datetime, timedelta, timezone
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from mailscan.adapters.storage import YamlStore
from mailscan.domain.models import Credential, ScanRecord, ScanStatus, UploadSlot, User
from mailscan.ports.api import AuthApiPort, ScanApiPort

DAY_ONE = datetime(2024, 1, 1, tzinfo=timezone.utc)


def make_scan(
    scan_id: str = "s1",
    status: ScanStatus = ScanStatus.PENDING,
    created_at: datetime = DAY_ONE,
    **extracted: str,
) -> ScanRecord:
    return ScanRecord(
        id=scan_id,
        image_location=f"/images/{scan_id}.jpg",
        created_at=created_at,
        status=status,
        **extracted,
    )


@pytest.fixture
def credential() -> Credential:
    return Credential(token="token-123")


@pytest.fixture
def user() -> User:
    return User(
        id="u1",
        username="jane",
        email="jane@example.com",
        created_at=DAY_ONE,
        auth_token="token-123",
    )


@pytest.fixture
def store(tmp_path: Path) -> YamlStore:
    """Empty store in a temp directory."""
    return YamlStore(tmp_path / "data")


@pytest.fixture
def image(tmp_path: Path) -> Path:
    path = tmp_path / "letter.jpg"
    path.write_bytes(b"\xff\xd8\xff\xe0 fake jpeg")
    return path


@pytest.fixture
def mock_api() -> MagicMock:
    """Mock scan API port. Async methods become AsyncMocks."""
    mock = MagicMock(spec=ScanApiPort)
    mock.request_upload_slot.return_value = UploadSlot(
        upload_url="https://x/put", file_key="k1"
    )
    mock.upload_bytes.return_value = None
    mock.trigger_processing.return_value = make_scan("s1")
    return mock


@pytest.fixture
def mock_auth_api() -> MagicMock:
    return MagicMock(spec=AuthApiPort)


@pytest.fixture
def days() -> list[datetime]:
    return [DAY_ONE + timedelta(days=i) for i in range(3)]
