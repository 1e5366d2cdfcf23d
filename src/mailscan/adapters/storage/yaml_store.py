"""Storage adapter using YAML files on the local filesystem."""

import logging
import os
import tempfile
from dataclasses import asdict, fields
from datetime import datetime
from pathlib import Path
from typing import Any

import yaml

from ...domain.models import ScanRecord, ScanStatus, User
from ...ports.storage import StoragePort

logger = logging.getLogger(__name__)

USERS_FILE = "users.yaml"
SCANS_FILE = "scans.yaml"
SETTINGS_FILE = "settings.yaml"
CURRENT_USER_KEY = "current_user"


def scan_to_dict(scan: ScanRecord) -> dict[str, Any]:
    data = asdict(scan)
    data["status"] = scan.status.value
    data["created_at"] = scan.created_at.isoformat()
    data["updated_at"] = scan.updated_at.isoformat() if scan.updated_at else None
    return data


def scan_from_dict(data: dict[str, Any]) -> ScanRecord:
    known = {f.name for f in fields(ScanRecord)}
    values = {k: v for k, v in data.items() if k in known}
    values["status"] = ScanStatus.parse(values.get("status"))
    values["created_at"] = _as_datetime(values["created_at"])
    values["updated_at"] = _as_datetime(values.get("updated_at"))
    return ScanRecord(**values)


def user_to_dict(user: User) -> dict[str, Any]:
    data = asdict(user)
    data["created_at"] = user.created_at.isoformat()
    return data


def user_from_dict(data: dict[str, Any]) -> User:
    known = {f.name for f in fields(User)}
    values = {k: v for k, v in data.items() if k in known}
    values["created_at"] = _as_datetime(values["created_at"])
    return User(**values)


def _as_datetime(value: Any) -> datetime | None:
    # yaml.safe_load already turns unquoted timestamps into datetimes
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value))


class YamlStore(StoragePort):
    """Key-value store with one YAML document per table.

    Tables are loaded once and kept in memory. Every write replaces the
    whole table file atomically.
    """

    def __init__(self, data_dir: Path) -> None:
        self.data_dir = data_dir
        self.data_dir.mkdir(parents=True, exist_ok=True)
        self._users = self._load(USERS_FILE)
        self._scans = self._load(SCANS_FILE)
        self._settings = self._load(SETTINGS_FILE)
        logger.debug(f"Opened store at {data_dir} with {len(self._scans)} scans")

    # Users

    def save_user(self, user: User) -> None:
        self._users[CURRENT_USER_KEY] = user_to_dict(user)
        self._flush(USERS_FILE, self._users)

    def get_user(self) -> User | None:
        data = self._users.get(CURRENT_USER_KEY)
        return user_from_dict(data) if data else None

    # Scans

    def save_scan(self, scan: ScanRecord) -> None:
        self._scans[scan.id] = scan_to_dict(scan)
        self._flush(SCANS_FILE, self._scans)

    def get_scan(self, scan_id: str) -> ScanRecord | None:
        data = self._scans.get(scan_id)
        return scan_from_dict(data) if data else None

    def all_scans(self) -> list[ScanRecord]:
        return [scan_from_dict(data) for data in self._scans.values()]

    def delete_scan(self, scan_id: str) -> bool:
        if scan_id not in self._scans:
            return False
        del self._scans[scan_id]
        self._flush(SCANS_FILE, self._scans)
        return True

    def clear_scans(self) -> None:
        self._scans.clear()
        self._flush(SCANS_FILE, self._scans)

    def scan_count(self) -> int:
        return len(self._scans)

    # Settings

    def save_setting(self, key: str, value: Any) -> None:
        self._settings[key] = value
        self._flush(SETTINGS_FILE, self._settings)

    def get_setting(self, key: str, default: Any = None) -> Any:
        return self._settings.get(key, default)

    def clear_all(self) -> None:
        for name, table in (
            (USERS_FILE, self._users),
            (SCANS_FILE, self._scans),
            (SETTINGS_FILE, self._settings),
        ):
            table.clear()
            self._flush(name, table)

    # Files

    def _load(self, name: str) -> dict[str, Any]:
        path = self.data_dir / name
        if not path.exists():
            return {}
        try:
            data = yaml.safe_load(path.read_text())
        except yaml.YAMLError as e:
            raise ValueError(f"Corrupt store file {path}: {e}") from e
        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ValueError(f"Corrupt store file {path}: expected a mapping")
        return data

    def _flush(self, name: str, table: dict[str, Any]) -> None:
        path = self.data_dir / name
        fd, tmp = tempfile.mkstemp(dir=self.data_dir, prefix=f".{name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w") as f:
                yaml.safe_dump(table, f, default_flow_style=False, allow_unicode=True, sort_keys=False)
            os.replace(tmp, path)
        except BaseException:
            Path(tmp).unlink(missing_ok=True)
            raise
