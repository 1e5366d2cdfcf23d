"""Unit tests for the YAML storage adapter."""

from pathlib import Path

import pytest
import yaml

from conftest import make_scan
from mailscan.adapters.storage import YamlStore
from mailscan.domain.models import ScanStatus, User


class TestScans:
    """Tests for the scans table."""

    def test_save_and_get(self, store: YamlStore) -> None:
        scan = make_scan("s1", ScanStatus.PROCESSED, sender_name="John Doe", pincode="560001")
        store.save_scan(scan)
        assert store.get_scan("s1") == scan

    def test_get_missing(self, store: YamlStore) -> None:
        assert store.get_scan("nope") is None

    def test_upsert_keeps_position(self, store: YamlStore) -> None:
        store.save_scan(make_scan("a"))
        store.save_scan(make_scan("b"))
        store.save_scan(make_scan("a", ScanStatus.FAILED))

        assert [s.id for s in store.all_scans()] == ["a", "b"]
        assert store.get_scan("a").status == ScanStatus.FAILED
        assert store.scan_count() == 2

    def test_delete(self, store: YamlStore) -> None:
        store.save_scan(make_scan("a"))
        assert store.delete_scan("a")
        assert not store.delete_scan("a")
        assert store.all_scans() == []

    def test_clear_scans(self, store: YamlStore) -> None:
        store.save_scan(make_scan("a"))
        store.save_scan(make_scan("b"))
        store.clear_scans()
        assert store.scan_count() == 0


class TestDurability:
    """Tests for persistence across store instances."""

    def test_reopen_sees_saved_data(self, store: YamlStore, user: User) -> None:
        scan = make_scan("s1", ScanStatus.PROCESSED, recipient_name="Jane Roe")
        store.save_scan(scan)
        store.save_user(user)
        store.save_setting("first_launch", False)

        reopened = YamlStore(store.data_dir)

        assert reopened.get_scan("s1") == scan
        assert reopened.get_user() == user
        assert not reopened.is_first_launch()

    def test_file_is_plain_yaml(self, store: YamlStore) -> None:
        store.save_scan(make_scan("s1"))
        data = yaml.safe_load((store.data_dir / "scans.yaml").read_text())
        assert data["s1"]["status"] == "pending"
        assert data["s1"]["image_location"] == "/images/s1.jpg"

    def test_no_temp_files_left(self, store: YamlStore) -> None:
        store.save_scan(make_scan("s1"))
        store.save_scan(make_scan("s2"))
        leftovers = [p.name for p in store.data_dir.iterdir() if p.suffix == ".tmp"]
        assert leftovers == []

    def test_failed_write_keeps_previous_file(
        self, store: YamlStore, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        store.save_scan(make_scan("s1"))
        before = (store.data_dir / "scans.yaml").read_bytes()

        def broken_dump(*args, **kwargs):
            raise OSError("disk full")

        monkeypatch.setattr(yaml, "safe_dump", broken_dump)
        with pytest.raises(OSError):
            store.save_scan(make_scan("s2"))

        assert (store.data_dir / "scans.yaml").read_bytes() == before
        assert not [p for p in store.data_dir.iterdir() if p.suffix == ".tmp"]

    def test_corrupt_file_raises(self, tmp_path: Path) -> None:
        (tmp_path / "scans.yaml").write_text("- just\n- a list\n")
        with pytest.raises(ValueError):
            YamlStore(tmp_path)

    def test_empty_file_is_empty_table(self, tmp_path: Path) -> None:
        (tmp_path / "scans.yaml").write_text("")
        assert YamlStore(tmp_path).all_scans() == []


class TestUsers:
    """Tests for the user record and its derived helpers."""

    def test_logged_in_user(self, store: YamlStore, user: User) -> None:
        store.save_user(user)
        assert store.is_logged_in()
        assert store.get_auth_token() == "token-123"

    def test_logout_keeps_profile(self, store: YamlStore, user: User) -> None:
        store.save_user(user)
        store.logout()

        current = store.get_user()
        assert current.email == user.email
        assert current.auth_token is None
        assert not store.is_logged_in()

    def test_no_user(self, store: YamlStore) -> None:
        assert store.get_user() is None
        assert store.get_auth_token() is None
        assert not store.is_logged_in()
        store.logout()

    def test_clear_all(self, store: YamlStore, user: User) -> None:
        store.save_user(user)
        store.save_scan(make_scan("s1"))
        store.complete_first_launch()

        store.clear_all()

        assert store.get_user() is None
        assert store.all_scans() == []
        assert store.is_first_launch()


class TestSettings:
    def test_first_launch_flow(self, store: YamlStore) -> None:
        assert store.is_first_launch()
        store.complete_first_launch()
        assert not store.is_first_launch()

    def test_default(self, store: YamlStore) -> None:
        assert store.get_setting("missing", 5) == 5
