"""Unit tests for the reconciliation sweep."""

import asyncio
from pathlib import Path
from unittest.mock import MagicMock

import httpx
import yaml

from conftest import make_scan
from mailscan.adapters.api import HttpxApiAdapter
from mailscan.adapters.storage import YamlStore
from mailscan.domain.models import Credential, ScanStatus
from mailscan.domain.services import ReconciliationService
from mailscan.ports.api import (
    ApiStatusError,
    MalformedResponseError,
    NetworkUnavailableError,
    RequestTimeoutError,
)


def _sweep(api: MagicMock, store: YamlStore, credential: Credential | None, **kwargs) -> list[str]:
    return asyncio.run(ReconciliationService(api, store).sweep(credential, **kwargs))


class TestSweep:
    """Tests for ReconciliationService.sweep."""

    def test_pending_becomes_processed(
        self, mock_api: MagicMock, store: YamlStore, credential: Credential
    ) -> None:
        store.save_scan(make_scan("s1"))
        mock_api.get_scan.return_value = make_scan(
            "s1", ScanStatus.PROCESSED, sender_name="John Doe"
        )

        changed = _sweep(mock_api, store, credential)

        assert changed == ["s1"]
        scan = store.get_scan("s1")
        assert scan.status == ScanStatus.PROCESSED
        assert scan.sender_name == "John Doe"

    def test_fetch_failure_leaves_record_untouched(
        self, mock_api: MagicMock, store: YamlStore, credential: Credential, tmp_path: Path
    ) -> None:
        store.save_scan(make_scan("s1"))
        before = (store.data_dir / "scans.yaml").read_bytes()
        mock_api.get_scan.side_effect = NetworkUnavailableError("offline")

        changed = _sweep(mock_api, store, credential)

        assert changed == []
        assert store.get_scan("s1").status == ScanStatus.PENDING
        assert (store.data_dir / "scans.yaml").read_bytes() == before

    def test_no_credential_is_noop(self, mock_api: MagicMock, store: YamlStore) -> None:
        store.save_scan(make_scan("s1"))

        changed = _sweep(mock_api, store, None)

        assert changed == []
        mock_api.get_scan.assert_not_awaited()
        assert store.get_scan("s1").status == ScanStatus.PENDING

    def test_only_outstanding_records_fetched(
        self, mock_api: MagicMock, store: YamlStore, credential: Credential
    ) -> None:
        store.save_scan(make_scan("pending", ScanStatus.PENDING))
        store.save_scan(make_scan("processing", ScanStatus.PROCESSING))
        store.save_scan(make_scan("done", ScanStatus.PROCESSED))
        store.save_scan(make_scan("failed", ScanStatus.FAILED))
        mock_api.get_scan.side_effect = lambda scan_id, cred: make_scan(scan_id, ScanStatus.PROCESSING)

        _sweep(mock_api, store, credential)

        fetched = [call.args[0] for call in mock_api.get_scan.await_args_list]
        assert fetched == ["pending", "processing"]

    def test_failure_of_one_record_does_not_stop_sweep(
        self, mock_api: MagicMock, store: YamlStore, credential: Credential
    ) -> None:
        store.save_scan(make_scan("gone"))
        store.save_scan(make_scan("slow"))
        store.save_scan(make_scan("bad"))
        store.save_scan(make_scan("ok"))

        def fetch(scan_id: str, cred: Credential):
            if scan_id == "gone":
                raise ApiStatusError(404, "Mail not found")
            if scan_id == "slow":
                raise RequestTimeoutError("timeout")
            if scan_id == "bad":
                raise MalformedResponseError("no id")
            return make_scan(scan_id, ScanStatus.FAILED)

        mock_api.get_scan.side_effect = fetch

        changed = _sweep(mock_api, store, credential)

        assert changed == ["ok"]
        assert store.get_scan("gone").status == ScanStatus.PENDING
        assert store.get_scan("ok").status == ScanStatus.FAILED

    def test_unchanged_status_not_reported(
        self, mock_api: MagicMock, store: YamlStore, credential: Credential
    ) -> None:
        store.save_scan(make_scan("s1"))
        mock_api.get_scan.return_value = make_scan("s1", ScanStatus.PENDING)

        assert _sweep(mock_api, store, credential) == []

    def test_results_discarded_when_cancelled(
        self, mock_api: MagicMock, store: YamlStore, credential: Credential
    ) -> None:
        store.save_scan(make_scan("s1"))
        mock_api.get_scan.return_value = make_scan("s1", ScanStatus.PROCESSED)

        changed = _sweep(mock_api, store, credential, should_apply=lambda: False)

        assert changed == []
        assert store.get_scan("s1").status == ScanStatus.PENDING

    def test_record_deleted_during_fetch_not_resurrected(
        self, mock_api: MagicMock, store: YamlStore, credential: Credential
    ) -> None:
        store.save_scan(make_scan("s1"))

        def fetch(scan_id: str, cred: Credential):
            store.delete_scan(scan_id)
            return make_scan(scan_id, ScanStatus.PROCESSED)

        mock_api.get_scan.side_effect = fetch

        assert _sweep(mock_api, store, credential) == []
        assert store.get_scan("s1") is None

    def test_persisted_file_reflects_update(
        self, mock_api: MagicMock, store: YamlStore, credential: Credential
    ) -> None:
        store.save_scan(make_scan("s1"))
        mock_api.get_scan.return_value = make_scan("s1", ScanStatus.PROCESSED, pincode="560001")

        _sweep(mock_api, store, credential)

        data = yaml.safe_load((store.data_dir / "scans.yaml").read_text())
        assert data["s1"]["status"] == "processed"
        assert data["s1"]["pincode"] == "560001"

    def test_mismatched_snapshot_skipped(
        self, mock_api: MagicMock, store: YamlStore, credential: Credential
    ) -> None:
        store.save_scan(make_scan("s1"))
        store.save_scan(make_scan("s2"))

        def fetch(scan_id: str, cred: Credential):
            if scan_id == "s1":
                return make_scan("other", ScanStatus.PROCESSED)
            return make_scan(scan_id, ScanStatus.PROCESSED)

        mock_api.get_scan.side_effect = fetch

        changed = _sweep(mock_api, store, credential)

        assert changed == ["s2"]
        assert store.get_scan("s1").status == ScanStatus.PENDING
        assert store.get_scan("other") is None


class TestSweepAgainstServer:
    """Sweeps through the httpx adapter with unexpected snapshot bodies."""

    @staticmethod
    def _sweep_with_bodies(store: YamlStore, credential: Credential, bodies: dict) -> list[str]:
        def handler(request: httpx.Request) -> httpx.Response:
            scan_id = request.url.path.rsplit("/", 1)[-1]
            return httpx.Response(200, json=bodies[scan_id])

        async def run():
            client = httpx.AsyncClient(base_url="http://scan.test", transport=httpx.MockTransport(handler))
            async with HttpxApiAdapter("http://scan.test", client=client) as api:
                return await ReconciliationService(api, store).sweep(credential)

        return asyncio.run(run())

    def test_numeric_status_does_not_stop_sweep(
        self, store: YamlStore, credential: Credential
    ) -> None:
        store.save_scan(make_scan("s1"))
        store.save_scan(make_scan("s2"))
        created = "2024-01-01T00:00:00Z"

        changed = self._sweep_with_bodies(
            store,
            credential,
            {
                "s1": {"id": "s1", "status": 2, "created_at": created},
                "s2": {"id": "s2", "status": "processed", "created_at": created},
            },
        )

        assert changed == ["s2"]
        assert store.get_scan("s1").status == ScanStatus.PENDING
        assert store.get_scan("s2").status == ScanStatus.PROCESSED

    def test_malformed_body_does_not_stop_sweep(
        self, store: YamlStore, credential: Credential
    ) -> None:
        store.save_scan(make_scan("s1"))
        store.save_scan(make_scan("s2"))

        changed = self._sweep_with_bodies(
            store,
            credential,
            {
                "s1": {"id": "s1", "status": "failed", "created_at": 1704067200},
                "s2": {"id": "s2", "status": "failed", "created_at": "2024-01-01T00:00:00Z"},
            },
        )

        assert changed == ["s2"]
        assert store.get_scan("s1").status == ScanStatus.PENDING
