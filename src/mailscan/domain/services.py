"""Domain services - orchestrate business logic."""

import asyncio
import logging
import uuid
from collections.abc import Callable
from dataclasses import replace
from datetime import datetime, timezone
from pathlib import Path

from ..ports.api import (
    ApiError,
    ApiStatusError,
    AuthApiPort,
    MalformedResponseError,
    NetworkUnavailableError,
    RequestTimeoutError,
    ScanApiPort,
)
from ..ports.storage import StoragePort
from .errors import SubmitError, SubmitErrorKind, SubmitResult, SubmitStep
from .models import Credential, ScanRecord, ScanStatus, SyncResult, User

logger = logging.getLogger(__name__)

_STEP_FAILURE = {
    SubmitStep.REQUEST_SLOT: SubmitErrorKind.SLOT_REQUEST_FAILED,
    SubmitStep.TRANSFER: SubmitErrorKind.UPLOAD_TRANSFER_FAILED,
    SubmitStep.TRIGGER: SubmitErrorKind.PROCESSING_TRIGGER_FAILED,
}


def _error_from_exception(step: SubmitStep, exc: ApiError) -> SubmitError:
    """Map a transport exception raised during `step` onto a tagged error."""
    if isinstance(exc, NetworkUnavailableError):
        return SubmitError(SubmitErrorKind.NETWORK_UNAVAILABLE, step, message=str(exc))
    if isinstance(exc, RequestTimeoutError):
        return SubmitError(SubmitErrorKind.TIMEOUT, step, message=str(exc))
    if isinstance(exc, ApiStatusError):
        return SubmitError(
            _STEP_FAILURE[step],
            step,
            status_code=exc.status_code,
            message=exc.message,
            details=exc.details,
        )
    return SubmitError(
        _STEP_FAILURE[step],
        step,
        status_code=getattr(exc, "status_code", None),
        message=str(exc),
    )


class UploadOrchestrator:
    """Drives the three-step upload protocol.

    Steps:
        1. Request a one-time upload slot
        2. Transfer the image bytes to the slot
        3. Trigger processing of the uploaded file

    Steps run strictly in order and any failure ends the attempt. Nothing
    is persisted here; the caller stores the returned record.
    """

    def __init__(self, api: ScanApiPort) -> None:
        self.api = api

    async def submit(self, image: Path, credential: Credential) -> SubmitResult:
        result = SubmitResult()
        logger.info(f"Submitting: {image.name}")

        try:
            data = await asyncio.to_thread(image.read_bytes)
        except OSError as e:
            logger.warning(f"Cannot read image {image}: {e}")
            result.error = SubmitError(
                SubmitErrorKind.IMAGE_UNREADABLE, SubmitStep.READ_IMAGE, message=str(e)
            )
            return result
        result.steps_completed.append(SubmitStep.READ_IMAGE)

        step = SubmitStep.REQUEST_SLOT
        try:
            # 1. Upload slot
            slot = await self.api.request_upload_slot(credential)
            result.steps_completed.append(step)
            logger.debug(f"Got upload slot for file key {slot.file_key}")

            # 2. Transfer
            step = SubmitStep.TRANSFER
            await self.api.upload_bytes(slot.upload_url, data)
            result.steps_completed.append(step)
            logger.debug(f"Uploaded {len(data)} bytes")

            # 3. Trigger processing
            step = SubmitStep.TRIGGER
            record = await self.api.trigger_processing(
                slot.file_key, credential, image_location=str(image)
            )
            result.steps_completed.append(step)
        except ApiError as e:
            result.error = _error_from_exception(step, e)
            logger.warning(f"Submission failed at {step.value}: {result.error.user_message}")
            return result

        result.record = record
        logger.info(f"Submitted {image.name} as scan {record.id} ({record.status.value})")
        return result


class ScanService:
    """Submission and refresh on behalf of the current session.

    Owns the side effects the orchestrator leaves out: storing new scans,
    dropping the credential on 401 and refusing a second submission of an
    image that is still in flight.
    """

    def __init__(self, api: ScanApiPort, store: StoragePort) -> None:
        self.api = api
        self.store = store
        self.orchestrator = UploadOrchestrator(api)
        self._in_flight: set[Path] = set()

    async def submit(self, image: Path, credential: Credential) -> SubmitResult:
        key = image.expanduser().resolve()
        if key in self._in_flight:
            logger.info(f"Submission already running for {image.name}")
            return SubmitResult(
                error=SubmitError(SubmitErrorKind.SUBMISSION_IN_PROGRESS, message=str(image))
            )

        self._in_flight.add(key)
        try:
            result = await self.orchestrator.submit(image, credential)
        finally:
            self._in_flight.discard(key)

        if result.success and result.record is not None:
            self.store.save_scan(result.record)
        elif result.error is not None and result.error.requires_login:
            logger.warning("Credential rejected, logging out")
            self.store.logout()
        return result

    async def refresh(self, credential: Credential, limit: int = 20, offset: int = 0) -> SyncResult:
        """Merge one page of the remote scan list into the store.

        Existing records only move forward through their lifecycle.
        """
        try:
            remote = await self.api.list_scans(credential, limit=limit, offset=offset)
        except ApiStatusError as e:
            if e.is_unauthorized:
                self.store.logout()
            raise

        result = SyncResult(fetched=len(remote))
        for snapshot in remote:
            current = self.store.get_scan(snapshot.id)
            if current is None:
                self.store.save_scan(snapshot)
                result.added.append(snapshot.id)
                continue
            merged = current.merge(snapshot)
            if merged != current:
                self.store.save_scan(merged)
                result.updated.append(snapshot.id)

        logger.info(
            f"Refreshed {result.fetched} scans: "
            f"{len(result.added)} new, {len(result.updated)} updated"
        )
        return result

    async def fetch(self, scan_id: str, credential: Credential) -> ScanRecord:
        """Fetch one scan and merge it into the store."""
        snapshot = await self.api.get_scan(scan_id, credential)
        if snapshot.id != scan_id:
            raise MalformedResponseError(
                f"Requested scan {scan_id}, server returned {snapshot.id}"
            )
        current = self.store.get_scan(scan_id)
        record = current.merge(snapshot) if current else snapshot
        if record != current:
            self.store.save_scan(record)
        return record


class ReconciliationService:
    """One reconciliation sweep over locally outstanding scans."""

    def __init__(self, api: ScanApiPort, store: StoragePort) -> None:
        self.api = api
        self.store = store

    def outstanding(self) -> list[ScanRecord]:
        return [
            scan
            for scan in self.store.all_scans()
            if scan.status in (ScanStatus.PENDING, ScanStatus.PROCESSING)
        ]

    async def sweep(
        self,
        credential: Credential | None,
        should_apply: Callable[[], bool] = lambda: True,
    ) -> list[str]:
        """Refresh every pending or processing scan from the server.

        Fetch failures skip the record for this cycle and leave it
        untouched. Results are only written while `should_apply()` holds.

        Returns ids of scans that changed.
        """
        if credential is None:
            logger.debug("No credential, skipping reconciliation")
            return []

        changed: list[str] = []
        for scan in self.outstanding():
            try:
                snapshot = await self.api.get_scan(scan.id, credential)
            except ApiStatusError as e:
                if e.is_not_found:
                    logger.warning(f"Scan {scan.id} not found on server, skipping")
                else:
                    logger.warning(f"Fetching scan {scan.id} failed: {e}")
                continue
            except ApiError as e:
                logger.warning(f"Fetching scan {scan.id} failed: {e}")
                continue

            if not should_apply():
                logger.debug(f"Discarding result for {scan.id} after cancellation")
                break

            # Re-read so a concurrent write in between is not overwritten
            current = self.store.get_scan(scan.id)
            if current is None:
                continue
            try:
                merged = current.merge(snapshot)
            except ValueError as e:
                logger.warning(f"Ignoring snapshot for scan {scan.id}: {e}")
                continue
            if merged != current:
                self.store.save_scan(merged)
                changed.append(scan.id)
                logger.info(f"Scan {scan.id}: {current.status.value} -> {merged.status.value}")

        return changed


class AuthService:
    """Registration, login and soft logout of the device user."""

    def __init__(self, api: AuthApiPort, store: StoragePort) -> None:
        self.api = api
        self.store = store

    async def login(self, email: str, password: str) -> User:
        """Log in and store the credential.

        An existing profile with the same email is kept; otherwise a new
        profile is created from the email address.
        """
        email = email.strip()
        credential = await self.api.login(email, password)

        existing = self.store.get_user()
        if existing is not None and existing.email.lower() == email.lower():
            user = replace(existing, auth_token=credential.token, token_type=credential.scheme)
        else:
            user = User(
                id=uuid.uuid4().hex,
                username=email.split("@")[0],
                email=email,
                created_at=datetime.now(timezone.utc),
                auth_token=credential.token,
                token_type=credential.scheme,
            )

        self.store.save_user(user)
        logger.info(f"Logged in as {user.email}")
        return user

    async def register(self, username: str, email: str, password: str) -> User:
        """Register, then log in with the same credentials.

        If the follow-up login fails the account still exists, so the user
        is stored logged out and can log in later.
        """
        registered = await self.api.register(username.strip(), email.strip(), password)
        logger.info(f"Registered {registered.email}")

        user = User(
            id=registered.id,
            username=registered.username,
            email=registered.email,
            created_at=datetime.now(timezone.utc),
        )
        try:
            credential = await self.api.login(registered.email, password)
        except ApiError as e:
            logger.warning(f"Login after registration failed: {e}")
            self.store.save_user(user)
            return user

        user = replace(user, auth_token=credential.token, token_type=credential.scheme)
        self.store.save_user(user)
        return user

    def logout(self) -> None:
        self.store.logout()
        logger.info("Logged out")
