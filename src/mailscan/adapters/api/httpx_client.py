"""API adapter using httpx."""

import logging
from typing import Any
from urllib.parse import urlparse

import httpx

from ...domain.models import Credential, RegisteredUser, ScanRecord, UploadSlot
from ...ports.api import (
    ApiError,
    ApiStatusError,
    AuthApiPort,
    MalformedResponseError,
    NetworkUnavailableError,
    RequestTimeoutError,
    ScanApiPort,
)
from .snapshots import (
    error_message,
    parse_validation_details,
    record_from_snapshot,
    registered_user_from_payload,
    slot_from_payload,
)

logger = logging.getLogger(__name__)

API_PREFIX = "/api/v1"
IMAGE_CONTENT_TYPE = "image/jpeg"


class HttpxApiAdapter(AuthApiPort, ScanApiPort):
    """Scanning service client over a shared httpx.AsyncClient."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 30.0,
        upload_timeout: float = 60.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        parsed = urlparse(base_url)
        if parsed.scheme not in ("http", "https"):
            raise ValueError(f"Invalid base_url scheme: {parsed.scheme}")
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.upload_timeout = upload_timeout
        self.client = client or httpx.AsyncClient(base_url=self.base_url)

    async def aclose(self) -> None:
        await self.client.aclose()

    async def __aenter__(self) -> "HttpxApiAdapter":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    # Auth

    async def register(self, username: str, email: str, password: str) -> RegisteredUser:
        response = await self._request(
            "POST",
            f"{API_PREFIX}/auth/register",
            json={"username": username, "email": email, "password": password},
            expected=(200, 201),
        )
        return self._decode(response, registered_user_from_payload)

    async def login(self, email: str, password: str) -> Credential:
        try:
            response = await self._request(
                "POST",
                f"{API_PREFIX}/auth/login",
                json={"email": email, "password": password},
            )
        except ApiStatusError as e:
            if e.is_unauthorized:
                raise ApiStatusError(401, "Invalid email or password") from e
            raise
        return self._decode(
            response,
            lambda data: Credential(
                token=data["access_token"], scheme=data.get("token_type") or "bearer"
            ),
        )

    # Scans

    async def request_upload_slot(self, credential: Credential) -> UploadSlot:
        response = await self._request(
            "POST", f"{API_PREFIX}/mails/generate_upload_url", credential=credential
        )
        return self._decode(response, slot_from_payload)

    async def upload_bytes(self, upload_url: str, data: bytes) -> None:
        logger.debug(f"Uploading {len(data)} bytes")
        # Upload destinations are pre-signed; no Authorization header
        await self._request(
            "PUT",
            upload_url,
            content=data,
            headers={"Content-Type": IMAGE_CONTENT_TYPE},
            expected=(200, 204),
            timeout=self.upload_timeout,
        )

    async def trigger_processing(
        self, file_key: str, credential: Credential, image_location: str | None = None
    ) -> ScanRecord:
        response = await self._request(
            "POST",
            f"{API_PREFIX}/mails/process",
            params={"file_key": file_key},
            credential=credential,
        )
        return self._decode(response, lambda data: record_from_snapshot(data, image_location))

    async def list_scans(
        self, credential: Credential, limit: int = 20, offset: int = 0
    ) -> list[ScanRecord]:
        response = await self._request(
            "GET",
            f"{API_PREFIX}/mails/",
            params={"limit": limit, "offset": offset},
            credential=credential,
        )
        return self._decode(response, lambda data: [record_from_snapshot(item) for item in data])

    async def get_scan(self, scan_id: str, credential: Credential) -> ScanRecord:
        response = await self._request(
            "GET", f"{API_PREFIX}/mails/{scan_id}", credential=credential
        )
        return self._decode(response, record_from_snapshot)

    # Transport

    async def _request(
        self,
        method: str,
        url: str,
        credential: Credential | None = None,
        expected: tuple[int, ...] = (200,),
        timeout: float | None = None,
        headers: dict[str, str] | None = None,
        **kwargs: Any,
    ) -> httpx.Response:
        request_headers = {"Accept": "application/json"}
        if credential is not None:
            request_headers["Authorization"] = credential.authorization
        if headers:
            request_headers.update(headers)

        logger.debug(f"{method} {url}")
        try:
            response = await self.client.request(
                method,
                url,
                headers=request_headers,
                timeout=timeout if timeout is not None else self.timeout,
                **kwargs,
            )
        except httpx.TimeoutException as e:
            raise RequestTimeoutError(f"{method} {url} timed out") from e
        except httpx.TransportError as e:
            raise NetworkUnavailableError("No internet connection") from e
        except httpx.RequestError as e:
            raise ApiError(f"{method} {url} failed: {e}") from e

        logger.debug(f"{method} {url} -> {response.status_code}")
        if response.status_code not in expected:
            raise self._status_error(response)
        return response

    def _status_error(self, response: httpx.Response) -> ApiStatusError:
        try:
            body: Any = response.json()
        except ValueError:
            body = response.text
        return ApiStatusError(
            response.status_code,
            error_message(body, f"Server error: {response.status_code}"),
            parse_validation_details(body),
        )

    def _decode(self, response: httpx.Response, build: Any) -> Any:
        try:
            return build(response.json())
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            logger.warning(f"Malformed response from {response.request.url}: {e}")
            raise MalformedResponseError(
                f"Unexpected response from server: {e}", response.status_code
            ) from e
