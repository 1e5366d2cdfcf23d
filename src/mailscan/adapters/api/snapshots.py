"""Conversion of server JSON payloads into domain models."""

import json
import logging
from datetime import datetime, timezone
from typing import Any

from ...domain.errors import ValidationDetail
from ...domain.models import RegisteredUser, ScanRecord, ScanStatus, UploadSlot

logger = logging.getLogger(__name__)


def parse_timestamp(value: str | None) -> datetime | None:
    """Parse an ISO-8601 timestamp. Naive values are taken as UTC."""
    if not value:
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _text(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, (dict, list)):
        return json.dumps(value, ensure_ascii=False)
    return str(value)


def record_from_snapshot(
    data: dict[str, Any], image_location: str | None = None
) -> ScanRecord:
    """Build a ScanRecord from a mail snapshot.

    Raises KeyError or ValueError if required fields are missing or invalid.
    """
    created_at = parse_timestamp(data["created_at"])
    if created_at is None:
        raise ValueError("Snapshot has empty created_at")

    raw_status = data.get("status")
    status = ScanStatus.parse(raw_status)
    if status == ScanStatus.PENDING and str(raw_status).strip().lower() != "pending":
        logger.debug(f"Unrecognized status {raw_status!r} for {data['id']}, treating as pending")

    return ScanRecord(
        id=str(data["id"]),
        image_location=image_location or data.get("image_url") or data.get("image_s3_key") or "",
        created_at=created_at,
        status=status,
        extracted_text=_text(data.get("raw_ai_response")),
        sender_name=data.get("sender_name"),
        sender_address=data.get("sender_address"),
        sender_pincode=data.get("sender_pincode"),
        recipient_name=data.get("receiver_name"),
        recipient_address=data.get("receiver_address"),
        pincode=data.get("receiver_pincode"),
        sorting_center=data.get("assigned_sorting_center"),
        raw_server_payload=json.dumps(data, ensure_ascii=False, sort_keys=True),
        updated_at=parse_timestamp(data.get("updated_at")),
    )


def slot_from_payload(data: dict[str, Any]) -> UploadSlot:
    return UploadSlot(upload_url=data["upload_url"], file_key=data["file_key"])


def registered_user_from_payload(data: dict[str, Any]) -> RegisteredUser:
    return RegisteredUser(
        id=str(data["id"]), username=data["username"], email=data["email"]
    )


def parse_validation_details(body: Any) -> tuple[ValidationDetail, ...]:
    """Parse FastAPI-style `{"detail": [{"loc", "msg", "type"}]}` bodies."""
    if not isinstance(body, dict):
        return ()
    detail = body.get("detail")
    if not isinstance(detail, list):
        return ()

    details = []
    for entry in detail:
        if not isinstance(entry, dict):
            continue
        details.append(
            ValidationDetail(
                location=tuple(entry.get("loc") or ()),
                message=entry.get("msg") or "Unknown error",
                type=entry.get("type") or "unknown",
            )
        )
    return tuple(details)


def error_message(body: Any, fallback: str) -> str:
    """Pick a readable message out of an error body."""
    if isinstance(body, dict):
        details = parse_validation_details(body)
        if details:
            return ", ".join(d.message for d in details)
        for key in ("detail", "message", "error"):
            value = body.get(key)
            if isinstance(value, str) and value:
                return value
    elif isinstance(body, str) and body.strip():
        return body.strip()
    return fallback
