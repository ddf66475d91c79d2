from __future__ import annotations

import secrets
import time
import uuid
from datetime import datetime, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_iso(value: datetime | None) -> str | None:
    if value is None:
        return None
    return value.isoformat()


def parse_iso(value: str | None) -> datetime | None:
    if not value:
        return None
    dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def new_document_id() -> str:
    """DOC-<epoch millis>-<random hex>. No shared counter; safe across workers."""
    return f"DOC-{int(time.time() * 1000)}-{secrets.token_hex(4)}"


def new_record_id() -> str:
    return uuid.uuid4().hex


def normalize_email(email: str | None) -> str:
    return (email or "").strip().lower()
