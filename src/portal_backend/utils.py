import re
import uuid
from datetime import datetime, timezone
from typing import Optional


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes coming back from databases without time zone support."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def new_id() -> str:
    return str(uuid.uuid4())


def is_expired(expires_at: Optional[datetime], now: Optional[datetime] = None) -> bool:
    if expires_at is None:
        return False
    return as_utc(expires_at) <= (now or utc_now())


_SLUG_PATTERN = re.compile(r"[^a-z0-9_-]+")


def slugify_folder(folder: Optional[str]) -> str:
    """Reduce a folder name to a safe single path segment."""
    if not folder:
        return "general"
    cleaned = _SLUG_PATTERN.sub("-", folder.strip().lower()).strip("-_")
    return cleaned or "general"
