import secrets
import string
import uuid
from datetime import datetime, timezone

QUOTE_ALPHABET = string.ascii_uppercase + string.digits


def new_id() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def quote_reference(length: int = 8) -> str:
    """Short uppercase alphanumeric reference handed out for new quotes."""
    return "".join(secrets.choice(QUOTE_ALPHABET) for _ in range(length))
