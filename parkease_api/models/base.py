from parkease_api.db.db import db
from datetime import datetime, timezone
import uuid


def generate_uuid():
    return str(uuid.uuid4())


def utcnow():
    """Naive UTC timestamp, the form every DateTime column stores."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def isoformat(value):
    return value.isoformat() if value else None
