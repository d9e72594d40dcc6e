from datetime import datetime, timezone

from parkease_api.services.errors import InvalidInput


def parse_datetime(value, field='datetime'):
    """Parse an ISO-8601 string into a naive UTC datetime."""
    if isinstance(value, datetime):
        parsed = value
    else:
        if not value or not isinstance(value, str):
            raise InvalidInput(f"Valid {field} is required")
        try:
            # fromisoformat() only learned the trailing 'Z' in 3.11
            parsed = datetime.fromisoformat(value.strip().replace('Z', '+00:00'))
        except ValueError:
            raise InvalidInput(f"Valid {field} is required")

    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def parse_optional_datetime(value, field='datetime'):
    return parse_datetime(value, field) if value else None
