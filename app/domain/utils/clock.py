from datetime import datetime, timezone

utc_now = lambda: datetime.now(timezone.utc)  # noqa: E731


def ensure_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes (MongoDB returns naive UTC values)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
