from datetime import datetime, timezone


def utcnow() -> datetime:
    # Naive UTC so values round-trip through SQLite and Postgres alike.
    return datetime.now(timezone.utc).replace(tzinfo=None)
