from pathlib import Path
from datetime import datetime, timezone
from typing import Optional


def resolve_sqlite_url(url: str, project_root: Path) -> str:
    """Resolve 'sqlite:///./relative/path' to an absolute sqlite:/// URL.

    Keeps other URL forms unchanged.
    """
    prefix = "sqlite:///./"
    if not url.startswith(prefix):
        return url
    rel = url[len(prefix) :]
    return f"sqlite:///{(project_root / rel).resolve()}"


def iso_utc(dt: Optional[datetime] = None) -> str:
    """Return ``dt`` (default: now) as ``YYYY-MM-DDTHH:MM:SS.mmmZ``.

    Every timestamp that ends up in a hashed audit payload goes through this
    helper, so the format must stay stable. Naive datetimes are taken as UTC.
    """
    value = dt or datetime.now(timezone.utc)
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace(
        "+00:00", "Z"
    )
