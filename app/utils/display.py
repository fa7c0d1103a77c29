from datetime import UTC, datetime
from urllib.parse import urlparse

FAVICON_SERVICE = "https://www.google.com/s2/favicons"
FAVICON_SIZE = 64


def favicon_url(url: str) -> str | None:
    """Derive the favicon URL for a bookmark target.

    Args:
        url: The bookmark's target URL

    Returns:
        The favicon service URL for the URL's hostname, or None when no
        hostname can be parsed out of it
    """
    try:
        hostname = urlparse(url).hostname
    except ValueError:
        return None
    if not hostname:
        return None
    return f"{FAVICON_SERVICE}?domain={hostname}&sz={FAVICON_SIZE}"


def time_ago(created_at: datetime, now: datetime | None = None) -> str:
    """Render a short relative age label such as "5m ago".

    Args:
        created_at: When the bookmark was created
        now: Reference time, defaults to the current UTC time

    Returns:
        "just now", "<n>m ago", "<n>h ago", "<n>d ago", or the calendar date
        once the bookmark is 30 days old
    """
    if now is None:
        now = datetime.now(UTC)
    if created_at.tzinfo is None:
        created_at = created_at.replace(tzinfo=UTC)
    mins = int((now - created_at).total_seconds() // 60)
    if mins < 1:
        return "just now"
    if mins < 60:
        return f"{mins}m ago"
    hours = mins // 60
    if hours < 24:
        return f"{hours}h ago"
    days = hours // 24
    if days < 30:
        return f"{days}d ago"
    return created_at.date().isoformat()
