from urllib.parse import quote, urlparse


UNTITLED = "Untitled"
TITLE_MAX_LENGTH = 512


def resolve_title(title: str | None, fetched_title: str | None) -> str:
    chosen = (title or "").strip()
    if not chosen:
        chosen = (fetched_title or "").strip()
    if not chosen:
        return UNTITLED
    return chosen[:TITLE_MAX_LENGTH].rstrip()


def display_host(url: str) -> str:
    if not url:
        return ""
    hostname = urlparse(url.strip()).hostname or ""
    return hostname.replace("www.", "", 1) if hostname.startswith("www.") else hostname


def favicon_url(url: str, size: int = 64) -> str:
    hostname = urlparse((url or "").strip()).hostname or ""
    if not hostname:
        return ""
    return f"https://www.google.com/s2/favicons?domain={quote(hostname)}&sz={size}"
