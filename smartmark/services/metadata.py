from __future__ import annotations

import logging
import warnings
from dataclasses import asdict, dataclass
from urllib.parse import urljoin

import httpx
import trafilatura
from bs4 import BeautifulSoup, XMLParsedAsHTMLWarning


logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = "googlebot"
DEFAULT_ACCEPT = "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8"

_TITLE_META = (
    ("property", "og:title"),
    ("name", "twitter:title"),
)
_DESCRIPTION_META = (
    ("property", "og:description"),
    ("name", "twitter:description"),
    ("name", "description"),
)
_IMAGE_META = (
    ("property", "og:image"),
    ("property", "og:image:url"),
    ("name", "twitter:image"),
)


@dataclass(frozen=True)
class LinkMetadata:
    title: str = ""
    description: str = ""
    image: str = ""

    @classmethod
    def empty(cls) -> "LinkMetadata":
        return cls()

    @classmethod
    def from_payload(cls, payload) -> "LinkMetadata":
        if not isinstance(payload, dict):
            return cls.empty()
        return cls(
            title=_clean(payload.get("title")),
            description=_clean(payload.get("description")),
            image=_clean(payload.get("image")),
        )

    def as_dict(self) -> dict:
        return asdict(self)


def _clean(value) -> str:
    if not isinstance(value, str):
        return ""
    return " ".join(value.split())


def fetch_html(
    url: str, timeout: float, max_bytes: int, user_agent: str = DEFAULT_USER_AGENT
) -> tuple[str, str]:
    headers = {"User-Agent": user_agent, "Accept": DEFAULT_ACCEPT}
    with httpx.Client(follow_redirects=True, timeout=timeout, headers=headers) as client:
        with client.stream("GET", url) as response:
            response.raise_for_status()
            chunks = []
            total = 0
            for chunk in response.iter_bytes():
                total += len(chunk)
                if total > max_bytes:
                    break
                chunks.append(chunk)
            data = b"".join(chunks)
            encoding = response.encoding or "utf-8"
            return data.decode(encoding, errors="ignore"), str(response.url)


def _build_soup(html: str) -> BeautifulSoup:
    with warnings.catch_warnings():
        warnings.filterwarnings("ignore", category=XMLParsedAsHTMLWarning)
        return BeautifulSoup(html, "lxml")


def _meta_content(soup: BeautifulSoup, candidates) -> str:
    for attr, key in candidates:
        tag = soup.find("meta", attrs={attr: key})
        if tag and tag.get("content"):
            value = _clean(tag["content"])
            if value:
                return value
    return ""


def _first_image(soup: BeautifulSoup) -> str:
    image = _meta_content(soup, _IMAGE_META)
    if image:
        return image
    for tag in soup.find_all("img"):
        src = (tag.get("src") or "").strip()
        if src and not src.startswith("data:"):
            return src
    return ""


def _first_icon(soup: BeautifulSoup) -> str:
    for tag in soup.find_all("link", href=True):
        rel = tag.get("rel") or []
        if isinstance(rel, str):
            rel = rel.split()
        if any("icon" in value.lower() for value in rel):
            return tag["href"].strip()
    return ""


def extract_metadata_from_html(html: str, base_url: str = "") -> LinkMetadata:
    title = ""
    description = ""
    image = ""

    try:
        meta = trafilatura.extract_metadata(html, default_url=base_url or None)
    except Exception as exc:
        logger.debug("trafilatura metadata extraction failed: %s", exc)
        meta = None
    if meta is not None:
        title = _clean(getattr(meta, "title", None))
        description = _clean(getattr(meta, "description", None))
        image = _clean(getattr(meta, "image", None))

    soup = _build_soup(html)
    if not title:
        title = _meta_content(soup, _TITLE_META)
    if not title and soup.title and soup.title.string:
        title = _clean(soup.title.string)
    if not description:
        description = _meta_content(soup, _DESCRIPTION_META)
    if not image:
        image = _first_image(soup) or _first_icon(soup)

    if image and base_url:
        image = urljoin(base_url, image)
    return LinkMetadata(title=title, description=description, image=image)


def fetch_metadata(
    url: str,
    timeout: float = 10.0,
    max_bytes: int = 1_500_000,
    user_agent: str = DEFAULT_USER_AGENT,
) -> LinkMetadata:
    """Best-effort preview lookup for ``url``.

    Never raises: network errors, timeouts, non-2xx responses and parse
    failures all degrade to ``LinkMetadata.empty()`` so a save is never
    blocked on enrichment.
    """
    target = (url or "").strip()
    if not target:
        return LinkMetadata.empty()
    try:
        html, final_url = fetch_html(
            target, timeout=timeout, max_bytes=max_bytes, user_agent=user_agent
        )
        return extract_metadata_from_html(html, base_url=final_url)
    except Exception as exc:
        logger.warning("Scraping error for %s: %s", target, exc)
        return LinkMetadata.empty()
