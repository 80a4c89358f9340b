from __future__ import annotations

import logging

import httpx

from smartmark.client.api import ApiClient
from smartmark.client.errors import StoreError
from smartmark.client.models import Bookmark
from smartmark.services.common import resolve_title
from smartmark.services.metadata import LinkMetadata

logger = logging.getLogger(__name__)


def _error_message(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        payload = None
    if isinstance(payload, dict) and payload.get("error"):
        return str(payload["error"])
    return f"HTTP {response.status_code}"


class BookmarkStore:
    """Request/response façade over the remote ``bookmarks`` resource.

    Holds no bookmark state. The server scopes every call to the
    authenticated user, so ``user_id`` arguments only label the records.
    """

    def __init__(self, api: ApiClient):
        self._api = api

    def _checked(self, method: str, path: str, **kwargs) -> httpx.Response:
        response = self._api.request(method, path, **kwargs)
        if response.is_error:
            raise StoreError(
                f"{method} {path}: {_error_message(response)}",
                status_code=response.status_code,
            )
        return response

    def list_all(self, user_id: int | None = None) -> list[Bookmark]:
        """All of the session user's bookmarks, most recent first."""
        response = self._checked("GET", "/bookmarks")
        try:
            items = response.json()["items"]
            bookmarks = [Bookmark.from_dict(item) for item in items]
        except (ValueError, KeyError, TypeError) as exc:
            raise StoreError(f"malformed bookmark listing: {exc}") from exc
        logger.debug("Loaded %d bookmarks for user %s", len(bookmarks), user_id)
        return bookmarks

    def fetch_metadata(self, url: str) -> LinkMetadata:
        """Enrichment lookup; degrades to empty fields instead of raising."""
        try:
            response = self._api.request("POST", "/metadata", json={"url": url})
            if response.is_error:
                logger.info("Metadata lookup for %s returned %s", url, response.status_code)
                return LinkMetadata.empty()
            return LinkMetadata.from_payload(response.json())
        except (StoreError, ValueError) as exc:
            logger.info("Metadata lookup for %s failed: %s", url, exc)
            return LinkMetadata.empty()

    def insert(self, url: str, title: str, user_id: int) -> Bookmark:
        metadata = self.fetch_metadata(url)
        response = self._checked(
            "POST",
            "/bookmarks",
            json={
                "url": url,
                "title": resolve_title(title, metadata.title),
                "description": metadata.description,
                "image_url": metadata.image,
            },
        )
        try:
            bookmark = Bookmark.from_dict(response.json())
        except (ValueError, KeyError, TypeError) as exc:
            raise StoreError(f"malformed insert response: {exc}") from exc
        logger.info("Saved bookmark %s for user %s", bookmark.id, user_id)
        return bookmark

    def delete(self, bookmark_id: int) -> None:
        """Delete by id. Deleting an id that is already gone is a no-op success."""
        self._checked("DELETE", f"/bookmarks/{bookmark_id}")
