"""Application state behind the bookmark dashboard.

``DashboardView`` owns the bookmark collection of one signed-in session and
merges the three inputs that change it: the initial load, the user's own
adds/deletes, and events pushed through the realtime listener. It is
created per session and torn down with ``close()`` (or by leaving a
``with`` block), which releases the live subscription on every exit path.
"""

from __future__ import annotations

import itertools
import logging
import threading
from dataclasses import dataclass
from typing import Callable

from smartmark.client.api import ApiClient
from smartmark.client.collection import BookmarkCollection
from smartmark.client.errors import AuthRequired, StoreError
from smartmark.client.models import Bookmark, ChangeEvent, Deleted, Inserted
from smartmark.client.realtime import ChangeFeed, HttpChangeFeed, RealtimeListener
from smartmark.client.session import IdentityClient, Session, SessionGate
from smartmark.client.store import BookmarkStore

logger = logging.getLogger(__name__)

SIGNED_OUT_LOCATION = "/"

NOTICE_LOADING = "loading"
NOTICE_SUCCESS = "success"
NOTICE_ERROR = "error"

_notice_ids = itertools.count(1)

MAX_NOTICES = 5


@dataclass(frozen=True)
class Notice:
    id: int
    level: str
    message: str


@dataclass
class AddForm:
    title: str = ""
    url: str = ""


class DashboardView:
    def __init__(
        self,
        store: BookmarkStore,
        gate: SessionGate,
        feed: ChangeFeed,
        identity: IdentityClient | None = None,
        confirm_delete: Callable[[Bookmark | None], bool] | None = None,
        on_change: Callable[[tuple[Bookmark, ...]], None] | None = None,
    ):
        self._store = store
        self._gate = gate
        self._identity = identity
        self.feed = feed
        self._confirm_delete = confirm_delete
        self._on_change = on_change
        self._lock = threading.RLock()
        self.collection = BookmarkCollection()
        self.listener = RealtimeListener(feed, self._apply_remote_event)
        self.session: Session | None = None
        self.form = AddForm()
        self.notices: list[Notice] = []
        self._loaded = False
        self._pending: list[ChangeEvent] = []
        self.is_loading = False
        self.load_failed = False
        self.redirect_to: str | None = None
        self._closed = False

    @classmethod
    def connect(cls, api: ApiClient, background: bool = True, **kwargs) -> "DashboardView":
        identity = IdentityClient(api)
        return cls(
            store=BookmarkStore(api),
            gate=SessionGate(identity),
            feed=HttpChangeFeed(api, background=background),
            identity=identity,
            **kwargs,
        )

    @property
    def bookmarks(self) -> tuple[Bookmark, ...]:
        return self.collection.snapshot()

    @property
    def is_connected(self) -> bool:
        return self.listener.is_connected

    @property
    def connection_label(self) -> str:
        return "Real-time" if self.is_connected else "Syncing"

    def _notify(self, level: str, message: str, replaces: Notice | None = None) -> Notice:
        notice = Notice(
            id=replaces.id if replaces else next(_notice_ids),
            level=level,
            message=message,
        )
        with self._lock:
            if replaces is not None:
                self.notices = [n for n in self.notices if n.id != replaces.id]
            self.notices.append(notice)
            del self.notices[:-MAX_NOTICES]
        return notice

    def dismiss(self, notice_id: int) -> bool:
        with self._lock:
            remaining = [n for n in self.notices if n.id != notice_id]
            dismissed = len(remaining) != len(self.notices)
            self.notices = remaining
        return dismissed

    def _changed(self) -> None:
        if self._on_change is not None:
            self._on_change(self.collection.snapshot())

    def open(self) -> bool:
        """Gate, subscribe, then load. False means the caller must redirect.

        Events delivered while the load is in flight are held and applied on
        top of the loaded list.
        """
        if self._closed:
            raise RuntimeError("dashboard view already closed")
        try:
            self.session = self._gate.require()
        except AuthRequired:
            self.redirect_to = SIGNED_OUT_LOCATION
            return False

        try:
            self.listener.start(self.session.user_id)
            self._load()
        except StoreError as exc:
            logger.warning("Dashboard load failed for user %s: %s", self.session.user_id, exc)
            self.load_failed = True
            self._notify(NOTICE_ERROR, "Failed to load library")
        return True

    def _load(self) -> None:
        with self._lock:
            self._loaded = False
        initial = self._store.list_all(self.session.user_id)
        with self._lock:
            self.collection.replace(initial)
            pending, self._pending = self._pending, []
            for event in pending:
                self._merge(event)
            self._loaded = True
            self.load_failed = False
            self._changed()

    def reload(self) -> bool:
        """Manual reload after a failed load; the subscription is kept if live."""
        if self.session is None:
            raise AuthRequired("sign-in required")
        try:
            if self.listener.channel is None:
                self.listener.start(self.session.user_id)
            self._load()
        except StoreError as exc:
            logger.warning("Dashboard reload failed: %s", exc)
            self.load_failed = True
            self._notify(NOTICE_ERROR, "Failed to load library")
            return False
        return True

    def add(self, url: str, title: str) -> Bookmark | None:
        if self.session is None:
            raise AuthRequired("sign-in required")
        self.form = AddForm(title=title, url=url)
        if not (url or "").strip() or not (title or "").strip():
            self._notify(NOTICE_ERROR, "Please enter both a title and a link")
            return None

        self.is_loading = True
        pending = self._notify(NOTICE_LOADING, "Saving to library...")
        try:
            record = self._store.insert(url, title, self.session.user_id)
        except StoreError as exc:
            logger.warning("Save failed for %s: %s", url, exc)
            self._notify(NOTICE_ERROR, "Save failed", replaces=pending)
            return None
        finally:
            self.is_loading = False

        with self._lock:
            self.collection.add_local(record)
            self._changed()
        self._notify(NOTICE_SUCCESS, "Bookmark saved", replaces=pending)
        self.form = AddForm()
        return record

    def delete(self, bookmark_id) -> bool:
        if self.session is None:
            raise AuthRequired("sign-in required")
        if self._confirm_delete is not None:
            if not self._confirm_delete(self.collection.get(bookmark_id)):
                return False

        try:
            self._store.delete(bookmark_id)
        except StoreError as exc:
            logger.warning("Delete failed for bookmark %s: %s", bookmark_id, exc)
            self._notify(NOTICE_ERROR, "Delete failed")
            return False

        with self._lock:
            self.collection.remove(bookmark_id)
            self._changed()
        self._notify(NOTICE_SUCCESS, "Removed")
        return True

    def _merge(self, event: ChangeEvent) -> bool:
        if isinstance(event, Inserted):
            if not self.collection.apply_inserted(event.record):
                logger.debug("Ignoring insert event for deleted bookmark %s", event.record.id)
                return False
            return True
        if isinstance(event, Deleted):
            if not self.collection.remove(event.id):
                logger.debug("Ignoring delete event for absent bookmark %s", event.id)
                return False
            return True
        return False

    def _apply_remote_event(self, event: ChangeEvent) -> None:
        with self._lock:
            if self._closed:
                return
            if not self._loaded:
                self._pending.append(event)
                return
            if self._merge(event):
                self._changed()

    def sign_out(self) -> None:
        # The channel is released while the credentials are still valid.
        self.close()
        try:
            if self._identity is not None:
                self._identity.sign_out()
        finally:
            self.session = None
            self.redirect_to = SIGNED_OUT_LOCATION

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
        self.listener.stop()

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.close()
