"""Per-user change feed subscription.

``ChangeFeed`` is the capability the listener needs from a backend; any
pub/sub source can satisfy it. ``HttpChangeFeed`` implements it as a
long-poll loop against ``/api/v1/changes``. Delivery is at-least-once and
carries no ordering guarantee relative to the caller's own writes, so
consumers must apply events idempotently.
"""

from __future__ import annotations

import enum
import logging
import secrets
import threading
from dataclasses import dataclass, field
from typing import Callable, Protocol

from smartmark.client.api import ApiClient
from smartmark.client.errors import StoreError
from smartmark.client.models import ChangeEvent, change_event_from_dict

logger = logging.getLogger(__name__)


class FeedStatus(str, enum.Enum):
    SUBSCRIBED = "SUBSCRIBED"
    CHANNEL_ERROR = "CHANNEL_ERROR"
    CLOSED = "CLOSED"


class ListenerState(str, enum.Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    SUBSCRIBED = "subscribed"


EventHandler = Callable[[ChangeEvent], None]
StatusHandler = Callable[[FeedStatus], None]


@dataclass(frozen=True)
class ChangeFilter:
    user_id: int
    kinds: str = "*"


@dataclass
class SubscriptionHandle:
    channel: str
    ticket: str
    cursor: int
    handler: EventHandler
    on_status: StatusHandler | None = None
    stop_event: threading.Event = field(default_factory=threading.Event)
    thread: threading.Thread | None = None


class ChangeFeed(Protocol):
    def subscribe(
        self,
        change_filter: ChangeFilter,
        handler: EventHandler,
        channel: str,
        on_status: StatusHandler | None = None,
    ) -> SubscriptionHandle: ...

    def unsubscribe(self, handle: SubscriptionHandle) -> None: ...


def new_channel_name(user_id: int) -> str:
    return f"live-sync-{user_id}-{secrets.token_urlsafe(6)}"


class HttpChangeFeed:
    def __init__(self, api: ApiClient, poll_interval: float | None = None, background=True):
        self._api = api
        self._poll_interval = (
            api.config.poll_interval if poll_interval is None else poll_interval
        )
        self._background = background

    def subscribe(self, change_filter, handler, channel, on_status=None):
        response = self._api.request(
            "POST",
            "/changes/subscribe",
            json={"channel": channel, "kinds": change_filter.kinds},
        )
        if response.is_error:
            raise StoreError(
                f"subscribe {channel} failed ({response.status_code})",
                status_code=response.status_code,
            )
        payload = response.json()
        handle = SubscriptionHandle(
            channel=payload["channel"],
            ticket=payload["ticket"],
            cursor=int(payload.get("cursor") or 0),
            handler=handler,
            on_status=on_status,
        )
        _notify(handle, FeedStatus.SUBSCRIBED)
        if self._background:
            handle.thread = threading.Thread(
                target=self._poll_loop,
                args=(handle,),
                daemon=True,
                name=f"change-feed-{handle.channel}",
            )
            handle.thread.start()
        return handle

    def poll_once(self, handle: SubscriptionHandle) -> int:
        """Drain pending events into the handler; returns how many were delivered."""
        delivered = 0
        while not handle.stop_event.is_set():
            try:
                response = self._api.request(
                    "GET",
                    "/changes",
                    params={
                        "channel": handle.channel,
                        "ticket": handle.ticket,
                        "since": handle.cursor,
                    },
                )
            except StoreError:
                _notify(handle, FeedStatus.CHANNEL_ERROR)
                return delivered
            if response.is_error:
                logger.warning(
                    "Change feed %s answered %s", handle.channel, response.status_code
                )
                _notify(handle, FeedStatus.CHANNEL_ERROR)
                return delivered

            payload = response.json()
            _notify(handle, FeedStatus.SUBSCRIBED)
            for raw in payload.get("events") or []:
                if handle.stop_event.is_set():
                    return delivered
                event = change_event_from_dict(raw)
                handle.cursor = max(handle.cursor, int(raw.get("cursor") or 0))
                if event is None:
                    continue
                handle.handler(event)
                delivered += 1
            handle.cursor = max(handle.cursor, int(payload.get("cursor") or 0))
            if not payload.get("has_more"):
                return delivered
        return delivered

    def _poll_loop(self, handle: SubscriptionHandle) -> None:
        while not handle.stop_event.is_set():
            try:
                self.poll_once(handle)
            except Exception:
                logger.exception("Change feed %s handler failed", handle.channel)
                _notify(handle, FeedStatus.CHANNEL_ERROR)
            handle.stop_event.wait(self._poll_interval)

    def unsubscribe(self, handle: SubscriptionHandle) -> None:
        handle.stop_event.set()
        if handle.thread is not None and handle.thread is not threading.current_thread():
            handle.thread.join(timeout=self._api.config.timeout)
        try:
            response = self._api.request(
                "DELETE",
                f"/changes/subscribe/{handle.channel}",
                params={"ticket": handle.ticket},
            )
            if response.is_error and response.status_code != 404:
                logger.warning(
                    "Unsubscribe %s answered %s", handle.channel, response.status_code
                )
        except StoreError as exc:
            logger.warning("Unsubscribe %s failed: %s", handle.channel, exc)
        _notify(handle, FeedStatus.CLOSED)


def _notify(handle: SubscriptionHandle, status: FeedStatus) -> None:
    if handle.on_status is not None:
        handle.on_status(status)


class RealtimeListener:
    """Owns the single live subscription of one session.

    State moves Disconnected -> Connecting -> Subscribed and falls back to
    Disconnected on feed errors or ``stop()``. ``is_connected`` is for
    display only; events can be missed while disconnected.
    """

    def __init__(self, feed: ChangeFeed, handler: EventHandler):
        self._feed = feed
        self._handler = handler
        self._lock = threading.Lock()
        self._handle: SubscriptionHandle | None = None
        self._token: object | None = None
        self._state = ListenerState.DISCONNECTED
        self._status_listeners: list[Callable[[bool], None]] = []

    @property
    def state(self) -> ListenerState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state is ListenerState.SUBSCRIBED

    @property
    def handle(self) -> SubscriptionHandle | None:
        return self._handle

    @property
    def channel(self) -> str | None:
        return self._handle.channel if self._handle else None

    def add_status_listener(self, callback: Callable[[bool], None]) -> None:
        self._status_listeners.append(callback)

    def _set_state(self, state: ListenerState) -> None:
        if state is self._state:
            return
        was_connected = self.is_connected
        self._state = state
        logger.debug("Realtime listener -> %s", state.value)
        if self.is_connected != was_connected:
            for callback in list(self._status_listeners):
                callback(self.is_connected)

    def start(self, user_id: int, kinds: str = "*") -> str:
        with self._lock:
            if self._handle is not None:
                raise RuntimeError(f"listener already subscribed on {self._handle.channel}")
            channel = new_channel_name(user_id)
            self._set_state(ListenerState.CONNECTING)
            token = object()
            self._token = token

            def deliver(event):
                if self._token is token:
                    self._handler(event)

            def on_status(status: FeedStatus):
                if self._token is not token:
                    return
                if status is FeedStatus.SUBSCRIBED:
                    self._set_state(ListenerState.SUBSCRIBED)
                else:
                    self._set_state(ListenerState.DISCONNECTED)

            try:
                self._handle = self._feed.subscribe(
                    ChangeFilter(user_id=user_id, kinds=kinds),
                    deliver,
                    channel=channel,
                    on_status=on_status,
                )
            except Exception:
                self._token = None
                self._set_state(ListenerState.DISCONNECTED)
                raise
            logger.info("Subscribed to change feed %s", channel)
            return channel

    def stop(self) -> None:
        with self._lock:
            handle, self._handle = self._handle, None
            self._token = None
            try:
                if handle is not None:
                    self._feed.unsubscribe(handle)
                    logger.info("Unsubscribed from change feed %s", handle.channel)
            finally:
                self._set_state(ListenerState.DISCONNECTED)

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.stop()
