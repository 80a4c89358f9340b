from __future__ import annotations

import re
from datetime import timedelta

from itsdangerous import BadData, URLSafeSerializer

from smartmark.extensions import db
from smartmark.models import (
    CHANGE_KIND_DELETE,
    CHANGE_KIND_INSERT,
    CHANGE_KINDS,
    Bookmark,
    ChangeEvent,
    Subscription,
    utcnow,
)


CHANNEL_PATTERN = re.compile(r"^live-sync-(?P<user_id>\d+)-[A-Za-z0-9_-]{4,64}$")


class SubscriptionError(Exception):
    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


def _serializer(secret_key: str) -> URLSafeSerializer:
    return URLSafeSerializer(secret_key=secret_key, salt="change-feed-channel")


def create_channel_ticket(secret_key: str, user_id: int, channel: str) -> str:
    return _serializer(secret_key).dumps({"user_id": user_id, "channel": channel})


def verify_channel_ticket(
    secret_key: str, ticket: str, expected_user_id: int, expected_channel: str
) -> bool:
    try:
        payload = _serializer(secret_key).loads(ticket)
    except BadData:
        return False
    return (
        payload.get("user_id") == expected_user_id
        and payload.get("channel") == expected_channel
    )


def parse_kinds(raw) -> str:
    if raw is None or raw == "*" or raw == "":
        return "*"
    if isinstance(raw, str):
        values = [part.strip().lower() for part in raw.split(",")]
    elif isinstance(raw, list):
        values = [str(part).strip().lower() for part in raw]
    else:
        raise SubscriptionError("kinds must be '*', a string or a list")
    if "*" in values:
        return "*"
    unknown = [value for value in values if value not in CHANGE_KINDS]
    if unknown or not values:
        raise SubscriptionError(f"unsupported change kinds: {', '.join(unknown)}")
    return ",".join(sorted(set(values)))


def serialize_bookmark_for_feed(bookmark: Bookmark) -> dict:
    return bookmark.as_dict()


def log_change_event(user_id: int, kind: str, bookmark_id: int, payload: dict):
    event = ChangeEvent(
        user_id=user_id,
        kind=kind,
        bookmark_id=bookmark_id,
        payload=payload,
    )
    db.session.add(event)
    return event


def log_insert(bookmark: Bookmark):
    return log_change_event(
        bookmark.user_id,
        CHANGE_KIND_INSERT,
        bookmark.id,
        serialize_bookmark_for_feed(bookmark),
    )


def log_delete(user_id: int, bookmark_id: int):
    return log_change_event(
        user_id, CHANGE_KIND_DELETE, bookmark_id, {"id": bookmark_id}
    )


def head_cursor(user_id: int) -> int:
    return (
        db.session.query(db.func.max(ChangeEvent.id)).filter_by(user_id=user_id).scalar()
        or 0
    )


def open_subscription(user_id: int, channel: str, kinds) -> Subscription:
    channel = (channel or "").strip()
    match = CHANNEL_PATTERN.match(channel)
    if not match:
        raise SubscriptionError("channel must look like live-sync-<user_id>-<tag>")
    if int(match.group("user_id")) != user_id:
        raise SubscriptionError("channel does not belong to this user", 403)
    if Subscription.query.filter_by(channel=channel).first():
        raise SubscriptionError("channel already in use", 409)

    subscription = Subscription(
        user_id=user_id,
        channel=channel,
        kinds=parse_kinds(kinds),
        last_cursor=head_cursor(user_id),
    )
    db.session.add(subscription)
    db.session.commit()
    return subscription


def get_subscription(user_id: int, channel: str) -> Subscription | None:
    return Subscription.query.filter_by(user_id=user_id, channel=channel).first()


def close_subscription(user_id: int, channel: str) -> bool:
    subscription = get_subscription(user_id, channel)
    if not subscription:
        return False
    db.session.delete(subscription)
    db.session.commit()
    return True


def pull_events(
    user_id: int, since: int, limit: int, kinds: set[str] | None = None
) -> list[ChangeEvent]:
    query = ChangeEvent.query.filter_by(user_id=user_id).filter(ChangeEvent.id > since)
    if kinds is not None and kinds != CHANGE_KINDS:
        query = query.filter(ChangeEvent.kind.in_(sorted(kinds)))
    return query.order_by(ChangeEvent.id.asc()).limit(limit).all()


def pull_for_subscription(
    subscription: Subscription, since: int | None, limit: int
) -> tuple[list[ChangeEvent], int]:
    start = subscription.last_cursor if since is None else since
    events = pull_events(
        subscription.user_id, start, limit, kinds=subscription.accepted_kinds()
    )
    cursor = events[-1].id if events else max(start, 0)
    subscription.last_cursor = max(cursor, subscription.last_cursor)
    subscription.last_seen_at = utcnow()
    db.session.commit()
    return events, cursor


def prune_change_feed(retention_hours: int, idle_minutes: int) -> tuple[int, int]:
    now = utcnow()
    events_removed = ChangeEvent.query.filter(
        ChangeEvent.created_at < now - timedelta(hours=retention_hours)
    ).delete(synchronize_session=False)
    subscriptions_removed = Subscription.query.filter(
        Subscription.last_seen_at < now - timedelta(minutes=idle_minutes)
    ).delete(synchronize_session=False)
    db.session.commit()
    return events_removed, subscriptions_removed
