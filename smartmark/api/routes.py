from __future__ import annotations

import json
import time

from flask import Response, current_app, g, jsonify, request, stream_with_context
from flask_login import current_user, logout_user

from smartmark.api import api_bp
from smartmark.extensions import db
from smartmark.models import ApiToken, User, utcnow
from smartmark.services.bookmarks import create_bookmark, delete_bookmark, list_bookmarks
from smartmark.services.changes import (
    SubscriptionError,
    close_subscription,
    create_channel_ticket,
    get_subscription,
    head_cursor,
    open_subscription,
    pull_events,
    pull_for_subscription,
    verify_channel_ticket,
)
from smartmark.services.metadata import LinkMetadata, fetch_metadata
from smartmark.services.security import api_auth_required, bearer_token_from_request


def _clean_text(value) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _fetch_metadata_for(url: str) -> LinkMetadata:
    config = current_app.config
    return fetch_metadata(
        url,
        timeout=config["METADATA_FETCH_TIMEOUT"],
        max_bytes=config["METADATA_MAX_BYTES"],
        user_agent=config["METADATA_USER_AGENT"],
    )


def _subscription_from_request(user_id: int, channel: str, ticket: str):
    if not channel or not ticket:
        return None, (jsonify({"error": "channel and ticket are required"}), 400)
    if not verify_channel_ticket(
        current_app.config["SECRET_KEY"], ticket, user_id, channel
    ):
        return None, (jsonify({"error": "invalid channel ticket"}), 403)
    subscription = get_subscription(user_id, channel)
    if not subscription:
        return None, (jsonify({"error": "subscription not found"}), 404)
    return subscription, None


def _format_sse(event) -> str:
    data = json.dumps(event.as_dict(), separators=(",", ":"))
    return f"id: {event.id}\nevent: {event.kind}\ndata: {data}\n\n"


@api_bp.route("/health")
def health():
    return jsonify({"status": "ok", "service": "SmartMark"})


@api_bp.route("/auth/token", methods=["POST"])
def create_token_with_credentials():
    payload = request.get_json(silent=True) or {}
    username = _clean_text(payload.get("username"))
    password = payload.get("password") or ""
    token_name = _clean_text(payload.get("token_name")) or "SmartMark API Token"

    user = User.query.filter_by(username=username).first()
    if not user or not user.is_active or not user.check_password(password):
        return jsonify({"error": "invalid credentials"}), 401

    token, token_hash = ApiToken.issue_token()
    row = ApiToken(user_id=user.id, name=token_name, token_hash=token_hash)
    db.session.add(row)
    db.session.commit()
    return jsonify({"token": token, "token_name": token_name, "user_id": user.id})


@api_bp.route("/auth/token", methods=["DELETE"])
@api_auth_required(token_only=True)
def revoke_token():
    token = bearer_token_from_request()
    row = ApiToken.query.filter_by(token_hash=ApiToken.hash_token(token)).first()
    row.revoked_at = utcnow()
    db.session.commit()
    return jsonify({"status": "signed_out"})


@api_bp.route("/auth/session", methods=["GET"])
@api_auth_required()
def current_session():
    return jsonify({"user": g.api_user.as_identity()})


@api_bp.route("/auth/session", methods=["DELETE"])
@api_auth_required()
def end_session():
    """Sign out whichever credential the caller presented: cookie, token or both."""
    token = bearer_token_from_request()
    if token:
        row = ApiToken.query.filter_by(token_hash=ApiToken.hash_token(token)).first()
        if row and row.revoked_at is None:
            row.revoked_at = utcnow()
            db.session.commit()
    if current_user.is_authenticated:
        logout_user()
    return jsonify({"status": "signed_out"})


@api_bp.route("/metadata", methods=["POST"])
@api_auth_required()
def metadata_lookup():
    payload = request.get_json(silent=True) or {}
    url = payload.get("url")
    if not isinstance(url, str) or not url.strip():
        return jsonify(LinkMetadata.empty().as_dict())
    try:
        metadata = _fetch_metadata_for(url.strip())
    except Exception as exc:
        current_app.logger.warning("Metadata lookup failed for %s: %s", url, exc)
        metadata = LinkMetadata.empty()
    return jsonify(metadata.as_dict())


@api_bp.route("/bookmarks", methods=["GET"])
@api_auth_required()
def bookmarks_list_api():
    items = list_bookmarks(g.api_user.id)
    return jsonify({"items": [item.as_dict() for item in items]})


@api_bp.route("/bookmarks", methods=["POST"])
@api_auth_required()
def bookmarks_create_api():
    user = g.api_user
    payload = request.get_json(silent=True) or {}
    url = _clean_text(payload.get("url"))
    if not url:
        return jsonify({"error": "url is required"}), 400

    metadata = LinkMetadata(
        description=_clean_text(payload.get("description")),
        image=_clean_text(payload.get("image_url")),
    )
    bookmark = create_bookmark(
        user.id, url, _clean_text(payload.get("title")), metadata=metadata
    )
    return jsonify(bookmark.as_dict()), 201


@api_bp.route("/bookmarks/<int:bookmark_id>", methods=["DELETE"])
@api_auth_required()
def bookmarks_delete_api(bookmark_id: int):
    removed = delete_bookmark(g.api_user.id, bookmark_id)
    return jsonify({"status": "deleted" if removed else "absent", "id": bookmark_id})


@api_bp.route("/changes/subscribe", methods=["POST"])
@api_auth_required()
def changes_subscribe():
    user = g.api_user
    payload = request.get_json(silent=True) or {}
    try:
        subscription = open_subscription(
            user.id, _clean_text(payload.get("channel")), payload.get("kinds")
        )
    except SubscriptionError as exc:
        return jsonify({"error": exc.message}), exc.status_code

    ticket = create_channel_ticket(
        current_app.config["SECRET_KEY"], user.id, subscription.channel
    )
    return (
        jsonify(
            {
                "status": "subscribed",
                "channel": subscription.channel,
                "kinds": subscription.kinds,
                "cursor": subscription.last_cursor,
                "ticket": ticket,
            }
        ),
        201,
    )


@api_bp.route("/changes/subscribe/<channel>", methods=["DELETE"])
@api_auth_required()
def changes_unsubscribe(channel: str):
    user = g.api_user
    _, error = _subscription_from_request(
        user.id, channel, _clean_text(request.args.get("ticket"))
    )
    if error:
        return error
    close_subscription(user.id, channel)
    return jsonify({"status": "unsubscribed", "channel": channel})


@api_bp.route("/changes", methods=["GET"])
@api_auth_required()
def changes_pull():
    user = g.api_user
    subscription, error = _subscription_from_request(
        user.id,
        _clean_text(request.args.get("channel")),
        _clean_text(request.args.get("ticket")),
    )
    if error:
        return error

    since = request.args.get("since", type=int)
    limit = request.args.get("limit", type=int) or current_app.config["CHANGE_PULL_LIMIT"]
    limit = max(1, min(limit, current_app.config["CHANGE_PULL_LIMIT"]))
    events, cursor = pull_for_subscription(subscription, since, limit)
    return jsonify(
        {
            "events": [event.as_dict() for event in events],
            "cursor": cursor,
            "has_more": len(events) == limit,
        }
    )


@api_bp.route("/changes/stream", methods=["GET"])
@api_auth_required()
def changes_stream():
    user_id = g.api_user.id
    since = request.headers.get("Last-Event-ID", type=int)
    if since is None:
        since = request.args.get("since", type=int)
    if since is None:
        since = head_cursor(user_id)

    config = current_app.config
    poll_seconds = float(config["CHANGE_STREAM_POLL_SECONDS"])
    max_seconds = float(config["CHANGE_STREAM_MAX_SECONDS"])
    limit = int(config["CHANGE_PULL_LIMIT"])

    def generate():
        cursor = since
        started = time.monotonic()
        yield "retry: 2000\n\n"
        while True:
            for event in pull_events(user_id, cursor, limit):
                cursor = event.id
                yield _format_sse(event)
            db.session.remove()
            if time.monotonic() - started >= max_seconds:
                break
            time.sleep(poll_seconds)

    return Response(
        stream_with_context(generate()),
        mimetype="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )
