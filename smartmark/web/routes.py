from __future__ import annotations

from flask import (
    current_app,
    flash,
    jsonify,
    redirect,
    render_template,
    request,
    url_for,
)
from flask_login import current_user, login_required
from sqlalchemy.exc import SQLAlchemyError

from smartmark.extensions import db
from smartmark.models import Bookmark, User
from smartmark.services.bookmarks import create_bookmark, delete_bookmark, list_bookmarks
from smartmark.services.common import display_host, favicon_url
from smartmark.services.metadata import fetch_metadata
from smartmark.web import web_bp


@web_bp.before_app_request
def first_run_gate():
    endpoint = request.endpoint or ""
    allowed = {"static", "auth.bootstrap_account", "auth.login", "api.health"}
    if endpoint not in allowed and User.query.count() == 0:
        return redirect(url_for("auth.bootstrap_account"))


def _serialize_bookmark_card(item: Bookmark) -> dict:
    return {
        "id": item.id,
        "title": item.title,
        "url": item.url,
        "description": item.description or "",
        "image_url": item.image_url or "",
        "host": display_host(item.url),
        "favicon_url": favicon_url(item.url),
    }


def _render_dashboard(title: str = "", url: str = "", status_code: int = 200):
    items = [_serialize_bookmark_card(item) for item in list_bookmarks(current_user.id)]
    return (
        render_template(
            "dashboard.html",
            items=items,
            form_title=title,
            form_url=url,
        ),
        status_code,
    )


@web_bp.route("/")
def home():
    if current_user.is_authenticated:
        return redirect(url_for("web.dashboard"))
    return redirect(url_for("auth.login"))


@web_bp.route("/dashboard")
@login_required
def dashboard():
    return _render_dashboard()


@web_bp.route("/bookmarks/live")
@login_required
def bookmarks_live():
    items = [_serialize_bookmark_card(item) for item in list_bookmarks(current_user.id)]
    return jsonify({"items": items})


@web_bp.route("/bookmarks", methods=["POST"])
@login_required
def bookmarks_add():
    title = (request.form.get("title") or "").strip()
    url = (request.form.get("url") or "").strip()
    if not title or not url:
        flash("Please enter both a title and a link", "error")
        return _render_dashboard(title=title, url=url, status_code=400)

    config = current_app.config
    metadata = fetch_metadata(
        url,
        timeout=config["METADATA_FETCH_TIMEOUT"],
        max_bytes=config["METADATA_MAX_BYTES"],
        user_agent=config["METADATA_USER_AGENT"],
    )
    try:
        create_bookmark(current_user.id, url, title, metadata=metadata)
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.warning(
            "Save failed for user %s (%s): %s", current_user.id, url, exc
        )
        flash("Save failed", "error")
        return _render_dashboard(title=title, url=url, status_code=500)

    flash("Bookmark saved", "success")
    return redirect(url_for("web.dashboard"))


@web_bp.route("/bookmarks/<int:bookmark_id>/delete", methods=["POST"])
@login_required
def bookmarks_delete(bookmark_id: int):
    try:
        delete_bookmark(current_user.id, bookmark_id)
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.warning(
            "Delete failed for bookmark %s (user %s): %s",
            bookmark_id,
            current_user.id,
            exc,
        )
        flash("Delete failed", "error")
    else:
        flash("Removed", "success")
    return redirect(url_for("web.dashboard"))
