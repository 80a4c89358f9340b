from __future__ import annotations

from smartmark.extensions import db
from smartmark.models import Bookmark
from smartmark.services.changes import log_delete, log_insert
from smartmark.services.common import resolve_title
from smartmark.services.metadata import LinkMetadata


def list_bookmarks(user_id: int) -> list[Bookmark]:
    return (
        Bookmark.query.filter_by(user_id=user_id)
        .order_by(Bookmark.created_at.desc(), Bookmark.id.desc())
        .all()
    )


def create_bookmark(
    user_id: int,
    url: str,
    title: str | None,
    metadata: LinkMetadata | None = None,
) -> Bookmark:
    """Persist a bookmark and its insert event in one transaction."""
    metadata = metadata or LinkMetadata.empty()
    bookmark = Bookmark(
        user_id=user_id,
        url=url,
        title=resolve_title(title, metadata.title),
        description=metadata.description or "",
        image_url=metadata.image or "",
    )
    db.session.add(bookmark)
    db.session.flush()
    log_insert(bookmark)
    db.session.commit()
    return bookmark


def delete_bookmark(user_id: int, bookmark_id: int) -> bool:
    """Remove the caller's bookmark; False when there was nothing to remove.

    Ids owned by other users are reported as absent and left untouched.
    """
    bookmark = Bookmark.query.filter_by(id=bookmark_id, user_id=user_id).first()
    if not bookmark:
        return False
    db.session.delete(bookmark)
    log_delete(user_id, bookmark_id)
    db.session.commit()
    return True
