"""Value types shared by the store, the realtime listener and the view."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from dateutil import parser as dt_parser


def _parse_time(value) -> datetime | None:
    if not value:
        return None
    try:
        return dt_parser.isoparse(value)
    except (TypeError, ValueError):
        return None


@dataclass(frozen=True)
class Bookmark:
    id: int
    url: str
    title: str
    user_id: int
    description: str = ""
    image_url: str = ""
    created_at: datetime | None = field(default=None, compare=False)

    @classmethod
    def from_dict(cls, data: dict) -> "Bookmark":
        return cls(
            id=data["id"],
            url=data.get("url") or "",
            title=data.get("title") or "",
            user_id=data.get("user_id"),
            description=data.get("description") or "",
            image_url=data.get("image_url") or "",
            created_at=_parse_time(data.get("created_at")),
        )


@dataclass(frozen=True)
class Inserted:
    record: Bookmark
    cursor: int = 0


@dataclass(frozen=True)
class Deleted:
    id: int
    cursor: int = 0


ChangeEvent = Inserted | Deleted


def change_event_from_dict(data: dict) -> ChangeEvent | None:
    """Decode one feed entry; unknown kinds decode to None."""
    kind = data.get("kind")
    cursor = int(data.get("cursor") or 0)
    payload = data.get("payload") or {}
    if kind == "insert":
        return Inserted(record=Bookmark.from_dict(payload), cursor=cursor)
    if kind == "delete":
        return Deleted(id=payload.get("id", data.get("bookmark_id")), cursor=cursor)
    return None
