from __future__ import annotations

from typing import Iterable

from smartmark.client.models import Bookmark


class BookmarkCollection:
    """Ordered, id-unique view of the session user's bookmarks.

    Entries are never mutated; every change swaps in a new tuple. Ids that
    have been removed are remembered, so a late or redelivered insert for a
    deleted bookmark cannot bring it back (store ids are never reused).
    Callers serialize access (the owning view holds a lock around each change).
    """

    def __init__(self, items: Iterable[Bookmark] = ()):
        self._items: tuple[Bookmark, ...] = ()
        self._removed: set = set()
        self.replace(items)

    def replace(self, items: Iterable[Bookmark]) -> None:
        seen: set = set()
        ordered = []
        for item in items:
            if item.id in seen or item.id in self._removed:
                continue
            seen.add(item.id)
            ordered.append(item)
        self._items = tuple(ordered)

    def prepend(self, record: Bookmark) -> bool:
        """Put ``record`` first, dropping any earlier copy with the same id.

        Returns False, leaving the collection unchanged, for a removed id.
        """
        if record.id in self._removed:
            return False
        self._items = (record,) + tuple(b for b in self._items if b.id != record.id)
        return True

    # A locally saved record and its realtime echo take the same path.
    add_local = prepend
    apply_inserted = prepend

    def remove(self, bookmark_id) -> bool:
        self._removed.add(bookmark_id)
        remaining = tuple(b for b in self._items if b.id != bookmark_id)
        removed = len(remaining) != len(self._items)
        self._items = remaining
        return removed

    def was_removed(self, bookmark_id) -> bool:
        return bookmark_id in self._removed

    def get(self, bookmark_id) -> Bookmark | None:
        for item in self._items:
            if item.id == bookmark_id:
                return item
        return None

    def snapshot(self) -> tuple[Bookmark, ...]:
        return self._items

    def ids(self) -> list:
        return [item.id for item in self._items]

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self):
        return iter(self._items)

    def __contains__(self, bookmark_id) -> bool:
        return self.get(bookmark_id) is not None
