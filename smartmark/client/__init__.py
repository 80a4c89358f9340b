from smartmark.client.api import ApiClient
from smartmark.client.collection import BookmarkCollection
from smartmark.client.config import ClientConfig
from smartmark.client.dashboard import DashboardView, Notice
from smartmark.client.errors import AuthRequired, StoreError
from smartmark.client.models import Bookmark, Deleted, Inserted
from smartmark.client.realtime import (
    ChangeFeed,
    ChangeFilter,
    HttpChangeFeed,
    ListenerState,
    RealtimeListener,
)
from smartmark.client.session import IdentityClient, Session, SessionGate
from smartmark.client.store import BookmarkStore

__all__ = [
    "ApiClient",
    "AuthRequired",
    "Bookmark",
    "BookmarkCollection",
    "BookmarkStore",
    "ChangeFeed",
    "ChangeFilter",
    "ClientConfig",
    "DashboardView",
    "Deleted",
    "HttpChangeFeed",
    "IdentityClient",
    "Inserted",
    "ListenerState",
    "Notice",
    "RealtimeListener",
    "Session",
    "SessionGate",
    "StoreError",
]
