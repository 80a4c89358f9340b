import hashlib
import secrets
from datetime import datetime, timezone

from flask_login import UserMixin
from werkzeug.security import check_password_hash, generate_password_hash

from smartmark.extensions import db, login_manager
from smartmark.services.common import TITLE_MAX_LENGTH


CHANGE_KIND_INSERT = "insert"
CHANGE_KIND_DELETE = "delete"
CHANGE_KINDS = {CHANGE_KIND_INSERT, CHANGE_KIND_DELETE}


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class User(UserMixin, db.Model):
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(120), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(255), nullable=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    bookmarks = db.relationship("Bookmark", backref="user", lazy=True)

    def set_password(self, password: str) -> None:
        self.password_hash = generate_password_hash(password)

    def check_password(self, password: str) -> bool:
        return check_password_hash(self.password_hash, password)

    def as_identity(self):
        return {"id": self.id, "username": self.username}


@login_manager.user_loader
def load_user(user_id: str):
    return db.session.get(User, int(user_id))


class Bookmark(db.Model):
    __tablename__ = "bookmarks"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(
        db.Integer, db.ForeignKey("users.id"), nullable=False, index=True
    )
    url = db.Column(db.Text, nullable=False)
    title = db.Column(db.String(TITLE_MAX_LENGTH), nullable=False)
    description = db.Column(db.Text, nullable=False, default="")
    image_url = db.Column(db.Text, nullable=False, default="")
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    # ids are never reused, so a stale id cannot address a newer row
    __table_args__ = (
        db.Index("ix_bookmark_user_created", "user_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    def as_dict(self):
        return {
            "id": self.id,
            "user_id": self.user_id,
            "url": self.url,
            "title": self.title,
            "description": self.description or "",
            "image_url": self.image_url or "",
            "created_at": self.created_at.isoformat(),
        }


class ChangeEvent(db.Model):
    __tablename__ = "change_events"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(
        db.Integer, db.ForeignKey("users.id"), nullable=False, index=True
    )
    kind = db.Column(db.String(16), nullable=False)
    bookmark_id = db.Column(db.Integer, nullable=False)
    payload = db.Column(db.JSON, nullable=False, default=dict)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    # the id is the feed cursor and must keep growing after pruning
    __table_args__ = (
        db.Index("ix_change_user_cursor", "user_id", "id"),
        {"sqlite_autoincrement": True},
    )

    def as_dict(self):
        return {
            "cursor": self.id,
            "kind": self.kind,
            "bookmark_id": self.bookmark_id,
            "payload": self.payload,
            "created_at": self.created_at.isoformat(),
        }


class Subscription(db.Model):
    __tablename__ = "subscriptions"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(
        db.Integer, db.ForeignKey("users.id"), nullable=False, index=True
    )
    channel = db.Column(db.String(160), nullable=False, unique=True)
    kinds = db.Column(db.String(32), nullable=False, default="*")
    last_cursor = db.Column(db.Integer, nullable=False, default=0)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    last_seen_at = db.Column(
        db.DateTime(timezone=True), nullable=False, default=utcnow, index=True
    )

    def accepted_kinds(self) -> set[str]:
        if self.kinds == "*":
            return set(CHANGE_KINDS)
        return {kind for kind in self.kinds.split(",") if kind in CHANGE_KINDS}


class ApiToken(db.Model):
    __tablename__ = "api_tokens"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(
        db.Integer, db.ForeignKey("users.id"), nullable=False, index=True
    )
    name = db.Column(db.String(120), nullable=False)
    token_hash = db.Column(db.String(128), nullable=False, unique=True)
    last_used_at = db.Column(db.DateTime(timezone=True), nullable=True)
    revoked_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    user = db.relationship("User", backref="api_tokens")

    @staticmethod
    def hash_token(token: str) -> str:
        return hashlib.sha256(token.encode("utf-8")).hexdigest()

    @staticmethod
    def issue_token(prefix="sm"):
        token = f"{prefix}_{secrets.token_urlsafe(32)}"
        return token, ApiToken.hash_token(token)
