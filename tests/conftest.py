import httpx
import pytest

from smartmark import create_app
from smartmark.config import TestConfig
from smartmark.extensions import db
from smartmark.models import User


@pytest.fixture
def app():
    app = create_app(TestConfig)
    with app.app_context():
        db.drop_all()
        db.create_all()
    yield app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def make_user(app):
    def _make(username: str, password: str = "secret"):
        with app.app_context():
            user = User(username=username, is_active=True)
            user.set_password(password)
            db.session.add(user)
            db.session.commit()
            return user.id

    return _make


@pytest.fixture
def wsgi_http(app):
    with httpx.Client(
        transport=httpx.WSGITransport(app=app), base_url="http://smartmark.test"
    ) as http:
        yield http
