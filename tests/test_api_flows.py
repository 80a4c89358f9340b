from smartmark.extensions import db
from smartmark.models import Bookmark, ChangeEvent, Subscription
from smartmark.services.metadata import LinkMetadata


def _token(client, username: str, password: str = "secret"):
    response = client.post(
        "/api/v1/auth/token",
        json={"username": username, "password": password, "token_name": "pytest"},
    )
    assert response.status_code == 200
    return response.get_json()["token"]


def _auth(client, username: str):
    return {"Authorization": f"Bearer {_token(client, username)}"}


def _create(client, auth, url="https://example.com", title="Example", **extra):
    response = client.post(
        "/api/v1/bookmarks", headers=auth, json={"url": url, "title": title, **extra}
    )
    assert response.status_code == 201
    return response.get_json()


def _subscribe(client, auth, user_id: int, tag: str = "tag123", kinds="*"):
    response = client.post(
        "/api/v1/changes/subscribe",
        headers=auth,
        json={"channel": f"live-sync-{user_id}-{tag}", "kinds": kinds},
    )
    assert response.status_code == 201
    return response.get_json()


def test_health_is_public(client):
    response = client.get("/api/v1/health")
    assert response.status_code == 200
    assert response.get_json()["status"] == "ok"


def test_token_rejects_bad_credentials(client, make_user):
    make_user("alice")
    response = client.post(
        "/api/v1/auth/token", json={"username": "alice", "password": "wrong"}
    )
    assert response.status_code == 401


def test_session_lookup_and_sign_out(client, make_user):
    user_id = make_user("alice")
    auth = _auth(client, "alice")

    response = client.get("/api/v1/auth/session", headers=auth)
    assert response.status_code == 200
    assert response.get_json()["user"] == {"id": user_id, "username": "alice"}

    response = client.delete("/api/v1/auth/token", headers=auth)
    assert response.status_code == 200

    response = client.get("/api/v1/auth/session", headers=auth)
    assert response.status_code == 401


def test_metadata_endpoint_returns_fetched_fields(client, make_user, monkeypatch):
    make_user("alice")
    seen = {}

    def _fake_fetch(url, **kwargs):
        seen["url"] = url
        seen["user_agent"] = kwargs["user_agent"]
        return LinkMetadata(title="Fetched", description="Desc", image="https://i/x.png")

    monkeypatch.setattr("smartmark.api.routes.fetch_metadata", _fake_fetch)

    response = client.post(
        "/api/v1/metadata", headers=_auth(client, "alice"), json={"url": " https://a.test "}
    )

    assert response.status_code == 200
    assert response.get_json() == {
        "title": "Fetched",
        "description": "Desc",
        "image": "https://i/x.png",
    }
    assert seen == {"url": "https://a.test", "user_agent": "googlebot"}


def test_metadata_endpoint_never_returns_error_status(client, make_user, monkeypatch):
    make_user("alice")
    auth = _auth(client, "alice")
    monkeypatch.setattr(
        "smartmark.api.routes.fetch_metadata",
        lambda *_args, **_kwargs: (_ for _ in ()).throw(RuntimeError("parser crashed")),
    )

    response = client.post("/api/v1/metadata", headers=auth, json={"url": "https://a.test"})
    assert response.status_code == 200
    assert response.get_json() == {"title": "", "description": "", "image": ""}

    response = client.post("/api/v1/metadata", headers=auth, json={})
    assert response.status_code == 200
    assert response.get_json() == {"title": "", "description": "", "image": ""}


def test_metadata_endpoint_requires_authentication(client, make_user):
    make_user("alice")
    response = client.post("/api/v1/metadata", json={"url": "https://a.test"})
    assert response.status_code == 401


def test_bookmark_create_applies_untitled_fallback_and_lists_newest_first(
    client, make_user
):
    user_id = make_user("alice")
    auth = _auth(client, "alice")

    first = _create(client, auth, url="https://one.test", title="One")
    second = _create(
        client,
        auth,
        url="https://two.test",
        title="   ",
        description="From preview",
        image_url="https://two.test/cover.png",
    )

    assert second["title"] == "Untitled"
    assert second["description"] == "From preview"
    assert second["image_url"] == "https://two.test/cover.png"
    assert second["user_id"] == user_id

    response = client.get("/api/v1/bookmarks", headers=auth)
    ids = [item["id"] for item in response.get_json()["items"]]
    assert ids == [second["id"], first["id"]]


def test_bookmark_create_requires_url(client, make_user):
    make_user("alice")
    response = client.post(
        "/api/v1/bookmarks", headers=_auth(client, "alice"), json={"title": "No url"}
    )
    assert response.status_code == 400
    assert response.get_json()["error"] == "url is required"


def test_bookmarks_are_scoped_to_their_owner(client, app, make_user):
    make_user("alice")
    make_user("bob")
    alice = _auth(client, "alice")
    bob = _auth(client, "bob")

    created = _create(client, alice, url="https://private.test", title="Private")

    response = client.get("/api/v1/bookmarks", headers=bob)
    assert response.get_json()["items"] == []

    response = client.delete(f"/api/v1/bookmarks/{created['id']}", headers=bob)
    assert response.status_code == 200
    assert response.get_json()["status"] == "absent"

    with app.app_context():
        assert db.session.get(Bookmark, created["id"]) is not None


def test_delete_is_idempotent_and_only_first_delete_emits_event(client, app, make_user):
    make_user("alice")
    auth = _auth(client, "alice")
    created = _create(client, auth)

    first = client.delete(f"/api/v1/bookmarks/{created['id']}", headers=auth)
    second = client.delete(f"/api/v1/bookmarks/{created['id']}", headers=auth)

    assert first.get_json()["status"] == "deleted"
    assert second.status_code == 200
    assert second.get_json()["status"] == "absent"

    with app.app_context():
        kinds = [event.kind for event in ChangeEvent.query.order_by(ChangeEvent.id).all()]
        assert kinds == ["insert", "delete"]


def test_change_feed_delivers_inserts_and_deletes_after_subscription(client, make_user):
    user_id = make_user("alice")
    auth = _auth(client, "alice")
    _create(client, auth, url="https://before.test", title="Before")

    sub = _subscribe(client, auth, user_id)
    created = _create(client, auth, url="https://after.test", title="After")
    client.delete(f"/api/v1/bookmarks/{created['id']}", headers=auth)

    response = client.get(
        "/api/v1/changes",
        headers=auth,
        query_string={"channel": sub["channel"], "ticket": sub["ticket"]},
    )
    assert response.status_code == 200
    payload = response.get_json()
    assert [event["kind"] for event in payload["events"]] == ["insert", "delete"]
    assert payload["events"][0]["payload"]["title"] == "After"
    assert payload["events"][1]["payload"] == {"id": created["id"]}
    assert payload["cursor"] == payload["events"][-1]["cursor"]
    assert payload["has_more"] is False

    response = client.get(
        "/api/v1/changes",
        headers=auth,
        query_string={
            "channel": sub["channel"],
            "ticket": sub["ticket"],
            "since": payload["cursor"],
        },
    )
    assert response.get_json()["events"] == []


def test_change_feed_filters_by_kind_and_owner(client, make_user):
    alice_id = make_user("alice")
    make_user("bob")
    alice = _auth(client, "alice")
    bob = _auth(client, "bob")

    sub = _subscribe(client, alice, alice_id, kinds=["delete"])
    mine = _create(client, alice, url="https://mine.test")
    client.delete(f"/api/v1/bookmarks/{mine['id']}", headers=alice)
    theirs = _create(client, bob, url="https://theirs.test")
    client.delete(f"/api/v1/bookmarks/{theirs['id']}", headers=bob)

    response = client.get(
        "/api/v1/changes",
        headers=alice,
        query_string={"channel": sub["channel"], "ticket": sub["ticket"], "since": 0},
    )
    events = response.get_json()["events"]
    assert [(e["kind"], e["bookmark_id"]) for e in events] == [("delete", mine["id"])]


def test_subscribe_rejects_foreign_and_duplicate_channels(client, make_user):
    alice_id = make_user("alice")
    bob_id = make_user("bob")
    alice = _auth(client, "alice")

    response = client.post(
        "/api/v1/changes/subscribe",
        headers=alice,
        json={"channel": f"live-sync-{bob_id}-abcdef"},
    )
    assert response.status_code == 403

    response = client.post(
        "/api/v1/changes/subscribe", headers=alice, json={"channel": "anything"}
    )
    assert response.status_code == 400

    _subscribe(client, alice, alice_id, tag="same-tag")
    response = client.post(
        "/api/v1/changes/subscribe",
        headers=alice,
        json={"channel": f"live-sync-{alice_id}-same-tag"},
    )
    assert response.status_code == 409

    response = client.post(
        "/api/v1/changes/subscribe",
        headers=alice,
        json={"channel": f"live-sync-{alice_id}-other", "kinds": ["update"]},
    )
    assert response.status_code == 400


def test_pull_requires_a_valid_ticket(client, make_user):
    alice_id = make_user("alice")
    alice = _auth(client, "alice")
    sub = _subscribe(client, alice, alice_id)

    response = client.get(
        "/api/v1/changes",
        headers=alice,
        query_string={"channel": sub["channel"], "ticket": "forged"},
    )
    assert response.status_code == 403

    response = client.get("/api/v1/changes", headers=alice)
    assert response.status_code == 400


def test_unsubscribe_tears_down_the_channel(client, app, make_user):
    alice_id = make_user("alice")
    alice = _auth(client, "alice")
    sub = _subscribe(client, alice, alice_id)

    response = client.delete(
        f"/api/v1/changes/subscribe/{sub['channel']}",
        headers=alice,
        query_string={"ticket": sub["ticket"]},
    )
    assert response.status_code == 200

    with app.app_context():
        assert Subscription.query.count() == 0

    response = client.get(
        "/api/v1/changes",
        headers=alice,
        query_string={"channel": sub["channel"], "ticket": sub["ticket"]},
    )
    assert response.status_code == 404


def test_change_stream_emits_server_sent_events(client, make_user):
    make_user("alice")
    auth = _auth(client, "alice")
    first = _create(client, auth, url="https://first.test")
    second = _create(client, auth, url="https://second.test")

    response = client.get("/api/v1/changes/stream?since=0", headers=auth)
    assert response.status_code == 200
    assert response.mimetype == "text/event-stream"
    body = response.get_data(as_text=True)
    assert "event: insert" in body
    assert f'"bookmark_id":{first["id"]}' in body
    assert f'"bookmark_id":{second["id"]}' in body


def test_change_stream_resumes_from_last_event_id(client, app, make_user):
    make_user("alice")
    auth = _auth(client, "alice")
    first = _create(client, auth, url="https://first.test")
    second = _create(client, auth, url="https://second.test")

    with app.app_context():
        first_cursor = ChangeEvent.query.filter_by(bookmark_id=first["id"]).one().id

    response = client.get(
        "/api/v1/changes/stream", headers={**auth, "Last-Event-ID": str(first_cursor)}
    )
    body = response.get_data(as_text=True)
    assert f'"bookmark_id":{first["id"]}' not in body
    assert f'"bookmark_id":{second["id"]}' in body


def test_deleted_ids_are_never_reissued(client, app, make_user):
    make_user("alice")
    auth = _auth(client, "alice")
    keep = _create(client, auth, url="https://keep.test", title="Keep")
    old = _create(client, auth, url="https://old.test", title="Old")
    client.delete(f"/api/v1/bookmarks/{old['id']}", headers=auth)

    new = _create(client, auth, url="https://new.test", title="New")
    assert new["id"] != old["id"]

    response = client.delete(f"/api/v1/bookmarks/{old['id']}", headers=auth)
    assert response.get_json()["status"] == "absent"

    response = client.get("/api/v1/bookmarks", headers=auth)
    assert [item["id"] for item in response.get_json()["items"]] == [new["id"], keep["id"]]


def test_feed_cursor_keeps_advancing_after_newest_events_are_pruned(client, app, make_user):
    user_id = make_user("alice")
    auth = _auth(client, "alice")
    _create(client, auth, url="https://one.test", title="One")
    sub = _subscribe(client, auth, user_id)
    cursor = sub["cursor"]

    with app.app_context():
        ChangeEvent.query.delete()
        db.session.commit()

    created = _create(client, auth, url="https://two.test", title="Two")

    response = client.get(
        "/api/v1/changes",
        headers=auth,
        query_string={"channel": sub["channel"], "ticket": sub["ticket"]},
    )
    events = response.get_json()["events"]
    assert [e["bookmark_id"] for e in events] == [created["id"]]
    assert events[0]["cursor"] > cursor


def test_long_titles_are_cut_to_the_stored_length(client, make_user):
    make_user("alice")
    auth = _auth(client, "alice")

    created = _create(client, auth, url="https://long.test", title="x" * 2000)

    assert len(created["title"]) == 512


def test_sign_out_ends_a_cookie_session(client, make_user):
    make_user("alice")
    response = client.post(
        "/login", data={"username": "alice", "password": "secret"}, follow_redirects=False
    )
    assert response.status_code == 302
    assert client.get("/api/v1/auth/session").status_code == 200

    response = client.delete("/api/v1/auth/session")
    assert response.status_code == 200

    assert client.get("/api/v1/auth/session").status_code == 401


def test_sign_out_revokes_the_presented_token(client, make_user):
    make_user("alice")
    auth = _auth(client, "alice")

    response = client.delete("/api/v1/auth/session", headers=auth)
    assert response.status_code == 200

    assert client.get("/api/v1/auth/session", headers=auth).status_code == 401
