from datetime import datetime, timedelta, timezone

from audioshelf.core.config import settings
from factories import auth_headers, create_tag


async def test_health(client):
    response = await client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


async def test_signup_and_login(client):
    response = await client.post(
        "/signup", json={"username": "carol", "password": "hunter2"}
    )
    assert response.status_code == 201
    assert response.json()["role"] == "user"

    duplicate = await client.post(
        "/signup", json={"username": "carol", "password": "other"}
    )
    assert duplicate.status_code == 409

    bad = await client.post("/login", data={"username": "carol", "password": "nope"})
    assert bad.status_code == 401

    login = await client.post(
        "/login", data={"username": "carol", "password": "hunter2"}
    )
    assert login.status_code == 200
    token = login.json()["access_token"]

    me = await client.get("/users/me", headers={"Authorization": f"Bearer {token}"})
    assert me.json()["username"] == "carol"


async def test_garbage_token_is_rejected(client):
    response = await client.get(
        "/users/me", headers={"Authorization": "Bearer not-a-jwt"}
    )

    assert response.status_code == 401
    assert response.headers["www-authenticate"] == "Bearer"


async def test_progress_requires_login(client, seeded):
    response = await client.post(
        "/progress", json={"audioTrackId": seeded["public"].id, "progress": 10}
    )

    assert response.status_code == 401


async def test_progress_roundtrip(client, seeded):
    headers = auth_headers(seeded["alice"])
    track = seeded["public"]

    first = await client.post(
        "/progress",
        json={"audioTrackId": track.id, "progress": 120},
        headers=headers,
    )
    second = await client.post(
        "/progress",
        json={"audioTrackId": track.id, "progress": 600},
        headers=headers,
    )

    assert first.status_code == 201
    assert second.json()["id"] == first.json()["id"]
    assert second.json()["completed"] is True

    saved = await client.get(f"/progress/{track.id}", headers=headers)
    assert saved.json()["progress"] == 600
    listed = await client.get("/progress", headers=headers)
    assert len(listed.json()) == 1

    detail = await client.get(f"/tracks/{track.id}", headers=headers)
    assert detail.json()["progress"]["progress"] == 600

    missing = await client.get(
        f"/progress/{seeded['private'].id}", headers=headers
    )
    assert missing.status_code == 404


async def test_negative_progress_is_rejected(client, seeded):
    response = await client.post(
        "/progress",
        json={"audioTrackId": seeded["public"].id, "progress": -5},
        headers=auth_headers(seeded["alice"]),
    )

    assert response.status_code == 400


async def test_private_track_visibility(client, seeded):
    private = seeded["private"]

    anonymous = await client.get(f"/tracks/{private.id}")
    assert anonymous.status_code == 401
    stranger = await client.get(
        f"/tracks/{private.id}", headers=auth_headers(seeded["bob"])
    )
    assert stranger.status_code == 403
    admin = await client.get(
        f"/tracks/{private.id}", headers=auth_headers(seeded["admin"])
    )
    assert admin.status_code == 200

    listed = await client.get("/tracks")
    assert [t["id"] for t in listed.json()] == [seeded["public"].id]

    missing = await client.get("/tracks/9999")
    assert missing.status_code == 404


async def test_track_access_grants(client, seeded):
    alice, private = seeded["alice"], seeded["private"]
    body = {"userId": alice.id, "audioTrackId": private.id}

    forbidden = await client.post(
        "/track-access", json=body, headers=auth_headers(alice)
    )
    assert forbidden.status_code == 403

    admin = auth_headers(seeded["admin"])
    granted = await client.post("/track-access", json=body, headers=admin)
    assert granted.status_code == 201
    assert granted.json()["grantedById"] == seeded["admin"].id

    visible = await client.get(f"/tracks/{private.id}", headers=auth_headers(alice))
    assert visible.status_code == 200
    users = await client.get(f"/track-access/{private.id}/users", headers=admin)
    assert [u["username"] for u in users.json()] == ["alice"]

    revoked = await client.delete(
        f"/track-access/{alice.id}/{private.id}", headers=admin
    )
    assert revoked.status_code == 204
    hidden = await client.get(f"/tracks/{private.id}", headers=auth_headers(alice))
    assert hidden.status_code == 403


async def test_shareable_link_lifecycle(client, seeded):
    alice = auth_headers(seeded["alice"])
    private = seeded["private"]

    created = await client.post(
        "/shareable-links", json={"audioTrackId": private.id}, headers=alice
    )
    assert created.status_code == 201
    link = created.json()
    assert link["status"] == "active"
    assert link["expired"] is False
    assert link["expiresAt"] is None

    shared = await client.get(f"/shared/{link['linkId']}")
    assert shared.status_code == 200
    assert shared.json()["id"] == private.id
    stream = await client.get(f"/shared/{link['linkId']}/stream")
    assert stream.status_code == 307

    # Only the creator or an admin may manage it
    other = await client.put(
        f"/shareable-links/{link['id']}",
        json={"isActive": False},
        headers=auth_headers(seeded["bob"]),
    )
    assert other.status_code == 403

    revoked = await client.patch(
        f"/shareable-links/{link['id']}", json={"isActive": False}, headers=alice
    )
    assert revoked.json()["status"] == "inactive"
    assert (await client.get(f"/shared/{link['linkId']}")).status_code == 404

    listed = await client.get("/shareable-links", headers=alice)
    assert [l["id"] for l in listed.json()] == [link["id"]]
    admin_list = await client.get(
        "/shareable-links", headers=auth_headers(seeded["admin"])
    )
    assert len(admin_list.json()) == 1

    deleted = await client.delete(f"/shareable-links/{link['id']}", headers=alice)
    assert deleted.status_code == 204
    again = await client.delete(f"/shareable-links/{link['id']}", headers=alice)
    assert again.status_code == 204
    assert (await client.get(f"/shared/{link['linkId']}")).status_code == 404


async def test_shareable_link_validation(client, seeded):
    alice = auth_headers(seeded["alice"])
    past = (datetime.now(timezone.utc) - timedelta(hours=1)).isoformat()

    expired = await client.post(
        "/shareable-links",
        json={"audioTrackId": seeded["public"].id, "expiresAt": past},
        headers=alice,
    )
    assert expired.status_code == 400

    missing = await client.post(
        "/shareable-links", json={"audioTrackId": 9999}, headers=alice
    )
    assert missing.status_code == 404

    anonymous = await client.post(
        "/shareable-links", json={"audioTrackId": seeded["public"].id}
    )
    assert anonymous.status_code == 401


async def test_unknown_shared_link(client):
    response = await client.get("/shared/00000000-0000-4000-8000-000000000000")

    assert response.status_code == 404
    assert response.json()["detail"] == "Shared link not found"


async def test_admin_endpoints(client, seeded):
    admin = auth_headers(seeded["admin"])
    bob = seeded["bob"]

    assert (await client.get("/admin/users", headers=auth_headers(bob))).status_code == 403
    users = await client.get("/admin/users", headers=admin)
    assert len(users.json()) == 3

    promoted = await client.put(
        f"/admin/users/{bob.id}", json={"role": "admin"}, headers=admin
    )
    assert promoted.json()["role"] == "admin"
    # The new role applies on bob's very next request
    private = await client.get(
        f"/tracks/{seeded['private'].id}", headers=auth_headers(bob)
    )
    assert private.status_code == 200

    self_demote = await client.put(
        f"/admin/users/{seeded['admin'].id}", json={"role": "user"}, headers=admin
    )
    assert self_demote.status_code == 400

    visibility = await client.patch(
        f"/admin/tracks/{seeded['private'].id}/visibility",
        json={"isPublic": True},
        headers=admin,
    )
    assert visibility.json()["isPublic"] is True
    assert (await client.get(f"/tracks/{seeded['private'].id}")).status_code == 200

    deleted = await client.delete(
        f"/admin/tracks/{seeded['public'].id}", headers=admin
    )
    assert deleted.status_code == 204
    assert (await client.get(f"/tracks/{seeded['public'].id}")).status_code == 404


async def test_upload_audio(client, seeded, session_factory, upload_dir):
    async with session_factory() as s:
        tag = await create_tag(s, "calm")
    headers = auth_headers(seeded["admin"])
    form = {
        "title": "Waves",
        "description": "Ocean waves",
        "categoryId": str(seeded["public"].category_id),
        "duration": "300",
        "isPublic": "false",
        "tags": [str(tag.id)],
    }

    response = await client.post(
        "/uploads/audio",
        data=form,
        files={"audioFile": ("waves.mp3", b"ID3fake-audio", "audio/mpeg")},
        headers=headers,
    )

    assert response.status_code == 201
    track = response.json()
    assert track["audioUrl"].startswith("/uploads/audio/")
    assert track["isPublic"] is False
    assert [t["name"] for t in track["tags"]] == ["calm"]
    assert len(list(upload_dir.iterdir())) == 1

    stream = await client.get(f"/tracks/{track['id']}/stream", headers=headers)
    assert stream.status_code == 200
    assert stream.content == b"ID3fake-audio"

    hidden = await client.get(f"/tracks/{track['id']}/stream")
    assert hidden.status_code == 401


async def test_upload_rejects_bad_files(client, seeded, upload_dir, monkeypatch):
    headers = auth_headers(seeded["alice"])
    form = {
        "title": "Notes",
        "description": "Not audio",
        "categoryId": str(seeded["public"].category_id),
        "duration": "60",
    }

    wrong_type = await client.post(
        "/uploads/audio",
        data=form,
        files={"audioFile": ("notes.txt", b"hello", "text/plain")},
        headers=headers,
    )
    assert wrong_type.status_code == 400

    monkeypatch.setattr(settings, "max_file_size", 4)
    too_big = await client.post(
        "/uploads/audio",
        data=form,
        files={"audioFile": ("big.mp3", b"0123456789", "audio/mpeg")},
        headers=headers,
    )
    assert too_big.status_code == 400
    assert list(upload_dir.iterdir()) == []

    anonymous = await client.post(
        "/uploads/audio",
        data=form,
        files={"audioFile": ("a.mp3", b"abc", "audio/mpeg")},
    )
    assert anonymous.status_code == 401


async def test_search_and_categories(client, seeded):
    found = await client.get("/search", params={"q": "morning"})
    assert [t["title"] for t in found.json()] == ["Morning Focus"]
    assert (await client.get("/search", params={"q": "sleep"})).json() == []

    categories = await client.get("/categories")
    assert len(categories.json()) == 2
    category_id = seeded["public"].category_id
    tracks = await client.get(f"/categories/{category_id}/tracks")
    assert [t["id"] for t in tracks.json()] == [seeded["public"].id]


async def test_progress_on_hidden_track_is_refused(client, seeded):
    bob = seeded["bob"]
    body = {"audioTrackId": seeded["private"].id, "progress": 30}

    refused = await client.post("/progress", json=body, headers=auth_headers(bob))
    assert refused.status_code == 403
    assert (await client.get("/progress", headers=auth_headers(bob))).json() == []

    missing = await client.post(
        "/progress",
        json={"audioTrackId": 9999, "progress": 30},
        headers=auth_headers(bob),
    )
    assert missing.status_code == 404

    granted = await client.post(
        "/track-access",
        json={"userId": bob.id, "audioTrackId": seeded["private"].id},
        headers=auth_headers(seeded["admin"]),
    )
    assert granted.status_code == 201
    saved = await client.post("/progress", json=body, headers=auth_headers(bob))
    assert saved.status_code == 201


async def test_admin_manages_categories_and_tags(client, seeded, upload_dir):
    admin = auth_headers(seeded["admin"])

    forbidden = await client.post(
        "/admin/categories",
        json={"name": "Stories"},
        headers=auth_headers(seeded["bob"]),
    )
    assert forbidden.status_code == 403

    created = await client.post(
        "/admin/categories",
        json={"name": "Stories", "description": "Bedtime stories"},
        headers=admin,
    )
    assert created.status_code == 201
    category = created.json()
    assert category["count"] == 0

    duplicate = await client.post(
        "/admin/categories", json={"name": "Stories"}, headers=admin
    )
    assert duplicate.status_code == 409

    updated = await client.put(
        f"/admin/categories/{category['id']}",
        json={"description": "Short stories"},
        headers=admin,
    )
    assert updated.json()["description"] == "Short stories"

    tag = await client.post("/admin/tags", json={"name": "kids"}, headers=admin)
    assert tag.status_code == 201
    renamed = await client.patch(
        f"/admin/tags/{tag.json()['id']}", json={"name": "family"}, headers=admin
    )
    assert renamed.json()["name"] == "family"

    # A freshly created category can take uploads right away
    uploaded = await client.post(
        "/uploads/audio",
        data={
            "title": "Three Bears",
            "description": "A classic",
            "categoryId": str(category["id"]),
            "duration": "420",
            "tags": [str(tag.json()["id"])],
        },
        files={"audioFile": ("bears.mp3", b"ID3bears", "audio/mpeg")},
        headers=admin,
    )
    assert uploaded.status_code == 201
    assert [t["name"] for t in uploaded.json()["tags"]] == ["family"]

    in_use = await client.delete(f"/admin/categories/{category['id']}", headers=admin)
    assert in_use.status_code == 400

    removed_tag = await client.delete(
        f"/admin/tags/{tag.json()['id']}", headers=admin
    )
    assert removed_tag.status_code == 204
    track = await client.get(f"/tracks/{uploaded.json()['id']}")
    assert track.json()["tags"] == []

    empty = await client.post("/admin/categories", json={"name": "Empty"}, headers=admin)
    deleted = await client.delete(
        f"/admin/categories/{empty.json()['id']}", headers=admin
    )
    assert deleted.status_code == 204
    assert (await client.get(f"/categories/{empty.json()['id']}")).status_code == 404


async def test_upload_requires_a_duration(client, seeded, upload_dir):
    response = await client.post(
        "/uploads/audio",
        data={
            "title": "Silence",
            "description": "Nothing",
            "categoryId": str(seeded["public"].category_id),
            "duration": "0",
        },
        files={"audioFile": ("silence.mp3", b"ID3", "audio/mpeg")},
        headers=auth_headers(seeded["admin"]),
    )

    assert response.status_code == 422
    assert not upload_dir.exists() or list(upload_dir.iterdir()) == []
