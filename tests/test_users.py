"""
User endpoint tests: creating, updating and deleting users, listing them
(optionally by role) and fetching the detail view with the user's live
content.
"""
import pytest
from httpx import AsyncClient

from helpers import stored_files


# ---------------------------------------------------------------------------
# Create user
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_create_user(async_client: AsyncClient):
    """Creating a user with all fields returns 201 and the provided data."""
    resp = await async_client.post("/api/v1/users", json={
        "name": "New Editor",
        "email": "editor@example.com",
        "role": "editor",
        "permissions": ["archive content"],
    })
    assert resp.status_code == 201
    user = resp.json()
    assert user["name"] == "New Editor"
    assert user["email"] == "editor@example.com"
    assert user["role"] == "editor"
    assert "id" in user
    assert "created_at" in user


@pytest.mark.asyncio
async def test_create_user_defaults_to_subscriber(async_client: AsyncClient):
    resp = await async_client.post("/api/v1/users", json={
        "name": "Reader",
        "email": "reader@example.com",
    })
    assert resp.status_code == 201
    assert resp.json()["role"] == "subscriber"


@pytest.mark.asyncio
async def test_create_user_unknown_role(async_client: AsyncClient):
    resp = await async_client.post("/api/v1/users", json={
        "name": "Boss",
        "email": "boss@example.com",
        "role": "overlord",
    })
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_create_user_missing_email(async_client: AsyncClient):
    resp = await async_client.post("/api/v1/users", json={"name": "No Email"})
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_duplicate_email_returns_409(async_client: AsyncClient):
    """Creating a user with an existing email returns 409, not 500."""
    payload = {"name": "First", "email": "same@example.com"}
    assert (await async_client.post("/api/v1/users", json=payload)).status_code == 201
    resp = await async_client.post("/api/v1/users", json={**payload, "name": "Second"})
    assert resp.status_code == 409


# ---------------------------------------------------------------------------
# List users
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_list_users_empty(async_client: AsyncClient):
    resp = await async_client.get("/api/v1/users")
    assert resp.status_code == 200
    assert resp.json() == []


@pytest.mark.asyncio
async def test_list_users_by_role(async_client: AsyncClient):
    for name, role in (("Ann", "admin"), ("Bea", "author"), ("Cid", "author")):
        await async_client.post("/api/v1/users", json={
            "name": name, "email": f"{name.lower()}@example.com", "role": role,
        })

    everyone = await async_client.get("/api/v1/users")
    assert len(everyone.json()) == 3

    authors = await async_client.get("/api/v1/users", params={"role": "author"})
    assert authors.status_code == 200
    assert sorted(u["name"] for u in authors.json()) == ["Bea", "Cid"]


# ---------------------------------------------------------------------------
# User detail
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_get_user_detail_lists_live_contents(async_client: AsyncClient):
    user = (await async_client.post("/api/v1/users", json={
        "name": "Writer", "email": "writer@example.com", "role": "author",
    })).json()
    headers = {"X-User-Id": str(user["id"])}

    kept = (await async_client.post(
        "/api/v1/contents", data={"title": "Kept", "body": "B"}, headers=headers
    )).json()
    gone = (await async_client.post(
        "/api/v1/contents", data={"title": "Gone", "body": "B"}, headers=headers
    )).json()
    await async_client.delete(f"/api/v1/contents/{gone['id']}", headers=headers)

    resp = await async_client.get(f"/api/v1/users/{user['id']}")
    assert resp.status_code == 200
    detail = resp.json()
    assert detail["email"] == "writer@example.com"
    assert [c["id"] for c in detail["contents"]] == [kept["id"]]
    assert detail["contents"][0]["slug"] == "kept"


@pytest.mark.asyncio
async def test_user_not_found(async_client: AsyncClient):
    resp = await async_client.get("/api/v1/users/99999")
    assert resp.status_code == 404


# ---------------------------------------------------------------------------
# Update user
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_update_user_changes_only_supplied_fields(async_client: AsyncClient):
    user = (await async_client.post("/api/v1/users", json={
        "name": "Reader", "email": "reader@example.com",
    })).json()

    resp = await async_client.put(f"/api/v1/users/{user['id']}", json={"name": "Renamed"})
    assert resp.status_code == 200
    updated = resp.json()
    assert updated["name"] == "Renamed"
    assert updated["email"] == "reader@example.com"
    assert updated["role"] == "subscriber"


@pytest.mark.asyncio
async def test_promoted_user_gains_new_abilities(async_client: AsyncClient):
    """A role or permission change applies to the user's next request."""
    user = (await async_client.post("/api/v1/users", json={
        "name": "Reader", "email": "reader@example.com",
    })).json()
    headers = {"X-User-Id": str(user["id"])}
    post = {"title": "First Post", "body": "B"}

    resp = await async_client.post("/api/v1/contents", data=post, headers=headers)
    assert resp.status_code == 403

    resp = await async_client.put(
        f"/api/v1/users/{user['id']}", json={"permissions": ["create content"]}
    )
    assert resp.status_code == 200
    assert resp.json()["role"] == "subscriber"

    resp = await async_client.post("/api/v1/contents", data=post, headers=headers)
    assert resp.status_code == 201

    resp = await async_client.put(
        f"/api/v1/users/{user['id']}", json={"role": "editor", "permissions": []}
    )
    assert resp.json()["role"] == "editor"
    listed = (await async_client.get("/api/v1/users", params={"role": "editor"})).json()
    assert [u["id"] for u in listed] == [user["id"]]


@pytest.mark.asyncio
async def test_update_user_to_taken_email_returns_409(async_client: AsyncClient):
    await async_client.post("/api/v1/users", json={"name": "A", "email": "a@example.com"})
    other = (await async_client.post("/api/v1/users", json={
        "name": "B", "email": "b@example.com",
    })).json()

    resp = await async_client.put(f"/api/v1/users/{other['id']}", json={"email": "a@example.com"})
    assert resp.status_code == 409

    detail = (await async_client.get(f"/api/v1/users/{other['id']}")).json()
    assert detail["email"] == "b@example.com"


@pytest.mark.asyncio
async def test_update_unknown_user_returns_404(async_client: AsyncClient):
    resp = await async_client.put("/api/v1/users/99999", json={"name": "Nobody"})
    assert resp.status_code == 404


# ---------------------------------------------------------------------------
# Delete user
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_delete_user_removes_their_content_and_files(async_client: AsyncClient, file_storage):
    author = (await async_client.post("/api/v1/users", json={
        "name": "Writer", "email": "writer@example.com", "role": "author",
    })).json()
    headers = {"X-User-Id": str(author["id"])}
    content = (await async_client.post(
        "/api/v1/contents",
        data={"title": "Doomed", "body": "B", "status": "PUBLISHED"},
        files={"featured_image": ("cover.png", b"\x89PNG data", "image/png")},
        headers=headers,
    )).json()
    assert len(stored_files(file_storage)) == 1

    resp = await async_client.delete(f"/api/v1/users/{author['id']}")
    assert resp.status_code == 204

    assert (await async_client.get(f"/api/v1/users/{author['id']}")).status_code == 404
    assert (await async_client.get(f"/api/v1/contents/{content['id']}")).status_code == 404
    assert (await async_client.get("/api/v1/contents")).json()["total"] == 0
    assert stored_files(file_storage) == []


@pytest.mark.asyncio
async def test_delete_unknown_user_returns_404(async_client: AsyncClient):
    resp = await async_client.delete("/api/v1/users/99999")
    assert resp.status_code == 404
