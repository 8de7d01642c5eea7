"""Saved history API: listing, renaming, deleting and downloading records."""

from __future__ import annotations

import uuid

import pytest
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from crud import history as history_crud
from models.users import User
from tests.fixtures.user_fixtures import bearer_headers, create_test_user


async def _seed(db: AsyncSession, user: User, prompt: str = "reverse a string"):
    return await history_crud.append_record(
        db,
        user.id,
        prompt=prompt,
        code="s[::-1]",
        language="python",
        explanation="Slicing with a negative step.",
    )


@pytest.mark.asyncio
async def test_history_requires_authentication(async_client: AsyncClient):
    resp = await async_client.get("/api/v1/history")

    assert resp.status_code == 401
    assert resp.headers["WWW-Authenticate"] == "Bearer"


@pytest.mark.asyncio
async def test_list_history(
    async_client: AsyncClient,
    db_session: AsyncSession,
    test_user: User,
    auth_headers: dict[str, str],
):
    await _seed(db_session, test_user, "first")
    await _seed(db_session, test_user, "second")

    resp = await async_client.get("/api/v1/history", headers=auth_headers)

    assert resp.status_code == 200
    records = resp.json()["data"]
    assert [r["prompt"] for r in records] == ["second", "first"]
    assert records[0]["language"] == "python"

    resp = await async_client.get(
        "/api/v1/history", params={"limit": 1, "offset": 1}, headers=auth_headers
    )
    assert [r["prompt"] for r in resp.json()["data"]] == ["first"]


@pytest.mark.asyncio
async def test_list_history_validates_paging(
    async_client: AsyncClient, auth_headers: dict[str, str]
):
    resp = await async_client.get(
        "/api/v1/history", params={"limit": 0}, headers=auth_headers
    )

    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_get_record(
    async_client: AsyncClient,
    db_session: AsyncSession,
    test_user: User,
    auth_headers: dict[str, str],
):
    record = await _seed(db_session, test_user)

    resp = await async_client.get(f"/api/v1/history/{record.id}", headers=auth_headers)

    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["id"] == str(record.id)
    assert data["code"] == "s[::-1]"
    assert data["explanation"] == "Slicing with a negative step."


@pytest.mark.asyncio
async def test_other_users_records_are_invisible(
    async_client: AsyncClient, db_session: AsyncSession, test_user: User
):
    record = await _seed(db_session, test_user)
    intruder = await create_test_user(db_session, username="mallory")
    headers = bearer_headers(intruder)

    assert (await async_client.get("/api/v1/history", headers=headers)).json()[
        "data"
    ] == []
    for method in ("get", "delete"):
        resp = await async_client.request(
            method, f"/api/v1/history/{record.id}", headers=headers
        )
        assert resp.status_code == 404
    resp = await async_client.patch(
        f"/api/v1/history/{record.id}", json={"prompt": "mine now"}, headers=headers
    )
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_rename_record(
    async_client: AsyncClient,
    db_session: AsyncSession,
    test_user: User,
    auth_headers: dict[str, str],
):
    record = await _seed(db_session, test_user)

    resp = await async_client.patch(
        f"/api/v1/history/{record.id}",
        json={"prompt": "  String reversal  "},
        headers=auth_headers,
    )

    assert resp.status_code == 200
    assert resp.json()["data"]["prompt"] == "String reversal"


@pytest.mark.asyncio
async def test_rename_to_blank_is_rejected(
    async_client: AsyncClient,
    db_session: AsyncSession,
    test_user: User,
    auth_headers: dict[str, str],
):
    record = await _seed(db_session, test_user)

    resp = await async_client.patch(
        f"/api/v1/history/{record.id}", json={"prompt": "   "}, headers=auth_headers
    )

    assert resp.status_code == 422
    assert resp.json()["error"]["type"] == "invalid_input"


@pytest.mark.asyncio
async def test_delete_record(
    async_client: AsyncClient,
    db_session: AsyncSession,
    test_user: User,
    auth_headers: dict[str, str],
):
    record = await _seed(db_session, test_user)

    resp = await async_client.delete(
        f"/api/v1/history/{record.id}", headers=auth_headers
    )
    assert resp.status_code == 204

    resp = await async_client.get(f"/api/v1/history/{record.id}", headers=auth_headers)
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_download_record(
    async_client: AsyncClient,
    db_session: AsyncSession,
    test_user: User,
    auth_headers: dict[str, str],
):
    record = await _seed(db_session, test_user)

    resp = await async_client.get(
        f"/api/v1/history/{record.id}/download", headers=auth_headers
    )

    assert resp.status_code == 200
    assert resp.text == "s[::-1]"
    assert resp.headers["content-type"].startswith("text/plain")
    assert (
        resp.headers["content-disposition"]
        == 'attachment; filename="generated-code.py"'
    )


@pytest.mark.asyncio
async def test_download_missing_record(
    async_client: AsyncClient, auth_headers: dict[str, str]
):
    resp = await async_client.get(
        f"/api/v1/history/{uuid.uuid4()}/download", headers=auth_headers
    )

    assert resp.status_code == 404
