from __future__ import annotations

import uuid

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app.api.dependencies.cipher import get_cipher
from app.db.base import Base
from app.db.session import get_db_session
from app.main import app
from app.models.vault_item import VaultItem
from app.security.cipher import Cipher
from app.security.tokens import issue_access_token


TEST_KEY_HEX = "00112233445566778899aabbccddeeff00112233445566778899aabbccddeeff"


async def _setup_app():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session_factory = async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        autoflush=False,
        autocommit=False,
        expire_on_commit=False,
    )

    async def override_get_db_session():
        async with session_factory() as session:
            yield session

    cipher = Cipher.from_hex(TEST_KEY_HEX)
    app.dependency_overrides[get_db_session] = override_get_db_session
    app.dependency_overrides[get_cipher] = lambda: cipher
    return engine, session_factory


def _auth_headers(user_id: uuid.UUID) -> dict[str, str]:
    token, _ = issue_access_token(user_id=user_id, email=f"{user_id.hex[:8]}@example.com")
    return {"Authorization": f"Bearer {token}"}


@pytest.mark.asyncio
async def test_create_get_update_and_delete_vault() -> None:
    engine, session_factory = await _setup_app()
    owner_headers = _auth_headers(uuid.uuid4())

    try:
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            create_response = await client.post(
                "/api/v1/vaults",
                headers=owner_headers,
                json={"title": "Stripe", "category": "Payments", "position_x": 100, "position_y": 250.5},
            )
            assert create_response.status_code == 201
            created = create_response.json()
            assert created["title"] == "Stripe"
            assert created["category"] == "Payments"
            assert created["color_value"] == "#3B82F6"
            assert created["width"] == 400
            assert created["height"] == 300
            assert created["is_locked"] is False
            assert created["item_count"] == 0
            assert "master_password_hash" not in created
            vault_id = created["id"]

            get_response = await client.get(f"/api/v1/vaults/{vault_id}", headers=owner_headers)
            assert get_response.status_code == 200
            assert get_response.json()["items"] == []
            assert get_response.json()["requires_unlock"] is False

            update_response = await client.put(
                f"/api/v1/vaults/{vault_id}",
                headers=owner_headers,
                json={"title": "Stripe Live", "z_index": 4},
            )
            assert update_response.status_code == 200
            assert update_response.json()["title"] == "Stripe Live"
            assert update_response.json()["category"] == "Payments"
            assert update_response.json()["z_index"] == 4

            position_response = await client.put(
                f"/api/v1/vaults/{vault_id}/position",
                headers=owner_headers,
                json={"position_x": -40, "position_y": 12.25},
            )
            assert position_response.status_code == 200
            assert position_response.json()["position_x"] == -40
            assert position_response.json()["position_y"] == 12.25

            item_response = await client.post(
                f"/api/v1/vaults/{vault_id}/items",
                headers=owner_headers,
                json={"item_type": "key_value", "label": "API_KEY", "value": "sk_live_123"},
            )
            assert item_response.status_code == 201

            delete_response = await client.delete(f"/api/v1/vaults/{vault_id}", headers=owner_headers)
            assert delete_response.status_code == 200
            assert delete_response.json() == {"message": "Vault deleted successfully"}

            missing_response = await client.get(f"/api/v1/vaults/{vault_id}", headers=owner_headers)
            assert missing_response.status_code == 404

        async with session_factory() as session:
            remaining = await session.execute(select(VaultItem))
            assert remaining.scalars().all() == []
    finally:
        app.dependency_overrides.clear()
        await engine.dispose()


@pytest.mark.asyncio
async def test_vault_of_another_owner_is_reported_as_not_found() -> None:
    engine, _ = await _setup_app()
    owner_headers = _auth_headers(uuid.uuid4())
    stranger_headers = _auth_headers(uuid.uuid4())

    try:
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            created = await client.post(
                "/api/v1/vaults",
                headers=owner_headers,
                json={"position_x": 0, "position_y": 0},
            )
            vault_id = created.json()["id"]

            foreign_get = await client.get(f"/api/v1/vaults/{vault_id}", headers=stranger_headers)
            foreign_update = await client.put(
                f"/api/v1/vaults/{vault_id}",
                headers=stranger_headers,
                json={"title": "Hijacked"},
            )
            foreign_delete = await client.delete(f"/api/v1/vaults/{vault_id}", headers=stranger_headers)
            unknown_get = await client.get(f"/api/v1/vaults/{uuid.uuid4()}", headers=owner_headers)

            assert foreign_get.status_code == 404
            assert foreign_get.headers["content-type"].startswith("application/problem+json")
            assert foreign_get.json()["type"].endswith("/vault-not-found")
            assert foreign_update.status_code == 404
            assert foreign_delete.status_code == 404
            assert unknown_get.status_code == 404
            assert unknown_get.json()["detail"] == foreign_get.json()["detail"]

            still_there = await client.get(f"/api/v1/vaults/{vault_id}", headers=owner_headers)
            assert still_there.status_code == 200
            assert still_there.json()["title"] == "Untitled Vault"
    finally:
        app.dependency_overrides.clear()
        await engine.dispose()


@pytest.mark.asyncio
async def test_list_vaults_paginates_filters_and_counts_items() -> None:
    engine, _ = await _setup_app()
    owner_headers = _auth_headers(uuid.uuid4())
    other_headers = _auth_headers(uuid.uuid4())

    try:
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            ids = {}
            for title, category in [
                ("Stripe", "Payments"),
                ("PayPal", "Payments"),
                ("AWS", "Cloud"),
                ("100% Coverage", "Testing"),
            ]:
                response = await client.post(
                    "/api/v1/vaults",
                    headers=owner_headers,
                    json={"title": title, "category": category, "position_x": 0, "position_y": 0},
                )
                ids[title] = response.json()["id"]
            await client.post(
                "/api/v1/vaults",
                headers=other_headers,
                json={"title": "Stripe", "category": "Payments", "position_x": 0, "position_y": 0},
            )
            for label in ("KEY_A", "KEY_B"):
                await client.post(
                    f"/api/v1/vaults/{ids['Stripe']}/items",
                    headers=owner_headers,
                    json={"item_type": "key_value", "label": label, "value": "v"},
                )

            all_response = await client.get("/api/v1/vaults", headers=owner_headers)
            assert all_response.status_code == 200
            body = all_response.json()
            assert body["pagination"] == {
                "page": 1,
                "limit": 50,
                "total": 4,
                "total_pages": 1,
                "has_next": False,
                "has_prev": False,
            }
            counts = {vault["title"]: vault["item_count"] for vault in body["vaults"]}
            assert counts == {"Stripe": 2, "PayPal": 0, "AWS": 0, "100% Coverage": 0}

            page_two = await client.get("/api/v1/vaults", headers=owner_headers, params={"page": 2, "limit": 3})
            assert len(page_two.json()["vaults"]) == 1
            assert page_two.json()["pagination"]["has_prev"] is True
            assert page_two.json()["pagination"]["has_next"] is False
            assert page_two.json()["pagination"]["total_pages"] == 2

            payments = await client.get("/api/v1/vaults", headers=owner_headers, params={"category": "Payments"})
            assert sorted(vault["title"] for vault in payments.json()["vaults"]) == ["PayPal", "Stripe"]

            search = await client.get("/api/v1/vaults", headers=owner_headers, params={"search": "pay"})
            assert [vault["title"] for vault in search.json()["vaults"]] == ["PayPal"]

            literal = await client.get("/api/v1/vaults", headers=owner_headers, params={"search": "0%"})
            assert [vault["title"] for vault in literal.json()["vaults"]] == ["100% Coverage"]

            clamped = await client.get("/api/v1/vaults", headers=owner_headers, params={"limit": 500, "page": 0})
            assert clamped.status_code == 200
            assert clamped.json()["pagination"]["limit"] == 100
            assert clamped.json()["pagination"]["page"] == 1
    finally:
        app.dependency_overrides.clear()
        await engine.dispose()


@pytest.mark.asyncio
async def test_vault_shape_errors_and_missing_auth_are_rejected() -> None:
    engine, _ = await _setup_app()
    owner_headers = _auth_headers(uuid.uuid4())

    try:
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            unauthenticated = await client.get("/api/v1/vaults")
            assert unauthenticated.status_code == 401

            missing_position = await client.post("/api/v1/vaults", headers=owner_headers, json={"title": "x"})
            assert missing_position.status_code == 422

            string_position = await client.post(
                "/api/v1/vaults",
                headers=owner_headers,
                json={"position_x": "10", "position_y": 0},
            )
            assert string_position.status_code == 422

            created = await client.post(
                "/api/v1/vaults",
                headers=owner_headers,
                json={"position_x": 1, "position_y": 2},
            )
            bad_move = await client.put(
                f"/api/v1/vaults/{created.json()['id']}/position",
                headers=owner_headers,
                json={"position_x": None, "position_y": 2},
            )
            assert bad_move.status_code == 422

            health = await client.get("/health")
            assert health.json() == {"status": "ok"}
    finally:
        app.dependency_overrides.clear()
        await engine.dispose()
