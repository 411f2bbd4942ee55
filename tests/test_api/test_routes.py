"""HTTP tests for the REST API, driven through httpx's ASGI transport.

The app is built with an injected MarketplaceService, so no lifespan,
database or Redis is involved.
"""

from __future__ import annotations

from decimal import Decimal

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from chainflow_escrow.main import create_app


@pytest_asyncio.fixture
async def client(marketplace):
    app = create_app(marketplace)
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


async def _verified(client: AsyncClient, admin: str, account: str, role: str = "BUYER") -> str:
    await client.post("/api/v1/accounts/connect", json={"account": account})
    await client.put(
        f"/api/v1/accounts/{account}/profile",
        json={"name": account, "role": role, "kyc_status": "PENDING"},
    )
    resp = await client.post(
        f"/api/v1/accounts/{account}/kyc", json={"status": "VERIFIED", "actor": admin}
    )
    assert resp.status_code == 200
    return account


class TestHealth:
    @pytest.mark.asyncio
    async def test_health(self, client: AsyncClient) -> None:
        resp = await client.get("/health")
        assert resp.status_code == 200
        body = resp.json()
        assert body["status"] == "ok"
        assert body["store"] == "healthy (memory)"
        assert resp.headers["X-Request-ID"]


class TestAccounts:
    @pytest.mark.asyncio
    async def test_connect_new_account(self, client: AsyncClient) -> None:
        resp = await client.post("/api/v1/accounts/connect", json={})
        assert resp.status_code == 200
        body = resp.json()
        assert body["account"].startswith("0x")
        assert Decimal(body["balance"]) == Decimal("100")

    @pytest.mark.asyncio
    async def test_profile_roundtrip(self, client: AsyncClient) -> None:
        resp = await client.put(
            "/api/v1/accounts/0xA/profile", json={"name": "Ada", "role": "USER"}
        )
        assert resp.status_code == 200
        assert resp.json()["role"] == "BUYER"

        resp = await client.get("/api/v1/accounts/0xA/profile")
        assert resp.json()["name"] == "Ada"

    @pytest.mark.asyncio
    async def test_missing_profile_404(self, client: AsyncClient) -> None:
        resp = await client.get("/api/v1/accounts/0xNOBODY/profile")
        assert resp.status_code == 404
        assert resp.json()["error"] == "NOT_FOUND"

    @pytest.mark.asyncio
    async def test_kyc_requires_admin(self, client: AsyncClient) -> None:
        await client.put("/api/v1/accounts/0xA/profile", json={"name": "Ada"})
        resp = await client.post(
            "/api/v1/accounts/0xA/kyc", json={"status": "VERIFIED", "actor": "0xA"}
        )
        assert resp.status_code == 403
        assert resp.json()["error"] == "FORBIDDEN"

    @pytest.mark.asyncio
    async def test_self_declared_admin_cannot_verify_itself(self, client: AsyncClient) -> None:
        resp = await client.put(
            "/api/v1/accounts/0xM/profile", json={"name": "Mallory", "role": "ADMIN"}
        )
        assert resp.json()["role"] == "BUYER"

        resp = await client.post(
            "/api/v1/accounts/0xM/kyc", json={"status": "VERIFIED", "actor": "0xM"}
        )
        assert resp.status_code == 403

    @pytest.mark.asyncio
    async def test_notifications_newest_first(self, client: AsyncClient, admin: str) -> None:
        await _verified(client, admin, "0xA")
        await client.post("/api/v1/accounts/0xA/kyc", json={"status": "REJECTED", "actor": admin})

        resp = await client.get("/api/v1/accounts/0xA/notifications")
        notes = resp.json()
        assert [n["severity"] for n in notes] == ["ERROR", "SUCCESS"]


class TestCatalog:
    @pytest.mark.asyncio
    async def test_add_list_remove(self, client: AsyncClient) -> None:
        resp = await client.post(
            "/api/v1/catalog",
            json={"seller": "0xS", "title": "Lamp", "price": "0.2"},
        )
        assert resp.status_code == 201
        item_id = resp.json()["id"]

        listing = (await client.get("/api/v1/catalog")).json()
        assert [item["id"] for item in listing] == [item_id]

        resp = await client.delete(f"/api/v1/catalog/{item_id}", params={"caller": "0xX"})
        assert resp.status_code == 403

        resp = await client.delete(f"/api/v1/catalog/{item_id}", params={"caller": "0xS"})
        assert resp.status_code == 204
        assert (await client.get("/api/v1/catalog")).json() == []

    @pytest.mark.asyncio
    async def test_invalid_price_422(self, client: AsyncClient) -> None:
        resp = await client.post(
            "/api/v1/catalog", json={"seller": "0xS", "title": "Lamp", "price": "0"}
        )
        assert resp.status_code == 422

    @pytest.mark.asyncio
    async def test_purchase(self, client: AsyncClient, admin: str) -> None:
        buyer = await _verified(client, admin, "0xBUYER")
        item = (
            await client.post(
                "/api/v1/catalog", json={"seller": "0xS", "title": "Lamp", "price": "0.2"}
            )
        ).json()

        resp = await client.post(f"/api/v1/catalog/{item['id']}/purchase", json={"buyer": buyer})

        assert resp.status_code == 201
        order = resp.json()
        assert order["sender"] == "0xS"
        assert order["payment_status"] == "LOCKED"

    @pytest.mark.asyncio
    async def test_purchase_without_funds_402(self, client: AsyncClient, admin: str) -> None:
        buyer = await _verified(client, admin, "0xBUYER")
        item = (
            await client.post(
                "/api/v1/catalog", json={"seller": "0xS", "title": "Car", "price": "1000"}
            )
        ).json()

        resp = await client.post(f"/api/v1/catalog/{item['id']}/purchase", json={"buyer": buyer})

        assert resp.status_code == 402
        assert resp.json()["error"] == "INSUFFICIENT_FUNDS"


class TestShipments:
    @pytest.mark.asyncio
    async def test_full_flow(self, client: AsyncClient, admin: str) -> None:
        sender = await _verified(client, admin, "0xSENDER", role="SELLER")
        resp = await client.post(
            "/api/v1/shipments",
            json={
                "sender": sender,
                "receiver": "0xRECEIVER",
                "courier": "0xCOURIER",
                "price": "2.5",
                "title": "Documents",
                "pickup_date": "2026-01-10",
            },
        )
        assert resp.status_code == 201
        shipment_id = resp.json()["id"]

        resp = await client.post(f"/api/v1/shipments/{shipment_id}/dispatch")
        assert resp.json()["status"] == "IN_TRANSIT"

        status = (await client.get(f"/api/v1/shipments/{shipment_id}/status")).json()
        assert "DELIVERED" in status["allowed_targets"]

        resp = await client.post(
            f"/api/v1/shipments/{shipment_id}/advance",
            json={"status": "DELIVERED", "location": "Front Door"},
        )
        assert resp.status_code == 200
        assert resp.json()["payment_status"] == "RELEASED"

        resp = await client.post(
            f"/api/v1/shipments/{shipment_id}/advance",
            json={"status": "DELIVERED", "location": "Front Door"},
        )
        assert resp.status_code == 409
        assert resp.json()["error"] == "INVALID_TRANSITION"

        balance = (await client.get(f"/api/v1/accounts/{sender}/balance")).json()
        assert Decimal(balance["balance"]) == Decimal("100")

    @pytest.mark.asyncio
    async def test_unverified_sender_403(self, client: AsyncClient) -> None:
        resp = await client.post(
            "/api/v1/shipments",
            json={"sender": "0xNEW", "receiver": "0xR", "courier": "0xC", "price": "1"},
        )
        assert resp.status_code == 403
        assert resp.json()["error"] == "KYC_REQUIRED"

    @pytest.mark.asyncio
    async def test_unknown_shipment_404(self, client: AsyncClient) -> None:
        assert (await client.get("/api/v1/shipments/SHP-NOPE")).status_code == 404
        resp = await client.post(
            "/api/v1/shipments/SHP-NOPE/advance",
            json={"status": "DELIVERED", "location": "Door"},
        )
        assert resp.status_code == 404

    @pytest.mark.asyncio
    async def test_list(self, client: AsyncClient) -> None:
        resp = await client.get("/api/v1/shipments")
        assert resp.status_code == 200
        assert resp.json() == []

    @pytest.mark.asyncio
    async def test_idempotency_key_ignored_without_redis(
        self, client: AsyncClient, admin: str
    ) -> None:
        sender = await _verified(client, admin, "0xSENDER", role="SELLER")
        body = {
            "sender": sender,
            "receiver": "0xR",
            "courier": "0xC",
            "price": "1",
            "idempotency_key": "retry-1",
        }
        assert (await client.post("/api/v1/shipments", json=body)).status_code == 201
        assert (await client.post("/api/v1/shipments", json=body)).status_code == 201
