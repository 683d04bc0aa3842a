"""
End-to-end user journeys through the HTTP API.

Each scenario follows a single user across chat, purchase and verification.
"""

import pytest
from httpx import AsyncClient

from app.services.chat import ChatService
from app.services.purchases import PurchaseService
from tests.conftest import TEST_EMAIL


@pytest.fixture
def wired(monkeypatch, override_dependencies, entitlements, history, ledger):
    monkeypatch.setattr(
        "app.api.routes.ChatService",
        lambda db, gw: ChatService(db, gw, entitlements=entitlements, history=history),
    )
    monkeypatch.setattr(
        "app.api.routes.PurchaseService",
        lambda db, provider: PurchaseService(
            db, provider, entitlements=entitlements, ledger=ledger
        ),
    )
    monkeypatch.setattr("app.api.routes.EntitlementStore", lambda db: entitlements)
    return override_dependencies


async def open_order(client: AsyncClient, item: dict) -> str:
    response = await client.post("/v1/purchase/order", json={"item": item})
    assert response.status_code == 200
    return response.json()["external_order_id"]


async def test_unlock_premium_model_then_chat(async_client: AsyncClient, wired, payment_provider):
    blocked = await async_client.post("/v1/chat", json={"prompt": "Hi", "models": ["Claude"]})
    assert blocked.status_code == 403
    assert blocked.json()["detail"]["locked_models"] == ["Claude"]

    order_id = await open_order(async_client, {"kind": "model_unlock", "model": "Claude"})
    verify = await async_client.post(
        "/v1/purchase/verify",
        json={
            "external_order_id": order_id,
            "external_payment_id": "pay_claude",
            "signature": payment_provider.sign(order_id, "pay_claude"),
            "item": {"kind": "model_unlock", "model": "Claude"},
        },
    )
    assert verify.status_code == 200
    assert "Claude" in verify.json()["unlocked_models"]

    chat = await async_client.post("/v1/chat", json={"prompt": "Hi", "models": ["Claude"]})
    assert chat.status_code == 200
    assert chat.json()["responses"] == [{"model": "Claude", "response": "Claude says: Hi"}]
    assert chat.json()["credits"] == 9

    again = await async_client.post(
        "/v1/purchase/order", json={"item": {"kind": "model_unlock", "model": "Claude"}}
    )
    assert again.status_code == 400


async def test_forged_signature_grants_nothing(
    async_client: AsyncClient, wired, entitlements, ledger
):
    order_id = await open_order(async_client, {"kind": "credit_purchase", "package": "medium"})

    response = await async_client.post(
        "/v1/purchase/verify",
        json={
            "external_order_id": order_id,
            "external_payment_id": "pay_forged",
            "signature": "deadbeef" * 8,
        },
    )

    assert response.status_code == 400
    assert response.json()["detail"] == "Invalid payment signature"
    assert entitlements.accounts[TEST_EMAIL]["credits"] == 10
    history = await async_client.get("/v1/purchase/history")
    assert history.json()["payments"][0]["status"] == "failed"


async def test_double_verify_applies_once(
    async_client: AsyncClient, wired, payment_provider, entitlements
):
    order_id = await open_order(async_client, {"kind": "credit_purchase", "package": "small"})
    body = {
        "external_order_id": order_id,
        "external_payment_id": "pay_1",
        "signature": payment_provider.sign(order_id, "pay_1"),
    }

    first = await async_client.post("/v1/purchase/verify", json=body)
    second = await async_client.post("/v1/purchase/verify", json=body)

    assert first.status_code == 200
    assert first.json()["credits"] == 20
    assert second.status_code == 400
    assert entitlements.accounts[TEST_EMAIL]["credits"] == 20


async def test_spend_down_to_zero_then_top_up(
    async_client: AsyncClient, wired, payment_provider, entitlements
):
    entitlements.seed(TEST_EMAIL, credits=3)
    models = ["ChatGPT", "DeepSeek", "Gemini"]

    spent = await async_client.post("/v1/chat", json={"prompt": "Hi", "models": models})
    assert spent.json()["credits"] == 0

    broke = await async_client.post("/v1/chat", json={"prompt": "Hi", "models": ["ChatGPT"]})
    assert broke.status_code == 403
    assert broke.json()["detail"]["needs_credits"] is True

    order_id = await open_order(async_client, {"kind": "credit_purchase", "package": "small"})
    await async_client.post(
        "/v1/purchase/verify",
        json={
            "external_order_id": order_id,
            "external_payment_id": "pay_top_up",
            "signature": payment_provider.sign(order_id, "pay_top_up"),
        },
    )

    resumed = await async_client.post("/v1/chat", json={"prompt": "Hi", "models": ["ChatGPT"]})
    assert resumed.status_code == 200
    assert resumed.json()["credits"] == 9
