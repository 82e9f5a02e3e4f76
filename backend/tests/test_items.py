"""
Tests for the item catalogue endpoints and service health surface.
"""

import pytest
from httpx import AsyncClient

from festgate.core.errors import ItemInUse
from festgate.core.security import create_access_token
from festgate.infrastructure.blob_store import DatabaseBlobStore
from festgate.services import ticket_service
from festgate.services.item_service import archive_item


ITEM_PAYLOAD = {
    "kind": "competition",
    "title": "Battle of the Bands",
    "description": "Eight bands, one stage",
    "venue": "Open Air Theatre",
    "gated": True,
    "unit_price": 300,
    "max_capacity": 40,
    "reviewer_emails": ["  Reviewer@Festival.test ", "reviewer@festival.test"],
    "scanner_emails": ["gate@festival.test"],
}


@pytest.mark.asyncio
async def test_create_item(client: AsyncClient, admin_headers):
    response = await client.post("/api/v1/items", json=ITEM_PAYLOAD, headers=admin_headers)
    assert response.status_code == 201
    data = response.json()
    assert data["title"] == "Battle of the Bands"
    assert data["available_count"] == 40
    assert data["max_capacity"] == 40
    assert data["reviewer_emails"] == ["reviewer@festival.test"]
    assert data["is_archived"] is False


@pytest.mark.asyncio
async def test_create_item_requires_admin(client: AsyncClient, auth_headers):
    response = await client.post("/api/v1/items", json=ITEM_PAYLOAD, headers=auth_headers)
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_create_item_validation(client: AsyncClient, admin_headers):
    bad = {**ITEM_PAYLOAD, "max_capacity": 0, "kind": "sponsor"}
    response = await client.post("/api/v1/items", json=bad, headers=admin_headers)
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_list_items(client: AsyncClient, make_item):
    await make_item(title="Pottery", kind="workshop")
    await make_item(title="Jazz Night", kind="concert")

    response = await client.get("/api/v1/items")
    assert response.status_code == 200
    data = response.json()
    assert data["total"] == 2
    assert data["cached"] is False

    concerts = await client.get("/api/v1/items?kind=concert")
    assert [i["title"] for i in concerts.json()["items"]] == ["Jazz Night"]


@pytest.mark.asyncio
async def test_list_items_pagination(client: AsyncClient, make_item):
    for n in range(5):
        await make_item(title=f"Workshop {n}")

    response = await client.get("/api/v1/items?page=2&page_size=2")
    data = response.json()
    assert data["total"] == 5
    assert data["page"] == 2
    assert len(data["items"]) == 2


@pytest.mark.asyncio
async def test_get_item_not_found(client: AsyncClient):
    response = await client.get("/api/v1/items/99999")
    assert response.status_code == 404
    assert response.json() == {"code": "ITEM_NOT_FOUND", "message": "Item not found"}


@pytest.mark.asyncio
async def test_update_capacity_goes_through_ledger(client: AsyncClient, admin_headers, auth_headers, make_item):
    item = await make_item(max_capacity=10)
    await client.post("/api/v1/tickets", json={"item_id": item.id, "quantity": 4}, headers=auth_headers)

    grown = await client.patch(
        f"/api/v1/items/{item.id}",
        json={"max_capacity": 15, "venue": "Auditorium"},
        headers=admin_headers,
    )
    assert grown.status_code == 200
    assert grown.json()["max_capacity"] == 15
    assert grown.json()["available_count"] == 11
    assert grown.json()["venue"] == "Auditorium"

    too_small = await client.patch(f"/api/v1/items/{item.id}", json={"max_capacity": 3}, headers=admin_headers)
    assert too_small.status_code == 409
    assert too_small.json()["code"] == "INSUFFICIENT_CAPACITY"


@pytest.mark.asyncio
async def test_archive_rejected_with_confirmed_tickets(client: AsyncClient, admin_headers, auth_headers, test_item):
    purchase = await client.post(
        "/api/v1/tickets", json={"item_id": test_item.id, "quantity": 1}, headers=auth_headers
    )

    blocked = await client.delete(f"/api/v1/items/{test_item.id}", headers=admin_headers)
    assert blocked.status_code == 409
    assert blocked.json()["code"] == "ITEM_IN_USE"

    await client.delete(f"/api/v1/tickets/{purchase.json()['id']}", headers=auth_headers)
    archived = await client.delete(f"/api/v1/items/{test_item.id}", headers=admin_headers)
    assert archived.status_code == 200
    assert archived.json()["is_archived"] is True

    assert (await client.get(f"/api/v1/items/{test_item.id}")).status_code == 404
    assert (await client.get("/api/v1/items")).json()["total"] == 0


@pytest.mark.asyncio
async def test_archive_blocked_leaves_item_live(db_session, test_user, test_item, fetch_item):
    await ticket_service.purchase(db_session, test_user.id, test_item.id, 1)
    await db_session.commit()

    with pytest.raises(ItemInUse):
        await archive_item(db_session, DatabaseBlobStore(db_session), test_item.id)
    await db_session.rollback()

    item = await fetch_item(test_item.id)
    assert item.is_archived is False
    assert item.available_count == 99


@pytest.mark.asyncio
async def test_purchase_after_archive(client: AsyncClient, admin_headers, auth_headers, test_item, fetch_item):
    archived = await client.delete(f"/api/v1/items/{test_item.id}", headers=admin_headers)
    assert archived.status_code == 200

    response = await client.post(
        "/api/v1/tickets", json={"item_id": test_item.id, "quantity": 1}, headers=auth_headers
    )
    assert response.status_code == 404
    assert (await fetch_item(test_item.id)).available_count == 100

    again = await client.delete(f"/api/v1/items/{test_item.id}", headers=admin_headers)
    assert again.status_code == 404


@pytest.mark.asyncio
async def test_archive_removes_registrations(
    client: AsyncClient, admin_headers, auth_headers, gated_item, png_bytes
):
    submitted = await client.post(
        f"/api/v1/items/{gated_item.id}/registrations",
        files={"payment_proof": ("proof.png", png_bytes, "image/png")},
        headers=auth_headers,
    )
    registration_id = submitted.json()["id"]

    archived = await client.delete(f"/api/v1/items/{gated_item.id}", headers=admin_headers)
    assert archived.status_code == 200

    proof = await client.get(f"/api/v1/registrations/{registration_id}/payment-proof", headers=admin_headers)
    assert proof.status_code == 404


@pytest.mark.asyncio
async def test_me_provisions_user(client: AsyncClient):
    token = create_access_token({"sub": "idp|carol", "email": "Carol@Student.test", "name": "Carol"})
    response = await client.get("/api/v1/me", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 200
    assert response.json()["email"] == "carol@student.test"
    assert response.json()["role"] == "user"


@pytest.mark.asyncio
async def test_invalid_token(client: AsyncClient):
    response = await client.get("/api/v1/me", headers={"Authorization": "Bearer not-a-jwt"})
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_health(client: AsyncClient):
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"
    assert response.json()["cache"] == {"status": "disabled"}
    assert "X-Request-ID" in response.headers


@pytest.mark.asyncio
async def test_metrics(client: AsyncClient):
    response = await client.get("/metrics")
    assert response.status_code == 200
    assert "ticket_purchase_attempts_total" in response.text
