"""
Tests for gate scanning: exactly-once admission, including concurrent scans.
"""

import asyncio
import json

import pytest
import pytest_asyncio
from httpx import AsyncClient

from festgate.infrastructure.blob_store import DatabaseBlobStore
from festgate.services import credential_verifier, registration_service
from festgate.services.credential_verifier import ScanStatus


@pytest_asyncio.fixture
async def approved(session_factory, test_user, reviewer, gated_item, png_bytes, notifier):
    """An approved registration for test_user; returns (registration, credential)."""
    async with session_factory() as session:
        registration = await registration_service.submit(
            session, DatabaseBlobStore(session), test_user.id, gated_item.id, png_bytes, "image/png"
        )
        await session.commit()

    async with session_factory() as session:
        result = await registration_service.approve(session, notifier, registration.id, reviewer)

    return result.registration, result.registration.credential


@pytest.mark.asyncio
async def test_scan_admits_once(client: AsyncClient, scanner_headers, approved):
    registration, token = approved

    first = await client.post("/api/v1/scan", json={"code": token}, headers=scanner_headers)
    assert first.status_code == 200
    data = first.json()
    assert data["result"] == "admitted"
    assert data["registration_id"] == registration.id
    assert data["holder"]["email"] == "alice@student.test"
    assert data["scanned_by"] == "gate@festival.test"

    second = await client.post("/api/v1/scan", json={"code": token}, headers=scanner_headers)
    assert second.status_code == 409
    assert second.json()["result"] == "already_scanned"
    assert second.json()["scanned_by"] == "gate@festival.test"
    assert second.json()["scanned_at"] is not None


@pytest.mark.asyncio
async def test_scan_keeps_first_scanner(client: AsyncClient, scanner_headers, admin_headers, approved):
    _, token = approved

    await client.post("/api/v1/scan", json={"code": token}, headers=scanner_headers)
    first_repeat = await client.post("/api/v1/scan", json={"code": token}, headers=admin_headers)
    second_repeat = await client.post("/api/v1/scan", json={"code": token}, headers=admin_headers)

    assert first_repeat.json()["scanned_by"] == "gate@festival.test"
    assert first_repeat.json()["scanned_at"] == second_repeat.json()["scanned_at"]


@pytest.mark.asyncio
async def test_scan_qr_payload(client: AsyncClient, scanner_headers, approved, gated_item, test_user):
    registration, token = approved
    code = json.dumps({
        "token": token,
        "registration_id": registration.id,
        "item_id": gated_item.id,
        "user_id": test_user.id,
    })

    response = await client.post("/api/v1/scan", json={"code": code}, headers=scanner_headers)
    assert response.status_code == 200
    assert response.json()["result"] == "admitted"


@pytest.mark.asyncio
async def test_scan_payload_for_other_registration(client: AsyncClient, scanner_headers, approved):
    registration, token = approved
    code = json.dumps({"token": token, "registration_id": registration.id + 1})

    response = await client.post("/api/v1/scan", json={"code": code}, headers=scanner_headers)
    assert response.status_code == 404
    assert response.json()["result"] == "not_found"


@pytest.mark.asyncio
@pytest.mark.parametrize("code", ["not-a-token", "0" * 64, "{broken json"])
async def test_scan_unknown_credential(client: AsyncClient, scanner_headers, approved, code):
    response = await client.post("/api/v1/scan", json={"code": code}, headers=scanner_headers)
    assert response.status_code == 404
    assert response.json()["result"] == "not_found"
    assert response.json()["holder"] is None


@pytest.mark.asyncio
async def test_scan_requires_scanner(client: AsyncClient, other_headers, approved):
    _, token = approved
    response = await client.post("/api/v1/scan", json={"code": token}, headers=other_headers)
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_concurrent_scans_admit_once(session_factory, scanner, approved):
    """Several gate devices read the same screenshot at the same moment."""
    registration, token = approved

    async def attempt():
        async with session_factory() as session:
            outcome = await credential_verifier.scan(session, token, scanner)
            await session.commit()
            return outcome

    outcomes = await asyncio.gather(*(attempt() for _ in range(10)))

    statuses = [o.status for o in outcomes]
    assert statuses.count(ScanStatus.ADMITTED) == 1
    assert statuses.count(ScanStatus.ALREADY_SCANNED) == 9

    repeats = [o for o in outcomes if o.status == ScanStatus.ALREADY_SCANNED]
    assert len({o.scanned_at for o in repeats}) == 1
    assert {o.scanned_by for o in repeats} == {"gate@festival.test"}
    assert {o.registration_id for o in outcomes} == {registration.id}
