"""
Race scenarios against the services, each task in its own session.
"""

import asyncio

import pytest

from festgate.core.errors import AlreadyCancelled, DuplicateActive, InsufficientCapacity
from festgate.infrastructure.blob_store import DatabaseBlobStore
from festgate.models.registration import Registration
from festgate.services import registration_service, ticket_service


@pytest.mark.asyncio
async def test_purchase_storm_never_oversells(session_factory, test_user, make_item, fetch_item):
    capacity = 10
    item = await make_item(max_capacity=capacity)

    async def buy():
        async with session_factory() as session:
            try:
                ticket = await ticket_service.purchase(session, test_user.id, item.id, 1)
                await session.commit()
                return ticket
            except InsufficientCapacity:
                await session.rollback()
                return None

    tickets = await asyncio.gather(*(buy() for _ in range(capacity + 1)))

    assert sum(1 for t in tickets if t is not None) == capacity
    assert (await fetch_item(item.id)).available_count == 0


@pytest.mark.asyncio
async def test_concurrent_cancels_release_once(session_factory, test_user, test_item, fetch_item):
    async with session_factory() as session:
        ticket = await ticket_service.purchase(session, test_user.id, test_item.id, 2)
        await session.commit()

    async def cancel():
        async with session_factory() as session:
            try:
                await ticket_service.cancel(session, ticket.id, test_user.id, "user")
                await session.commit()
                return True
            except AlreadyCancelled:
                await session.rollback()
                return False

    results = await asyncio.gather(*(cancel() for _ in range(4)))

    assert results.count(True) == 1
    assert (await fetch_item(test_item.id)).available_count == 100


@pytest.mark.asyncio
async def test_approval_race_for_last_place(
    session_factory, test_user, other_user, reviewer, make_item, png_bytes, notifier, fetch_item
):
    item = await make_item(max_capacity=1, gated=True)

    registration_ids = []
    for user in (test_user, other_user):
        async with session_factory() as session:
            registration = await registration_service.submit(
                session, DatabaseBlobStore(session), user.id, item.id, png_bytes, "image/png"
            )
            await session.commit()
            registration_ids.append(registration.id)

    async def approve(registration_id: int):
        async with session_factory() as session:
            try:
                return await registration_service.approve(session, notifier, registration_id, reviewer)
            except InsufficientCapacity as e:
                await session.rollback()
                return e

    results = await asyncio.gather(*(approve(rid) for rid in registration_ids))

    approved = [r for r in results if not isinstance(r, InsufficientCapacity)]
    rejected = [r for r in results if isinstance(r, InsufficientCapacity)]
    assert len(approved) == 1
    assert len(rejected) == 1
    assert (await fetch_item(item.id)).available_count == 0

    async with session_factory() as session:
        statuses = sorted(
            [(await session.get(Registration, rid)).status for rid in registration_ids]
        )
    assert statuses == ["approved", "pending"]


@pytest.mark.asyncio
async def test_concurrent_submissions_one_active(session_factory, test_user, gated_item, png_bytes):
    async def attempt():
        async with session_factory() as session:
            try:
                registration = await registration_service.submit(
                    session, DatabaseBlobStore(session), test_user.id, gated_item.id, png_bytes, "image/png"
                )
                await session.commit()
                return registration
            except DuplicateActive:
                await session.rollback()
                return None

    results = await asyncio.gather(*(attempt() for _ in range(5)))
    assert sum(1 for r in results if r is not None) == 1


@pytest.mark.asyncio
async def test_capacity_matches_active_reservations(
    session_factory, test_user, other_user, reviewer, make_item, png_bytes, notifier, fetch_item
):
    """max - available == confirmed ticket quantity + approved registrations."""
    item = await make_item(max_capacity=20, gated=True)

    async with session_factory() as session:
        registration = await registration_service.submit(
            session, DatabaseBlobStore(session), test_user.id, item.id, png_bytes, "image/png"
        )
        await session.commit()
    async with session_factory() as session:
        await registration_service.approve(session, notifier, registration.id, reviewer)

    ticketed = await make_item(max_capacity=20)
    async with session_factory() as session:
        kept = await ticket_service.purchase(session, other_user.id, ticketed.id, 3)
        dropped = await ticket_service.purchase(session, other_user.id, ticketed.id, 4)
        await session.commit()
    async with session_factory() as session:
        await ticket_service.cancel(session, dropped.id, other_user.id, "user")
        await session.commit()

    gated_state = await fetch_item(item.id)
    ticketed_state = await fetch_item(ticketed.id)
    assert gated_state.max_capacity - gated_state.available_count == 1
    assert ticketed_state.max_capacity - ticketed_state.available_count == kept.quantity
