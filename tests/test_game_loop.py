"""Tests for the timer-driven auto-advance loop."""
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import select

from party_market.config import get_settings
from party_market.game import orders, rooms
from party_market.game.game_loop import AutoAdvanceLoop
from party_market.game.phase_sequencer import sequencer
from party_market.models.order import Order, OrderType
from party_market.models.room import Room, RoomPhase


async def _started_room(session_factory):
    async with session_factory() as db:
        room = await rooms.create_room(db, total_rounds=2, initial_cash=500, number_of_stocks=2)
        _, alice = await rooms.join_room(db, room.code, "Alice")
        _, bob = await rooms.join_room(db, room.code, "Bob")
        await db.commit()
        await sequencer.advance(db, room.id)
        stock = (await rooms.room_stocks(db, room.id))[0]
        await orders.submit_order(db, room.id, alice.id, OrderType.BUY, stock_id=stock.id, budget=50)
        await db.commit()
        return room.id, alice.id, bob.id


@pytest.mark.asyncio
async def test_idle_room_is_advanced_with_skips(session_factory):
    room_id, alice_id, bob_id = await _started_room(session_factory)
    loop = AutoAdvanceLoop(session_factory=session_factory)

    advanced = await loop.tick(now=datetime.now(timezone.utc) + timedelta(hours=1))

    assert advanced == [room_id]
    async with session_factory() as db:
        room = await db.get(Room, room_id)
        assert room.current_phase == RoomPhase.REVEALING_EVENT
        placed = {
            o.player_id: o.type
            for o in (await db.execute(select(Order).where(Order.room_id == room_id))).scalars()
        }
        assert placed == {alice_id: OrderType.BUY, bob_id: OrderType.SKIP}


@pytest.mark.asyncio
async def test_fresh_phase_is_left_alone(session_factory, monkeypatch):
    monkeypatch.setattr(get_settings(), "AUTO_ADVANCE_SECONDS", 3600)
    room_id, _, _ = await _started_room(session_factory)
    loop = AutoAdvanceLoop(session_factory=session_factory)

    assert await loop.tick() == []
    async with session_factory() as db:
        room = await db.get(Room, room_id)
        assert room.current_phase == RoomPhase.SUBMITTING_ORDERS


@pytest.mark.asyncio
async def test_waiting_rooms_are_ignored(session_factory):
    async with session_factory() as db:
        room = await rooms.create_room(db, total_rounds=2)
        await rooms.join_room(db, room.code, "Alice")
        await db.commit()

    loop = AutoAdvanceLoop(session_factory=session_factory)
    assert await loop.tick(now=datetime.now(timezone.utc) + timedelta(days=1)) == []


@pytest.mark.asyncio
async def test_start_and_stop(session_factory):
    loop = AutoAdvanceLoop(session_factory=session_factory)
    await loop.start()
    assert loop._task is not None
    await loop.stop()
    assert loop._task is None
