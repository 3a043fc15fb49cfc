"""Tests for order execution: ordering, partial fills and failures."""
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import func, select

from conftest import FixedJitter
from party_market.game import price_model
from party_market.game.order_executor import execute_orders
from party_market.models.holding import Holding
from party_market.models.order import Order, OrderStatus, OrderType
from party_market.models.player import Player
from party_market.models.room import Room, RoomPhase, RoomStatus
from party_market.models.stock import Stock

T0 = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)


# ── Helpers ──────────────────────────────────────────────────────────────────

async def _market(db, cash=(250, 100), prices=(100,), dividends=None):
    """Room in executing_orders with one player per cash entry and one stock per price."""
    room = Room(
        code="EXECUT",
        status=RoomStatus.IN_PROGRESS,
        current_phase=RoomPhase.EXECUTING_ORDERS,
        current_round=1,
        total_rounds=3,
        initial_cash=max(cash),
        number_of_stocks=len(prices),
        seed="executor",
    )
    db.add(room)
    await db.flush()

    players = [Player(room_id=room.id, name=f"P{i}", cash=c) for i, c in enumerate(cash)]
    stocks = [
        Stock(
            room_id=room.id,
            symbol=f"S{i}",
            name=f"Stock {i}",
            current_price=p,
            dividend_amount=(dividends or [0] * len(prices))[i],
        )
        for i, p in enumerate(prices)
    ]
    db.add_all(players + stocks)
    await db.flush()
    return room, players, stocks


def _order(room, player, stock, order_type, quantity, total, seconds):
    return Order(
        room_id=room.id,
        player_id=player.id,
        stock_id=stock.id if stock else None,
        round=room.current_round,
        type=order_type,
        requested_quantity=quantity,
        requested_price_total=total,
        submitted_at=T0 + timedelta(seconds=seconds),
    )


async def _holding(db, player, stock):
    return (
        await db.execute(
            select(Holding).where(Holding.player_id == player.id, Holding.stock_id == stock.id)
        )
    ).scalar_one_or_none()


# ── Scenarios ────────────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_earlier_order_moves_price_for_later_one(db_session):
    room, (a, b), (stock,) = await _market(db_session, cash=(250, 100))
    # Inserted in reverse so the id order disagrees with submission order.
    late = _order(room, b, stock, OrderType.BUY, 100, 100, seconds=5)
    early = _order(room, a, stock, OrderType.BUY, 250, 250, seconds=1)
    db_session.add_all([late, early])
    await db_session.flush()

    results = await execute_orders(db_session, room.id, FixedJitter())
    by_order = {r.order_id: r for r in results}

    first = by_order[early.id]
    assert first.status == OrderStatus.EXECUTED
    assert first.quantity == 2
    assert first.price_total == 200
    assert first.price_before == 100
    assert first.price_after == price_model.new_price(100, 2, 0, True, FixedJitter())
    assert a.cash == 50

    second = by_order[late.id]
    assert second.price_before == first.price_after
    # 100 no longer buys a single share at the moved price.
    assert second.status == OrderStatus.FAILED
    assert second.quantity == 0
    assert b.cash == 100

    assert stock.current_price == first.price_after
    assert (await _holding(db_session, a, stock)).quantity == 2
    assert await _holding(db_session, b, stock) is None


@pytest.mark.asyncio
async def test_sell_fills_up_to_held_quantity(db_session):
    room, (seller,), (stock,) = await _market(db_session, cash=(0,))
    db_session.add(Holding(room_id=room.id, player_id=seller.id, stock_id=stock.id, quantity=5))
    order = _order(room, seller, stock, OrderType.SELL, 10, 1000, seconds=1)
    db_session.add(order)
    await db_session.flush()

    (result,) = await execute_orders(db_session, room.id, FixedJitter())

    assert result.status == OrderStatus.EXECUTED
    assert order.status == OrderStatus.EXECUTED
    assert order.execution_quantity == 5
    assert order.execution_price_total == 500
    assert seller.cash == 500
    assert stock.current_price == price_model.new_price(100, 5, 5, False, FixedJitter())
    # Holdings at zero are removed.
    assert await _holding(db_session, seller, stock) is None


@pytest.mark.asyncio
async def test_buy_below_one_share_fails(db_session):
    room, (buyer,), (stock,) = await _market(db_session, cash=(500,))
    order = _order(room, buyer, stock, OrderType.BUY, 10, 50, seconds=1)
    db_session.add(order)
    await db_session.flush()

    (result,) = await execute_orders(db_session, room.id, FixedJitter())

    assert result.status == OrderStatus.FAILED
    assert order.status == OrderStatus.FAILED
    assert order.execution_quantity == 0
    assert order.execution_price_total == 0
    assert buyer.cash == 500
    assert stock.current_price == 100


@pytest.mark.asyncio
async def test_buy_is_capped_by_requested_quantity(db_session):
    room, (buyer,), (stock,) = await _market(db_session, cash=(1000,))
    order = _order(room, buyer, stock, OrderType.BUY, 3, 1000, seconds=1)
    db_session.add(order)
    await db_session.flush()

    (result,) = await execute_orders(db_session, room.id, FixedJitter())

    assert result.quantity == 3
    assert buyer.cash == 700


@pytest.mark.asyncio
async def test_sell_without_holding_fails(db_session):
    room, (seller,), (stock,) = await _market(db_session, cash=(10,))
    order = _order(room, seller, stock, OrderType.SELL, 4, 400, seconds=1)
    db_session.add(order)
    await db_session.flush()

    (result,) = await execute_orders(db_session, room.id, FixedJitter())

    assert result.status == OrderStatus.FAILED
    assert seller.cash == 10
    assert stock.current_price == 100


@pytest.mark.asyncio
async def test_skips_close_without_effect(db_session):
    room, (player,), (stock,) = await _market(db_session, cash=(100,))
    order = _order(room, player, None, OrderType.SKIP, 0, 0, seconds=1)
    db_session.add(order)
    await db_session.flush()

    (result,) = await execute_orders(db_session, room.id, FixedJitter())

    assert result.status == OrderStatus.EXECUTED
    assert order.execution_quantity == 0
    assert order.stock_price_before is None
    assert player.cash == 100
    assert stock.current_price == 100


@pytest.mark.asyncio
async def test_only_pending_orders_of_the_room_run(db_session):
    room, (player,), (stock,) = await _market(db_session, cash=(300,))
    cancelled = _order(room, player, stock, OrderType.BUY, 1, 100, seconds=1)
    cancelled.status = OrderStatus.CANCELLED
    db_session.add(cancelled)
    await db_session.flush()

    assert await execute_orders(db_session, room.id, FixedJitter()) == []
    assert cancelled.status == OrderStatus.CANCELLED
    assert player.cash == 300


@pytest.mark.asyncio
async def test_trades_conserve_cash_and_shares(db_session):
    room, players, stocks = await _market(
        db_session, cash=(400, 300, 200), prices=(50, 80)
    )
    p0, p1, p2 = players
    s0, s1 = stocks
    db_session.add(Holding(room_id=room.id, player_id=p2.id, stock_id=s1.id, quantity=3))
    db_session.add_all([
        _order(room, p0, s0, OrderType.BUY, 400, 400, seconds=1),
        _order(room, p1, s0, OrderType.BUY, 300, 300, seconds=2),
        _order(room, p2, s1, OrderType.SELL, 3, 240, seconds=3),
    ])
    await db_session.flush()

    results = await execute_orders(db_session, room.id, FixedJitter())

    bought = sum(r.price_total for r in results if r.order_type == OrderType.BUY)
    sold = sum(r.price_total for r in results if r.order_type == OrderType.SELL)
    assert sum(p.cash for p in players) == 900 - bought + sold

    shares = (
        await db_session.execute(
            select(Holding.stock_id, func.sum(Holding.quantity)).group_by(Holding.stock_id)
        )
    ).all()
    shares = dict(shares)
    bought_shares = sum(r.quantity for r in results if r.order_type == OrderType.BUY)
    assert shares.get(s0.id, 0) == bought_shares
    assert shares.get(s1.id, 0) == 0
    assert all(s.current_price >= 1 for s in stocks)
