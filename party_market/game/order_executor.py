"""Order executor -- resolves a room's pending orders into trades.

Orders are resolved one at a time in ascending ``(submitted_at, id)``
order across the whole room. Each order trades at the stock's price as left
by every earlier order, then moves that price through ``price_model``
before the next order is looked at. Because of this the loop is strictly
sequential within a room.

Buys may fill partially (limited by budget, cash and requested quantity);
sells fill up to the shares held. An order that cannot fill at all ends as
``failed``. Skips are closed as ``executed`` with no effect.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from party_market.game import price_model
from party_market.game.price_model import JitterSource
from party_market.models.holding import Holding
from party_market.models.order import Order, OrderStatus, OrderType
from party_market.models.player import Player
from party_market.models.stock import Stock

log = logging.getLogger(__name__)


@dataclass
class TradeResult:
    order_id: int
    player_id: int
    stock_id: int | None
    order_type: OrderType
    status: OrderStatus
    quantity: int
    price_total: int
    price_before: int | None
    price_after: int | None

    @property
    def executed(self) -> bool:
        return self.status == OrderStatus.EXECUTED


async def _shares_in_market(db: AsyncSession, room_id: str) -> dict[int, int]:
    rows = (
        await db.execute(
            select(Holding.stock_id, func.sum(Holding.quantity))
            .where(Holding.room_id == room_id)
            .group_by(Holding.stock_id)
        )
    ).all()
    return {stock_id: int(total or 0) for stock_id, total in rows}


async def _get_holding(
    db: AsyncSession, player_id: int, stock_id: int
) -> Holding | None:
    return (
        await db.execute(
            select(Holding).where(
                Holding.player_id == player_id,
                Holding.stock_id == stock_id,
            )
        )
    ).scalar_one_or_none()


def _close(
    order: Order,
    status: OrderStatus,
    quantity: int,
    total: int,
    price_before: int | None,
    price_after: int | None,
) -> TradeResult:
    order.status = status
    order.execution_quantity = quantity
    order.execution_price_total = total
    order.stock_price_before = price_before
    order.stock_price_after = price_after
    order.executed_at = datetime.now(timezone.utc)
    return TradeResult(
        order_id=order.id,
        player_id=order.player_id,
        stock_id=order.stock_id,
        order_type=order.type,
        status=status,
        quantity=quantity,
        price_total=total,
        price_before=price_before,
        price_after=price_after,
    )


async def _execute_buy(
    db: AsyncSession,
    order: Order,
    player: Player,
    stock: Stock,
    shares_owned: int,
    rng: JitterSource,
) -> TradeResult:
    price = stock.current_price
    budget = min(order.requested_price_total, player.cash)
    quantity = min(budget // price, order.requested_quantity)
    if quantity <= 0:
        return _close(order, OrderStatus.FAILED, 0, 0, price, price)

    cost = quantity * price
    player.cash -= cost

    holding = await _get_holding(db, player.id, stock.id)
    if holding is None:
        holding = Holding(
            room_id=order.room_id,
            player_id=player.id,
            stock_id=stock.id,
            quantity=quantity,
        )
        db.add(holding)
    else:
        holding.quantity += quantity

    stock.current_price = price_model.new_price(
        price, quantity, shares_owned, is_buy=True, rng=rng
    )
    return _close(order, OrderStatus.EXECUTED, quantity, cost, price, stock.current_price)


async def _execute_sell(
    db: AsyncSession,
    order: Order,
    player: Player,
    stock: Stock,
    shares_owned: int,
    rng: JitterSource,
) -> TradeResult:
    price = stock.current_price
    holding = await _get_holding(db, player.id, stock.id)
    held = holding.quantity if holding else 0
    quantity = min(held, order.requested_quantity)
    if quantity <= 0:
        return _close(order, OrderStatus.FAILED, 0, 0, price, price)

    revenue = quantity * price
    player.cash += revenue

    holding.quantity -= quantity
    if holding.quantity <= 0:
        await db.delete(holding)

    stock.current_price = price_model.new_price(
        price, quantity, shares_owned, is_buy=False, rng=rng
    )
    return _close(order, OrderStatus.EXECUTED, quantity, revenue, price, stock.current_price)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


async def execute_orders(
    db: AsyncSession,
    room_id: str,
    rng: JitterSource,
) -> list[TradeResult]:
    """Resolve every pending order of *room_id*.

    Mutates stock prices, player cash, holdings and order status in the
    given session; the caller owns the transaction.
    """
    results: list[TradeResult] = []

    skips = (
        await db.execute(
            select(Order).where(
                Order.room_id == room_id,
                Order.status == OrderStatus.PENDING,
                Order.type == OrderType.SKIP,
            )
        )
    ).scalars().all()
    for order in skips:
        results.append(_close(order, OrderStatus.EXECUTED, 0, 0, None, None))

    orders = (
        await db.execute(
            select(Order)
            .where(
                Order.room_id == room_id,
                Order.status == OrderStatus.PENDING,
                Order.type.in_([OrderType.BUY, OrderType.SELL]),
            )
            .order_by(Order.submitted_at, Order.id)
        )
    ).scalars().all()
    if not orders:
        return results

    shares_owned = await _shares_in_market(db, room_id)

    for order in orders:
        player = await db.get(Player, order.player_id)
        stock = await db.get(Stock, order.stock_id)
        owned_before = shares_owned.get(stock.id, 0)

        if order.type == OrderType.BUY:
            result = await _execute_buy(db, order, player, stock, owned_before, rng)
            shares_owned[stock.id] = owned_before + result.quantity
        else:
            result = await _execute_sell(db, order, player, stock, owned_before, rng)
            shares_owned[stock.id] = owned_before - result.quantity

        # Later orders must see this order's holdings and price.
        await db.flush()

        log.debug(
            "Order %d %s %s: qty=%d total=%d price %s -> %s",
            order.id, order.type.value, result.status.value,
            result.quantity, result.price_total,
            result.price_before, result.price_after,
        )
        results.append(result)

    executed = sum(1 for r in results if r.executed and r.order_type != OrderType.SKIP)
    log.info(
        "Executed orders for room %s: %d filled, %d failed",
        room_id, executed, sum(1 for r in results if not r.executed),
    )
    return results
