"""Order submission and cancellation during the ``submitting_orders`` phase."""
import logging

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from party_market.game.errors import (
    DuplicateOrderError,
    InvalidOrderError,
    OrderNotCancellableError,
    OrderNotFoundError,
    StockNotFoundError,
    WrongPhaseError,
)
from party_market.game.rooms import get_player, get_room, room_players
from party_market.models.order import Order, OrderStatus, OrderType
from party_market.models.room import Room, RoomPhase, RoomStatus
from party_market.models.stock import Stock

log = logging.getLogger(__name__)


def _accepting_orders(room: Room) -> bool:
    return (
        room.status == RoomStatus.IN_PROGRESS
        and room.current_phase == RoomPhase.SUBMITTING_ORDERS
    )


async def _existing_order(
    db: AsyncSession, room: Room, player_id: int
) -> Order | None:
    return (
        await db.execute(
            select(Order).where(
                Order.room_id == room.id,
                Order.player_id == player_id,
                Order.round == room.current_round,
                Order.status != OrderStatus.CANCELLED,
            )
        )
    ).scalar_one_or_none()


async def submit_order(
    db: AsyncSession,
    room_id: str,
    player_id: int,
    order_type: OrderType | str,
    stock_id: int | None = None,
    quantity: int | None = None,
    budget: int | None = None,
) -> Order:
    """Record a player's single action for the current round.

    Buys need a positive budget no larger than the player's cash; without a
    quantity they request as many shares as the budget can buy, and without
    a budget they spend the current price of the quantity, capped at cash.
    Sells need a positive quantity; the budget is informational and defaults
    to the current value of the requested shares. Skips carry no stock.
    """
    try:
        order_type = OrderType(order_type)
    except ValueError:
        raise InvalidOrderError(f"Unknown order type: {order_type}")

    room = await get_room(db, room_id)
    player = await get_player(db, room_id, player_id)

    if not _accepting_orders(room):
        raise WrongPhaseError("Room not accepting orders")

    if await _existing_order(db, room, player.id) is not None:
        raise DuplicateOrderError("Player already submitted an order this round")

    if order_type == OrderType.SKIP:
        order = Order(
            room_id=room.id,
            player_id=player.id,
            stock_id=None,
            round=room.current_round,
            type=order_type,
            requested_quantity=0,
            requested_price_total=0,
        )
    else:
        if stock_id is None:
            raise InvalidOrderError("A stock is required for buy and sell orders")
        stock = await db.get(Stock, stock_id)
        if stock is None or stock.room_id != room.id:
            raise StockNotFoundError("Stock not found in this room")

        if order_type == OrderType.BUY:
            if budget is None and quantity is not None and quantity > 0:
                budget = min(quantity * stock.current_price, player.cash)
            if budget is None or budget <= 0:
                raise InvalidOrderError("Buy orders need a positive quantity or budget")
            if budget > player.cash:
                raise InvalidOrderError(
                    f"Budget exceeds available cash ({player.cash})"
                )
            if quantity is None:
                # Prices never drop below 1, so the budget bounds the share count.
                quantity = budget
            elif quantity <= 0:
                raise InvalidOrderError("Quantity must be positive")
            requested_total = budget
        else:
            if quantity is None or quantity <= 0:
                raise InvalidOrderError("Sell orders need a positive quantity")
            requested_total = budget if budget is not None else quantity * stock.current_price

        order = Order(
            room_id=room.id,
            player_id=player.id,
            stock_id=stock.id,
            round=room.current_round,
            type=order_type,
            requested_quantity=quantity,
            requested_price_total=requested_total,
        )

    db.add(order)
    try:
        await db.flush()
    except IntegrityError:
        # Two submissions for the same player raced past the check above.
        await db.rollback()
        raise DuplicateOrderError("Player already submitted an order this round")

    log.info(
        "Order %d submitted: room=%s player=%d type=%s round=%d",
        order.id, room.id, player.id, order.type.value, order.round,
    )
    return order


async def cancel_order(
    db: AsyncSession,
    room_id: str,
    player_id: int,
    order_id: int,
) -> Order:
    """Cancel a still-pending order of *player_id* in the current round."""
    room = await get_room(db, room_id)
    order = await db.get(Order, order_id)
    if order is None or order.room_id != room.id or order.player_id != player_id:
        raise OrderNotFoundError("Order not found")
    if order.status != OrderStatus.PENDING:
        raise OrderNotCancellableError(f"Order is already {order.status.value}")
    if not _accepting_orders(room) or order.round != room.current_round:
        raise WrongPhaseError("Orders can only be cancelled while orders are being submitted")

    order.status = OrderStatus.CANCELLED
    await db.flush()
    log.info("Order %d cancelled by player %d", order.id, player_id)
    return order


async def list_orders(
    db: AsyncSession,
    room_id: str,
    round_number: int | None = None,
    player_id: int | None = None,
) -> list[Order]:
    query = select(Order).where(Order.room_id == room_id)
    if round_number is not None:
        query = query.where(Order.round == round_number)
    if player_id is not None:
        query = query.where(Order.player_id == player_id)
    query = query.order_by(Order.round.desc(), Order.submitted_at.desc(), Order.id.desc())
    return list((await db.execute(query)).scalars().all())


async def players_without_order(db: AsyncSession, room: Room) -> list[int]:
    """Ids of players that have not acted in the room's current round."""
    acted = set(
        (
            await db.execute(
                select(Order.player_id).where(
                    Order.room_id == room.id,
                    Order.round == room.current_round,
                    Order.status != OrderStatus.CANCELLED,
                )
            )
        ).scalars().all()
    )
    return [p.id for p in await room_players(db, room.id) if p.id not in acted]
