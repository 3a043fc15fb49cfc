from datetime import datetime

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from party_market.auth.deps import PlayerIdentity, get_current_player
from party_market.database import get_db
from party_market.game import orders
from party_market.game.rooms import get_room
from party_market.models.order import OrderStatus, OrderType
from party_market.ws.handler import notify_room

router = APIRouter(prefix="/api/rooms", tags=["orders"])


class SubmitOrderRequest(BaseModel):
    # Plain string so unknown types surface as a game error, not a 422.
    type: str
    stock_id: int | None = None
    quantity: int | None = None
    budget: int | None = None


class OrderResponse(BaseModel):
    id: int
    player_id: int
    stock_id: int | None
    round: int
    type: OrderType
    status: OrderStatus
    requested_quantity: int
    requested_price_total: int
    execution_quantity: int | None
    execution_price_total: int | None
    stock_price_before: int | None
    stock_price_after: int | None
    submitted_at: datetime

    class Config:
        from_attributes = True


@router.post("/{room_id}/orders", response_model=OrderResponse)
async def submit_order(
    room_id: str,
    req: SubmitOrderRequest,
    identity: PlayerIdentity = Depends(get_current_player),
    db: AsyncSession = Depends(get_db),
):
    order = await orders.submit_order(
        db,
        room_id,
        identity.player_id,
        req.type,
        stock_id=req.stock_id,
        quantity=req.quantity,
        budget=req.budget,
    )
    await db.commit()
    await notify_room(room_id, "order_submitted", player_id=identity.player_id)
    return OrderResponse.model_validate(order)


@router.delete("/{room_id}/orders/{order_id}", response_model=OrderResponse)
async def cancel_order(
    room_id: str,
    order_id: int,
    identity: PlayerIdentity = Depends(get_current_player),
    db: AsyncSession = Depends(get_db),
):
    order = await orders.cancel_order(db, room_id, identity.player_id, order_id)
    await db.commit()
    await notify_room(room_id, "order_cancelled", player_id=identity.player_id)
    return OrderResponse.model_validate(order)


@router.get("/{room_id}/orders", response_model=list[OrderResponse])
async def list_orders(
    room_id: str,
    round: int | None = None,
    player_id: int | None = None,
    db: AsyncSession = Depends(get_db),
):
    await get_room(db, room_id)
    return [
        OrderResponse.model_validate(o)
        for o in await orders.list_orders(db, room_id, round_number=round, player_id=player_id)
    ]
