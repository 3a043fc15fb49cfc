from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from party_market.api.rooms import EventResponse
from party_market.database import get_db
from party_market.game import event_engine, portfolio
from party_market.game.rooms import get_room

router = APIRouter(prefix="/api/rooms", tags=["market"])


class LeaderboardEntry(BaseModel):
    rank: int
    player_id: int
    name: str
    cash: int
    net_worth: int
    previous_net_worth: int | None


class HoldingResponse(BaseModel):
    stock_id: int
    symbol: str
    quantity: int
    value: int


class PlayerInfoResponse(BaseModel):
    id: int
    room_id: str
    name: str
    cash: int
    net_worth: int
    previous_cash: int | None
    previous_net_worth: int | None
    holdings: list[HoldingResponse]


@router.get("/{room_id}/leaderboard", response_model=list[LeaderboardEntry])
async def leaderboard(room_id: str, db: AsyncSession = Depends(get_db)):
    await get_room(db, room_id)
    return await portfolio.leaderboard(db, room_id)


@router.get("/{room_id}/players/{player_id}", response_model=PlayerInfoResponse)
async def player_info(room_id: str, player_id: int, db: AsyncSession = Depends(get_db)):
    await get_room(db, room_id)
    return await portfolio.player_info(db, room_id, player_id)


@router.get("/{room_id}/events/{round_number}", response_model=EventResponse)
async def get_event(room_id: str, round_number: int, db: AsyncSession = Depends(get_db)):
    """Event of a round; its effects stay null until the event is revealed."""
    await get_room(db, room_id)
    return await event_engine.visible_event(db, room_id, round_number)
