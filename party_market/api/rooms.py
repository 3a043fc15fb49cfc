from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from party_market.auth.deps import PlayerIdentity, get_current_player, require_host
from party_market.auth.jwt import create_host_token, create_player_token
from party_market.database import get_db
from party_market.game import constants as C
from party_market.game import event_engine, rooms
from party_market.game.phase_sequencer import sequencer
from party_market.models.room import RoomPhase, RoomStatus
from party_market.ws.handler import notify_room

router = APIRouter(prefix="/api/rooms", tags=["rooms"])


class CreateRoomRequest(BaseModel):
    total_rounds: int = C.DEFAULT_TOTAL_ROUNDS
    initial_cash: int = C.DEFAULT_INITIAL_CASH
    number_of_stocks: int = C.DEFAULT_NUMBER_OF_STOCKS
    seed: str | None = Field(default=None, max_length=64)


class JoinRoomRequest(BaseModel):
    room_code: str
    player_name: str


class AdvanceRequest(BaseModel):
    from_phase: RoomPhase | None = None
    from_round: int | None = None


class RoomResponse(BaseModel):
    id: str
    code: str
    status: RoomStatus
    current_phase: RoomPhase
    current_round: int
    total_rounds: int
    initial_cash: int
    number_of_stocks: int

    class Config:
        from_attributes = True


class StockResponse(BaseModel):
    id: int
    symbol: str
    name: str
    description: str | None
    current_price: int
    dividend_amount: int
    previous_price: int | None
    previous_dividend: int | None

    class Config:
        from_attributes = True


class PlayerResponse(BaseModel):
    id: int
    name: str
    cash: int
    previous_cash: int | None
    previous_net_worth: int | None

    class Config:
        from_attributes = True


class EffectResponse(BaseModel):
    type: str
    stock_id: int
    amount: int


class EventResponse(BaseModel):
    id: int
    round: int
    title: str
    description: str
    is_revealed: bool
    is_applied: bool
    is_fallback: bool
    effects: list[EffectResponse] | None


class RoomStateResponse(BaseModel):
    room: RoomResponse
    stocks: list[StockResponse]
    players: list[PlayerResponse]
    event: EventResponse | None


class CreateRoomResponse(BaseModel):
    room: RoomResponse
    host_token: str


class JoinRoomResponse(BaseModel):
    room: RoomResponse
    player: PlayerResponse
    token: str


class AdvanceResponse(BaseModel):
    status: RoomStatus
    phase: RoomPhase
    round: int


@router.post("/", response_model=CreateRoomResponse)
async def create_room(req: CreateRoomRequest, db: AsyncSession = Depends(get_db)):
    room = await rooms.create_room(
        db,
        total_rounds=req.total_rounds,
        initial_cash=req.initial_cash,
        number_of_stocks=req.number_of_stocks,
        seed=req.seed,
    )
    await db.commit()
    return CreateRoomResponse(
        room=RoomResponse.model_validate(room),
        host_token=create_host_token(room.id),
    )


@router.get("/", response_model=list[RoomResponse])
async def list_rooms(db: AsyncSession = Depends(get_db)):
    return [RoomResponse.model_validate(r) for r in await rooms.list_joinable_rooms(db)]


@router.post("/join", response_model=JoinRoomResponse)
async def join_room(req: JoinRoomRequest, db: AsyncSession = Depends(get_db)):
    room, player = await rooms.join_room(db, req.room_code, req.player_name)
    await db.commit()
    await notify_room(room.id, "player_joined", player_id=player.id)
    return JoinRoomResponse(
        room=RoomResponse.model_validate(room),
        player=PlayerResponse.model_validate(player),
        token=create_player_token(room.id, player.id),
    )


@router.get("/{room_id}", response_model=RoomStateResponse)
async def room_state(room_id: str, db: AsyncSession = Depends(get_db)):
    room = await rooms.get_room(db, room_id)
    event = None
    if room.status == RoomStatus.IN_PROGRESS:
        current = await event_engine.get_event(db, room.id, room.current_round)
        if current is not None:
            event = event_engine.event_to_dict(current)
    return RoomStateResponse(
        room=RoomResponse.model_validate(room),
        stocks=[StockResponse.model_validate(s) for s in await rooms.room_stocks(db, room.id)],
        players=[PlayerResponse.model_validate(p) for p in await rooms.room_players(db, room.id)],
        event=event,
    )


@router.post("/{room_id}/leave")
async def leave_room(
    room_id: str,
    identity: PlayerIdentity = Depends(get_current_player),
    db: AsyncSession = Depends(get_db),
):
    room_deleted = await rooms.leave_room(db, room_id, identity.player_id)
    await db.commit()
    if room_deleted:
        sequencer.forget(room_id)
    else:
        await notify_room(room_id, "player_left", player_id=identity.player_id)
    return {"left": True, "room_deleted": room_deleted}


@router.post("/{room_id}/advance", response_model=AdvanceResponse)
async def advance_room(
    room_id: str,
    req: AdvanceRequest | None = None,
    _host: str = Depends(require_host),
    db: AsyncSession = Depends(get_db),
):
    req = req or AdvanceRequest()
    result = await sequencer.advance(
        db, room_id, expected_phase=req.from_phase, expected_round=req.from_round
    )
    await notify_room(room_id, "advanced", **result.as_dict())
    return AdvanceResponse(status=result.status, phase=result.phase, round=result.round)
