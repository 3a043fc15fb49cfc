"""Room lifecycle -- create, join, leave and lookup.

Rooms are created in the WAITING status with their stocks already drawn
from the template pool; players join by code until the host starts the game
(the first ``advance``). The phase cursor itself is owned by
``phase_sequencer`` and never written here.
"""
import logging
import random

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from party_market.game import constants as C
from party_market.game.errors import (
    InvalidPlayerNameError,
    InvalidRoomSettingsError,
    NameTakenError,
    PlayerNotFoundError,
    RoomNotFoundError,
    RoomNotJoinableError,
)
from party_market.game.templates import STOCK_TEMPLATES, pick_templates, roll_stock
from party_market.models.holding import Holding
from party_market.models.order import Order
from party_market.models.player import Player
from party_market.models.room import Room, RoomPhase, RoomStatus
from party_market.models.stock import Stock

log = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def generate_room_code(rng: random.Random | None = None) -> str:
    rng = rng or random.Random()
    return "".join(rng.choice(C.ROOM_CODE_ALPHABET) for _ in range(C.ROOM_CODE_LENGTH))


async def _unused_room_code(db: AsyncSession) -> str:
    for _ in range(C.ROOM_CODE_ATTEMPTS):
        code = generate_room_code()
        taken = (
            await db.execute(select(Room.id).where(Room.code == code))
        ).scalar_one_or_none()
        if taken is None:
            return code
    raise RuntimeError("Could not find a free room code")


async def get_room(db: AsyncSession, room_id: str) -> Room:
    room = await db.get(Room, room_id)
    if room is None:
        raise RoomNotFoundError("Room not found")
    return room


async def get_player(db: AsyncSession, room_id: str, player_id: int) -> Player:
    player = await db.get(Player, player_id)
    if player is None or player.room_id != room_id:
        raise PlayerNotFoundError("Player not found in this room")
    return player


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


async def create_room(
    db: AsyncSession,
    total_rounds: int = C.DEFAULT_TOTAL_ROUNDS,
    initial_cash: int = C.DEFAULT_INITIAL_CASH,
    number_of_stocks: int = C.DEFAULT_NUMBER_OF_STOCKS,
    seed: str | None = None,
) -> Room:
    """Create a WAITING room and draw its stocks from the template pool.

    The same *seed* always yields the same stocks, prices and dividends.
    """
    if not 1 <= total_rounds <= C.MAX_TOTAL_ROUNDS:
        raise InvalidRoomSettingsError(
            f"Total rounds must be between 1 and {C.MAX_TOTAL_ROUNDS}"
        )
    if initial_cash <= 0:
        raise InvalidRoomSettingsError("Initial cash must be positive")
    if not 1 <= number_of_stocks <= len(STOCK_TEMPLATES):
        raise InvalidRoomSettingsError(
            f"Number of stocks must be between 1 and {len(STOCK_TEMPLATES)}"
        )

    if seed is None:
        seed = f"{random.getrandbits(64):016x}"

    room = Room(
        code=await _unused_room_code(db),
        status=RoomStatus.WAITING,
        current_phase=RoomPhase.WAITING,
        current_round=1,
        total_rounds=total_rounds,
        initial_cash=initial_cash,
        number_of_stocks=number_of_stocks,
        seed=seed,
    )
    db.add(room)
    await db.flush()

    rng = random.Random(f"{seed}:templates")
    for template in pick_templates(number_of_stocks, rng):
        price, dividend = roll_stock(template, rng)
        db.add(Stock(
            room_id=room.id,
            symbol=template.symbol,
            name=template.name,
            description=template.description,
            current_price=price,
            dividend_amount=dividend,
        ))
    await db.flush()

    log.info(
        "Created room %s (code=%s rounds=%d stocks=%d)",
        room.id, room.code, total_rounds, number_of_stocks,
    )
    return room


async def _name_taken(db: AsyncSession, room_id: str, name: str) -> bool:
    return (
        await db.execute(
            select(Player.id).where(Player.room_id == room_id, Player.name == name)
        )
    ).scalar_one_or_none() is not None


async def join_room(
    db: AsyncSession,
    room_code: str,
    player_name: str,
) -> tuple[Room, Player]:
    """Add a player to a WAITING room identified by its join code."""
    code = (room_code or "").strip().upper()
    name = (player_name or "").strip()
    if not code:
        raise RoomNotFoundError("Room code is required")
    if not name:
        raise InvalidPlayerNameError("Player name is required")
    if len(name) > C.MAX_PLAYER_NAME_LENGTH:
        raise InvalidPlayerNameError("Player name is too long")

    room = (
        await db.execute(select(Room).where(Room.code == code))
    ).scalar_one_or_none()
    if room is None:
        raise RoomNotFoundError(f'Room with code "{code}" not found')
    if room.status == RoomStatus.FINISHED:
        raise RoomNotJoinableError("This game has already finished")
    if room.status == RoomStatus.IN_PROGRESS:
        raise RoomNotJoinableError("Cannot join a game that is already in progress")

    if await _name_taken(db, room.id, name):
        raise NameTakenError("This name is already taken in the room")

    player = Player(room_id=room.id, name=name, cash=room.initial_cash)
    db.add(player)
    try:
        await db.flush()
    except IntegrityError:
        # Lost a race with another join using the same name.
        await db.rollback()
        raise NameTakenError("This name is already taken in the room")

    log.info("Player %s joined room %s", name, room.id)
    return room, player


async def leave_room(db: AsyncSession, room_id: str, player_id: int) -> bool:
    """Remove a player with their holdings and orders.

    Returns True when the room itself was deleted (it was still WAITING and
    the last player left).
    """
    room = await get_room(db, room_id)
    player = await get_player(db, room_id, player_id)

    await db.execute(delete(Holding).where(Holding.player_id == player.id))
    await db.execute(delete(Order).where(Order.player_id == player.id))
    await db.delete(player)
    await db.flush()

    remaining = (
        await db.execute(
            select(func.count()).select_from(Player).where(Player.room_id == room_id)
        )
    ).scalar_one()

    log.info("Player %d left room %s (%d remaining)", player_id, room_id, remaining)

    if remaining == 0 and room.status == RoomStatus.WAITING:
        await db.execute(delete(Stock).where(Stock.room_id == room_id))
        await db.delete(room)
        await db.flush()
        log.info("Deleted empty room %s", room_id)
        return True
    return False


async def list_joinable_rooms(db: AsyncSession) -> list[Room]:
    result = await db.execute(
        select(Room)
        .where(Room.status == RoomStatus.WAITING)
        .order_by(Room.created_at.desc())
    )
    return list(result.scalars().all())


async def room_players(db: AsyncSession, room_id: str) -> list[Player]:
    result = await db.execute(
        select(Player).where(Player.room_id == room_id).order_by(Player.id)
    )
    return list(result.scalars().all())


async def room_stocks(db: AsyncSession, room_id: str) -> list[Stock]:
    result = await db.execute(
        select(Stock).where(Stock.room_id == room_id).order_by(Stock.id)
    )
    return list(result.scalars().all())
