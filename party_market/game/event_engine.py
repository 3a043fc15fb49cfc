"""Event engine -- one narrative event per (room, round).

``generate`` stores a hidden event before the round's orders are taken.
``reveal`` flips it visible once the room leaves ``submitting_orders`` and
``apply_effects`` adds the deltas to the room's stocks while leaving
``revealing_event``. Both are driven by ``phase_sequencer`` only.

Preconditions of ``apply_effects``: the event is revealed and has not been
applied. Both are checked and raise; the sequencer's once-per-transition
guarantee is what keeps them from firing in normal play.
"""
import asyncio
import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from party_market.game import constants as C
from party_market.game.effects import (
    DividendChange,
    Effect,
    PriceChange,
    dumps_effects,
    effect_to_dict,
    loads_effects,
)
from party_market.game.errors import (
    EventAlreadyAppliedError,
    EventNotFoundError,
    EventNotRevealedError,
)
from party_market.game.event_generators import (
    EventDraft,
    EventGenerator,
    OrderSnapshot,
    PlayerSnapshot,
    StockSnapshot,
)
from party_market.game.portfolio import net_worths
from party_market.models.event import Event
from party_market.models.order import Order, OrderStatus
from party_market.models.player import Player
from party_market.models.room import Room
from party_market.models.stock import Stock

log = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Snapshots
# ---------------------------------------------------------------------------

async def _stock_snapshots(db: AsyncSession, room_id: str) -> list[StockSnapshot]:
    stocks = (
        await db.execute(select(Stock).where(Stock.room_id == room_id).order_by(Stock.id))
    ).scalars().all()
    return [
        StockSnapshot(s.id, s.symbol, s.name, s.current_price, s.dividend_amount)
        for s in stocks
    ]


async def _player_snapshots(db: AsyncSession, room_id: str) -> list[PlayerSnapshot]:
    players = (
        await db.execute(select(Player).where(Player.room_id == room_id).order_by(Player.id))
    ).scalars().all()
    worth = await net_worths(db, room_id)
    return [PlayerSnapshot(p.id, p.name, p.cash, worth[p.id]) for p in players]


async def _recent_orders(db: AsyncSession, room_id: str) -> list[OrderSnapshot]:
    rows = (
        await db.execute(
            select(Order, Player.name, Stock.symbol)
            .join(Player, Player.id == Order.player_id)
            .outerjoin(Stock, Stock.id == Order.stock_id)
            .where(Order.room_id == room_id, Order.status != OrderStatus.CANCELLED)
            .order_by(Order.submitted_at.desc(), Order.id.desc())
            .limit(C.RECENT_ORDERS_FOR_EVENTS)
        )
    ).all()
    return [
        OrderSnapshot(
            player_name=name,
            symbol=symbol,
            type=order.type.value,
            quantity=order.execution_quantity if order.execution_quantity is not None
            else order.requested_quantity,
            price_total=order.execution_price_total if order.execution_price_total is not None
            else order.requested_price_total,
            round=order.round,
        )
        for order, name, symbol in rows
    ]


def _validate_draft(draft: EventDraft, stocks: list[StockSnapshot]) -> None:
    if not draft.title or not draft.title.strip():
        raise ValueError("Event has no title")

    upper = min(C.MAX_EVENT_EFFECTS, len(stocks))
    lower = min(C.MIN_EVENT_EFFECTS, upper)
    if not lower <= len(draft.effects) <= C.MAX_EVENT_EFFECTS:
        raise ValueError(
            f"Event has {len(draft.effects)} effects, expected {lower}-{C.MAX_EVENT_EFFECTS}"
        )

    stock_ids = {s.id for s in stocks}
    for effect in draft.effects:
        if not isinstance(effect, (PriceChange, DividendChange)):
            raise ValueError(f"Unsupported effect {effect!r}")
        if effect.stock_id not in stock_ids:
            raise ValueError(f"Effect targets stock {effect.stock_id} outside the room")
        if not isinstance(effect.amount, int):
            raise ValueError(f"Effect amount must be an integer, got {effect.amount!r}")


def fallback_draft() -> EventDraft:
    return EventDraft(
        title=C.FALLBACK_EVENT_TITLE,
        description=C.FALLBACK_EVENT_DESCRIPTION,
        effects=[],
    )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


async def get_event(db: AsyncSession, room_id: str, round_number: int) -> Event | None:
    return (
        await db.execute(
            select(Event).where(Event.room_id == room_id, Event.round == round_number)
        )
    ).scalar_one_or_none()


async def generate(
    db: AsyncSession,
    room: Room,
    round_number: int,
    generator: EventGenerator,
    timeout: float | None = None,
) -> Event:
    """Store the hidden event for *round_number*.

    Any generator failure (exception, timeout, malformed draft) is logged
    and replaced by the fallback event, so this never blocks a transition.
    An existing event for the round is returned untouched.
    """
    existing = await get_event(db, room.id, round_number)
    if existing is not None:
        return existing

    stocks = await _stock_snapshots(db, room.id)
    players = await _player_snapshots(db, room.id)
    recent = await _recent_orders(db, room.id)

    is_fallback = False
    try:
        draft = await asyncio.wait_for(
            generator.generate_effects(stocks, players, recent, round_number, room.total_rounds),
            timeout,
        )
        _validate_draft(draft, stocks)
    except Exception as exc:
        log.warning(
            "Event generator failed for room %s round %d, using fallback: %r",
            room.id, round_number, exc, exc_info=True,
        )
        draft = fallback_draft()
        is_fallback = True

    event = Event(
        room_id=room.id,
        round=round_number,
        title=draft.title.strip()[:256],
        description=draft.description,
        effects=dumps_effects(draft.effects),
        is_fallback=is_fallback,
    )
    db.add(event)
    await db.flush()

    log.info(
        "Generated event for room %s round %d: %r (%d effects%s)",
        room.id, round_number, event.title, len(draft.effects),
        ", fallback" if is_fallback else "",
    )
    return event


async def reveal(db: AsyncSession, room_id: str, round_number: int) -> Event:
    event = await get_event(db, room_id, round_number)
    if event is None:
        raise EventNotFoundError(f"No event for round {round_number}")
    event.is_revealed = True
    await db.flush()
    return event


def _apply(stock: Stock, effect: Effect) -> None:
    if isinstance(effect, PriceChange):
        stock.current_price = max(C.PRICE_FLOOR, stock.current_price + effect.amount)
    elif isinstance(effect, DividendChange):
        stock.dividend_amount = max(C.DIVIDEND_FLOOR, stock.dividend_amount + effect.amount)
    else:
        raise TypeError(f"Unknown effect type: {type(effect).__name__}")


async def apply_effects(db: AsyncSession, room_id: str, round_number: int) -> list[Effect]:
    """Add the revealed event's deltas to the room's stocks, exactly once."""
    event = await get_event(db, room_id, round_number)
    if event is None:
        raise EventNotFoundError(f"No event for round {round_number}")
    if not event.is_revealed:
        raise EventNotRevealedError(f"Event for round {round_number} is not revealed")
    if event.is_applied:
        raise EventAlreadyAppliedError(f"Event for round {round_number} was already applied")

    effects = loads_effects(event.effects)
    for effect in effects:
        stock = await db.get(Stock, effect.stock_id)
        if stock is None or stock.room_id != room_id:
            log.warning("Skipping effect on missing stock %d in room %s", effect.stock_id, room_id)
            continue
        _apply(stock, effect)

    event.is_applied = True
    await db.flush()
    log.info("Applied %d effects for room %s round %d", len(effects), room_id, round_number)
    return effects


def event_to_dict(event: Event, include_effects: bool | None = None) -> dict:
    """Serialize an event; effects stay hidden until it is revealed."""
    if include_effects is None:
        include_effects = event.is_revealed
    return {
        "id": event.id,
        "round": event.round,
        "title": event.title,
        "description": event.description,
        "is_revealed": event.is_revealed,
        "is_applied": event.is_applied,
        "is_fallback": event.is_fallback,
        "effects": (
            [effect_to_dict(e) for e in loads_effects(event.effects)]
            if include_effects else None
        ),
    }


async def visible_event(db: AsyncSession, room_id: str, round_number: int) -> dict:
    event = await get_event(db, room_id, round_number)
    if event is None:
        raise EventNotFoundError(f"No event for round {round_number}")
    return event_to_dict(event)
