"""Phase sequencer -- the only writer of a room's (status, phase, round).

Cycle::

    waiting -> submitting_orders -> revealing_event -> executing_orders
            -> paying_dividends -> submitting_orders (round + 1) -> ...

Each ``advance`` runs the exit action bound to the phase being left:

- ``waiting`` (game start): generate the round-1 event
- ``submitting_orders``: require one order per player, snapshot the round
  start values, reveal the event
- ``revealing_event``: apply the event's effects
- ``executing_orders``: execute the round's orders
- ``paying_dividends``: pay dividends, then either finish the game or
  generate the next round's event

Exit-action mutations and the cursor update are committed together. Calls
for the same room are serialized by a per-room ``asyncio.Lock`` and the
cursor is written with a compare-and-swap ``UPDATE``, so a second caller
racing on the same phase gets ``StalePhaseError`` instead of re-running the
exit action.
"""
import asyncio
import logging
import random
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from party_market.config import get_settings
from party_market.game import dividends, event_engine, order_executor
from party_market.game.errors import (
    NotAllPlayersActedError,
    NotEnoughPlayersError,
    RoomFinishedError,
    RoomNotFoundError,
    StalePhaseError,
    WrongPhaseError,
)
from party_market.game.event_generators import EventGenerator, build_generator
from party_market.game.orders import players_without_order
from party_market.game.portfolio import snapshot_round_start
from party_market.game.rooms import room_players
from party_market.models.room import Room, RoomPhase, RoomStatus

log = logging.getLogger(__name__)

NEXT_PHASE: dict[RoomPhase, RoomPhase] = {
    RoomPhase.SUBMITTING_ORDERS: RoomPhase.REVEALING_EVENT,
    RoomPhase.REVEALING_EVENT: RoomPhase.EXECUTING_ORDERS,
    RoomPhase.EXECUTING_ORDERS: RoomPhase.PAYING_DIVIDENDS,
    RoomPhase.PAYING_DIVIDENDS: RoomPhase.SUBMITTING_ORDERS,
}


@dataclass
class AdvanceResult:
    status: RoomStatus
    phase: RoomPhase
    round: int

    def as_dict(self) -> dict:
        return {"status": self.status.value, "phase": self.phase.value, "round": self.round}


def room_rng(seed: str, purpose: str, round_number: int) -> random.Random:
    """Seeded source for one kind of randomness in one round of a room."""
    return random.Random(f"{seed}:{purpose}:{round_number}")


def _default_generator(rng: random.Random) -> EventGenerator:
    return build_generator(get_settings(), rng)


class PhaseSequencer:
    """Drives rooms through the phase cycle."""

    def __init__(
        self,
        generator_factory: Callable[[random.Random], EventGenerator] | None = None,
        rng_factory: Callable[[str, str, int], random.Random] = room_rng,
        generator_timeout: float | None = None,
    ) -> None:
        self.generator_factory = generator_factory or _default_generator
        self.rng_factory = rng_factory
        self.generator_timeout = generator_timeout
        self._locks: dict[str, asyncio.Lock] = {}

    def lock_for(self, room_id: str) -> asyncio.Lock:
        lock = self._locks.get(room_id)
        if lock is None:
            lock = self._locks[room_id] = asyncio.Lock()
        return lock

    def forget(self, room_id: str) -> None:
        """Drop the lock of a deleted room."""
        self._locks.pop(room_id, None)

    # ------------------------------------------------------------------
    # Exit actions
    # ------------------------------------------------------------------

    async def _generate_event(self, db: AsyncSession, room: Room, round_number: int) -> None:
        timeout = self.generator_timeout
        if timeout is None:
            timeout = get_settings().EVENT_GENERATOR_TIMEOUT
        generator = self.generator_factory(self.rng_factory(room.seed, "events", round_number))
        await event_engine.generate(db, room, round_number, generator, timeout=timeout)

    async def _start_game(self, db: AsyncSession, room: Room) -> AdvanceResult:
        if not await room_players(db, room.id):
            raise NotEnoughPlayersError("At least one player is needed to start the game")
        await self._generate_event(db, room, 1)
        return AdvanceResult(RoomStatus.IN_PROGRESS, RoomPhase.SUBMITTING_ORDERS, 1)

    async def _leave_submitting(self, db: AsyncSession, room: Room) -> None:
        missing = await players_without_order(db, room)
        if missing:
            raise NotAllPlayersActedError(
                f"{len(missing)} player(s) have not submitted an order yet"
            )
        await snapshot_round_start(db, room.id)
        # A room whose event was lost still reveals something.
        if await event_engine.get_event(db, room.id, room.current_round) is None:
            await self._generate_event(db, room, room.current_round)
        await event_engine.reveal(db, room.id, room.current_round)

    async def _leave_paying(self, db: AsyncSession, room: Room) -> AdvanceResult:
        await dividends.pay_all(db, room.id)
        if room.current_round >= room.total_rounds:
            return AdvanceResult(RoomStatus.FINISHED, RoomPhase.WAITING, room.current_round)
        next_round = room.current_round + 1
        await self._generate_event(db, room, next_round)
        return AdvanceResult(RoomStatus.IN_PROGRESS, RoomPhase.SUBMITTING_ORDERS, next_round)

    async def _run_exit_action(self, db: AsyncSession, room: Room) -> AdvanceResult:
        if room.status == RoomStatus.WAITING:
            return await self._start_game(db, room)

        phase = room.current_phase
        if phase == RoomPhase.SUBMITTING_ORDERS:
            await self._leave_submitting(db, room)
        elif phase == RoomPhase.REVEALING_EVENT:
            await event_engine.apply_effects(db, room.id, room.current_round)
        elif phase == RoomPhase.EXECUTING_ORDERS:
            rng = self.rng_factory(room.seed, "prices", room.current_round)
            await order_executor.execute_orders(db, room.id, rng)
        elif phase == RoomPhase.PAYING_DIVIDENDS:
            return await self._leave_paying(db, room)
        else:
            raise WrongPhaseError(f"Room in progress cannot be in phase {phase.value}")

        return AdvanceResult(RoomStatus.IN_PROGRESS, NEXT_PHASE[phase], room.current_round)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def advance(
        self,
        db: AsyncSession,
        room_id: str,
        expected_phase: RoomPhase | str | None = None,
        expected_round: int | None = None,
    ) -> AdvanceResult:
        """Move *room_id* to its next phase and commit.

        *expected_phase* / *expected_round* let a caller say which state it
        is advancing from; if the room has already moved on the call fails
        with ``StalePhaseError`` and changes nothing.
        """
        async with self.lock_for(room_id):
            try:
                result = await self._advance_locked(db, room_id, expected_phase, expected_round)
            except Exception:
                await db.rollback()
                raise
            await db.commit()
        if result.status == RoomStatus.FINISHED:
            self.forget(room_id)
        return result

    async def _advance_locked(
        self,
        db: AsyncSession,
        room_id: str,
        expected_phase: RoomPhase | str | None,
        expected_round: int | None,
    ) -> AdvanceResult:
        room = await db.get(Room, room_id, populate_existing=True, with_for_update=True)
        if room is None:
            raise RoomNotFoundError("Room not found")
        if room.status == RoomStatus.FINISHED:
            raise RoomFinishedError("The game has already finished")

        if expected_phase is not None and room.current_phase != RoomPhase(expected_phase):
            raise StalePhaseError(
                f"Room is in phase {room.current_phase.value}, not {RoomPhase(expected_phase).value}"
            )
        if expected_round is not None and room.current_round != expected_round:
            raise StalePhaseError(
                f"Room is in round {room.current_round}, not {expected_round}"
            )

        old_status, old_phase, old_round = room.status, room.current_phase, room.current_round
        result = await self._run_exit_action(db, room)

        swapped = await db.execute(
            update(Room)
            .where(
                Room.id == room_id,
                Room.status == old_status,
                Room.current_phase == old_phase,
                Room.current_round == old_round,
            )
            .values(
                status=result.status,
                current_phase=result.phase,
                current_round=result.round,
                phase_started_at=datetime.now(timezone.utc),
            )
        )
        if swapped.rowcount != 1:
            raise StalePhaseError("Room was advanced concurrently")

        log.info(
            "Room %s: %s round %d -> %s round %d",
            room_id, old_phase.value, old_round, result.phase.value, result.round,
        )
        if result.status == RoomStatus.FINISHED:
            log.info("Room %s finished after %d rounds", room_id, result.round)
        elif old_status == RoomStatus.WAITING:
            log.info("Room %s started", room_id)
        return result


# Module-level singleton shared by the API and the auto-advance loop.
sequencer = PhaseSequencer()
