"""Auto-advance loop -- moves idle rooms forward on a timer.

The loop is started/stopped by the FastAPI lifespan handler when
``AUTO_ADVANCE_SECONDS`` is positive and runs as a background
``asyncio.Task``. Each tick it:

1. Loads every IN_PROGRESS room whose phase started more than
   ``AUTO_ADVANCE_SECONDS`` ago.
2. In ``submitting_orders``, records a ``skip`` for every player that has
   not acted yet.
3. Calls ``sequencer.advance`` for the room, guarded by the phase and round
   it saw, so a host advancing at the same moment wins cleanly.
4. Broadcasts ``room_updated`` to the room's subscribers after the commit.

It only ever goes through the public ``advance``; a failing room is logged
and retried on a later tick.
"""
import asyncio
import logging
from datetime import datetime, timedelta, timezone

from sqlalchemy import select

from party_market.config import get_settings
from party_market.database import async_session

log = logging.getLogger(__name__)


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class AutoAdvanceLoop:
    """Singleton loop that advances rooms left idle for too long."""

    def __init__(self, session_factory=None) -> None:
        self._running: bool = False
        self._task: asyncio.Task | None = None
        self.session_factory = session_factory or async_session

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Start the background tick loop."""
        if self._running:
            return
        self._running = True
        self._task = asyncio.create_task(self._loop())
        settings = get_settings()
        log.info(
            "Auto-advance loop started (limit %ds, tick %.1fs)",
            settings.AUTO_ADVANCE_SECONDS, settings.AUTO_ADVANCE_TICK,
        )

    async def stop(self) -> None:
        """Cancel the background tick loop and wait for it to finish."""
        self._running = False
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        log.info("Auto-advance loop stopped")

    # ------------------------------------------------------------------
    # Main loop
    # ------------------------------------------------------------------

    async def _loop(self) -> None:
        """Run until ``_running`` is set to False or the task is cancelled."""
        while self._running:
            await asyncio.sleep(get_settings().AUTO_ADVANCE_TICK)
            try:
                await self.tick()
            except asyncio.CancelledError:
                raise
            except Exception:
                log.exception("Unhandled error in auto-advance tick")

    async def _due_rooms(self, now: datetime) -> list[tuple]:
        from party_market.models.room import Room, RoomStatus

        limit = timedelta(seconds=get_settings().AUTO_ADVANCE_SECONDS)
        async with self.session_factory() as db:
            rooms = (
                await db.execute(
                    select(Room).where(
                        Room.status == RoomStatus.IN_PROGRESS,
                        Room.phase_started_at.is_not(None),
                    )
                )
            ).scalars().all()
            return [
                (room.id, room.current_phase, room.current_round)
                for room in rooms
                if now - _as_utc(room.phase_started_at) >= limit
            ]

    async def tick(self, now: datetime | None = None) -> list[str]:
        """Advance every overdue room once. Returns the ids advanced."""
        from party_market.game import orders
        from party_market.game.phase_sequencer import sequencer
        from party_market.game.rooms import get_room
        from party_market.models.order import OrderType
        from party_market.models.room import RoomPhase
        from party_market.ws.handler import notify_room

        now = now or datetime.now(timezone.utc)
        advanced: list[str] = []

        for room_id, phase, round_number in await self._due_rooms(now):
            try:
                async with self.session_factory() as db:
                    if phase == RoomPhase.SUBMITTING_ORDERS:
                        room = await get_room(db, room_id)
                        for player_id in await orders.players_without_order(db, room):
                            await orders.submit_order(db, room_id, player_id, OrderType.SKIP)
                        await db.commit()
                    result = await sequencer.advance(
                        db, room_id, expected_phase=phase, expected_round=round_number
                    )
            except Exception:
                log.exception("Auto-advance failed for room %s", room_id)
                continue

            advanced.append(room_id)
            log.info("Auto-advanced room %s to %s", room_id, result.phase.value)
            try:
                await notify_room(room_id, "advanced", **result.as_dict())
            except Exception:
                log.debug("Failed to broadcast auto-advance for room %s", room_id)

        return advanced


# Module-level singleton used by the lifespan handler.
auto_advance_loop = AutoAdvanceLoop()
