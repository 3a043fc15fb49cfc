"""Dividend distribution -- pays every holder of a dividend-paying stock."""
import logging
from collections import defaultdict

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from party_market.models.holding import Holding
from party_market.models.player import Player
from party_market.models.stock import Stock

log = logging.getLogger(__name__)


async def pay_all(db: AsyncSession, room_id: str) -> dict[int, int]:
    """Credit ``quantity * dividend_amount`` for every holding in the room.

    Payouts are summed per player first and applied with one cash update
    per player. Returns the payout per player id (players receiving nothing
    are omitted).
    """
    rows = (
        await db.execute(
            select(Holding.player_id, Holding.quantity, Stock.dividend_amount)
            .join(Stock, Stock.id == Holding.stock_id)
            .where(
                Holding.room_id == room_id,
                Holding.quantity > 0,
                Stock.dividend_amount > 0,
            )
        )
    ).all()

    payouts: dict[int, int] = defaultdict(int)
    for player_id, quantity, dividend in rows:
        payouts[player_id] += quantity * dividend

    for player_id, amount in payouts.items():
        player = await db.get(Player, player_id)
        player.cash += amount

    await db.flush()
    log.info(
        "Paid dividends in room %s: %d players, %d total",
        room_id, len(payouts), sum(payouts.values()),
    )
    return dict(payouts)
