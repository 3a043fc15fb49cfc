"""Portfolio valuation -- net worth, leaderboard and per-round snapshots."""
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from party_market.game.errors import PlayerNotFoundError
from party_market.models.holding import Holding
from party_market.models.player import Player
from party_market.models.stock import Stock


async def _room_positions(
    db: AsyncSession, room_id: str
) -> list[tuple[Holding, Stock]]:
    rows = (
        await db.execute(
            select(Holding, Stock)
            .join(Stock, Stock.id == Holding.stock_id)
            .where(Holding.room_id == room_id, Holding.quantity > 0)
        )
    ).all()
    return [(h, s) for h, s in rows]


async def net_worths(db: AsyncSession, room_id: str) -> dict[int, int]:
    """Map player id -> cash + market value of holdings."""
    players = (
        await db.execute(select(Player).where(Player.room_id == room_id))
    ).scalars().all()
    worth = {p.id: p.cash for p in players}
    for holding, stock in await _room_positions(db, room_id):
        if holding.player_id in worth:
            worth[holding.player_id] += holding.quantity * stock.current_price
    return worth


async def leaderboard(db: AsyncSession, room_id: str) -> list[dict]:
    """Players ranked by net worth (ties broken by name)."""
    players = (
        await db.execute(select(Player).where(Player.room_id == room_id))
    ).scalars().all()
    worth = await net_worths(db, room_id)

    ranked = sorted(players, key=lambda p: (-worth[p.id], p.name))
    return [
        {
            "rank": i + 1,
            "player_id": p.id,
            "name": p.name,
            "cash": p.cash,
            "net_worth": worth[p.id],
            "previous_net_worth": p.previous_net_worth,
        }
        for i, p in enumerate(ranked)
    ]


async def player_info(db: AsyncSession, room_id: str, player_id: int) -> dict:
    player = await db.get(Player, player_id)
    if player is None or player.room_id != room_id:
        raise PlayerNotFoundError("Player not found in this room")

    rows = (
        await db.execute(
            select(Holding, Stock)
            .join(Stock, Stock.id == Holding.stock_id)
            .where(Holding.player_id == player_id, Holding.quantity > 0)
            .order_by(Stock.symbol)
        )
    ).all()

    holdings = [
        {
            "stock_id": stock.id,
            "symbol": stock.symbol,
            "quantity": holding.quantity,
            "value": holding.quantity * stock.current_price,
        }
        for holding, stock in rows
    ]
    return {
        "id": player.id,
        "room_id": player.room_id,
        "name": player.name,
        "cash": player.cash,
        "net_worth": player.cash + sum(h["value"] for h in holdings),
        "previous_cash": player.previous_cash,
        "previous_net_worth": player.previous_net_worth,
        "holdings": holdings,
    }


async def snapshot_round_start(db: AsyncSession, room_id: str) -> None:
    """Record previous price/dividend/cash/net worth before a round mutates them."""
    stocks = (
        await db.execute(select(Stock).where(Stock.room_id == room_id))
    ).scalars().all()
    for stock in stocks:
        stock.previous_price = stock.current_price
        stock.previous_dividend = stock.dividend_amount

    worth = await net_worths(db, room_id)
    players = (
        await db.execute(select(Player).where(Player.room_id == room_id))
    ).scalars().all()
    for player in players:
        player.previous_cash = player.cash
        player.previous_net_worth = worth[player.id]
