from datetime import datetime, timezone
from enum import Enum

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, text
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, enum_column


class OrderType(str, Enum):
    BUY = "buy"
    SELL = "sell"
    SKIP = "skip"


class OrderStatus(str, Enum):
    PENDING = "pending"
    EXECUTED = "executed"
    FAILED = "failed"
    CANCELLED = "cancelled"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Order(Base):
    __tablename__ = "orders"

    id: Mapped[int] = mapped_column(primary_key=True)
    room_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("rooms.id", ondelete="CASCADE"), index=True
    )
    player_id: Mapped[int] = mapped_column(
        ForeignKey("players.id", ondelete="CASCADE")
    )
    stock_id: Mapped[int | None] = mapped_column(
        ForeignKey("stocks.id", ondelete="CASCADE"), nullable=True
    )
    round: Mapped[int] = mapped_column(Integer)
    type: Mapped[OrderType] = mapped_column(enum_column(OrderType))
    status: Mapped[OrderStatus] = mapped_column(
        enum_column(OrderStatus), default=OrderStatus.PENDING
    )
    requested_quantity: Mapped[int] = mapped_column(Integer, default=0)
    # Budget for buys, informational for sells.
    requested_price_total: Mapped[int] = mapped_column(Integer, default=0)
    execution_quantity: Mapped[int | None] = mapped_column(Integer, nullable=True)
    execution_price_total: Mapped[int | None] = mapped_column(Integer, nullable=True)
    stock_price_before: Mapped[int | None] = mapped_column(Integer, nullable=True)
    stock_price_after: Mapped[int | None] = mapped_column(Integer, nullable=True)
    # Execution order is (submitted_at, id).
    submitted_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow
    )
    executed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    __table_args__ = (
        # At most one live order per player per round, enforced on insert.
        Index(
            "uq_order_per_player_round",
            "room_id", "player_id", "round",
            unique=True,
            sqlite_where=text("status != 'cancelled'"),
            postgresql_where=text("status != 'cancelled'"),
        ),
    )
