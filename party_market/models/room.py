import uuid
from datetime import datetime
from enum import Enum

from sqlalchemy import DateTime, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, enum_column


class RoomStatus(str, Enum):
    WAITING = "WAITING"
    IN_PROGRESS = "IN_PROGRESS"
    FINISHED = "FINISHED"


class RoomPhase(str, Enum):
    WAITING = "waiting"
    SUBMITTING_ORDERS = "submitting_orders"
    REVEALING_EVENT = "revealing_event"
    EXECUTING_ORDERS = "executing_orders"
    PAYING_DIVIDENDS = "paying_dividends"


class Room(Base):
    __tablename__ = "rooms"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    code: Mapped[str] = mapped_column(String(6), unique=True, index=True)
    status: Mapped[RoomStatus] = mapped_column(
        enum_column(RoomStatus), default=RoomStatus.WAITING
    )
    current_phase: Mapped[RoomPhase] = mapped_column(
        enum_column(RoomPhase), default=RoomPhase.WAITING
    )
    current_round: Mapped[int] = mapped_column(Integer, default=1)
    total_rounds: Mapped[int] = mapped_column(Integer)
    initial_cash: Mapped[int] = mapped_column(Integer)
    number_of_stocks: Mapped[int] = mapped_column(Integer)
    # Drives stock templates, event templates and price jitter for the room.
    seed: Mapped[str] = mapped_column(String(64))
    phase_started_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(server_default=func.now())
