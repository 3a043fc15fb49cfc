from sqlalchemy import ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


class Stock(Base):
    __tablename__ = "stocks"

    id: Mapped[int] = mapped_column(primary_key=True)
    room_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("rooms.id", ondelete="CASCADE"), index=True
    )
    symbol: Mapped[str] = mapped_column(String(8))
    name: Mapped[str] = mapped_column(String(128))
    description: Mapped[str | None] = mapped_column(String(512), nullable=True)
    current_price: Mapped[int] = mapped_column(Integer)
    dividend_amount: Mapped[int] = mapped_column(Integer, default=0)
    previous_price: Mapped[int | None] = mapped_column(Integer, nullable=True)
    previous_dividend: Mapped[int | None] = mapped_column(Integer, nullable=True)
