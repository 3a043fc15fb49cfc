"""Stock effects carried by events.

An effect is either a ``PriceChange`` or a ``DividendChange``; both carry a
signed integer delta. They are persisted on the event row as a JSON list of
``{"type", "stock_id", "amount"}`` objects.
"""
import json
from dataclasses import dataclass

PRICE_CHANGE = "price_change"
DIVIDEND_CHANGE = "dividend_change"


@dataclass(frozen=True)
class PriceChange:
    stock_id: int
    amount: int

    type = PRICE_CHANGE


@dataclass(frozen=True)
class DividendChange:
    stock_id: int
    amount: int

    type = DIVIDEND_CHANGE


Effect = PriceChange | DividendChange

_BY_TYPE: dict[str, type[PriceChange] | type[DividendChange]] = {
    PRICE_CHANGE: PriceChange,
    DIVIDEND_CHANGE: DividendChange,
}


def effect_to_dict(effect: Effect) -> dict:
    return {"type": effect.type, "stock_id": effect.stock_id, "amount": effect.amount}


def effect_from_dict(data: dict) -> Effect:
    cls = _BY_TYPE.get(data.get("type"))
    if cls is None:
        raise ValueError(f"Unknown effect type: {data.get('type')!r}")
    return cls(stock_id=int(data["stock_id"]), amount=int(data["amount"]))


def dumps_effects(effects: list[Effect]) -> str:
    return json.dumps([effect_to_dict(e) for e in effects])


def loads_effects(raw: str | None) -> list[Effect]:
    return [effect_from_dict(d) for d in json.loads(raw or "[]")]
