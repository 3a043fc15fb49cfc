"""Narrative event generators.

A generator turns a snapshot of the room into an ``EventDraft``: a title, a
description and a short list of stock effects. Two implementations ship:

- ``TemplateEventGenerator`` -- offline, picks a canned story and random
  stocks with a seeded ``random.Random``.
- ``LLMEventGenerator`` -- asks an OpenAI-compatible chat-completions
  endpoint for a story in JSON and validates the answer.

Generators may fail or time out; ``event_engine.generate`` owns the
fallback, so generators simply raise.
"""
import json
import logging
import random
from dataclasses import dataclass, field
from typing import Literal, Protocol

import httpx
from pydantic import BaseModel, Field

from party_market.game import constants as C
from party_market.game.effects import (
    DIVIDEND_CHANGE,
    PRICE_CHANGE,
    DividendChange,
    Effect,
    PriceChange,
)

log = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Snapshots handed to generators
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class StockSnapshot:
    id: int
    symbol: str
    name: str
    price: int
    dividend: int


@dataclass(frozen=True)
class PlayerSnapshot:
    id: int
    name: str
    cash: int
    net_worth: int


@dataclass(frozen=True)
class OrderSnapshot:
    player_name: str
    symbol: str | None
    type: str
    quantity: int
    price_total: int
    round: int


@dataclass
class EventDraft:
    title: str
    description: str
    effects: list[Effect] = field(default_factory=list)


class EventGenerator(Protocol):
    async def generate_effects(
        self,
        stocks: list[StockSnapshot],
        players: list[PlayerSnapshot],
        recent_orders: list[OrderSnapshot],
        round: int,
        total_rounds: int,
    ) -> EventDraft: ...


# ---------------------------------------------------------------------------
# Template generator
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class _Story:
    title: str
    description: str
    # (effect type, min fraction, max fraction) applied in turn to the picked stocks
    moves: tuple[tuple[str, float, float], ...]


STORIES: list[_Story] = [
    _Story(
        "Tech Innovation Breakthrough",
        "A revolutionary gadget sparks a buying frenzy among early adopters.",
        ((PRICE_CHANGE, 0.10, 0.25),),
    ),
    _Story(
        "Supply Chain Disruption",
        "A container ship full of rubber ducks is stuck sideways in a canal.",
        ((PRICE_CHANGE, -0.20, -0.08),),
    ),
    _Story(
        "Consumer Spending Surge",
        "Everyone got a surprise bonus and nobody is saving any of it.",
        ((DIVIDEND_CHANGE, 0.30, 0.60), (PRICE_CHANGE, 0.05, 0.10)),
    ),
    _Story(
        "Regulatory Crackdown",
        "A new committee discovers that some companies have been having fun.",
        ((PRICE_CHANGE, -0.12, -0.05), (DIVIDEND_CHANGE, -0.40, -0.20)),
    ),
    _Story(
        "Innovation Fund Announced",
        "The government pledges money to anyone with a slide deck.",
        ((DIVIDEND_CHANGE, 0.20, 0.50),),
    ),
    _Story(
        "Celebrity Tweetstorm",
        "A famous influencer posts a cryptic emoji and markets lose their minds.",
        ((PRICE_CHANGE, -0.25, 0.25),),
    ),
]


def _sized_amount(base: int, fraction: float) -> int:
    amount = int(base * fraction)
    if amount == 0:
        amount = 1 if fraction >= 0 else -1
    return amount


class TemplateEventGenerator:
    """Offline generator drawing canned stories and target stocks from *rng*."""

    def __init__(self, rng: random.Random | None = None):
        self.rng = rng or random.Random()

    async def generate_effects(
        self,
        stocks: list[StockSnapshot],
        players: list[PlayerSnapshot],
        recent_orders: list[OrderSnapshot],
        round: int,
        total_rounds: int,
    ) -> EventDraft:
        if not stocks:
            raise ValueError("No stocks to build an event for")

        story = self.rng.choice(STORIES)
        upper = min(C.MAX_EVENT_EFFECTS, len(stocks))
        lower = min(C.MIN_EVENT_EFFECTS, upper)
        targets = self.rng.sample(stocks, self.rng.randint(lower, upper))

        effects: list[Effect] = []
        for i, stock in enumerate(targets):
            kind, low, high = story.moves[i % len(story.moves)]
            fraction = self.rng.uniform(low, high)
            if kind == PRICE_CHANGE:
                effects.append(PriceChange(stock.id, _sized_amount(stock.price, fraction)))
            else:
                # Zero-dividend stocks still get a visible nudge.
                base = max(stock.dividend, 10)
                effects.append(DividendChange(stock.id, _sized_amount(base, fraction)))

        return EventDraft(title=story.title, description=story.description, effects=effects)


# ---------------------------------------------------------------------------
# LLM generator
# ---------------------------------------------------------------------------

SYSTEM_PROMPT = """
You are the game master of a party game where players trade silly stocks to
maximize their net worth. Create a funny in-game event that shakes up the
market.

Game rules that happen automatically:
- Players submit one buy or sell order per round.
- Orders move stock prices.
- The event's effects are hidden while players submit orders, so they must
  guess from the title and description how stocks will move.

Rules for the event:
1. Title and description are comic, absurd, but loosely logical. They may
   refer to players' recent orders or the leaderboard. It must be hard to
   guess the effects from the text.
2. Balance the game: negative impacts for leaders, positive ones for
   players behind.
3. Add chaos, but make price changes smaller close to the end of the game.
4. Never mention stock symbols or names directly in the title or description.
5. Produce between {min_effects} and {max_effects} effects.

Write the title and description in {language}. Style: {tone}.

Answer with strict JSON only:
{{
  "title": "...",
  "description": "...",
  "effects": [
    {{"type": "price_change" | "dividend_change", "symbol": "ABC", "amount": -12}}
  ]
}}
Amounts are signed integers in currency units.
"""

USER_PROMPT = """
Current round: {round} of {total_rounds}

Stocks:
{stocks}

Players:
{players}

Recent orders (newest first):
{orders}
"""


class _LLMEffect(BaseModel):
    type: Literal["price_change", "dividend_change"]
    symbol: str
    amount: int


class _LLMEvent(BaseModel):
    title: str = Field(min_length=1, max_length=256)
    description: str
    effects: list[_LLMEffect]


def _extract_openai_response(resp_json: dict) -> str:
    return resp_json["choices"][0]["message"]["content"]


class LLMEventGenerator:
    """Generator backed by an OpenAI-compatible chat-completions endpoint."""

    def __init__(
        self,
        api_url: str,
        api_key: str | None,
        model: str,
        tone: str = "Write in a casual, friendly tone",
        language: str = "English",
        client: httpx.AsyncClient | None = None,
        timeout: float = 30.0,
    ):
        self.api_url = api_url
        self.api_key = api_key
        self.model = model
        self.tone = tone
        self.language = language
        self.client = client
        self.timeout = timeout

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def _build_payload(
        self,
        stocks: list[StockSnapshot],
        players: list[PlayerSnapshot],
        recent_orders: list[OrderSnapshot],
        round: int,
        total_rounds: int,
    ) -> dict:
        system = SYSTEM_PROMPT.format(
            min_effects=C.MIN_EVENT_EFFECTS,
            max_effects=C.MAX_EVENT_EFFECTS,
            language=self.language,
            tone=self.tone,
        )
        user = USER_PROMPT.format(
            round=round,
            total_rounds=total_rounds,
            stocks="\n".join(
                f"- {s.symbol} ({s.name}): price {s.price}, dividend {s.dividend}"
                for s in stocks
            ) or "- none",
            players="\n".join(
                f"- {p.name}: cash {p.cash}, net worth {p.net_worth}"
                for p in players
            ) or "- none",
            orders="\n".join(
                f"- round {o.round}: {o.player_name} {o.type} "
                f"{o.quantity} {o.symbol or ''} for {o.price_total}"
                for o in recent_orders
            ) or "- none",
        )
        return {
            "model": self.model,
            "messages": [
                {"role": "system", "content": system},
                {"role": "user", "content": user},
            ],
            "response_format": {"type": "json_object"},
            "temperature": 0.9,
        }

    async def _post(self, payload: dict) -> dict:
        if self.client is not None:
            resp = await self.client.post(
                self.api_url, headers=self._headers(), json=payload, timeout=self.timeout
            )
            resp.raise_for_status()
            return resp.json()
        async with httpx.AsyncClient() as client:
            resp = await client.post(
                self.api_url, headers=self._headers(), json=payload, timeout=self.timeout
            )
            resp.raise_for_status()
            return resp.json()

    async def generate_effects(
        self,
        stocks: list[StockSnapshot],
        players: list[PlayerSnapshot],
        recent_orders: list[OrderSnapshot],
        round: int,
        total_rounds: int,
    ) -> EventDraft:
        payload = self._build_payload(stocks, players, recent_orders, round, total_rounds)
        resp_json = await self._post(payload)
        parsed = _LLMEvent.model_validate(json.loads(_extract_openai_response(resp_json)))

        by_symbol = {s.symbol.upper(): s for s in stocks}
        effects: list[Effect] = []
        for item in parsed.effects:
            stock = by_symbol.get(item.symbol.strip().upper())
            if stock is None:
                raise ValueError(f"Generator referenced unknown stock {item.symbol!r}")
            if item.type == PRICE_CHANGE:
                effects.append(PriceChange(stock.id, item.amount))
            else:
                effects.append(DividendChange(stock.id, item.amount))

        return EventDraft(title=parsed.title, description=parsed.description, effects=effects)


def build_generator(settings, rng: random.Random | None = None) -> EventGenerator:
    """Return the generator selected by ``EVENT_GENERATOR``."""
    if settings.EVENT_GENERATOR == "llm":
        log.info("Using LLM event generator (%s)", settings.LLM_MODEL)
        return LLMEventGenerator(
            api_url=settings.LLM_API_URL,
            api_key=settings.LLM_API_KEY,
            model=settings.LLM_MODEL,
            tone=settings.EVENTS_TONE,
            language=settings.EVENTS_LANGUAGE,
            timeout=settings.EVENT_GENERATOR_TIMEOUT,
        )
    return TemplateEventGenerator(rng)
