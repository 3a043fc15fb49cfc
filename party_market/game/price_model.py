"""Price impact model.

Turns the volume of one executed trade into the stock's next price using a
sigmoid-bounded, liquidity-scaled impact:

- large orders have diminishing impact (the sigmoid caps it below 100%),
- thin markets (few shares in circulation) move more per share traded,
- a bounded jitter on the impact keeps price paths from being predictable,
- the result never drops below ``PRICE_FLOOR``.

The jitter source is passed in so callers (and tests) control the seed.
"""
import math
import random
from typing import Protocol

from party_market.game import constants as C


class JitterSource(Protocol):
    def uniform(self, a: float, b: float) -> float: ...


def new_price(
    current_price: int,
    order_quantity: int,
    total_stocks_owned: int,
    is_buy: bool,
    rng: JitterSource | None = None,
) -> int:
    """Return the price after a trade of *order_quantity* shares.

    *total_stocks_owned* is the number of shares of this stock held across
    the whole room before the trade.
    """
    if order_quantity <= 0:
        return current_price

    rng = rng or random.Random()

    market_depth = math.log(total_stocks_owned + math.e)
    relative_order_size = order_quantity / (total_stocks_owned + 1)
    base_impact = 2 / (1 + math.exp(-relative_order_size)) - 1
    scaled_impact = base_impact / market_depth

    direction = 1 if is_buy else -1
    jitter = rng.uniform(C.PRICE_JITTER_LOW, C.PRICE_JITTER_HIGH)
    final_multiplier = 1 + scaled_impact * direction * jitter

    return max(C.PRICE_FLOOR, round(current_price * final_multiplier))
