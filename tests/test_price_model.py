"""Tests for the price impact model."""
import random

from conftest import FixedJitter
from party_market.game import constants as C
from party_market.game.price_model import new_price


def test_zero_quantity_keeps_price():
    assert new_price(100, 0, 0, True, FixedJitter()) == 100
    assert new_price(100, 0, 50, False, FixedJitter()) == 100


def test_buy_into_empty_market():
    # depth = ln(e) = 1, impact = 2 / (1 + e^-2) - 1 ~= 0.7616
    assert new_price(100, 2, 0, True, FixedJitter()) == 176


def test_sell_into_empty_market_mirrors_buy():
    assert new_price(100, 2, 0, False, FixedJitter()) == 24


def test_liquid_market_impact():
    # depth = ln(10 + e), relative size = 5 / 11
    assert new_price(100, 5, 10, True, FixedJitter()) == 109


def test_thin_markets_move_more():
    thin = new_price(100, 200, 0, True, FixedJitter())
    deep = new_price(100, 200, 1000, True, FixedJitter())
    assert thin > deep > 100


def test_impact_is_bounded():
    # The sigmoid caps a single order below doubling the price without jitter.
    assert new_price(100, 10 ** 9, 0, True, FixedJitter()) <= 200
    assert new_price(100, 10 ** 9, 0, True, FixedJitter(C.PRICE_JITTER_HIGH)) <= 225


def test_price_floor():
    assert new_price(1, 10 ** 6, 0, False, FixedJitter(C.PRICE_JITTER_HIGH)) == C.PRICE_FLOOR
    assert new_price(3, 1000, 0, False, FixedJitter(C.PRICE_JITTER_HIGH)) >= C.PRICE_FLOOR


def test_jitter_scales_impact_only():
    low = new_price(100, 2, 0, True, FixedJitter(0.75))
    high = new_price(100, 2, 0, True, FixedJitter(1.25))
    assert 100 < low < high


def test_seeded_source_is_reproducible():
    a = [new_price(100, q, 3, True, random.Random("seed")) for q in range(1, 6)]
    b = [new_price(100, q, 3, True, random.Random("seed")) for q in range(1, 6)]
    assert a == b
