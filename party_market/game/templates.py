"""Stock template pool used to populate new rooms."""
import random
from dataclasses import dataclass


@dataclass(frozen=True)
class StockTemplate:
    symbol: str
    name: str
    description: str
    min_price: int
    max_price: int
    min_dividend: int
    max_dividend: int


STOCK_TEMPLATES: list[StockTemplate] = [
    StockTemplate("QUANT", "Quantum Toasters Inc.", "Toast in every possible state at once", 40, 200, 5, 20),
    StockTemplate("DRM", "Dream Streaming Co.", "Subscription service for your own dreams", 30, 180, 5, 25),
    StockTemplate("MEMQ", "MemeQuarry", "Mining rare memes since last Tuesday", 10, 120, 0, 15),
    StockTemplate("SPACE", "Budget Space Tours", "Low-orbit flights, bring your own oxygen", 80, 350, 10, 40),
    StockTemplate("ROBO", "Robo Butlers Ltd.", "Butlers that are mostly polite", 50, 250, 5, 30),
    StockTemplate("CLD", "Cloud Pillow Corp.", "Pillows stored in the cloud", 20, 150, 5, 20),
    StockTemplate("CSM", "Cosmic Snack Merchants", "Snacks with questionable gravity", 15, 100, 10, 35),
    StockTemplate("UCRN", "Unicorn Rideshare", "Rides on horned, probably real, animals", 60, 300, 0, 10),
    StockTemplate("DNS", "Dino Nugget Syndicate", "Nuggets shaped like extinct reptiles", 20, 140, 15, 50),
    StockTemplate("GOAT", "Goat Yoga Holdings", "Wellness with hooves", 10, 90, 5, 25),
    StockTemplate("BRNZ", "Brainz Energy Drinks", "Zombie-approved hydration", 25, 160, 10, 40),
    StockTemplate("SOCK", "Single Sock Exchange", "Finds partners for lonely socks", 10, 80, 20, 60),
    StockTemplate("LAVA", "Lava Lamp Logistics", "Groovy overnight delivery", 30, 170, 5, 30),
    StockTemplate("NAP", "Nap Pod Networks", "Power naps as a service", 40, 220, 10, 45),
    StockTemplate("TACO", "Taco Drone Express", "Airborne tacos within minutes", 35, 210, 15, 55),
    StockTemplate("WIZ", "Wizard Tax Advisors", "Spells that technically count as deductions", 70, 320, 20, 100),
]


def pick_templates(count: int, rng: random.Random) -> list[StockTemplate]:
    """Return *count* distinct templates chosen with *rng*."""
    return rng.sample(STOCK_TEMPLATES, count)


def roll_stock(template: StockTemplate, rng: random.Random) -> tuple[int, int]:
    """Return a (price, dividend) pair inside the template's ranges."""
    price = rng.randint(template.min_price, template.max_price)
    dividend = rng.randint(template.min_dividend, template.max_dividend)
    return max(1, price), max(0, dividend)
