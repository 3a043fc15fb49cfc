"""
Party Market Game Constants
"""

# ============================================================
# Room defaults
# ============================================================
DEFAULT_TOTAL_ROUNDS = 10
DEFAULT_INITIAL_CASH = 100
DEFAULT_NUMBER_OF_STOCKS = 10
MAX_TOTAL_ROUNDS = 100

# Join codes exclude I and O to avoid confusion with 1 and 0.
ROOM_CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ"
ROOM_CODE_LENGTH = 6
ROOM_CODE_ATTEMPTS = 20

MAX_PLAYER_NAME_LENGTH = 64

# ============================================================
# Pricing
# ============================================================
PRICE_FLOOR = 1
DIVIDEND_FLOOR = 0

# Uniform jitter applied to the impact component of a trade.
PRICE_JITTER_LOW = 0.75
PRICE_JITTER_HIGH = 1.25

# ============================================================
# Events
# ============================================================
MIN_EVENT_EFFECTS = 2
MAX_EVENT_EFFECTS = 5
RECENT_ORDERS_FOR_EVENTS = 20

FALLBACK_EVENT_TITLE = "A Quiet Day on the Market"
FALLBACK_EVENT_DESCRIPTION = (
    "Nothing remarkable happens today. Traders stare at their screens "
    "and sip lukewarm coffee."
)
