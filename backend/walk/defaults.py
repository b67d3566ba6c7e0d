# walk/defaults.py
from decimal import Decimal

DEFAULT_GAME = {
    "MIN_STAKE": 50,  # $0.50
    "MAX_STAKE": 10_000_000,  # $100,000
    "MAX_DURATION": 30,
    "HOUSE_EDGE": Decimal("0.08"),
    "HAZARD_SCHEDULE": (
        (5, Decimal("0.01")),
        (10, Decimal("0.03")),
        (15, Decimal("0.05")),
        (20, Decimal("0.07")),
        (None, Decimal("0.10")),
    ),
    "CASHOUT_TOLERANCE_SECONDS": 1,
    "MIRROR_TTL_SECONDS": 300,
    "ABANDON_AFTER_SECONDS": 60,
    "REAP_INTERVAL_SECONDS": 60,
    "TICK_INTERVAL_SECONDS": 1.0,
}
