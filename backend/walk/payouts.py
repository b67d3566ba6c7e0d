# walk/payouts.py
from __future__ import annotations

from decimal import Decimal, getcontext, ROUND_FLOOR, ROUND_HALF_UP

from .config import GameConfig

getcontext().prec = 36

D0 = Decimal("0")
D1 = Decimal("1")
CENT = Decimal("0.01")


def q2(x: Decimal) -> Decimal:
    return x.quantize(CENT, rounding=ROUND_HALF_UP)


def hazard_probability(second: int, cfg: GameConfig) -> Decimal:
    """
    Chance the hazard fires during ``second``, given it has not fired yet.
    Step function over the configured bands; seconds before 1 carry no risk.
    """
    if second < 1:
        return D0
    for upper, p in cfg.hazard_schedule:
        if upper is None or second <= upper:
            return p
    return cfg.hazard_schedule[-1][1]


def survival_probability(second: int, cfg: GameConfig) -> Decimal:
    survival = D1
    for i in range(1, second + 1):
        survival *= D1 - hazard_probability(i, cfg)
    return survival


def payout_multiplier(second: int, cfg: GameConfig) -> Decimal:
    """
    M(s) = (1 - house_edge) / survival(s), rounded to cents.
    survival(s) * M(s) stays at 1 - house_edge for every s, so the expected
    return does not depend on when the player cashes out.
    """
    return q2((D1 - cfg.house_edge) / survival_probability(second, cfg))


def payout_for(stake: int, second: int, cfg: GameConfig) -> int:
    raw = Decimal(stake) * payout_multiplier(second, cfg)
    return int(raw.to_integral_value(rounding=ROUND_FLOOR))


def expected_return(second: int, cfg: GameConfig) -> Decimal:
    return survival_probability(second, cfg) * payout_multiplier(second, cfg)


def house_edge_at(second: int, cfg: GameConfig) -> Decimal:
    return D1 - expected_return(second, cfg)


def multiplier_table(cfg: GameConfig) -> list[dict]:
    rows = []
    survival = D1
    for second in range(1, cfg.max_duration + 1):
        hazard = hazard_probability(second, cfg)
        survival *= D1 - hazard
        rows.append({
            "second": second,
            "hazard_probability": hazard,
            "survival_probability": survival,
            "multiplier": payout_multiplier(second, cfg),
        })
    return rows
