# walk/config.py
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Mapping

from django.conf import settings
from django.core.exceptions import ImproperlyConfigured

from .defaults import DEFAULT_GAME

D0 = Decimal("0")
D1 = Decimal("1")


@dataclass(frozen=True)
class GameConfig:
    min_stake: int
    max_stake: int
    max_duration: int
    house_edge: Decimal
    # ((last second of band | None, probability), ...), ascending
    hazard_schedule: tuple
    cashout_tolerance: int
    mirror_ttl: int
    abandon_after: int
    reap_interval: int
    tick_interval: float

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> GameConfig:
        merged = {**DEFAULT_GAME, **raw}
        try:
            cfg = cls(
                min_stake=int(merged["MIN_STAKE"]),
                max_stake=int(merged["MAX_STAKE"]),
                max_duration=int(merged["MAX_DURATION"]),
                house_edge=Decimal(str(merged["HOUSE_EDGE"])),
                hazard_schedule=tuple(
                    (None if upper is None else int(upper), Decimal(str(p)))
                    for upper, p in merged["HAZARD_SCHEDULE"]
                ),
                cashout_tolerance=int(merged["CASHOUT_TOLERANCE_SECONDS"]),
                mirror_ttl=int(merged["MIRROR_TTL_SECONDS"]),
                abandon_after=int(merged["ABANDON_AFTER_SECONDS"]),
                reap_interval=int(merged["REAP_INTERVAL_SECONDS"]),
                tick_interval=float(merged["TICK_INTERVAL_SECONDS"]),
            )
        except (TypeError, ValueError, InvalidOperation) as exc:
            raise ImproperlyConfigured(f"WALK_GAME: {exc}") from exc
        cfg.validate()
        return cfg

    def validate(self) -> None:
        problems = []
        if self.min_stake < 1:
            problems.append("MIN_STAKE must be at least 1")
        if self.min_stake > self.max_stake:
            problems.append("MIN_STAKE exceeds MAX_STAKE")
        if self.max_duration < 1:
            problems.append("MAX_DURATION must be at least 1")
        if not D0 <= self.house_edge < D1:
            problems.append("HOUSE_EDGE must be in [0, 1)")
        if self.cashout_tolerance < 0:
            problems.append("CASHOUT_TOLERANCE_SECONDS must not be negative")
        if self.tick_interval <= 0:
            problems.append("TICK_INTERVAL_SECONDS must be positive")
        if self.reap_interval < 1:
            problems.append("REAP_INTERVAL_SECONDS must be at least 1")
        if self.mirror_ttl < self.max_duration:
            problems.append("MIRROR_TTL_SECONDS must cover MAX_DURATION")
        if self.abandon_after <= self.max_duration + self.cashout_tolerance:
            problems.append("ABANDON_AFTER_SECONDS must exceed MAX_DURATION plus tolerance")

        schedule = self.hazard_schedule
        if not schedule:
            problems.append("HAZARD_SCHEDULE is empty")
        else:
            if schedule[-1][0] is not None:
                problems.append("HAZARD_SCHEDULE must end with an open band (None)")
            last_upper, last_p = 0, D0
            for upper, p in schedule:
                if not D0 <= p < D1:
                    problems.append(f"hazard probability {p} outside [0, 1)")
                if p < last_p:
                    problems.append("hazard probabilities must be non-decreasing")
                if upper is not None:
                    if last_upper is None or upper <= last_upper:
                        problems.append("band bounds must be strictly increasing")
                last_upper, last_p = upper, p

        if problems:
            raise ImproperlyConfigured("WALK_GAME: " + "; ".join(problems))


def load_config() -> GameConfig:
    return GameConfig.from_mapping(getattr(settings, "WALK_GAME", {}))
