# walk/provably_fair.py
from __future__ import annotations

import hashlib
import secrets
from decimal import Decimal

from .config import GameConfig
from .payouts import hazard_probability

# first 8 hex chars of each link in the chain, scaled by this
UNIT_MAX = Decimal(0xFFFFFFFF)


def sha256_hex(value: str) -> str:
    return hashlib.sha256(value.encode("utf-8")).hexdigest()


def generate_server_seed() -> str:
    return secrets.token_hex(32)


def generate_client_seed() -> str:
    return secrets.token_hex(16)


def commitment_hash(server_seed: str) -> str:
    if not server_seed:
        raise ValueError("server_seed is required")
    return sha256_hex(server_seed)


def _check_inputs(server_seed: str, client_seed: str, nonce: int) -> None:
    if not isinstance(server_seed, str) or not server_seed:
        raise ValueError("server_seed is required")
    if not isinstance(client_seed, str) or not client_seed:
        raise ValueError("client_seed is required")
    if not isinstance(nonce, int) or isinstance(nonce, bool) or nonce < 0:
        raise ValueError("nonce must be a non-negative integer")


def chain_values(server_seed: str, client_seed: str, nonce: int, seconds: int) -> list[Decimal]:
    """
    Uniform values in [0, 1], one per second, from a SHA-256 chain:

        h0 = sha256(f"{server_seed}:{client_seed}:{nonce}")
        hs = sha256(h(s-1))          u(s) = int(hs[:8], 16) / 0xFFFFFFFF

    Published so players can replay the derivation by hand.
    """
    _check_inputs(server_seed, client_seed, nonce)
    h = sha256_hex(f"{server_seed}:{client_seed}:{nonce}")
    values = []
    for _ in range(seconds):
        h = sha256_hex(h)
        values.append(Decimal(int(h[:8], 16)) / UNIT_MAX)
    return values


def derive_hazard_second(server_seed: str, client_seed: str, nonce: int, cfg: GameConfig) -> int | None:
    """
    First second whose chain value falls below that second's hazard
    probability, or None when nothing trips within the horizon.
    """
    values = chain_values(server_seed, client_seed, nonce, cfg.max_duration)
    for second, u in enumerate(values, start=1):
        if u < hazard_probability(second, cfg):
            return second
    return None


def audit_outcome(
    server_seed: str,
    server_seed_hash: str,
    client_seed: str,
    nonce: int,
    hazard_second: int | None,
    cashout_second: int | None,
    won: bool,
    cfg: GameConfig,
) -> tuple[bool, list[str]]:
    errors = []

    if commitment_hash(server_seed) != server_seed_hash:
        errors.append("Server seed hash does not match")

    expected = derive_hazard_second(server_seed, client_seed, nonce, cfg)
    if expected != hazard_second:
        errors.append(f"Hazard second mismatch. Expected: {expected}, Got: {hazard_second}")

    if cashout_second is not None:
        should_win = hazard_second is None or cashout_second < hazard_second
        if should_win and not won:
            errors.append("Cashing out before the hazard should be a win")
        if not should_win and won:
            errors.append("Cashing out at or after the hazard should be a loss")

    return not errors, errors
