import hashlib
from decimal import Decimal

import pytest

from walk.config import GameConfig
from walk.payouts import hazard_probability
from walk.provably_fair import (
    audit_outcome,
    chain_values,
    commitment_hash,
    derive_hazard_second,
    generate_client_seed,
    generate_server_seed,
)

SERVER = "a3f1" * 16
CLIENT = "c0ffee" * 4


def test_seed_generation():
    seed = generate_server_seed()
    assert len(seed) == 64
    assert seed != generate_server_seed()
    assert len(generate_client_seed()) == 32


def test_commitment_is_sha256_of_seed():
    assert commitment_hash(SERVER) == hashlib.sha256(SERVER.encode()).hexdigest()
    with pytest.raises(ValueError):
        commitment_hash("")


def test_chain_follows_published_recipe():
    h = hashlib.sha256(f"{SERVER}:{CLIENT}:7".encode()).hexdigest()
    h = hashlib.sha256(h.encode()).hexdigest()
    first = chain_values(SERVER, CLIENT, 7, 3)[0]
    assert first == int(h[:8], 16) / Decimal(0xFFFFFFFF)


def test_derivation_is_deterministic(cfg):
    a = derive_hazard_second(SERVER, CLIENT, 1, cfg)
    b = derive_hazard_second(SERVER, CLIENT, 1, cfg)
    assert a == b


def test_derivation_matches_chain(cfg):
    for nonce in range(1, 40):
        values = chain_values(SERVER, CLIENT, nonce, cfg.max_duration)
        expected = next(
            (s for s, u in enumerate(values, start=1) if u < hazard_probability(s, cfg)),
            None,
        )
        result = derive_hazard_second(SERVER, CLIENT, nonce, cfg)
        assert result == expected
        assert result is None or 1 <= result <= cfg.max_duration


def test_zero_risk_schedule_never_trips():
    cfg = GameConfig.from_mapping({"HAZARD_SCHEDULE": ((None, "0"),)})
    assert derive_hazard_second(SERVER, CLIENT, 1, cfg) is None


def test_near_certain_schedule_trips_immediately():
    cfg = GameConfig.from_mapping({"HAZARD_SCHEDULE": ((None, "0.9999999999"),)})
    assert derive_hazard_second(SERVER, CLIENT, 1, cfg) == 1


@pytest.mark.parametrize("server, client, nonce", [
    ("", CLIENT, 1),
    (SERVER, "", 1),
    (SERVER, CLIENT, -1),
    (SERVER, CLIENT, True),
])
def test_bad_inputs_raise(cfg, server, client, nonce):
    with pytest.raises(ValueError):
        derive_hazard_second(server, client, nonce, cfg)


def test_audit_accepts_honest_outcome(cfg):
    hazard = derive_hazard_second(SERVER, CLIENT, 3, cfg)
    cashout = 1 if hazard is None or hazard > 1 else None
    ok, errors = audit_outcome(
        SERVER, commitment_hash(SERVER), CLIENT, 3, hazard, cashout, True, cfg
    )
    assert ok, errors


def test_audit_flags_tampering(cfg):
    hazard = derive_hazard_second(SERVER, CLIENT, 3, cfg)
    wrong = 1 if hazard != 1 else 2
    ok, errors = audit_outcome(
        SERVER, "0" * 64, CLIENT, 3, wrong, None, False, cfg
    )
    assert not ok
    assert "Server seed hash does not match" in errors
    assert any(e.startswith("Hazard second mismatch") for e in errors)


def test_audit_flags_wrong_result(cfg):
    ok, errors = audit_outcome(
        SERVER, commitment_hash(SERVER), CLIENT, 3,
        derive_hazard_second(SERVER, CLIENT, 3, cfg), 1, False, cfg,
    )
    hazard = derive_hazard_second(SERVER, CLIENT, 3, cfg)
    if hazard is None or hazard > 1:
        assert not ok
        assert "Cashing out before the hazard should be a win" in errors
    else:
        assert ok
