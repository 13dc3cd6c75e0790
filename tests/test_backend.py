from __future__ import annotations

import asyncio
import logging
import math

import pytest
from _helpers import blank_match, load_cards, put_unit

from duelforge.search.backend import DISABLE_ENV, ScalarBackend, TorchBackend, acquire_backend, accel_disabled
from duelforge.search.evaluation import FEATURES, WEIGHTS, evaluate, features
from duelforge.search.snapshot import from_live


def _backend_lines(caplog) -> list[str]:
    return [r.getMessage() for r in caplog.records if r.name == "duelforge.search.backend" and r.levelno == logging.INFO]


@pytest.mark.parametrize("value", ["1", "true", "YES", "on"])
def test_disable_env_is_recognised(monkeypatch, value: str) -> None:
    monkeypatch.setenv(DISABLE_ENV, value)
    assert accel_disabled()


def test_env_forces_scalar_with_one_info_line(monkeypatch, caplog) -> None:
    monkeypatch.setenv(DISABLE_ENV, "1")
    with caplog.at_level(logging.INFO, logger="duelforge.search.backend"):
        backend = asyncio.run(acquire_backend())

    assert backend.name == "scalar"
    lines = _backend_lines(caplog)
    assert len(lines) == 1
    assert "fallback" in lines[0]
    assert DISABLE_ENV in lines[0]


def test_not_requested_means_scalar(monkeypatch, caplog) -> None:
    monkeypatch.delenv(DISABLE_ENV, raising=False)
    with caplog.at_level(logging.INFO, logger="duelforge.search.backend"):
        backend = asyncio.run(acquire_backend(prefer_accelerated=False))

    assert isinstance(backend, ScalarBackend)
    assert _backend_lines(caplog) == ["Search backend: scalar (acceleration not requested)"]


def test_acquire_never_raises(monkeypatch, caplog) -> None:
    # Whatever this machine has, the gate resolves to something usable.
    monkeypatch.delenv(DISABLE_ENV, raising=False)
    with caplog.at_level(logging.INFO, logger="duelforge.search.backend"):
        backend = asyncio.run(acquire_backend())

    assert backend.name == "scalar" or backend.name.startswith("torch:")
    assert len(_backend_lines(caplog)) == 1
    assert backend.evaluate([[0.0] * len(WEIGHTS)]) == [0.0]


def test_scalar_ucb() -> None:
    b = ScalarBackend()
    scores = b.ucb_scores([3.0, 0.0, -1.0], [4, 0, 2], 6, 1.4)
    assert scores[0] == pytest.approx(0.75 + 1.4 * math.sqrt(math.log(7) / 4))
    assert scores[1] == math.inf
    assert scores[2] == pytest.approx(-0.5 + 1.4 * math.sqrt(math.log(7) / 2))


def test_scalar_evaluate_matches_linear_score() -> None:
    state = blank_match(load_cards())
    put_unit(state, 0, "shieldbearer")
    put_unit(state, 1, "wolf_rider")
    state.players[1].hero.health = 21
    snap = from_live(state, 0, 1)

    row = features(snap, 0)
    assert len(row) == len(FEATURES) == len(WEIGHTS)
    (score,) = ScalarBackend().evaluate([row])
    assert score == pytest.approx(evaluate(snap, 0))
    assert evaluate(snap, 0) > evaluate(snap, 1)


def test_torch_backend_matches_scalar() -> None:
    torch = pytest.importorskip("torch")
    state = blank_match(load_cards())
    put_unit(state, 0, "blood_leech")
    put_unit(state, 1, "frost_pup", frozen=1)
    state.players[0].hero.armor = 4
    snap = from_live(state, 0, 1)
    rows = [features(snap, 0), features(snap, 1), tuple(0.0 for _ in WEIGHTS)]

    scalar = ScalarBackend()
    accel = TorchBackend(torch, torch.device("cpu"))
    assert accel.name == "torch:cpu"
    for a, b in zip(accel.evaluate(rows), scalar.evaluate(rows)):
        assert a == pytest.approx(b, abs=1e-4)

    args = ([2.5, 0.0, -3.0], [5, 0, 3], 8, 1.4)
    for a, b in zip(accel.ucb_scores(*args), scalar.ucb_scores(*args)):
        assert a == pytest.approx(b, abs=1e-4)


def test_turn_counter_does_not_move_the_score() -> None:
    state = blank_match(load_cards())
    put_unit(state, 0, "recruit")
    snap = from_live(state, 0, 1)
    later = snap.clone()
    later.turn += 6

    assert "turn" not in FEATURES
    assert evaluate(later, 0) == evaluate(snap, 0)
