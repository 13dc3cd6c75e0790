"""Numeric backends for batch position scoring and UCB computation.

Two interchangeable implementations share one protocol:

- ``ScalarBackend``: plain Python floats, always available.
- ``TorchBackend``: torch tensors on CUDA or Apple MPS (or CPU when asked).

``acquire_backend`` is the one-shot async gate the search awaits before its
first decision. Torch is imported lazily, off the event loop; any failure
falls back to the scalar backend. Exactly one INFO line reports the outcome.

Environment:
    DUELFORGE_DISABLE_ACCEL: "1"/"true"/"yes"/"on" skips the torch probe.
"""

from __future__ import annotations

import asyncio
import logging
import math
import os
from collections.abc import Sequence
from typing import Any, Protocol

from .evaluation import WEIGHTS

logger = logging.getLogger(__name__)

DISABLE_ENV = "DUELFORGE_DISABLE_ACCEL"

Row = Sequence[float]


class BackendUnavailable(RuntimeError):
    pass


class EvaluationBackend(Protocol):
    name: str

    def evaluate(self, rows: Sequence[Row]) -> list[float]: ...

    def ucb_scores(
        self,
        totals: Sequence[float],
        visits: Sequence[int],
        parent_visits: int,
        exploration: float,
    ) -> list[float]: ...


class ScalarBackend:
    name = "scalar"

    def __init__(self, weights: Sequence[float] = WEIGHTS) -> None:
        self.weights = tuple(float(w) for w in weights)

    def evaluate(self, rows: Sequence[Row]) -> list[float]:
        w = self.weights
        return [math.fsum(a * b for a, b in zip(w, row)) for row in rows]

    def ucb_scores(
        self,
        totals: Sequence[float],
        visits: Sequence[int],
        parent_visits: int,
        exploration: float,
    ) -> list[float]:
        log_n = math.log(parent_visits + 1)
        out: list[float] = []
        for total, n in zip(totals, visits):
            if n <= 0:
                out.append(math.inf)
                continue
            out.append(total / n + exploration * math.sqrt(log_n / n))
        return out


class TorchBackend:
    """Batched scoring on a torch device.

    Rows are stacked into one tensor and multiplied against the weight vector
    in a single matmul. MPS has no float64, so it computes in float32.
    """

    def __init__(self, torch_mod: Any, device: Any, weights: Sequence[float] = WEIGHTS) -> None:
        self._torch = torch_mod
        self.device = device
        self.dtype = torch_mod.float32 if device.type == "mps" else torch_mod.float64
        self.weights = torch_mod.tensor(list(weights), dtype=self.dtype, device=device)
        self.name = f"torch:{device.type}"

    def evaluate(self, rows: Sequence[Row]) -> list[float]:
        if not rows:
            return []
        torch = self._torch
        batch = torch.tensor([list(r) for r in rows], dtype=self.dtype, device=self.device)
        return [float(x) for x in (batch @ self.weights).cpu().tolist()]

    def ucb_scores(
        self,
        totals: Sequence[float],
        visits: Sequence[int],
        parent_visits: int,
        exploration: float,
    ) -> list[float]:
        if not totals:
            return []
        torch = self._torch
        t = torch.tensor(list(totals), dtype=self.dtype, device=self.device)
        n = torch.tensor(list(visits), dtype=self.dtype, device=self.device)
        safe_n = torch.clamp(n, min=1.0)
        log_n = math.log(parent_visits + 1)
        score = t / safe_n + exploration * torch.sqrt(log_n / safe_n)
        score = torch.where(n > 0, score, torch.full_like(score, math.inf))
        return [float(x) for x in score.cpu().tolist()]


def accel_disabled() -> bool:
    return os.environ.get(DISABLE_ENV, "").lower() in {"1", "true", "yes", "on"}


def _select_device(torch_mod: Any, allow_cpu: bool) -> Any:
    if torch_mod.cuda.is_available():
        return torch_mod.device("cuda:0")
    if hasattr(torch_mod.backends, "mps") and torch_mod.backends.mps.is_available():
        return torch_mod.device("mps")
    if allow_cpu:
        return torch_mod.device("cpu")
    raise BackendUnavailable("no CUDA or MPS device available")


def _load_torch_backend(allow_cpu: bool) -> TorchBackend:
    try:
        import torch
    except ImportError as exc:
        raise BackendUnavailable(f"torch is not installed ({exc})") from exc
    device = _select_device(torch, allow_cpu)
    backend = TorchBackend(torch, device)
    # Fail here, not in the middle of a search, if the device is unusable.
    backend.evaluate([[0.0] * len(WEIGHTS)])
    return backend


async def acquire_backend(prefer_accelerated: bool = True, allow_cpu: bool = False) -> EvaluationBackend:
    """Returns the best available backend; never raises."""
    if not prefer_accelerated:
        logger.info("Search backend: scalar (acceleration not requested)")
        return ScalarBackend()
    if accel_disabled():
        logger.info("Search backend: scalar (fallback: %s is set)", DISABLE_ENV)
        return ScalarBackend()
    try:
        backend = await asyncio.to_thread(_load_torch_backend, allow_cpu)
    except Exception as exc:  # any acquisition failure degrades to scalar
        logger.info("Search backend: scalar (fallback: %s)", exc)
        return ScalarBackend()
    logger.info("Search backend: %s", backend.name)
    return backend
