"""Monte Carlo tree search over snapshots.

Values live in [-1, 1] and are kept from the point of view of the side that
was active at the root; selection flips the sign on nodes where the other
side is to move. Heuristic scores are measured against the root position and
squashed below ``HEURISTIC_CAP``, so a proven win always outranks them and
quicker wins rank above slower ones.
"""

from __future__ import annotations

import asyncio
import logging
import math
import random
import time
from dataclasses import dataclass, field

from .actions import Action, EndTurn, describe
from .backend import EvaluationBackend, acquire_backend
from .evaluation import features, terminal_score
from .legal import legal_actions
from .policy import POLICIES, RolloutPolicy
from .simulator import apply_action
from .snapshot import Snapshot

logger = logging.getLogger(__name__)

HEURISTIC_CAP = 0.9
WIN_DECAY = 0.005
MAX_WIN_DEPTH = 10


class SearchError(RuntimeError):
    pass


@dataclass(frozen=True)
class MCTSConfig:
    iterations: int = 300
    rollout_depth: int = 4
    exploration: float = 1.4
    time_budget: float | None = None  # seconds; None means iterations only
    rollout_policy: str = "heuristic"
    rollouts_per_leaf: int = 1
    value_scale: float = 20.0
    # Stop expanding and rolling out once the searching side ends its turn.
    turn_horizon: bool = True
    prefer_accelerated: bool = True
    # Safety cap on live commands issued by one decide_turn call.
    max_commands: int = 64


@dataclass
class Node:
    snapshot: Snapshot
    action: Action | None = None
    parent: Node | None = None
    children: list[Node] = field(default_factory=list)
    untried: list[Action] = field(default_factory=list)
    depth: int = 0
    leaf: bool = False
    visits: int = 0
    total: float = 0.0

    @property
    def mean(self) -> float:
        return self.total / self.visits if self.visits else 0.0


@dataclass(frozen=True)
class SearchResult:
    action: Action
    iterations: int
    expansions: int
    visits: int
    value: float
    backend: str


class MCTSEngine:
    def __init__(
        self,
        config: MCTSConfig | None = None,
        backend: EvaluationBackend | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self.config = config or MCTSConfig()
        if self.config.rollout_policy not in POLICIES:
            raise ValueError(f"Unknown rollout policy: {self.config.rollout_policy}")
        self.policy: RolloutPolicy = POLICIES[self.config.rollout_policy]
        self.rng = rng if rng is not None else random.Random()
        self._backend = backend
        self._gate: asyncio.Task[EvaluationBackend] | None = None

    @property
    def backend(self) -> EvaluationBackend | None:
        return self._backend

    async def ready(self) -> EvaluationBackend:
        """Acquires the numeric backend once; later calls return the cached one.

        Acquisition starts on the first call, not in ``__init__``; concurrent
        callers await the same task.
        """
        if self._backend is not None:
            return self._backend
        loop = asyncio.get_running_loop()
        if self._gate is None or self._gate.get_loop() is not loop:
            self._gate = loop.create_task(acquire_backend(self.config.prefer_accelerated))
        self._backend = await self._gate
        return self._backend

    async def decide(self, snapshot: Snapshot) -> SearchResult:
        await self.ready()
        return self.search(snapshot)

    def search(self, snapshot: Snapshot) -> SearchResult:
        backend = self._backend
        if backend is None:
            raise SearchError("search() called before the backend was acquired; await ready() first")

        root_actions = legal_actions(snapshot)
        assert root_actions, "legal_actions returned nothing; EndTurn must always be legal"
        if len(root_actions) == 1:
            return SearchResult(root_actions[0], 0, 0, 0, 0.0, backend.name)

        cfg = self.config
        perspective = snapshot.active
        root = Node(snapshot=snapshot, untried=list(root_actions))
        baseline = backend.evaluate([features(snapshot, perspective)])[0]
        deadline = None if cfg.time_budget is None else time.perf_counter() + cfg.time_budget

        iterations = 0
        expansions = 0
        while iterations < cfg.iterations:
            if deadline is not None and time.perf_counter() >= deadline:
                break
            node = self._select(root, perspective, backend)
            if node.untried:
                node = self._expand(node, perspective)
                expansions += 1
            value = self._rollout(node, perspective, baseline, backend)
            self._backpropagate(node, value)
            iterations += 1

        best = self._best_child(root)
        if best is None or best.action is None:
            # Nothing was expanded in time.
            return SearchResult(EndTurn(), iterations, expansions, 0, 0.0, backend.name)
        logger.debug(
            "MCTS picked %s after %d iterations (%d visits, mean %.3f)",
            describe(best.action),
            iterations,
            best.visits,
            best.mean,
        )
        return SearchResult(best.action, iterations, expansions, best.visits, best.mean, backend.name)

    def _is_leaf(self, snapshot: Snapshot, perspective: int) -> bool:
        if snapshot.is_terminal():
            return True
        return self.config.turn_horizon and snapshot.active != perspective

    def _select(self, node: Node, perspective: int, backend: EvaluationBackend) -> Node:
        while not node.untried and node.children and not node.leaf:
            sign = 1.0 if node.snapshot.active == perspective else -1.0
            scores = backend.ucb_scores(
                [sign * c.total for c in node.children],
                [c.visits for c in node.children],
                node.visits,
                self.config.exploration,
            )
            best_i = max(range(len(scores)), key=scores.__getitem__)
            node = node.children[best_i]
        return node

    def _expand(self, node: Node, perspective: int) -> Node:
        action = node.untried.pop(self.rng.randrange(len(node.untried)))
        result = apply_action(node.snapshot, action, self.rng)
        leaf = self._is_leaf(result.snapshot, perspective)
        child = Node(
            snapshot=result.snapshot,
            action=action,
            parent=node,
            untried=[] if leaf else legal_actions(result.snapshot),
            depth=node.depth + 1,
            leaf=leaf,
        )
        node.children.append(child)
        return child

    def _rollout(self, node: Node, perspective: int, baseline: float, backend: EvaluationBackend) -> float:
        cfg = self.config
        values: list[float] = []
        rows: list[tuple[float, ...]] = []
        for _ in range(max(1, cfg.rollouts_per_leaf)):
            s = node.snapshot
            depth = node.depth
            for _ in range(cfg.rollout_depth):
                if self._is_leaf(s, perspective):
                    break
                action = self.policy(s, legal_actions(s), self.rng)
                s = apply_action(s, action, self.rng).snapshot
                depth += 1
            terminal = terminal_score(s, perspective)
            if terminal is not None:
                values.append(_terminal_value(terminal, depth))
            else:
                rows.append(features(s, perspective))
        if rows:
            values.extend(HEURISTIC_CAP * math.tanh((score - baseline) / cfg.value_scale) for score in backend.evaluate(rows))
        return sum(values) / len(values)

    @staticmethod
    def _backpropagate(node: Node | None, value: float) -> None:
        while node is not None:
            node.visits += 1
            node.total += value
            node = node.parent

    @staticmethod
    def _best_child(root: Node) -> Node | None:
        best: Node | None = None
        for c in root.children:
            if best is None or (c.visits, c.mean) > (best.visits, best.mean):
                best = c
        return best


def _terminal_value(score: float, depth: int) -> float:
    if score == 0.0:
        return 0.0
    return math.copysign(1.0 - WIN_DECAY * min(depth, MAX_WIN_DEPTH), score)
