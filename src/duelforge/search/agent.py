"""Bridge between the search engine and a live match.

The live engine stays authoritative: the agent only reads the match to build
snapshots and hands commands to an executor, which is expected to apply them
through ``step``.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable

from duelforge.engine.actions import (
    Action as Command,
    AttackAction,
    EndTurnAction,
    PlayCardAction,
    TargetRef,
    UsePowerAction,
)
from duelforge.engine.match import MatchState, StepResult, step
from duelforge.engine.serialize import action_to_dict
from duelforge.services.telemetry import TelemetryService

from .actions import Action, Attack, PlayCard, Target, UsePower, describe
from .mcts import MCTSConfig, MCTSEngine, SearchResult
from .snapshot import Snapshot, from_live

logger = logging.getLogger(__name__)

Executor = Callable[[Command], Awaitable[StepResult]]


def _target_ref(snapshot: Snapshot, t: Target | None) -> TargetRef | None:
    if t is None:
        return None
    player = snapshot.sides[t.side].player
    if t.uid is None:
        return TargetRef.hero_target(player)
    return TargetRef.unit_target(player, t.uid)


def to_command(action: Action, snapshot: Snapshot) -> Command:
    """Translate a search action into the live command it stands for."""
    player = snapshot.active_side.player
    if isinstance(action, PlayCard):
        return PlayCardAction(player=player, card_uid=action.card.uid, target=_target_ref(snapshot, action.target))
    if isinstance(action, UsePower):
        return UsePowerAction(player=player, target=_target_ref(snapshot, action.target))
    if isinstance(action, Attack):
        target = _target_ref(snapshot, action.defender)
        assert target is not None
        return AttackAction(player=player, attacker_uid=action.attacker, target=target)
    return EndTurnAction(player=player)


class MCTSAgent:
    def __init__(
        self,
        state: MatchState,
        config: MCTSConfig | None = None,
        engine: MCTSEngine | None = None,
        executor: Executor | None = None,
        telemetry: TelemetryService | None = None,
    ) -> None:
        self.state = state
        self.engine = engine or MCTSEngine(config)
        self.config = self.engine.config
        self.executor = executor or self._step_live
        self.telemetry = telemetry
        self.last_results: list[SearchResult] = []

    async def _step_live(self, command: Command) -> StepResult:
        return step(self.state, command)

    def _turn_over(self, active_player: int) -> bool:
        return self.state.winner is not None or self.state.current_player != active_player

    async def decide_turn(self, active_player: int, opponent_player: int) -> list[Command]:
        """Play out `active_player`'s turn; returns the commands that were issued."""
        issued: list[Command] = []
        self.last_results = []
        await self.engine.ready()

        for _ in range(self.config.max_commands):
            if self._turn_over(active_player):
                return issued
            snap = from_live(self.state, active_player, opponent_player)
            result = self.engine.search(snap)
            self.last_results.append(result)
            command = to_command(result.action, snap)
            outcome = await self.executor(command)
            issued.append(command)
            self._record(active_player, result, command, outcome)

            if not outcome.ok:
                logger.warning(
                    "Live engine rejected %s (%s); ending turn",
                    describe(result.action),
                    outcome.error,
                )
                break
            if isinstance(command, EndTurnAction):
                return issued

        if not self._turn_over(active_player):
            end = EndTurnAction(player=active_player)
            await self.executor(end)
            issued.append(end)
        return issued

    def _record(self, player: int, result: SearchResult, command: Command, outcome: StepResult) -> None:
        if self.telemetry is None:
            return
        self.telemetry.log(
            "ai_decision",
            {
                "player": player,
                "turn": self.state.turn,
                "command": action_to_dict(command),
                "ok": outcome.ok,
                "error": outcome.error,
                "iterations": result.iterations,
                "expansions": result.expansions,
                "visits": result.visits,
                "value": round(result.value, 4),
                "backend": result.backend,
            },
        )
