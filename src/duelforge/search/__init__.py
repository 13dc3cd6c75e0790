"""Turn-level Monte Carlo tree search for the AI opponent.

The search only ever works on :class:`~duelforge.search.snapshot.Snapshot`
copies; the live match is touched solely through ``MCTSAgent``'s executor.
"""

from .actions import Action, Attack, EndTurn, PlayCard, Target, UsePower
from .agent import MCTSAgent, to_command
from .backend import BackendUnavailable, EvaluationBackend, ScalarBackend, TorchBackend, acquire_backend
from .legal import legal_actions
from .mcts import MCTSConfig, MCTSEngine, SearchError, SearchResult
from .simulator import Transition, apply_action
from .snapshot import Snapshot, from_live

__all__ = [
    "Action",
    "Attack",
    "BackendUnavailable",
    "EndTurn",
    "EvaluationBackend",
    "MCTSAgent",
    "MCTSConfig",
    "MCTSEngine",
    "PlayCard",
    "ScalarBackend",
    "SearchError",
    "SearchResult",
    "Snapshot",
    "Target",
    "TorchBackend",
    "Transition",
    "UsePower",
    "acquire_backend",
    "apply_action",
    "from_live",
    "legal_actions",
    "to_command",
]
