"""Deterministic, headless rules engine for duelforge.

IMPORTANT: Nothing in this package may import from duelforge.search.
"""

from .actions import AttackAction, EndTurnAction, PlayCardAction, TargetRef, UsePowerAction
from .match import MatchConfig, MatchState, StepResult, new_match, replay, step
from .types import CardDatabase, CardDefinition, CardType, Effect, HeroDefinition, Keyword

__all__ = [
    "AttackAction",
    "CardDatabase",
    "CardDefinition",
    "CardType",
    "Effect",
    "EndTurnAction",
    "HeroDefinition",
    "Keyword",
    "MatchConfig",
    "MatchState",
    "PlayCardAction",
    "StepResult",
    "TargetRef",
    "UsePowerAction",
    "new_match",
    "replay",
    "step",
]
