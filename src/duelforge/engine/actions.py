from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

TargetKind = Literal["hero", "unit"]


@dataclass(frozen=True)
class TargetRef:
    kind: TargetKind
    player: int
    uid: str | None = None

    @staticmethod
    def hero_target(player: int) -> "TargetRef":
        return TargetRef(kind="hero", player=player, uid=None)

    @staticmethod
    def unit_target(player: int, uid: str) -> "TargetRef":
        return TargetRef(kind="unit", player=player, uid=uid)


@dataclass(frozen=True)
class PlayCardAction:
    player: int
    card_uid: str
    target: TargetRef | None = None


@dataclass(frozen=True)
class UsePowerAction:
    player: int
    target: TargetRef | None = None


@dataclass(frozen=True)
class AttackAction:
    player: int
    attacker_uid: str | None  # None: the hero attacks
    target: TargetRef


@dataclass(frozen=True)
class EndTurnAction:
    player: int


Action = PlayCardAction | UsePowerAction | AttackAction | EndTurnAction
