from __future__ import annotations

from dataclasses import dataclass

from .snapshot import CardRef


@dataclass(frozen=True)
class Target:
    side: int  # snapshot side index
    uid: str | None = None  # None: the hero

    @property
    def is_hero(self) -> bool:
        return self.uid is None


@dataclass(frozen=True)
class PlayCard:
    card: CardRef
    target: Target | None = None


@dataclass(frozen=True)
class UsePower:
    target: Target | None = None


@dataclass(frozen=True)
class Attack:
    attacker: str | None  # unit uid, None for the hero
    defender: Target


@dataclass(frozen=True)
class EndTurn:
    pass


Action = PlayCard | UsePower | Attack | EndTurn


def describe(action: Action) -> str:
    if isinstance(action, PlayCard):
        suffix = f" -> {_target_label(action.target)}" if action.target else ""
        return f"play {action.card.name}{suffix}"
    if isinstance(action, UsePower):
        suffix = f" -> {_target_label(action.target)}" if action.target else ""
        return f"power{suffix}"
    if isinstance(action, Attack):
        who = action.attacker or "hero"
        return f"attack {who} -> {_target_label(action.defender)}"
    return "end turn"


def _target_label(t: Target) -> str:
    return f"side{t.side}:{t.uid or 'hero'}"
