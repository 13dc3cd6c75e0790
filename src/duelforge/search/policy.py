from __future__ import annotations

import random
from collections.abc import Callable, Sequence

from duelforge.engine.types import (
    ArmorEffect,
    BuffEffect,
    DamageEffect,
    DrawEffect,
    Effect,
    FreezeEffect,
    HealEffect,
    SummonEffect,
    TransformEffect,
)

from .actions import Action, Attack, EndTurn, PlayCard, UsePower
from .snapshot import CardRef, Snapshot
from .targeting import unit_value

RolloutPolicy = Callable[[Snapshot, Sequence[Action], random.Random], Action]


def _effects_value(effects: Sequence[Effect]) -> float:
    v = 0.0
    for eff in effects:
        if isinstance(eff, DamageEffect):
            v += float(eff.amount) * (1.2 if eff.target == "enemy_hero" else 2.0)
        elif isinstance(eff, HealEffect):
            v += float(eff.amount) * 0.9
        elif isinstance(eff, DrawEffect):
            v += float(eff.count) * 1.4
        elif isinstance(eff, BuffEffect):
            v += float(eff.attack * 1.8 + eff.health * 1.2)
        elif isinstance(eff, SummonEffect):
            v += float(eff.count) * float(eff.unit.attack * 2 + eff.unit.health) * 0.5
        elif isinstance(eff, ArmorEffect):
            v += float(eff.amount)
        elif isinstance(eff, (FreezeEffect, TransformEffect)):
            v += 2.0
    return v


def card_value(card: CardRef) -> float:
    if card.type == "unit":
        v = float(card.unit_attack * 2 + card.unit_health)
        if "Taunt" in card.keywords:
            v += 1.5
        if "Charge" in card.keywords or "Rush" in card.keywords:
            v += 1.0
        if "Lifesteal" in card.keywords:
            v += 1.0
        return v + _effects_value(card.effects)
    if card.type == "equipment":
        return float(card.equipment_attack * card.equipment_durability) + _effects_value(card.effects)
    return _effects_value(card.effects)


def _lethal(snapshot: Snapshot, action: PlayCard) -> bool:
    foe = snapshot.opponent_side.hero
    dmg = sum(
        e.amount
        for e in action.card.effects
        if isinstance(e, DamageEffect)
        and (e.target in ("enemy_hero", "all_enemies") or (action.target is not None and action.target.is_hero))
    )
    return dmg > 0 and dmg >= foe.health + foe.armor


def _attack_value(snapshot: Snapshot, action: Attack) -> float:
    side = snapshot.active_side
    foe = snapshot.opponent_side
    if action.attacker is None:
        atk = side.hero.total_attack()
        attacker_hp = side.hero.health + side.hero.armor
        attacker_worth = 0.0
    else:
        u = side.find(action.attacker)
        if u is None:
            return 0.0
        atk = u.attack
        attacker_hp = 0 if u.has("Divine Shield") else u.health
        attacker_worth = unit_value(u)

    if action.defender.is_hero:
        if atk >= foe.hero.health + foe.hero.armor:
            return 1000.0
        return float(atk)

    d = foe.find(action.defender.uid or "")
    if d is None:
        return 0.0
    kills = atk >= d.health and not d.has("Divine Shield")
    survives = attacker_hp > d.attack
    if kills and survives:
        return 3.0 + unit_value(d)
    if kills:
        return unit_value(d) - attacker_worth
    return 0.5 if d.has("Taunt") else 0.1


def score_action(snapshot: Snapshot, action: Action) -> float:
    if isinstance(action, PlayCard):
        if _lethal(snapshot, action):
            return 1000.0
        return 1.0 + card_value(action.card)
    if isinstance(action, UsePower):
        return 1.0
    if isinstance(action, Attack):
        return _attack_value(snapshot, action)
    return 0.0


def heuristic_policy(snapshot: Snapshot, actions: Sequence[Action], rng: random.Random) -> Action:
    """Greedy pick by a cheap per-action estimate; ties go to `rng`."""
    best: list[Action] = []
    best_score = float("-inf")
    for a in actions:
        s = score_action(snapshot, a)
        if s > best_score:
            best, best_score = [a], s
        elif s == best_score:
            best.append(a)
    if len(best) == 1:
        return best[0]
    return best[rng.randrange(len(best))]


def random_policy(snapshot: Snapshot, actions: Sequence[Action], rng: random.Random) -> Action:
    # Ending the turn is only picked when nothing else is available.
    pool = [a for a in actions if not isinstance(a, EndTurn)] or list(actions)
    return pool[rng.randrange(len(pool))]


POLICIES: dict[str, RolloutPolicy] = {
    "heuristic": heuristic_policy,
    "random": random_policy,
}
