"""Deterministic target choice for effects played inside the search.

The search never forks on target choice: every targeted play is enumerated
once, with the target this policy picks. Same snapshot in, same target out.
"""

from __future__ import annotations

from duelforge.engine.types import (
    BuffEffect,
    DamageEffect,
    FreezeEffect,
    HealEffect,
    TargetedEffect,
    TransformEffect,
)

from .actions import Target
from .snapshot import Snapshot, Unit


def unit_value(u: Unit) -> float:
    v = float(u.attack * 2 + u.health)
    if u.has("Taunt"):
        v += 1.5
    if u.has("Divine Shield"):
        v += 1.5
    if u.has("Windfury"):
        v += float(u.attack)
    if u.has("Lifesteal"):
        v += 1.0
    return v


def _units(snapshot: Snapshot, side: int, *, hide_stealth: bool) -> list[Target]:
    return [
        Target(side, u.uid)
        for u in snapshot.sides[side].battlefield
        if not (hide_stealth and u.has("Stealth"))
    ]


def candidates(snapshot: Snapshot, effect: TargetedEffect) -> list[Target]:
    """Every legal target for a single-target effect of the active side."""
    me = snapshot.active
    foe = 1 - me
    t = effect.target
    if t == "any":
        return [Target(me)] + _units(snapshot, me, hide_stealth=False) + [Target(foe)] + _units(
            snapshot, foe, hide_stealth=True
        )
    if t == "enemy_character":
        return [Target(foe)] + _units(snapshot, foe, hide_stealth=True)
    if t == "enemy_unit":
        return _units(snapshot, foe, hide_stealth=True)
    if t == "friendly_character":
        return [Target(me)] + _units(snapshot, me, hide_stealth=False)
    if t == "friendly_unit":
        return _units(snapshot, me, hide_stealth=False)
    if t == "any_unit":
        return _units(snapshot, me, hide_stealth=False) + _units(snapshot, foe, hide_stealth=True)
    return []


def _unit_of(snapshot: Snapshot, t: Target) -> Unit | None:
    if t.uid is None:
        return None
    return snapshot.sides[t.side].find(t.uid)


def _best_unit(snapshot: Snapshot, targets: list[Target], key) -> Target | None:
    best: Target | None = None
    best_key = None
    for t in targets:
        u = _unit_of(snapshot, t)
        if u is None:
            continue
        k = key(u)
        if best_key is None or k > best_key:
            best, best_key = t, k
    return best


def _damage_target(snapshot: Snapshot, eff: DamageEffect, cands: list[Target]) -> Target | None:
    foe = 1 - snapshot.active
    enemies = [t for t in cands if t.side == foe]
    hero = next((t for t in enemies if t.is_hero), None)
    if hero is not None:
        h = snapshot.sides[foe].hero
        if eff.amount >= h.health + h.armor:
            return hero
    killable = [
        t
        for t in enemies
        if not t.is_hero
        and (u := _unit_of(snapshot, t)) is not None
        and not u.has("Divine Shield")
        and u.health <= eff.amount
    ]
    pick = _best_unit(snapshot, killable, unit_value)
    if pick is not None:
        return pick
    if hero is not None:
        return hero
    return _best_unit(snapshot, enemies, lambda u: (u.attack, u.health))


def _heal_target(snapshot: Snapshot, cands: list[Target]) -> Target | None:
    me = snapshot.active
    best: Target | None = None
    best_missing = -1
    for t in cands:
        if t.side != me:
            continue
        if t.is_hero:
            h = snapshot.sides[me].hero
            missing = h.max_health - h.health
        else:
            u = _unit_of(snapshot, t)
            if u is None:
                continue
            missing = u.max_health - u.health
        if missing > best_missing:
            best, best_missing = t, missing
    return best


def _buff_target(snapshot: Snapshot, eff: BuffEffect, cands: list[Target]) -> Target | None:
    me = snapshot.active
    if eff.attack < 0 or eff.health < 0:
        return _best_unit(snapshot, [t for t in cands if t.side != me], unit_value)
    return _best_unit(snapshot, [t for t in cands if t.side == me], unit_value)


def _freeze_target(snapshot: Snapshot, cands: list[Target]) -> Target | None:
    foe = 1 - snapshot.active
    enemies = [t for t in cands if t.side == foe]
    ready = [t for t in enemies if (u := _unit_of(snapshot, t)) is not None and u.frozen == 0 and u.attack > 0]
    pick = _best_unit(snapshot, ready, lambda u: (u.attack, u.health))
    if pick is not None:
        return pick
    return next((t for t in enemies if t.is_hero), None)


def choose_target(snapshot: Snapshot, effect: TargetedEffect) -> Target | None:
    cands = candidates(snapshot, effect)
    if not cands:
        return None
    if isinstance(effect, DamageEffect):
        return _damage_target(snapshot, effect, cands)
    if isinstance(effect, HealEffect):
        return _heal_target(snapshot, cands)
    if isinstance(effect, BuffEffect):
        return _buff_target(snapshot, effect, cands)
    if isinstance(effect, TransformEffect):
        foe = 1 - snapshot.active
        return _best_unit(snapshot, [t for t in cands if t.side == foe], unit_value)
    if isinstance(effect, FreezeEffect):
        return _freeze_target(snapshot, cands)
    return None
