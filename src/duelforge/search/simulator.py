"""Side-effect-free transition function used by the search.

``apply_action`` clones its input, resolves one action and everything it
triggers, and hands back the new snapshot. Resolution order for a single
action:

1. pay the cost
2. move the card / start the attack
3. resolve effects in declaration order (combo bonuses inline)
4. combat damage and retaliation
5. death cleanup, including deathrattles, until the board is stable
6. aura recalculation

Single-target effects need a target chosen by the acting side, so one that
triggers without such a choice (a targeted deathrattle, say) does nothing.

Randomness comes only from the ``rng`` argument. Nothing here reads the
clock or touches live match objects.
"""

from __future__ import annotations

import logging
import random
from collections.abc import Sequence
from dataclasses import dataclass

from duelforge.engine import rules
from duelforge.engine.types import (
    ArmorEffect,
    BuffEffect,
    CardType,
    ComboEffect,
    DamageEffect,
    DrawEffect,
    Duration,
    Effect,
    FreezeEffect,
    HealEffect,
    OverloadEffect,
    RestoreEffect,
    SummonEffect,
    TransformEffect,
    UnitTemplate,
    UnknownEffect,
    needs_target,
)

from .actions import Action, Attack, EndTurn, PlayCard, Target, UsePower
from .snapshot import Equipment, Hero, Modifier, Snapshot, Unit
from .targeting import candidates

logger = logging.getLogger(__name__)

DEFAULT_SEED = 0x5EED

# Deathrattles can chain; past this many waves the board is left as is.
MAX_DEATH_WAVES = 16


@dataclass(frozen=True)
class Transition:
    snapshot: Snapshot
    terminal: bool


def apply_action(snapshot: Snapshot, action: Action, rng: random.Random | None = None) -> Transition:
    """Apply `action` to a copy of `snapshot`; the input is never mutated."""
    s = snapshot.clone()
    if rng is None:
        rng = random.Random(DEFAULT_SEED)
    if isinstance(action, PlayCard):
        _play_card(s, action, rng)
    elif isinstance(action, UsePower):
        _use_power(s, action, rng)
    elif isinstance(action, Attack):
        _attack(s, action, rng)
    elif isinstance(action, EndTurn):
        _end_turn(s, rng)
    else:
        logger.debug("Ignoring unrecognised action %r", action)
    return Transition(snapshot=s, terminal=s.is_terminal())


def _hero_of(s: Snapshot, t: Target) -> Hero:
    return s.sides[t.side].hero


def _unit_of(s: Snapshot, t: Target) -> Unit | None:
    if t.uid is None:
        return None
    return s.sides[t.side].find(t.uid)


def _damage_unit(u: Unit, amount: int) -> int:
    if amount <= 0:
        return 0
    if u.has("Divine Shield"):
        u.keywords.discard("Divine Shield")
        return 0
    u.health = max(0, u.health - amount)
    return amount


def _damage_hero(h: Hero, amount: int) -> int:
    if amount <= 0:
        return 0
    h.armor, rest = rules.absorb_armor(h.armor, amount)
    h.health = max(0, h.health - rest)
    return amount


def _damage(s: Snapshot, t: Target, amount: int) -> int:
    if t.is_hero:
        return _damage_hero(_hero_of(s, t), amount)
    u = _unit_of(s, t)
    return _damage_unit(u, amount) if u is not None else 0


def _heal(s: Snapshot, t: Target, amount: int) -> None:
    if amount <= 0:
        return
    c = _hero_of(s, t) if t.is_hero else _unit_of(s, t)
    if c is None:
        return
    c.health = min(c.max_health, c.health + amount)


def _buff(s: Snapshot, caster: int, t: Target, eff: BuffEffect) -> None:
    c = _hero_of(s, t) if t.is_hero else _unit_of(s, t)
    if c is None:
        return
    c.attack += eff.attack
    c.health += eff.health
    c.max_health += eff.health
    if eff.duration != "permanent":
        c.modifiers.append(Modifier(eff.attack, eff.health, eff.duration, caster))


def _freeze(s: Snapshot, t: Target) -> None:
    c = _hero_of(s, t) if t.is_hero else _unit_of(s, t)
    if c is None:
        return
    c.frozen = max(c.frozen, rules.freeze_turns(t.side, s.active))


def _transform(s: Snapshot, t: Target, tpl: UnitTemplate) -> None:
    board = s.sides[t.side].battlefield
    for i, u in enumerate(board):
        if u.uid == t.uid:
            board[i] = Unit(
                uid=u.uid,
                card_id=f"token:{tpl.name}",
                name=tpl.name,
                attack=tpl.attack,
                health=tpl.health,
                max_health=tpl.health,
                keywords=set(tpl.keywords),
                attacks_used=u.attacks_used,
            )
            return


def _place(s: Snapshot, side_i: int, unit: Unit) -> bool:
    side = s.sides[side_i]
    if len(side.battlefield) >= s.rules.board_slots:
        return False
    side.battlefield.append(unit)
    s.entered_this_turn.add(unit.uid)
    return True


def _summon(s: Snapshot, side_i: int, tpl: UnitTemplate) -> bool:
    unit = Unit(
        uid=s.new_uid(),
        card_id=f"token:{tpl.name}",
        name=tpl.name,
        attack=tpl.attack,
        health=tpl.health,
        max_health=tpl.health,
        keywords=set(tpl.keywords),
    )
    return _place(s, side_i, unit)


def _draw(s: Snapshot, side_i: int, count: int) -> None:
    side = s.sides[side_i]
    for _ in range(max(0, count)):
        if side.library <= 0:
            return
        side.library -= 1
        if side.hand_size() >= s.rules.max_hand:
            side.graveyard += 1
        else:
            side.hidden_hand += 1


def _characters(s: Snapshot, side_i: int, *, hero: bool = True, units: bool = True) -> list[Target]:
    out = [Target(side_i)] if hero else []
    if units:
        out.extend(Target(side_i, u.uid) for u in s.sides[side_i].battlefield)
    return out


def _area(s: Snapshot, caster: int, target: str) -> list[Target]:
    foe = 1 - caster
    if target in ("all_enemies", "random_enemy"):
        return _characters(s, foe)
    if target == "all_enemy_units":
        return _characters(s, foe, hero=False)
    if target == "all_units":
        return _characters(s, caster, hero=False) + _characters(s, foe, hero=False)
    if target in ("all_friendly", "allies"):
        return _characters(s, caster)
    if target == "self_hero":
        return [Target(caster)]
    if target == "enemy_hero":
        return [Target(foe)]
    return []


def _resolve(
    s: Snapshot,
    caster: int,
    effects: Sequence[Effect],
    target: Target | None,
    rng: random.Random,
    *,
    combo_active: bool = False,
) -> None:
    side = s.sides[caster]
    for eff in effects:
        if isinstance(eff, ComboEffect):
            if combo_active:
                _resolve(s, caster, eff.effects, target, rng)
        elif isinstance(eff, OverloadEffect):
            side.pending_overload += eff.amount
        elif isinstance(eff, DrawEffect):
            _draw(s, caster, eff.count)
        elif isinstance(eff, RestoreEffect):
            side.pool = min(side.cap, side.pool + eff.amount)
        elif isinstance(eff, ArmorEffect):
            side.hero.armor += max(0, eff.amount)
        elif isinstance(eff, SummonEffect):
            for _ in range(max(0, eff.count)):
                if not _summon(s, caster, eff.unit):
                    break
        elif isinstance(eff, (DamageEffect, HealEffect, BuffEffect, TransformEffect, FreezeEffect)):
            for t in _effect_targets(s, caster, eff, target, rng):
                _apply_targeted(s, caster, eff, t)
        elif isinstance(eff, UnknownEffect):
            logger.debug("Unknown effect tag %r treated as no-op", eff.tag)


def _effect_targets(
    s: Snapshot,
    caster: int,
    eff: DamageEffect | HealEffect | BuffEffect | TransformEffect | FreezeEffect,
    target: Target | None,
    rng: random.Random,
) -> list[Target]:
    if eff.target == "random_enemy":
        pool = _area(s, caster, eff.target)
        return [pool[rng.randrange(len(pool))]] if pool else []
    if needs_target(eff):
        # Single-target effects only ever fire for the acting side with a chosen target.
        if target is None or caster != s.active or target not in candidates(s, eff):
            logger.debug("Single-target %s effect of side %d resolved without a target", eff.type, caster)
            return []
        return [target]
    return _area(s, caster, eff.target)


def _apply_targeted(s: Snapshot, caster: int, eff: Effect, t: Target) -> None:
    if isinstance(eff, DamageEffect):
        _damage(s, t, eff.amount)
    elif isinstance(eff, HealEffect):
        _heal(s, t, eff.amount)
    elif isinstance(eff, BuffEffect):
        _buff(s, caster, t, eff)
    elif isinstance(eff, FreezeEffect):
        _freeze(s, t)
    elif isinstance(eff, TransformEffect) and not t.is_hero:
        _transform(s, t, eff.into)


def _cleanup(s: Snapshot, rng: random.Random) -> None:
    for _ in range(MAX_DEATH_WAVES):
        dying: list[tuple[int, Unit]] = []
        for side_i, side in enumerate(s.sides):
            for u in side.battlefield:
                if u.health <= 0:
                    dying.append((side_i, u))
        if not dying:
            break
        for side_i, u in dying:
            side = s.sides[side_i]
            side.battlefield = [c for c in side.battlefield if c.uid != u.uid]
            side.graveyard += 1
            s.entered_this_turn.discard(u.uid)
        for side_i, u in dying:
            if u.deathrattle:
                _resolve(s, side_i, u.deathrattle, None, rng)
    _refresh_auras(s)


def _refresh_auras(s: Snapshot) -> None:
    for side in s.sides:
        for u in side.battlefield:
            want_atk = 0
            want_hp = 0
            for other in side.battlefield:
                if other is u or other.health <= 0:
                    continue
                for aura in other.auras:
                    want_atk += aura.attack
                    want_hp += aura.health
            d_atk = want_atk - u.aura_attack
            d_hp = want_hp - u.aura_health
            if d_atk:
                u.attack = max(0, u.attack + d_atk)
            if d_hp > 0:
                u.health += d_hp
                u.max_health += d_hp
            elif d_hp < 0:
                u.health, u.max_health = rules.shrink_health(u.health, u.max_health, -d_hp)
            u.aura_attack = want_atk
            u.aura_health = want_hp


def _pay(s: Snapshot, cost: int) -> None:
    s.active_side.pool -= cost


def _play_card(s: Snapshot, action: PlayCard, rng: random.Random) -> None:
    side = s.active_side
    card = action.card
    card_type: CardType = card.type
    _pay(s, rules.effective_cost(card.cost, card_type, side.hero.passives))
    side.hand = [c for c in side.hand if c.uid != card.uid]
    combo_active = side.cards_played > 0

    if card_type == "unit":
        _place(
            s,
            s.active,
            Unit(
                uid=s.new_uid(),
                card_id=card.card_id,
                name=card.name,
                attack=card.unit_attack,
                health=card.unit_health,
                max_health=card.unit_health,
                keywords=set(card.keywords),
                auras=rules.auras_of(card.effects),
                deathrattle=rules.deathrattle_of(card.effects),
            ),
        )
    elif card_type == "equipment":
        if side.hero.equipment is not None:
            side.graveyard += 1
        side.hero.equipment = Equipment(card.card_id, card.equipment_attack, card.equipment_durability)
    else:
        side.graveyard += 1

    _resolve(s, s.active, rules.on_play_effects(card_type, card.effects), action.target, rng, combo_active=combo_active)
    side.cards_played += 1
    _cleanup(s, rng)


def _use_power(s: Snapshot, action: UsePower, rng: random.Random) -> None:
    power = s.active_side.hero.power
    if power is None:
        return
    _pay(s, power.cost)
    s.power_available = False
    _resolve(s, s.active, power.effects, action.target, rng)
    _cleanup(s, rng)


def _wear(s: Snapshot, side_i: int) -> None:
    side = s.sides[side_i]
    eq = side.hero.equipment
    if eq is None:
        return
    eq.durability -= 1
    if eq.durability <= 0:
        side.hero.equipment = None
        side.graveyard += 1


def _attack(s: Snapshot, action: Attack, rng: random.Random) -> None:
    me = s.active
    foe = 1 - me
    side = s.active_side

    unit: Unit | None = None
    if action.attacker is None:
        atk = side.hero.total_attack()
        keywords = side.hero.keywords
        attacker_t = Target(me)
    else:
        unit = side.find(action.attacker)
        if unit is None:
            return
        atk = unit.attack
        keywords = unit.keywords
        attacker_t = Target(me, unit.uid)

    defender_t = action.defender
    if defender_t.is_hero:
        dh = s.sides[foe].hero
        retaliation = dh.equipment.attack if dh.equipment is not None else 0
        defender_keywords = dh.keywords
    else:
        du = _unit_of(s, defender_t)
        if du is None:
            return
        retaliation = du.attack
        defender_keywords = du.keywords
    # Keyword sets can lose Divine Shield below; the checks after need the rest.
    attacker_lifesteal = "Lifesteal" in keywords
    attacker_freeze = "Freeze" in keywords
    defender_lifesteal = "Lifesteal" in defender_keywords
    defender_freeze = "Freeze" in defender_keywords

    dealt = _damage(s, defender_t, atk)
    if "Reflect" in defender_keywords:
        retaliation += dealt
    dealt_back = _damage(s, attacker_t, retaliation)

    if attacker_lifesteal and dealt > 0:
        _heal(s, Target(me), dealt)
    if defender_lifesteal and dealt_back > 0:
        _heal(s, Target(foe), dealt_back)
    if attacker_freeze and dealt > 0:
        _freeze(s, defender_t)
    if defender_freeze and dealt_back > 0:
        _freeze(s, attacker_t)

    if defender_t.is_hero:
        _wear(s, foe)
    if unit is None:
        side.hero.attacks_used += 1
        _wear(s, me)
    else:
        unit.attacks_used += 1
        unit.keywords.discard("Stealth")
    _cleanup(s, rng)


def _expire(s: Snapshot, expiry: Duration, owner: int) -> None:
    for side in s.sides:
        chars: list[Hero | Unit] = [side.hero, *side.battlefield]
        for c in chars:
            if not c.modifiers:
                continue
            keep: list[Modifier] = []
            for m in c.modifiers:
                if m.expiry != expiry or m.owner != owner:
                    keep.append(m)
                    continue
                c.attack = max(0, c.attack - m.attack)
                c.health, c.max_health = rules.shrink_health(c.health, c.max_health, m.health)
            c.modifiers = keep


def _end_turn(s: Snapshot, rng: random.Random) -> None:
    ending = s.active
    _expire(s, "this_turn", ending)
    old = s.sides[ending]
    old.hero.frozen = max(0, old.hero.frozen - 1)
    for u in old.battlefield:
        u.frozen = max(0, u.frozen - 1)

    s.active = 1 - ending
    s.turn += 1
    side = s.active_side
    side.cap = min(s.rules.max_resources, side.cap + 1)
    side.pool = max(0, side.cap - side.pending_overload)
    side.pending_overload = 0
    side.cards_played = 0
    side.hero.attacks_used = 0
    for u in side.battlefield:
        u.attacks_used = 0
    s.entered_this_turn.clear()
    s.power_available = side.hero.power is not None
    _expire(s, "until_your_next_turn", s.active)
    _draw(s, s.active, 1)
    _cleanup(s, rng)
