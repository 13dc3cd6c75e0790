from __future__ import annotations

from collections.abc import Sequence

from duelforge.engine import rules
from duelforge.engine.types import CardType, DrawEffect, Effect, HealEffect, RestoreEffect, first_targeted

from .actions import Action, Attack, EndTurn, PlayCard, Target, UsePower
from .snapshot import Side, Snapshot
from .targeting import candidates, choose_target


def effective_cost(side: Side, cost: int, card_type: CardType) -> int:
    return rules.effective_cost(cost, card_type, side.hero.passives)


def _anyone_injured(side: Side) -> bool:
    if side.hero.health < side.hero.max_health:
        return True
    return any(u.health < u.max_health for u in side.battlefield)


def is_useless(snapshot: Snapshot, effects: Sequence[Effect], cost: int) -> bool:
    """True when every effect would do nothing right now (full-health heals,
    refunds with nothing spent, draws from an empty library)."""
    if not effects:
        return False
    side = snapshot.active_side
    for e in effects:
        if isinstance(e, HealEffect):
            if _anyone_injured(side):
                return False
        elif isinstance(e, RestoreEffect):
            spent = side.cap - (side.pool - cost)
            if spent > 0 and spent >= e.requires_spent:
                return False
        elif isinstance(e, DrawEffect):
            if side.library > 0:
                return False
        else:
            return False
    return True


def _resolve_target(snapshot: Snapshot, effects: Sequence[Effect], card_type: CardType | None) -> tuple[bool, Target | None]:
    """Returns (playable, target) for the first targeted effect, if any."""
    eff = first_targeted(effects)
    if eff is None:
        return True, None
    chosen = choose_target(snapshot, eff)
    if chosen is not None:
        return True, chosen
    if rules.requires_target(card_type, eff):
        return False, None
    # Battlecries and powers cannot be played untargeted while a target exists.
    cands = candidates(snapshot, eff)
    return True, (cands[0] if cands else None)


def _defenders(snapshot: Snapshot, hero_allowed: bool) -> list[Target]:
    foe_i = 1 - snapshot.active
    foe = snapshot.sides[foe_i]
    visible = [u for u in foe.battlefield if not u.has("Stealth")]
    taunts = [u for u in visible if u.has("Taunt")]
    if taunts:
        return [Target(foe_i, u.uid) for u in taunts]
    out = [Target(foe_i, u.uid) for u in visible]
    if hero_allowed:
        out.append(Target(foe_i))
    return out


def legal_actions(snapshot: Snapshot) -> list[Action]:
    """Every action the active side may take, EndTurn always last.

    Pure: repeated calls on the same snapshot give identical lists.
    """
    if snapshot.is_terminal():
        return [EndTurn()]

    side = snapshot.active_side
    actions: list[Action] = []

    for card in side.hand:
        cost = effective_cost(side, card.cost, card.type)
        if cost > side.pool:
            continue
        if card.type == "unit" and len(side.battlefield) >= snapshot.rules.board_slots:
            continue
        on_play = rules.on_play_effects(card.type, card.effects)
        if card.type == "spell" and is_useless(snapshot, on_play, cost):
            continue
        playable, target = _resolve_target(snapshot, on_play, card.type)
        if not playable:
            continue
        actions.append(PlayCard(card=card, target=target))

    power = side.hero.power
    if power is not None and snapshot.power_available and power.cost <= side.pool:
        if not is_useless(snapshot, power.effects, power.cost):
            playable, target = _resolve_target(snapshot, power.effects, None)
            if playable:
                actions.append(UsePower(target=target))

    for u in side.battlefield:
        if u.attack <= 0 or u.frozen > 0:
            continue
        if snapshot.summoning_sick(u):
            continue
        if u.attacks_used >= rules.attack_allowance(u.keywords):
            continue
        hero_ok = rules.may_attack_hero(u.keywords, snapshot.entered(u))
        for d in _defenders(snapshot, hero_ok):
            actions.append(Attack(attacker=u.uid, defender=d))

    hero = side.hero
    if hero.total_attack() > 0 and hero.frozen == 0 and hero.attacks_used < 1:
        for d in _defenders(snapshot, True):
            actions.append(Attack(attacker=None, defender=d))

    actions.append(EndTurn())
    return actions
