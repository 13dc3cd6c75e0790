"""Small, pure rule helpers shared by the live engine and the search simulator.

Everything here works on plain values (ints, keyword collections, effect
descriptors) so that neither side ever hands a mutable entity to the other.
"""

from __future__ import annotations

from collections.abc import Collection, Sequence

from .types import (
    AuraEffect,
    CardType,
    CostReductionEffect,
    DeathrattleEffect,
    Effect,
    TargetedEffect,
)

SICKNESS_EXEMPT = frozenset({"Rush", "Charge"})

# Effects that describe a permanent property of a unit rather than something
# that happens when it is played.
_STATIC_EFFECTS = (AuraEffect, DeathrattleEffect, CostReductionEffect)


def attack_allowance(keywords: Collection[str]) -> int:
    return 2 if "Windfury" in keywords else 1


def is_sick(keywords: Collection[str], entered_this_turn: bool) -> bool:
    if not entered_this_turn:
        return False
    return not (SICKNESS_EXEMPT & set(keywords))


def may_attack_hero(keywords: Collection[str], entered_this_turn: bool) -> bool:
    """Rush lets a fresh unit attack units only; Charge lets it go face."""
    if not entered_this_turn:
        return True
    return "Charge" in keywords


def effective_cost(cost: int, card_type: CardType, passives: Sequence[Effect]) -> int:
    total = cost
    for eff in passives:
        if isinstance(eff, CostReductionEffect) and eff.card_type in (None, card_type):
            total -= eff.amount
    return max(0, total)


def absorb_armor(armor: int, amount: int) -> tuple[int, int]:
    """Returns (remaining armor, damage left for health)."""
    used = min(armor, amount)
    return armor - used, amount - used


def shrink_health(health: int, max_health: int, amount: int) -> tuple[int, int]:
    """Removes `amount` of granted health when a buff or aura goes away.

    A living character never drops below 1 from losing a bonus.
    """
    new_max = max(1, max_health - amount)
    if health <= 0:
        return health, new_max
    new_health = max(1, health - amount)
    return min(new_health, new_max), new_max


def freeze_turns(target_owner: int, current_player: int) -> int:
    # Thawing happens at the end of the owner's turn; a freeze applied during
    # the owner's own turn has to survive that turn's end first.
    return 2 if target_owner == current_player else 1


def on_play_effects(card_type: CardType, effects: Sequence[Effect]) -> tuple[Effect, ...]:
    if card_type != "unit":
        return tuple(e for e in effects if not isinstance(e, CostReductionEffect))
    return tuple(e for e in effects if not isinstance(e, _STATIC_EFFECTS))


def requires_target(card_type: CardType | None, effect: TargetedEffect) -> bool:
    """Unit battlecries (and hero powers) fizzle quietly; spells need a target."""
    if effect.fizzle:
        return False
    return card_type in ("spell", "equipment")


def auras_of(effects: Sequence[Effect]) -> tuple[AuraEffect, ...]:
    return tuple(e for e in effects if isinstance(e, AuraEffect))


def deathrattle_of(effects: Sequence[Effect]) -> tuple[Effect, ...]:
    out: list[Effect] = []
    for e in effects:
        if isinstance(e, DeathrattleEffect):
            out.extend(e.effects)
    return tuple(out)

