from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Literal

CardType = Literal["unit", "spell", "equipment"]
Keyword = Literal[
    "Taunt",
    "Rush",
    "Charge",
    "Stealth",
    "Divine Shield",
    "Windfury",
    "Reflect",
    "Lifesteal",
    "Freeze",
]

Duration = Literal["permanent", "this_turn", "until_your_next_turn"]

DamageTarget = Literal[
    "any",
    "enemy_character",
    "enemy_unit",
    "enemy_hero",
    "all_enemies",
    "all_enemy_units",
    "all_units",
    "random_enemy",
]
HealTarget = Literal["any", "friendly_character", "friendly_unit", "self_hero", "all_friendly"]
BuffTarget = Literal["friendly_unit", "any_unit", "allies", "self_hero"]
TransformTarget = Literal["enemy_unit", "any_unit"]
FreezeTarget = Literal["enemy_character", "enemy_unit", "all_enemy_units"]


@dataclass(frozen=True)
class UnitTemplate:
    """Stats for units created by effects (tokens, transforms)."""

    name: str
    attack: int
    health: int
    keywords: tuple[str, ...] = ()


@dataclass(frozen=True)
class DamageEffect:
    type: Literal["damage"]
    amount: int
    target: DamageTarget
    fizzle: bool = False


@dataclass(frozen=True)
class HealEffect:
    type: Literal["heal"]
    amount: int
    target: HealTarget
    fizzle: bool = False


@dataclass(frozen=True)
class BuffEffect:
    type: Literal["buff"]
    attack: int
    health: int
    target: BuffTarget
    duration: Duration = "permanent"
    fizzle: bool = False


@dataclass(frozen=True)
class SummonEffect:
    type: Literal["summon"]
    unit: UnitTemplate
    count: int = 1


@dataclass(frozen=True)
class DrawEffect:
    type: Literal["draw"]
    count: int


@dataclass(frozen=True)
class TransformEffect:
    type: Literal["transform"]
    into: UnitTemplate
    target: TransformTarget = "enemy_unit"
    fizzle: bool = False


@dataclass(frozen=True)
class RestoreEffect:
    type: Literal["restore"]
    amount: int
    requires_spent: int = 0


@dataclass(frozen=True)
class OverloadEffect:
    type: Literal["overload"]
    amount: int = 1


@dataclass(frozen=True)
class ArmorEffect:
    type: Literal["armor"]
    amount: int


@dataclass(frozen=True)
class FreezeEffect:
    type: Literal["freeze"]
    target: FreezeTarget = "enemy_character"
    fizzle: bool = False


@dataclass(frozen=True)
class ComboEffect:
    type: Literal["combo"]
    effects: tuple["Effect", ...]


@dataclass(frozen=True)
class AuraEffect:
    type: Literal["aura"]
    attack: int = 0
    health: int = 0


@dataclass(frozen=True)
class DeathrattleEffect:
    type: Literal["deathrattle"]
    effects: tuple["Effect", ...]


@dataclass(frozen=True)
class CostReductionEffect:
    type: Literal["cost_reduction"]
    amount: int
    card_type: CardType | None = None


@dataclass(frozen=True)
class UnknownEffect:
    """Effect tag this engine does not understand; resolves as a no-op."""

    type: Literal["unknown"]
    tag: str
    params: Mapping[str, object] = field(default_factory=dict)


Effect = (
    DamageEffect
    | HealEffect
    | BuffEffect
    | SummonEffect
    | DrawEffect
    | TransformEffect
    | RestoreEffect
    | OverloadEffect
    | ArmorEffect
    | FreezeEffect
    | ComboEffect
    | AuraEffect
    | DeathrattleEffect
    | CostReductionEffect
    | UnknownEffect
)

# Effects that need a chosen target when the card is played.
TargetedEffect = DamageEffect | HealEffect | BuffEffect | TransformEffect | FreezeEffect

SINGLE_TARGETS = frozenset(
    {
        "any",
        "enemy_character",
        "enemy_unit",
        "friendly_character",
        "friendly_unit",
        "any_unit",
    }
)


def needs_target(effect: Effect) -> bool:
    if isinstance(effect, (DamageEffect, HealEffect, BuffEffect, TransformEffect, FreezeEffect)):
        return effect.target in SINGLE_TARGETS
    return False


def first_targeted(effects: Sequence[Effect]) -> TargetedEffect | None:
    for eff in effects:
        if needs_target(eff):
            return eff  # type: ignore[return-value]
    return None


@dataclass(frozen=True)
class UnitStats:
    attack: int
    health: int


@dataclass(frozen=True)
class EquipmentStats:
    attack: int
    durability: int


@dataclass(frozen=True)
class CardDefinition:
    id: str
    name: str
    type: CardType
    cost: int
    keywords: tuple[str, ...] = ()
    effects: tuple[Effect, ...] = ()
    unit_stats: UnitStats | None = None
    equipment_stats: EquipmentStats | None = None
    text: str = ""


@dataclass(frozen=True)
class HeroPower:
    name: str
    cost: int
    effects: tuple[Effect, ...]


@dataclass(frozen=True)
class HeroDefinition:
    id: str
    name: str
    health: int = 30
    attack: int = 0
    armor: int = 0
    power: HeroPower | None = None
    passives: tuple[Effect, ...] = ()


@dataclass(frozen=True)
class CardDatabase:
    """Immutable card database used by the engine."""

    cards: dict[str, CardDefinition]
    heroes: dict[str, HeroDefinition] = field(default_factory=dict)

    def get(self, card_id: str) -> CardDefinition:
        return self.cards[card_id]

    def hero(self, hero_id: str) -> HeroDefinition:
        return self.heroes[hero_id]

    def all_ids(self) -> Sequence[str]:
        return list(self.cards.keys())
