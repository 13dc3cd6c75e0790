from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Mapping, get_args

from jsonschema import Draft202012Validator

from duelforge.engine.types import (
    ArmorEffect,
    AuraEffect,
    BuffEffect,
    BuffTarget,
    CardDatabase,
    CardDefinition,
    ComboEffect,
    CostReductionEffect,
    DamageEffect,
    DamageTarget,
    DeathrattleEffect,
    DrawEffect,
    Duration,
    Effect,
    EquipmentStats,
    FreezeEffect,
    FreezeTarget,
    HealEffect,
    HealTarget,
    HeroDefinition,
    HeroPower,
    OverloadEffect,
    RestoreEffect,
    SummonEffect,
    TransformEffect,
    TransformTarget,
    UnitStats,
    UnitTemplate,
    UnknownEffect,
)

logger = logging.getLogger(__name__)


class ContentError(RuntimeError):
    pass


def _load_json(path: Path) -> object:
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError as e:
        raise ContentError(f"Missing content file: {path}") from e
    except json.JSONDecodeError as e:
        raise ContentError(f"Invalid JSON in {path}: {e}") from e


def _load_schema(path: Path) -> object:
    return _load_json(path)


def validate_json(instance: object, schema: object, *, context: str) -> None:
    validator = Draft202012Validator(schema)
    errors = sorted(validator.iter_errors(instance), key=lambda e: e.path)
    if errors:
        lines = [f"Schema validation failed for {context}:"]
        for err in errors[:10]:
            loc = "/".join(str(p) for p in err.absolute_path)
            lines.append(f"- {loc}: {err.message}")
        raise ContentError("\n".join(lines))


def _require_str(obj: Mapping[str, object], key: str) -> str:
    v = obj.get(key)
    if not isinstance(v, str):
        raise ContentError(f"Expected string for {key}")
    return v


def _require_int(obj: Mapping[str, object], key: str) -> int:
    v = obj.get(key)
    if not isinstance(v, int) or isinstance(v, bool):
        raise ContentError(f"Expected int for {key}")
    return v


def _optional_int(obj: Mapping[str, object], key: str, default: int) -> int:
    if key not in obj:
        return default
    return _require_int(obj, key)


def _optional_bool(obj: Mapping[str, object], key: str) -> bool:
    v = obj.get(key, False)
    if not isinstance(v, bool):
        raise ContentError(f"Expected bool for {key}")
    return v


def _choice(obj: Mapping[str, object], key: str, allowed: object, default: str | None = None) -> str:
    options = get_args(allowed)
    if key not in obj and default is not None:
        return default
    v = _require_str(obj, key)
    if v not in options:
        raise ContentError(f"Invalid {key} {v!r}; expected one of {', '.join(options)}")
    return v


def _parse_keywords(raw: object) -> tuple[str, ...]:
    if not isinstance(raw, list):
        raise ContentError("keywords must be a list")
    # Unrecognised keywords are carried along; the rules ignore them.
    return tuple(item for item in raw if isinstance(item, str))


def _parse_template(raw: object) -> UnitTemplate:
    if not isinstance(raw, dict):
        raise ContentError("Unit template must be an object")
    return UnitTemplate(
        name=_require_str(raw, "name"),
        attack=_require_int(raw, "attack"),
        health=_require_int(raw, "health"),
        keywords=_parse_keywords(raw.get("keywords", [])),
    )


def _parse_effects(raw: object) -> tuple[Effect, ...]:
    if not isinstance(raw, list):
        raise ContentError("effects must be a list")
    return tuple(_parse_effect(e) for e in raw if isinstance(e, dict))


def _parse_effect(raw: Mapping[str, object]) -> Effect:
    t = raw.get("type")
    if not isinstance(t, str):
        raise ContentError("Effect missing type")
    fizzle = _optional_bool(raw, "fizzle")
    if t == "damage":
        return DamageEffect(
            type="damage",
            amount=_require_int(raw, "amount"),
            target=_choice(raw, "target", DamageTarget),  # type: ignore[arg-type]
            fizzle=fizzle,
        )
    if t == "heal":
        return HealEffect(
            type="heal",
            amount=_require_int(raw, "amount"),
            target=_choice(raw, "target", HealTarget),  # type: ignore[arg-type]
            fizzle=fizzle,
        )
    if t == "buff":
        return BuffEffect(
            type="buff",
            attack=_optional_int(raw, "attack", 0),
            health=_optional_int(raw, "health", 0),
            target=_choice(raw, "target", BuffTarget),  # type: ignore[arg-type]
            duration=_choice(raw, "duration", Duration, "permanent"),  # type: ignore[arg-type]
            fizzle=fizzle,
        )
    if t == "summon":
        return SummonEffect(type="summon", unit=_parse_template(raw.get("unit")), count=_optional_int(raw, "count", 1))
    if t == "draw":
        return DrawEffect(type="draw", count=_require_int(raw, "count"))
    if t == "transform":
        return TransformEffect(
            type="transform",
            into=_parse_template(raw.get("into")),
            target=_choice(raw, "target", TransformTarget, "enemy_unit"),  # type: ignore[arg-type]
            fizzle=fizzle,
        )
    if t == "restore":
        return RestoreEffect(
            type="restore",
            amount=_require_int(raw, "amount"),
            requires_spent=_optional_int(raw, "requires_spent", 0),
        )
    if t == "overload":
        return OverloadEffect(type="overload", amount=_optional_int(raw, "amount", 1))
    if t == "armor":
        return ArmorEffect(type="armor", amount=_require_int(raw, "amount"))
    if t == "freeze":
        return FreezeEffect(
            type="freeze",
            target=_choice(raw, "target", FreezeTarget, "enemy_character"),  # type: ignore[arg-type]
            fizzle=fizzle,
        )
    if t == "combo":
        return ComboEffect(type="combo", effects=_parse_effects(raw.get("effects", [])))
    if t == "aura":
        return AuraEffect(type="aura", attack=_optional_int(raw, "attack", 0), health=_optional_int(raw, "health", 0))
    if t == "deathrattle":
        return DeathrattleEffect(type="deathrattle", effects=_parse_effects(raw.get("effects", [])))
    if t == "cost_reduction":
        card_type = raw.get("card_type")
        if card_type is not None and card_type not in ("unit", "spell", "equipment"):
            raise ContentError(f"Invalid card_type {card_type!r}")
        return CostReductionEffect(
            type="cost_reduction",
            amount=_require_int(raw, "amount"),
            card_type=card_type,  # type: ignore[arg-type]
        )
    logger.debug("Keeping unknown effect tag %r as a no-op", t)
    return UnknownEffect(type="unknown", tag=t, params={k: v for k, v in raw.items() if k != "type"})


def _parse_card(item: Mapping[str, object]) -> CardDefinition:
    ctype = _require_str(item, "type")
    unit_stats = None
    equipment_stats = None
    if ctype == "unit":
        raw = item.get("unit_stats")
        if not isinstance(raw, dict):
            raise ContentError(f"Unit card {item.get('id')!r} needs unit_stats")
        unit_stats = UnitStats(attack=_require_int(raw, "attack"), health=_require_int(raw, "health"))
    elif ctype == "equipment":
        raw = item.get("equipment_stats")
        if not isinstance(raw, dict):
            raise ContentError(f"Equipment card {item.get('id')!r} needs equipment_stats")
        equipment_stats = EquipmentStats(attack=_require_int(raw, "attack"), durability=_require_int(raw, "durability"))
    return CardDefinition(
        id=_require_str(item, "id"),
        name=_require_str(item, "name"),
        type=ctype,  # type: ignore[arg-type]
        cost=_require_int(item, "cost"),
        keywords=_parse_keywords(item.get("keywords", [])),
        effects=_parse_effects(item.get("effects", [])),
        unit_stats=unit_stats,
        equipment_stats=equipment_stats,
        text=str(item.get("text", "")),
    )


def _parse_hero(item: Mapping[str, object]) -> HeroDefinition:
    power = None
    raw_power = item.get("power")
    if isinstance(raw_power, dict):
        power = HeroPower(
            name=_require_str(raw_power, "name"),
            cost=_require_int(raw_power, "cost"),
            effects=_parse_effects(raw_power.get("effects", [])),
        )
    return HeroDefinition(
        id=_require_str(item, "id"),
        name=_require_str(item, "name"),
        health=_optional_int(item, "health", 30),
        attack=_optional_int(item, "attack", 0),
        armor=_optional_int(item, "armor", 0),
        power=power,
        passives=_parse_effects(item.get("passives", [])),
    )


class ContentService:
    def __init__(self, data_dir: Path, schema_dir: Path) -> None:
        self._data_dir = data_dir
        self._schema_dir = schema_dir

    def load_cards_db(self) -> CardDatabase:
        cards_path = self._data_dir / "cards.json"
        schema_path = self._schema_dir / "cards.schema.json"
        raw = _load_json(cards_path)
        schema = _load_schema(schema_path)
        validate_json(raw, schema, context=str(cards_path))
        return self.parse_cards_db(raw)

    @staticmethod
    def parse_cards_db(raw: object) -> CardDatabase:
        """Build a database from already-validated JSON data."""
        if not isinstance(raw, dict):
            raise ContentError("cards.json must be an object")
        raw_cards = raw.get("cards")
        if not isinstance(raw_cards, list):
            raise ContentError("cards.json.cards must be a list")

        cards: dict[str, CardDefinition] = {}
        for item in raw_cards:
            if not isinstance(item, dict):
                continue
            card = _parse_card(item)
            if card.id in cards:
                raise ContentError(f"Duplicate card id: {card.id}")
            cards[card.id] = card

        heroes: dict[str, HeroDefinition] = {}
        for item in raw.get("heroes", []) or []:
            if isinstance(item, dict):
                hero = _parse_hero(item)
                heroes[hero.id] = hero
        return CardDatabase(cards=cards, heroes=heroes)

    def validate_all(self) -> None:
        # Load is validation (schema + parse)
        _ = self.load_cards_db()
