from __future__ import annotations

import pytest
from _helpers import load_cards

from duelforge.engine.types import ComboEffect, DeathrattleEffect, UnknownEffect
from duelforge.paths import get_paths
from duelforge.services.content import ContentError, ContentService


def test_content_schemas_validate() -> None:
    paths = get_paths()
    content = ContentService(paths.data_dir, paths.schema_dir)
    content.validate_all()


def test_unknown_effect_tags_load_as_no_op_descriptors() -> None:
    cards = load_cards()
    warp = cards.get("time_warp")
    assert len(warp.effects) == 1
    eff = warp.effects[0]
    assert isinstance(eff, UnknownEffect)
    assert eff.tag == "extra_turn"


def test_nested_effects_are_parsed() -> None:
    cards = load_cards()
    evis = cards.get("eviscerate")
    assert isinstance(evis.effects[1], ComboEffect)
    golem = cards.get("harvest_golem")
    assert isinstance(golem.effects[0], DeathrattleEffect)
    assert golem.effects[0].effects[0].unit.name == "Damaged Golem"  # type: ignore[union-attr]


def test_heroes_are_loaded() -> None:
    cards = load_cards()
    warden = cards.hero("warden")
    assert warden.power is not None
    assert warden.power.cost == 2
    assert cards.hero("artificer").passives


def test_invalid_target_is_rejected() -> None:
    raw = {
        "cards": [
            {
                "id": "bad",
                "name": "Bad",
                "type": "spell",
                "cost": 1,
                "effects": [{"type": "damage", "amount": 1, "target": "everyone"}],
            }
        ]
    }
    with pytest.raises(ContentError):
        ContentService.parse_cards_db(raw)


def test_schema_rejects_unit_without_stats(tmp_path) -> None:
    paths = get_paths()
    (tmp_path / "cards.json").write_text(
        '{"cards": [{"id": "ghost", "name": "Ghost", "type": "unit", "cost": 1}]}', encoding="utf-8"
    )
    content = ContentService(tmp_path, paths.schema_dir)
    with pytest.raises(ContentError, match="Schema validation failed"):
        content.load_cards_db()
