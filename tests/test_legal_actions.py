from __future__ import annotations

from _helpers import blank_match, give, load_cards, put_unit, set_resources

from duelforge.engine.actions import PlayCardAction
from duelforge.engine.match import step
from duelforge.engine.types import DamageEffect
from duelforge.search.actions import Attack, EndTurn, PlayCard, Target, UsePower
from duelforge.search.legal import legal_actions
from duelforge.search.snapshot import CardRef, from_live


def _plays(actions: list) -> list[PlayCard]:
    return [a for a in actions if isinstance(a, PlayCard)]


def _attacks(actions: list, attacker: str | None) -> list[Attack]:
    return [a for a in actions if isinstance(a, Attack) and a.attacker == attacker]


def test_end_turn_only_when_nothing_else_is_possible() -> None:
    state = blank_match(load_cards())
    assert legal_actions(from_live(state, 0, 1)) == [EndTurn()]


def test_end_turn_is_always_last() -> None:
    state = blank_match(load_cards())
    put_unit(state, 0, "recruit")
    give(state, 0, "zap")
    actions = legal_actions(from_live(state, 0, 1))
    assert len(actions) > 1
    assert actions[-1] == EndTurn()
    assert EndTurn() not in actions[:-1]


def test_rush_unit_may_only_attack_units_on_entry() -> None:
    state = blank_match(load_cards())
    enemy = put_unit(state, 1, "recruit")
    uid = give(state, 0, "raptor_rider")
    set_resources(state, 0, 3)
    assert step(state, PlayCardAction(player=0, card_uid=uid)).ok
    rider = state.players[0].board[0]

    attacks = _attacks(legal_actions(from_live(state, 0, 1)), rider.uid)
    assert [a.defender for a in attacks] == [Target(1, enemy.uid)]


def test_taunt_restricts_defenders() -> None:
    state = blank_match(load_cards())
    mine = put_unit(state, 0, "recruit")
    put_unit(state, 1, "recruit")
    wall = put_unit(state, 1, "shieldbearer")

    attacks = _attacks(legal_actions(from_live(state, 0, 1)), mine.uid)
    assert [a.defender for a in attacks] == [Target(1, wall.uid)]


def test_stealthed_units_cannot_be_attacked() -> None:
    state = blank_match(load_cards())
    mine = put_unit(state, 0, "recruit")
    put_unit(state, 1, "shadow_stalker")

    attacks = _attacks(legal_actions(from_live(state, 0, 1)), mine.uid)
    assert [a.defender for a in attacks] == [Target(1)]


def test_unaffordable_cards_are_skipped() -> None:
    state = blank_match(load_cards())
    give(state, 0, "fireball")
    assert _plays(legal_actions(from_live(state, 0, 1))) == []


def test_heal_needs_someone_injured() -> None:
    state = blank_match(load_cards())
    give(state, 0, "bandage")
    assert _plays(legal_actions(from_live(state, 0, 1))) == []

    state.players[0].hero.health = 25
    (play,) = _plays(legal_actions(from_live(state, 0, 1)))
    assert play.target == Target(0)


def test_restore_needs_spent_resources() -> None:
    state = blank_match(load_cards())
    give(state, 0, "innervate")
    set_resources(state, 0, 3)
    assert _plays(legal_actions(from_live(state, 0, 1))) == []

    state.players[0].resources = 1
    assert len(_plays(legal_actions(from_live(state, 0, 1)))) == 1


def test_draw_from_empty_library_is_pruned() -> None:
    state = blank_match(load_cards())
    give(state, 0, "arcane_intellect")
    set_resources(state, 0, 3)
    assert len(_plays(legal_actions(from_live(state, 0, 1)))) == 1

    state.players[0].deck.clear()
    assert _plays(legal_actions(from_live(state, 0, 1))) == []


def test_windfury_allows_a_second_attack() -> None:
    state = blank_match(load_cards())
    adept = put_unit(state, 0, "whirlwind_adept", attacks_used=1)
    assert _attacks(legal_actions(from_live(state, 0, 1)), adept.uid)

    adept.attacks_used = 2
    assert _attacks(legal_actions(from_live(state, 0, 1)), adept.uid) == []


def test_frozen_units_cannot_attack() -> None:
    state = blank_match(load_cards())
    put_unit(state, 0, "recruit", frozen=1)
    assert legal_actions(from_live(state, 0, 1)) == [EndTurn()]


def test_targeted_spell_without_targets_is_excluded() -> None:
    state = blank_match(load_cards())
    give(state, 0, "polymorph")
    set_resources(state, 0, 4)
    assert _plays(legal_actions(from_live(state, 0, 1))) == []

    victim = put_unit(state, 1, "blood_leech")
    (play,) = _plays(legal_actions(from_live(state, 0, 1)))
    assert play.target == Target(1, victim.uid)


def test_battlecry_without_targets_fizzles() -> None:
    state = blank_match(load_cards())
    snap = from_live(state, 0, 1)
    snap.sides[0].hand.append(
        CardRef(
            uid="c99",
            card_id="sniper",
            name="Sniper",
            cost=1,
            type="unit",
            keywords=(),
            effects=(DamageEffect(type="damage", amount=2, target="enemy_unit"),),
            unit_attack=1,
            unit_health=1,
        )
    )
    (play,) = _plays(legal_actions(snap))
    assert play.target is None


def test_full_board_blocks_units() -> None:
    state = blank_match(load_cards())
    for _ in range(7):
        put_unit(state, 0, "recruit", fresh=True)
    give(state, 0, "recruit")
    assert _plays(legal_actions(from_live(state, 0, 1))) == []


def test_cost_reduction_passive_applies() -> None:
    state = blank_match(load_cards(), heroes=("artificer", "warden"))
    give(state, 0, "fiery_axe")
    set_resources(state, 0, 2)
    actions = legal_actions(from_live(state, 0, 1))
    assert len(_plays(actions)) == 1
    assert any(isinstance(a, UsePower) for a in actions)


def test_hero_power_is_offered_once() -> None:
    state = blank_match(load_cards(), heroes=("warden", "warden"))
    set_resources(state, 0, 2)
    snap = from_live(state, 0, 1)
    assert UsePower() in legal_actions(snap)

    snap.power_available = False
    assert UsePower() not in legal_actions(snap)


def test_legal_actions_is_pure() -> None:
    state = blank_match(load_cards())
    put_unit(state, 0, "whirlwind_adept")
    put_unit(state, 1, "shieldbearer")
    give(state, 0, "zap")
    give(state, 0, "eviscerate")
    set_resources(state, 0, 5)
    snap = from_live(state, 0, 1)
    before = snap.clone()

    first = legal_actions(snap)
    second = legal_actions(snap)
    assert first == second
    assert snap == before


def test_terminal_snapshot_only_ends_turn() -> None:
    state = blank_match(load_cards())
    put_unit(state, 0, "recruit")
    snap = from_live(state, 0, 1)
    snap.sides[1].hero.health = 0
    assert legal_actions(snap) == [EndTurn()]
