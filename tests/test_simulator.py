from __future__ import annotations

import logging
import random

import pytest
from _helpers import blank_match, give, load_cards, put_unit, set_resources

from duelforge.engine import rules
from duelforge.engine.match import new_match
from duelforge.engine.types import DamageEffect
from duelforge.search.actions import Attack, EndTurn, PlayCard, Target
from duelforge.search.legal import legal_actions
from duelforge.search.simulator import apply_action
from duelforge.search.snapshot import Snapshot, from_live


def _card(snap: Snapshot, card_id: str) -> PlayCard:
    for c in snap.active_side.hand:
        if c.card_id == card_id:
            return PlayCard(card=c)
    raise AssertionError(f"{card_id} not in hand")


def _play(snap: Snapshot, card_id: str, target: Target | None = None, rng: random.Random | None = None) -> Snapshot:
    card = _card(snap, card_id).card
    return apply_action(snap, PlayCard(card=card, target=target), rng).snapshot


def test_apply_action_never_mutates_its_input() -> None:
    state = blank_match(load_cards())
    put_unit(state, 0, "recruit")
    put_unit(state, 1, "harvest_golem")
    give(state, 0, "arcane_volley")
    set_resources(state, 0, 2)
    snap = from_live(state, 0, 1)
    before = snap.clone()

    for action in legal_actions(snap):
        assert apply_action(snap, action).snapshot == apply_action(snap, action).snapshot
    assert snap == before


def test_divine_shield_absorbs_spell_damage() -> None:
    state = blank_match(load_cards())
    squire = put_unit(state, 1, "argent_squire")
    give(state, 0, "zap")
    give(state, 0, "zap")
    set_resources(state, 0, 2)
    snap = from_live(state, 0, 1)

    after = _play(snap, "zap", Target(1, squire.uid))
    (unit,) = after.sides[1].battlefield
    assert unit.health == 1
    assert not unit.has("Divine Shield")

    after = _play(after, "zap", Target(1, squire.uid))
    assert after.sides[1].battlefield == []
    assert after.sides[1].graveyard == 1


@pytest.mark.parametrize("damage", [0, 1, 2, 3])
def test_fading_health_bonus_leaves_survivors_alive(damage: int) -> None:
    state = blank_match(load_cards())
    unit = put_unit(state, 0, "recruit")
    give(state, 0, "power_word_shield")
    snap = from_live(state, 0, 1)

    snap = _play(snap, "power_word_shield", Target(0, unit.uid))
    buffed = snap.sides[0].find(unit.uid)
    assert buffed is not None
    assert (buffed.health, buffed.max_health) == (4, 4)
    buffed.health -= damage

    snap = apply_action(snap, EndTurn()).snapshot
    snap = apply_action(snap, EndTurn()).snapshot
    faded = snap.sides[0].find(unit.uid)
    assert faded is not None
    assert faded.max_health == 2
    assert faded.health == max(1, 2 - damage)


def test_reflect_returns_damage_to_attacker() -> None:
    state = blank_match(load_cards())
    brute = put_unit(state, 0, "recruit", attack=2, health=10, max_health=10)
    warden = put_unit(state, 1, "mirror_warden")
    snap = from_live(state, 0, 1)

    after = apply_action(snap, Attack(attacker=brute.uid, defender=Target(1, warden.uid))).snapshot
    assert after.sides[0].battlefield[0].health == 5
    assert after.sides[1].battlefield[0].health == 3


def test_reflect_ignores_damage_absorbed_by_divine_shield() -> None:
    state = blank_match(load_cards())
    brute = put_unit(state, 0, "recruit", attack=4, health=10, max_health=10)
    warden = put_unit(state, 1, "mirror_warden", keywords={"Reflect", "Divine Shield"})
    snap = from_live(state, 0, 1)

    after = apply_action(snap, Attack(attacker=brute.uid, defender=Target(1, warden.uid))).snapshot
    (mine,) = after.sides[0].battlefield
    (theirs,) = after.sides[1].battlefield
    assert theirs.health == 5
    assert not theirs.has("Divine Shield")
    assert mine.health == 7


def test_lifesteal_heals_the_hero() -> None:
    state = blank_match(load_cards())
    state.players[0].hero.health = 20
    leech = put_unit(state, 0, "blood_leech")
    snap = from_live(state, 0, 1)

    after = apply_action(snap, Attack(attacker=leech.uid, defender=Target(1))).snapshot
    assert after.sides[0].hero.health == 23
    assert after.sides[1].hero.health == 27


def test_overload_locks_next_turn_resources() -> None:
    state = blank_match(load_cards())
    give(state, 0, "lightning_bolt")
    snap = from_live(state, 0, 1)

    snap = _play(snap, "lightning_bolt", Target(1))
    assert snap.sides[1].hero.health == 27
    assert snap.sides[0].pending_overload == 1

    snap = apply_action(snap, EndTurn()).snapshot
    snap = apply_action(snap, EndTurn()).snapshot
    assert snap.active == 0
    assert snap.sides[0].cap == 2
    assert snap.sides[0].pool == 1


def test_combo_bonus_needs_an_earlier_card() -> None:
    state = blank_match(load_cards())
    give(state, 0, "zap")
    give(state, 0, "eviscerate")
    set_resources(state, 0, 3)
    snap = from_live(state, 0, 1)

    alone = _play(snap, "eviscerate", Target(1))
    assert alone.sides[1].hero.health == 28

    chained = _play(_play(snap, "zap", Target(1)), "eviscerate", Target(1))
    assert chained.sides[1].hero.health == 24


def test_unknown_effect_is_a_no_op() -> None:
    state = blank_match(load_cards())
    give(state, 0, "time_warp")
    set_resources(state, 0, 5)
    snap = from_live(state, 0, 1)

    after = _play(snap, "time_warp")
    assert after.active == 0
    assert after.turn == snap.turn
    assert after.sides[0].pool == 0
    assert after.sides[0].graveyard == 1
    assert after.sides[1] == snap.sides[1]


def test_deathrattle_summons_on_death() -> None:
    state = blank_match(load_cards())
    golem = put_unit(state, 1, "harvest_golem")
    give(state, 0, "fireball")
    set_resources(state, 0, 4)
    snap = from_live(state, 0, 1)

    after = _play(snap, "fireball", Target(1, golem.uid))
    (token,) = after.sides[1].battlefield
    assert token.name == "Damaged Golem"
    assert (token.attack, token.health) == (2, 1)
    assert after.sides[1].graveyard == 1


def test_aura_buffs_other_friendly_units() -> None:
    state = blank_match(load_cards())
    put_unit(state, 0, "recruit")
    give(state, 0, "rally_captain")
    set_resources(state, 0, 3)
    snap = from_live(state, 0, 1)

    after = _play(snap, "rally_captain")
    recruit, captain = after.sides[0].battlefield
    assert recruit.attack == 2
    assert captain.attack == 2


def test_random_effects_follow_the_rng() -> None:
    state = blank_match(load_cards())
    for _ in range(3):
        put_unit(state, 1, "recruit", health=5, max_health=5)
    give(state, 0, "wild_spark")
    snap = from_live(state, 0, 1)

    a = _play(snap, "wild_spark", rng=random.Random(11))
    b = _play(snap, "wild_spark", rng=random.Random(11))
    assert a == b
    enemy = a.sides[1]
    damaged = [u for u in enemy.battlefield if u.health < 5]
    assert len(damaged) + (1 if enemy.hero.health < 30 else 0) == 1


def test_end_turn_bookkeeping() -> None:
    state = blank_match(load_cards(), heroes=("warden", "cleric"))
    unit = put_unit(state, 0, "recruit", frozen=1, attacks_used=1)
    give(state, 0, "battle_fury")
    snap = from_live(state, 0, 1)
    snap = _play(snap, "battle_fury", Target(0, unit.uid))
    assert snap.sides[0].find(unit.uid).attack == 4

    after = apply_action(snap, EndTurn()).snapshot
    mine = after.sides[0].find(unit.uid)
    assert mine is not None
    assert mine.attack == 1
    assert mine.frozen == 0
    assert after.active == 1
    assert after.turn == snap.turn + 1
    foe = after.sides[1]
    assert (foe.cap, foe.pool) == (1, 1)
    assert foe.library == snap.sides[1].library - 1
    assert foe.hidden_hand == 1
    assert after.power_available
    assert after.entered_this_turn == set()


def test_random_walk_stays_within_legal_bounds() -> None:
    cards = load_cards()
    pool = [
        "recruit",
        "shieldbearer",
        "raptor_rider",
        "wolf_rider",
        "argent_squire",
        "whirlwind_adept",
        "mirror_warden",
        "blood_leech",
        "frost_pup",
        "harvest_golem",
        "zap",
        "arcane_volley",
        "wild_spark",
        "bandage",
        "rallying_cry",
        "polymorph",
        "lightning_bolt",
        "eviscerate",
        "call_to_arms",
        "fiery_axe",
    ]
    deck = [pool[i % len(pool)] for i in range(30)]
    state = new_match(cards, deck, list(reversed(deck)), seed=99, heroes=("pyromancer", "cleric"))
    for card_id in pool[10:17]:
        give(state, 0, card_id)
        give(state, 1, card_id)
    snap = from_live(state, 0, 1)
    rng = random.Random(5)

    for _ in range(300):
        actions = legal_actions(snap)
        action = actions[rng.randrange(len(actions))]
        snap = apply_action(snap, action, rng).snapshot
        for side in snap.sides:
            assert 0 <= side.pool <= side.cap <= snap.rules.max_resources
            assert len(side.battlefield) <= snap.rules.board_slots
            assert side.hand_size() <= snap.rules.max_hand
            assert side.hero.health <= side.hero.max_health
            for u in side.battlefield:
                assert 0 < u.health <= u.max_health
                assert u.attack >= 0
        for u in snap.active_side.battlefield:
            assert u.attacks_used <= rules.attack_allowance(u.keywords)
        if snap.is_terminal():
            break


def test_targeted_deathrattle_off_turn_does_nothing(caplog) -> None:
    state = blank_match(load_cards())
    victim = put_unit(
        state,
        1,
        "recruit",
        deathrattle=(DamageEffect(type="damage", amount=3, target="enemy_character"),),
    )
    give(state, 0, "zap")
    snap = from_live(state, 0, 1)

    with caplog.at_level(logging.DEBUG, logger="duelforge.search.simulator"):
        after = _play(snap, "zap", Target(1, victim.uid))

    assert after.sides[1].battlefield == []
    assert after.sides[0].hero.health == 30
    assert "resolved without a target" in caplog.text
