from __future__ import annotations

import random
from dataclasses import dataclass, field
from typing import Iterable, Sequence

from . import rules
from .actions import Action, AttackAction, EndTurnAction, PlayCardAction, TargetRef, UsePowerAction
from .types import (
    ArmorEffect,
    AuraEffect,
    BuffEffect,
    CardDatabase,
    CardDefinition,
    CardType,
    ComboEffect,
    DamageEffect,
    DrawEffect,
    Duration,
    Effect,
    FreezeEffect,
    HealEffect,
    HeroDefinition,
    HeroPower,
    OverloadEffect,
    RestoreEffect,
    SummonEffect,
    TransformEffect,
    UnitTemplate,
    first_targeted,
)

Event = dict[str, object]

DEFAULT_HERO = HeroDefinition(id="default", name="Hero")


@dataclass(frozen=True)
class MatchConfig:
    starting_health: int = 30
    starting_hand: int = 3
    deck_size: int = 30
    board_slots: int = 7
    max_resources: int = 10
    max_hand: int = 10


@dataclass
class TimedBuff:
    attack: int
    health: int
    expiry: Duration
    owner: int  # player whose turn boundary removes it


@dataclass
class UnitInstance:
    uid: str
    card_id: str
    name: str
    attack: int
    health: int
    max_health: int
    keywords: set[str]
    attacks_used: int = 0
    frozen: int = 0
    buffs: list[TimedBuff] = field(default_factory=list)
    auras: tuple[AuraEffect, ...] = ()
    deathrattle: tuple[Effect, ...] = ()
    aura_attack: int = 0
    aura_health: int = 0

    def has(self, kw: str) -> bool:
        return kw in self.keywords


@dataclass
class EquipmentInstance:
    card_id: str
    attack: int
    durability: int


@dataclass
class HeroState:
    hero_id: str
    name: str
    health: int
    max_health: int
    armor: int = 0
    attack: int = 0
    equipment: EquipmentInstance | None = None
    power: HeroPower | None = None
    passives: tuple[Effect, ...] = ()
    power_used: bool = False
    keywords: set[str] = field(default_factory=set)
    attacks_used: int = 0
    frozen: int = 0
    buffs: list[TimedBuff] = field(default_factory=list)

    def total_attack(self) -> int:
        bonus = self.equipment.attack if self.equipment is not None else 0
        return self.attack + bonus


@dataclass
class HandCard:
    uid: str
    card_id: str


@dataclass
class PlayerState:
    hero: HeroState
    deck: list[str]
    hand: list[HandCard]
    board: list[UnitInstance] = field(default_factory=list)
    graveyard: list[str] = field(default_factory=list)
    resource_cap: int = 0
    resources: int = 0
    pending_overload: int = 0
    cards_played: int = 0
    turns_taken: int = 0  # used for "no draw on first turn" logic


@dataclass
class StepResult:
    ok: bool
    events: list[Event]
    error: str | None = None


@dataclass
class MatchState:
    cards: CardDatabase
    config: MatchConfig
    seed: int
    rng: random.Random
    players: list[PlayerState]
    current_player: int = 0
    turn: int = 1
    winner: int | None = None
    entered_this_turn: set[str] = field(default_factory=set)
    action_log: list[Action] = field(default_factory=list)
    event_log: list[Event] = field(default_factory=list)
    uid_counter: int = 0

    def opponent(self, player: int) -> int:
        return 1 - player

    def new_uid(self, prefix: str = "u") -> str:
        self.uid_counter += 1
        return f"{prefix}{self.uid_counter}"

    def find_unit(self, uid: str) -> tuple[int, UnitInstance] | None:
        for p_i, ps in enumerate(self.players):
            for u in ps.board:
                if u.uid == uid:
                    return p_i, u
        return None


def _shuffle(rng: random.Random, items: list[str]) -> None:
    rng.shuffle(items)


def _draw_one(state: MatchState, player: int) -> None:
    ps = state.players[player]
    if not ps.deck:
        return
    card_id = ps.deck.pop()
    if len(ps.hand) >= state.config.max_hand:
        ps.graveyard.append(card_id)
        state.event_log.append({"type": "CARD_BURNED", "player": player, "card_id": card_id})
        return
    ps.hand.append(HandCard(uid=state.new_uid("c"), card_id=card_id))
    state.event_log.append({"type": "CARD_DRAWN", "player": player, "card_id": card_id})


def _unit_from_card(state: MatchState, card: CardDefinition) -> UnitInstance:
    assert card.unit_stats is not None
    return UnitInstance(
        uid=state.new_uid(),
        card_id=card.id,
        name=card.name,
        attack=card.unit_stats.attack,
        health=card.unit_stats.health,
        max_health=card.unit_stats.health,
        keywords=set(card.keywords),
        auras=rules.auras_of(card.effects),
        deathrattle=rules.deathrattle_of(card.effects),
    )


def _unit_from_template(state: MatchState, tpl: UnitTemplate) -> UnitInstance:
    return UnitInstance(
        uid=state.new_uid("t"),
        card_id=f"token:{tpl.name}",
        name=tpl.name,
        attack=tpl.attack,
        health=tpl.health,
        max_health=tpl.health,
        keywords=set(tpl.keywords),
    )


def _place_unit(state: MatchState, player: int, unit: UnitInstance) -> bool:
    ps = state.players[player]
    if len(ps.board) >= state.config.board_slots:
        return False
    ps.board.append(unit)
    state.entered_this_turn.add(unit.uid)
    state.event_log.append(
        {"type": "UNIT_SUMMONED", "player": player, "uid": unit.uid, "card_id": unit.card_id}
    )
    return True


def _expire_buffs(state: MatchState, expiry: Duration, owner: int) -> None:
    for ps in state.players:
        for u in ps.board:
            keep: list[TimedBuff] = []
            for b in u.buffs:
                if b.expiry != expiry or b.owner != owner:
                    keep.append(b)
                    continue
                u.attack = max(0, u.attack - b.attack)
                u.health, u.max_health = rules.shrink_health(u.health, u.max_health, b.health)
                state.event_log.append({"type": "BUFF_EXPIRED", "uid": u.uid, "expiry": expiry})
            u.buffs = keep
        hero = ps.hero
        keep = []
        for b in hero.buffs:
            if b.expiry != expiry or b.owner != owner:
                keep.append(b)
                continue
            hero.attack = max(0, hero.attack - b.attack)
            hero.health, hero.max_health = rules.shrink_health(hero.health, hero.max_health, b.health)
        hero.buffs = keep


def _start_turn(state: MatchState, player: int) -> None:
    ps = state.players[player]
    ps.resource_cap = min(state.config.max_resources, ps.resource_cap + 1)
    ps.resources = max(0, ps.resource_cap - ps.pending_overload)
    ps.pending_overload = 0
    ps.cards_played = 0
    ps.hero.power_used = False
    ps.hero.attacks_used = 0
    for u in ps.board:
        u.attacks_used = 0
    state.entered_this_turn.clear()
    _expire_buffs(state, "until_your_next_turn", player)

    # No draw on a first turn; the starting hand covers it.
    if ps.turns_taken > 0:
        _draw_one(state, player)
    ps.turns_taken += 1

    state.event_log.append(
        {"type": "TURN_STARTED", "player": player, "turn": state.turn, "resources": ps.resources}
    )


def _damage_hero(state: MatchState, player: int, amount: int) -> int:
    if amount <= 0:
        return 0
    hero = state.players[player].hero
    hero.armor, rest = rules.absorb_armor(hero.armor, amount)
    hero.health = max(0, hero.health - rest)
    state.event_log.append({"type": "DAMAGE_HERO", "player": player, "amount": amount})
    return amount


def _damage_unit(state: MatchState, unit: UnitInstance, amount: int) -> int:
    if amount <= 0:
        return 0
    if unit.has("Divine Shield"):
        unit.keywords.discard("Divine Shield")
        state.event_log.append({"type": "DIVINE_SHIELD_POPPED", "uid": unit.uid})
        return 0
    unit.health = max(0, unit.health - amount)
    state.event_log.append({"type": "DAMAGE_UNIT", "uid": unit.uid, "amount": amount})
    return amount


def _damage_target(state: MatchState, t: TargetRef, amount: int) -> int:
    if t.kind == "hero":
        return _damage_hero(state, t.player, amount)
    found = state.find_unit(t.uid or "")
    if found is None:
        return 0
    return _damage_unit(state, found[1], amount)


def _heal_target(state: MatchState, t: TargetRef, amount: int) -> None:
    if amount <= 0:
        return
    if t.kind == "hero":
        hero = state.players[t.player].hero
        before = hero.health
        hero.health = min(hero.max_health, hero.health + amount)
        healed = hero.health - before
    else:
        found = state.find_unit(t.uid or "")
        if found is None:
            return
        u = found[1]
        before = u.health
        u.health = min(u.max_health, u.health + amount)
        healed = u.health - before
    if healed > 0:
        state.event_log.append({"type": "HEALED", "target": t.kind, "player": t.player, "amount": healed})


def _buff_target(state: MatchState, caster: int, t: TargetRef, eff: BuffEffect) -> None:
    timed = None
    if eff.duration != "permanent":
        timed = TimedBuff(attack=eff.attack, health=eff.health, expiry=eff.duration, owner=caster)
    if t.kind == "hero":
        hero = state.players[t.player].hero
        hero.attack += eff.attack
        hero.health += eff.health
        hero.max_health += eff.health
        if timed is not None:
            hero.buffs.append(timed)
    else:
        found = state.find_unit(t.uid or "")
        if found is None:
            return
        u = found[1]
        u.attack += eff.attack
        u.health += eff.health
        u.max_health += eff.health
        if timed is not None:
            u.buffs.append(timed)
    state.event_log.append(
        {
            "type": "BUFF_APPLIED",
            "player": t.player,
            "uid": t.uid,
            "attack": eff.attack,
            "health": eff.health,
            "duration": eff.duration,
        }
    )


def _freeze_target(state: MatchState, t: TargetRef) -> None:
    turns = rules.freeze_turns(t.player, state.current_player)
    if t.kind == "hero":
        hero = state.players[t.player].hero
        hero.frozen = max(hero.frozen, turns)
    else:
        found = state.find_unit(t.uid or "")
        if found is None:
            return
        found[1].frozen = max(found[1].frozen, turns)
    state.event_log.append({"type": "FROZEN", "player": t.player, "uid": t.uid})


def _characters(state: MatchState, player: int, *, hero: bool, units: bool, hide_stealth: bool) -> list[TargetRef]:
    out: list[TargetRef] = []
    if hero:
        out.append(TargetRef.hero_target(player))
    if units:
        for u in state.players[player].board:
            if hide_stealth and u.has("Stealth"):
                continue
            out.append(TargetRef.unit_target(player, u.uid))
    return out


def _single_targets(state: MatchState, player: int, eff: Effect) -> list[TargetRef]:
    enemy = state.opponent(player)
    target = getattr(eff, "target", None)
    if target == "any":
        return _characters(state, player, hero=True, units=True, hide_stealth=False) + _characters(
            state, enemy, hero=True, units=True, hide_stealth=True
        )
    if target == "enemy_character":
        return _characters(state, enemy, hero=True, units=True, hide_stealth=True)
    if target == "enemy_unit":
        return _characters(state, enemy, hero=False, units=True, hide_stealth=True)
    if target == "friendly_character":
        return _characters(state, player, hero=True, units=True, hide_stealth=False)
    if target == "friendly_unit":
        return _characters(state, player, hero=False, units=True, hide_stealth=False)
    if target == "any_unit":
        return _characters(state, player, hero=False, units=True, hide_stealth=False) + _characters(
            state, enemy, hero=False, units=True, hide_stealth=True
        )
    return []


def _area_targets(state: MatchState, player: int, target: str) -> list[TargetRef]:
    enemy = state.opponent(player)
    if target in ("all_enemies", "random_enemy"):
        return _characters(state, enemy, hero=True, units=True, hide_stealth=False)
    if target == "all_enemy_units":
        return _characters(state, enemy, hero=False, units=True, hide_stealth=False)
    if target == "all_units":
        return _characters(state, player, hero=False, units=True, hide_stealth=False) + _characters(
            state, enemy, hero=False, units=True, hide_stealth=False
        )
    if target in ("all_friendly", "allies"):
        return _characters(state, player, hero=True, units=True, hide_stealth=False)
    if target == "self_hero":
        return [TargetRef.hero_target(player)]
    if target == "enemy_hero":
        return [TargetRef.hero_target(enemy)]
    return []


def get_valid_targets_for_play(state: MatchState, player: int, card_uid: str) -> list[TargetRef]:
    """Returns all valid targets for playing the hand card right now.

    If the card needs no target, returns an empty list.
    """
    ps = state.players[player]
    for hc in ps.hand:
        if hc.uid == card_uid:
            card = state.cards.get(hc.card_id)
            eff = first_targeted(rules.on_play_effects(card.type, card.effects))
            if eff is None:
                return []
            return _single_targets(state, player, eff)
    return []


def get_valid_targets_for_power(state: MatchState, player: int) -> list[TargetRef]:
    power = state.players[player].hero.power
    if power is None:
        return []
    eff = first_targeted(power.effects)
    if eff is None:
        return []
    return _single_targets(state, player, eff)


def _resolve_effects(
    state: MatchState,
    player: int,
    effects: Sequence[Effect],
    target: TargetRef | None,
    *,
    combo_active: bool = False,
) -> None:
    ps = state.players[player]
    for eff in effects:
        if isinstance(eff, ComboEffect):
            if combo_active:
                _resolve_effects(state, player, eff.effects, target, combo_active=False)
            continue
        if isinstance(eff, OverloadEffect):
            ps.pending_overload += eff.amount
            continue
        if isinstance(eff, DrawEffect):
            for _ in range(max(0, eff.count)):
                _draw_one(state, player)
            continue
        if isinstance(eff, RestoreEffect):
            ps.resources = min(ps.resource_cap, ps.resources + eff.amount)
            continue
        if isinstance(eff, ArmorEffect):
            ps.hero.armor += max(0, eff.amount)
            continue
        if isinstance(eff, SummonEffect):
            for _ in range(max(0, eff.count)):
                if not _place_unit(state, player, _unit_from_template(state, eff.unit)):
                    break
            continue
        if not isinstance(eff, (DamageEffect, HealEffect, BuffEffect, TransformEffect, FreezeEffect)):
            # aura / deathrattle / unknown: nothing happens on play
            continue

        if eff.target in ("random_enemy",):
            pool = _area_targets(state, player, eff.target)
            chosen = [state.rng.choice(pool)] if pool else []
        elif eff.target in ("any", "enemy_character", "enemy_unit", "friendly_character", "friendly_unit", "any_unit"):
            if target is None or target not in _single_targets(state, player, eff):
                continue
            chosen = [target]
        else:
            chosen = _area_targets(state, player, eff.target)

        for t in chosen:
            if isinstance(eff, DamageEffect):
                _damage_target(state, t, eff.amount)
            elif isinstance(eff, HealEffect):
                _heal_target(state, t, eff.amount)
            elif isinstance(eff, BuffEffect):
                _buff_target(state, player, t, eff)
            elif isinstance(eff, FreezeEffect):
                _freeze_target(state, t)
            elif isinstance(eff, TransformEffect) and t.kind == "unit":
                _transform(state, t, eff.into)


def _transform(state: MatchState, t: TargetRef, tpl: UnitTemplate) -> None:
    board = state.players[t.player].board
    for i, u in enumerate(board):
        if u.uid != t.uid:
            continue
        board[i] = UnitInstance(
            uid=u.uid,
            card_id=f"token:{tpl.name}",
            name=tpl.name,
            attack=tpl.attack,
            health=tpl.health,
            max_health=tpl.health,
            keywords=set(tpl.keywords),
            attacks_used=u.attacks_used,
        )
        state.event_log.append({"type": "TRANSFORMED", "uid": u.uid, "into": tpl.name})
        return


def _refresh_auras(state: MatchState) -> None:
    for ps in state.players:
        for u in ps.board:
            want_atk = 0
            want_hp = 0
            for other in ps.board:
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


def _remove_dead(state: MatchState) -> None:
    # Deathrattles can kill more units; bounded so a loop of tokens cannot hang.
    for _ in range(16):
        dying: list[tuple[int, UnitInstance]] = []
        for p_i, ps in enumerate(state.players):
            for u in ps.board:
                if u.health <= 0:
                    dying.append((p_i, u))
        if not dying:
            break
        for p_i, u in dying:
            ps = state.players[p_i]
            ps.board = [c for c in ps.board if c.uid != u.uid]
            ps.graveyard.append(u.card_id)
            state.entered_this_turn.discard(u.uid)
            state.event_log.append({"type": "UNIT_DIED", "player": p_i, "uid": u.uid, "card_id": u.card_id})
        for p_i, u in dying:
            if u.deathrattle:
                _resolve_effects(state, p_i, u.deathrattle, None)
    _refresh_auras(state)


def _check_winner(state: MatchState) -> None:
    if state.winner is not None:
        return
    p0 = state.players[0].hero.health
    p1 = state.players[1].hero.health
    if p0 <= 0 and p1 <= 0:
        # Deterministic tie-break: current player loses (so last attacker wins)
        state.winner = state.opponent(state.current_player)
        state.event_log.append({"type": "GAME_ENDED", "winner": state.winner, "reason": "double_ko"})
    elif p0 <= 0:
        state.winner = 1
        state.event_log.append({"type": "GAME_ENDED", "winner": 1, "reason": "health_0"})
    elif p1 <= 0:
        state.winner = 0
        state.event_log.append({"type": "GAME_ENDED", "winner": 0, "reason": "health_0"})


def _has_taunt(ps: PlayerState) -> bool:
    return any(u.has("Taunt") and not u.has("Stealth") for u in ps.board)


def _valid_attack_targets(state: MatchState, attacker_player: int, hero_allowed: bool = True) -> list[TargetRef]:
    defender = state.opponent(attacker_player)
    dps = state.players[defender]
    targets: list[TargetRef] = []
    taunt_only = _has_taunt(dps)
    for u in dps.board:
        if u.has("Stealth"):
            continue
        if taunt_only and not u.has("Taunt"):
            continue
        targets.append(TargetRef.unit_target(defender, u.uid))
    if not taunt_only and hero_allowed:
        targets.append(TargetRef.hero_target(defender))
    return targets


def _check_target(state: MatchState, player: int, effects: Sequence[Effect], card_type: CardType | None, target: TargetRef | None) -> str | None:
    eff = first_targeted(effects)
    if eff is None:
        return None
    candidates = _single_targets(state, player, eff)
    if target is None:
        if candidates:
            return "Select a target."
        if rules.requires_target(card_type, eff):
            return "No valid target."
        return None
    if target not in candidates:
        return "Invalid target."
    return None


def _play_card(state: MatchState, action: PlayCardAction) -> StepResult:
    if action.player != state.current_player:
        return StepResult(ok=False, events=[], error="Not your turn.")
    ps = state.players[action.player]
    idx = next((i for i, hc in enumerate(ps.hand) if hc.uid == action.card_uid), None)
    if idx is None:
        return StepResult(ok=False, events=[], error="Card not in hand.")

    card_id = ps.hand[idx].card_id
    card = state.cards.get(card_id)
    cost = rules.effective_cost(card.cost, card.type, ps.hero.passives)
    if cost > ps.resources:
        return StepResult(ok=False, events=[], error="Not enough resources.")
    if card.type == "unit":
        if card.unit_stats is None:
            return StepResult(ok=False, events=[], error="Invalid unit definition.")
        if len(ps.board) >= state.config.board_slots:
            return StepResult(ok=False, events=[], error="Board is full.")
    if card.type == "equipment" and card.equipment_stats is None:
        return StepResult(ok=False, events=[], error="Invalid equipment definition.")

    on_play = rules.on_play_effects(card.type, card.effects)
    err = _check_target(state, action.player, on_play, card.type, action.target)
    if err is not None:
        return StepResult(ok=False, events=[], error=err)

    mark = len(state.event_log)
    combo_active = ps.cards_played > 0
    # Pay + remove from hand
    ps.resources -= cost
    ps.hand.pop(idx)
    state.event_log.append({"type": "CARD_PLAYED", "player": action.player, "card_id": card_id})

    if card.type == "unit":
        _place_unit(state, action.player, _unit_from_card(state, card))
    elif card.type == "equipment":
        assert card.equipment_stats is not None
        old = ps.hero.equipment
        if old is not None:
            ps.graveyard.append(old.card_id)
            state.event_log.append({"type": "EQUIPMENT_REPLACED", "player": action.player, "card_id": old.card_id})
        ps.hero.equipment = EquipmentInstance(
            card_id=card.id,
            attack=card.equipment_stats.attack,
            durability=card.equipment_stats.durability,
        )
    else:
        ps.graveyard.append(card_id)

    _resolve_effects(state, action.player, on_play, action.target, combo_active=combo_active)
    ps.cards_played += 1
    _remove_dead(state)
    _check_winner(state)
    return StepResult(ok=True, events=state.event_log[mark:])


def _use_power(state: MatchState, action: UsePowerAction) -> StepResult:
    if action.player != state.current_player:
        return StepResult(ok=False, events=[], error="Not your turn.")
    ps = state.players[action.player]
    power = ps.hero.power
    if power is None:
        return StepResult(ok=False, events=[], error="Hero has no power.")
    if ps.hero.power_used:
        return StepResult(ok=False, events=[], error="Power already used.")
    if power.cost > ps.resources:
        return StepResult(ok=False, events=[], error="Not enough resources.")
    err = _check_target(state, action.player, power.effects, None, action.target)
    if err is not None:
        return StepResult(ok=False, events=[], error=err)

    mark = len(state.event_log)
    ps.resources -= power.cost
    ps.hero.power_used = True
    state.event_log.append({"type": "POWER_USED", "player": action.player, "power": power.name})
    _resolve_effects(state, action.player, power.effects, action.target)
    _remove_dead(state)
    _check_winner(state)
    return StepResult(ok=True, events=state.event_log[mark:])


def _attack(state: MatchState, action: AttackAction) -> StepResult:
    if action.player != state.current_player:
        return StepResult(ok=False, events=[], error="Not your turn.")
    ps = state.players[action.player]
    enemy = state.opponent(action.player)
    eps = state.players[enemy]

    unit: UnitInstance | None = None
    if action.attacker_uid is None:
        hero = ps.hero
        if hero.total_attack() <= 0:
            return StepResult(ok=False, events=[], error="Hero has no attack.")
        if hero.frozen > 0:
            return StepResult(ok=False, events=[], error="Frozen.")
        if hero.attacks_used >= 1:
            return StepResult(ok=False, events=[], error="Already attacked.")
        atk = hero.total_attack()
        keywords: set[str] = hero.keywords
        hero_allowed = True
    else:
        unit = next((u for u in ps.board if u.uid == action.attacker_uid), None)
        if unit is None:
            return StepResult(ok=False, events=[], error="No such unit.")
        entered = unit.uid in state.entered_this_turn
        if rules.is_sick(unit.keywords, entered):
            return StepResult(ok=False, events=[], error="Summoning sickness.")
        if unit.frozen > 0:
            return StepResult(ok=False, events=[], error="Frozen.")
        if unit.attacks_used >= rules.attack_allowance(unit.keywords):
            return StepResult(ok=False, events=[], error="Already attacked.")
        if unit.attack <= 0:
            return StepResult(ok=False, events=[], error="Unit has no attack.")
        atk = unit.attack
        keywords = unit.keywords
        hero_allowed = rules.may_attack_hero(unit.keywords, entered)

    valid_targets = _valid_attack_targets(state, action.player, hero_allowed)
    if action.target not in valid_targets:
        return StepResult(ok=False, events=[], error="Invalid target (Taunt rule?).")

    mark = len(state.event_log)
    if action.target.kind == "hero":
        defender_hero = eps.hero
        retaliation = defender_hero.equipment.attack if defender_hero.equipment is not None else 0
        defender_keywords: set[str] = defender_hero.keywords
    else:
        defender = next(u for u in eps.board if u.uid == action.target.uid)
        retaliation = defender.attack
        defender_keywords = defender.keywords

    dealt = _damage_target(state, action.target, atk)
    # Reflect returns only what got through; a popped Divine Shield reflects nothing.
    if "Reflect" in defender_keywords:
        retaliation += dealt
    attacker_ref = (
        TargetRef.hero_target(action.player)
        if unit is None
        else TargetRef.unit_target(action.player, unit.uid)
    )
    dealt_back = _damage_target(state, attacker_ref, retaliation)

    if "Lifesteal" in keywords and dealt > 0:
        _heal_target(state, TargetRef.hero_target(action.player), dealt)
    if "Lifesteal" in defender_keywords and dealt_back > 0:
        _heal_target(state, TargetRef.hero_target(enemy), dealt_back)
    if "Freeze" in keywords and dealt > 0:
        _freeze_target(state, action.target)
    if "Freeze" in defender_keywords and dealt_back > 0:
        _freeze_target(state, attacker_ref)

    if action.target.kind == "hero" and eps.hero.equipment is not None:
        _wear_equipment(state, enemy)
    if unit is None:
        ps.hero.attacks_used += 1
        _wear_equipment(state, action.player)
    else:
        unit.attacks_used += 1
        unit.keywords.discard("Stealth")

    state.event_log.append(
        {
            "type": "ATTACK",
            "player": action.player,
            "attacker": action.attacker_uid,
            "target": action.target.uid,
            "dealt": dealt,
            "dealt_back": dealt_back,
        }
    )
    _remove_dead(state)
    _check_winner(state)
    return StepResult(ok=True, events=state.event_log[mark:])


def _wear_equipment(state: MatchState, player: int) -> None:
    ps = state.players[player]
    eq = ps.hero.equipment
    if eq is None:
        return
    eq.durability -= 1
    if eq.durability <= 0:
        ps.hero.equipment = None
        ps.graveyard.append(eq.card_id)
        state.event_log.append({"type": "EQUIPMENT_BROKEN", "player": player, "card_id": eq.card_id})


def _end_turn(state: MatchState, action: EndTurnAction) -> StepResult:
    if action.player != state.current_player:
        return StepResult(ok=False, events=[], error="Not your turn.")
    mark = len(state.event_log)
    ps = state.players[action.player]
    _expire_buffs(state, "this_turn", action.player)
    ps.hero.frozen = max(0, ps.hero.frozen - 1)
    for u in ps.board:
        u.frozen = max(0, u.frozen - 1)
    state.event_log.append({"type": "TURN_ENDED", "player": action.player})
    state.current_player = state.opponent(state.current_player)
    state.turn += 1
    _start_turn(state, state.current_player)
    return StepResult(ok=True, events=state.event_log[mark:])


def step(state: MatchState, action: Action) -> StepResult:
    """Apply a single action to the match state.

    This mutates `state` in-place but remains deterministic for a given
    (seed, initial decks, action sequence).
    """
    if state.winner is not None:
        return StepResult(ok=False, events=[], error="Match already ended.")

    # Logged before validation so replay sees every attempted action.
    state.action_log.append(action)

    if isinstance(action, PlayCardAction):
        return _play_card(state, action)
    if isinstance(action, UsePowerAction):
        return _use_power(state, action)
    if isinstance(action, AttackAction):
        return _attack(state, action)
    if isinstance(action, EndTurnAction):
        return _end_turn(state, action)
    return StepResult(ok=False, events=[], error="Unknown action.")


def _new_hero(hero: HeroDefinition, cfg: MatchConfig) -> HeroState:
    health = hero.health if hero is not DEFAULT_HERO else cfg.starting_health
    return HeroState(
        hero_id=hero.id,
        name=hero.name,
        health=health,
        max_health=health,
        armor=hero.armor,
        attack=hero.attack,
        power=hero.power,
        passives=hero.passives,
    )


def new_match(
    cards: CardDatabase,
    deck0: Sequence[str],
    deck1: Sequence[str],
    seed: int,
    config: MatchConfig | None = None,
    heroes: tuple[str, str] | None = None,
) -> MatchState:
    cfg = config or MatchConfig()
    if len(deck0) != cfg.deck_size or len(deck1) != cfg.deck_size:
        raise ValueError(f"Decks must be exactly {cfg.deck_size} cards.")

    rng = random.Random(seed)
    d0 = list(deck0)
    d1 = list(deck1)
    _shuffle(rng, d0)
    _shuffle(rng, d1)

    h0, h1 = (cards.hero(heroes[0]), cards.hero(heroes[1])) if heroes else (DEFAULT_HERO, DEFAULT_HERO)
    p0 = PlayerState(hero=_new_hero(h0, cfg), deck=d0, hand=[])
    p1 = PlayerState(hero=_new_hero(h1, cfg), deck=d1, hand=[])

    state = MatchState(cards=cards, config=cfg, seed=seed, rng=rng, players=[p0, p1])
    # Starting hands
    for _ in range(cfg.starting_hand):
        _draw_one(state, 0)
        _draw_one(state, 1)

    # Start player 0's turn (no extra draw on first turn)
    _start_turn(state, 0)
    state.current_player = 0
    return state


def replay(
    cards: CardDatabase,
    deck0: Sequence[str],
    deck1: Sequence[str],
    seed: int,
    actions: Iterable[Action],
    config: MatchConfig | None = None,
    heroes: tuple[str, str] | None = None,
) -> MatchState:
    state = new_match(cards=cards, deck0=deck0, deck1=deck1, seed=seed, config=config, heroes=heroes)
    for a in actions:
        step(state, a)
        if state.winner is not None:
            break
    return state


def get_valid_attack_targets(state: MatchState, attacker_player: int, attacker_uid: str | None = None) -> list[TargetRef]:
    hero_allowed = True
    if attacker_uid is not None:
        found = state.find_unit(attacker_uid)
        if found is not None:
            hero_allowed = rules.may_attack_hero(found[1].keywords, attacker_uid in state.entered_this_turn)
    return _valid_attack_targets(state, attacker_player, hero_allowed)
