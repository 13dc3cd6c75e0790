"""Plain-data description of one hypothetical match state.

A :class:`Snapshot` is captured from the live match once per decision with
:func:`from_live` and is only ever read or cloned by the search. Nothing in
here holds a reference to a live entity.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from duelforge.engine import rules
from duelforge.engine.match import HeroState, MatchState, PlayerState, TimedBuff, UnitInstance
from duelforge.engine.types import AuraEffect, CardType, Duration, Effect


@dataclass(frozen=True)
class SimRules:
    board_slots: int = 7
    max_resources: int = 10
    max_hand: int = 10


@dataclass
class Modifier:
    attack: int
    health: int
    expiry: Duration
    owner: int  # side index whose turn boundary removes it


@dataclass(frozen=True)
class PowerRef:
    name: str
    cost: int
    effects: tuple[Effect, ...]


@dataclass(frozen=True)
class CardRef:
    uid: str
    card_id: str
    name: str
    cost: int
    type: CardType
    keywords: tuple[str, ...]
    effects: tuple[Effect, ...]
    unit_attack: int = 0
    unit_health: int = 0
    equipment_attack: int = 0
    equipment_durability: int = 0


@dataclass
class Equipment:
    card_id: str
    attack: int
    durability: int


@dataclass
class Unit:
    uid: str
    card_id: str
    name: str
    attack: int
    health: int
    max_health: int
    keywords: set[str]
    attacks_used: int = 0
    frozen: int = 0
    modifiers: list[Modifier] = field(default_factory=list)
    auras: tuple[AuraEffect, ...] = ()
    deathrattle: tuple[Effect, ...] = ()
    aura_attack: int = 0
    aura_health: int = 0

    def has(self, kw: str) -> bool:
        return kw in self.keywords

    def clone(self) -> "Unit":
        return Unit(
            uid=self.uid,
            card_id=self.card_id,
            name=self.name,
            attack=self.attack,
            health=self.health,
            max_health=self.max_health,
            keywords=set(self.keywords),
            attacks_used=self.attacks_used,
            frozen=self.frozen,
            modifiers=[Modifier(m.attack, m.health, m.expiry, m.owner) for m in self.modifiers],
            auras=self.auras,
            deathrattle=self.deathrattle,
            aura_attack=self.aura_attack,
            aura_health=self.aura_health,
        )


@dataclass
class Hero:
    health: int
    max_health: int
    armor: int = 0
    attack: int = 0
    equipment: Equipment | None = None
    power: PowerRef | None = None
    passives: tuple[Effect, ...] = ()
    keywords: set[str] = field(default_factory=set)
    attacks_used: int = 0
    frozen: int = 0
    modifiers: list[Modifier] = field(default_factory=list)

    def total_attack(self) -> int:
        bonus = self.equipment.attack if self.equipment is not None else 0
        return self.attack + bonus

    def clone(self) -> "Hero":
        eq = self.equipment
        return Hero(
            health=self.health,
            max_health=self.max_health,
            armor=self.armor,
            attack=self.attack,
            equipment=Equipment(eq.card_id, eq.attack, eq.durability) if eq is not None else None,
            power=self.power,
            passives=self.passives,
            keywords=set(self.keywords),
            attacks_used=self.attacks_used,
            frozen=self.frozen,
            modifiers=[Modifier(m.attack, m.health, m.expiry, m.owner) for m in self.modifiers],
        )


@dataclass
class Side:
    player: int
    hero: Hero
    battlefield: list[Unit]
    hand: list[CardRef]
    library: int
    graveyard: int = 0
    hidden_hand: int = 0
    pool: int = 0
    cap: int = 0
    pending_overload: int = 0
    cards_played: int = 0

    def hand_size(self) -> int:
        return len(self.hand) + self.hidden_hand

    def find(self, uid: str) -> Unit | None:
        for u in self.battlefield:
            if u.uid == uid:
                return u
        return None

    def clone(self) -> "Side":
        return Side(
            player=self.player,
            hero=self.hero.clone(),
            battlefield=[u.clone() for u in self.battlefield],
            hand=list(self.hand),  # CardRef is frozen
            library=self.library,
            graveyard=self.graveyard,
            hidden_hand=self.hidden_hand,
            pool=self.pool,
            cap=self.cap,
            pending_overload=self.pending_overload,
            cards_played=self.cards_played,
        )


@dataclass
class Snapshot:
    turn: int
    sides: list[Side]
    active: int = 0
    power_available: bool = True
    entered_this_turn: set[str] = field(default_factory=set)
    rules: SimRules = field(default_factory=SimRules)
    next_uid: int = 0

    @property
    def active_side(self) -> Side:
        return self.sides[self.active]

    @property
    def opponent_side(self) -> Side:
        return self.sides[1 - self.active]

    def is_terminal(self) -> bool:
        return any(s.hero.health <= 0 for s in self.sides)

    def entered(self, unit: Unit) -> bool:
        return unit.uid in self.entered_this_turn

    def summoning_sick(self, unit: Unit) -> bool:
        return rules.is_sick(unit.keywords, unit.uid in self.entered_this_turn)

    def new_uid(self) -> str:
        self.next_uid += 1
        return f"sim{self.next_uid}"

    def clone(self) -> "Snapshot":
        return Snapshot(
            turn=self.turn,
            sides=[s.clone() for s in self.sides],
            active=self.active,
            power_available=self.power_available,
            entered_this_turn=set(self.entered_this_turn),
            rules=self.rules,
            next_uid=self.next_uid,
        )


def _modifiers(buffs: list[TimedBuff], side_of: dict[int, int]) -> list[Modifier]:
    return [Modifier(b.attack, b.health, b.expiry, side_of[b.owner]) for b in buffs]


def _unit(u: UnitInstance, side_of: dict[int, int]) -> Unit:
    return Unit(
        uid=u.uid,
        card_id=u.card_id,
        name=u.name,
        attack=u.attack,
        health=u.health,
        max_health=u.max_health,
        keywords=set(u.keywords),
        attacks_used=u.attacks_used,
        frozen=u.frozen,
        modifiers=_modifiers(u.buffs, side_of),
        auras=u.auras,
        deathrattle=u.deathrattle,
        aura_attack=u.aura_attack,
        aura_health=u.aura_health,
    )


def _hero(h: HeroState, side_of: dict[int, int]) -> Hero:
    eq = h.equipment
    power = None
    if h.power is not None:
        power = PowerRef(name=h.power.name, cost=h.power.cost, effects=h.power.effects)
    return Hero(
        health=h.health,
        max_health=h.max_health,
        armor=h.armor,
        attack=h.attack,
        equipment=Equipment(eq.card_id, eq.attack, eq.durability) if eq is not None else None,
        power=power,
        passives=h.passives,
        keywords=set(h.keywords),
        attacks_used=h.attacks_used,
        frozen=h.frozen,
        modifiers=_modifiers(h.buffs, side_of),
    )


def _side(state: MatchState, player: int, ps: PlayerState, side_of: dict[int, int]) -> Side:
    hand: list[CardRef] = []
    for hc in ps.hand:
        card = state.cards.get(hc.card_id)
        us = card.unit_stats
        es = card.equipment_stats
        hand.append(
            CardRef(
                uid=hc.uid,
                card_id=card.id,
                name=card.name,
                cost=card.cost,
                type=card.type,
                keywords=tuple(card.keywords),
                effects=card.effects,
                unit_attack=us.attack if us else 0,
                unit_health=us.health if us else 0,
                equipment_attack=es.attack if es else 0,
                equipment_durability=es.durability if es else 0,
            )
        )
    return Side(
        player=player,
        hero=_hero(ps.hero, side_of),
        battlefield=[_unit(u, side_of) for u in ps.board],
        hand=hand,
        # Library identities are hidden information; only the count is copied.
        library=len(ps.deck),
        graveyard=len(ps.graveyard),
        pool=ps.resources,
        cap=ps.resource_cap,
        pending_overload=ps.pending_overload,
        cards_played=ps.cards_played,
    )


def from_live(state: MatchState, acting_player: int, opponent_player: int) -> Snapshot:
    """Deep, one-way copy of the live match as seen by `acting_player`.

    Side 0 of the result is always the acting player.
    """
    side_of = {acting_player: 0, opponent_player: 1}
    current = state.players[state.current_player].hero
    cfg = state.config
    return Snapshot(
        turn=state.turn,
        sides=[
            _side(state, acting_player, state.players[acting_player], side_of),
            _side(state, opponent_player, state.players[opponent_player], side_of),
        ],
        active=side_of[state.current_player],
        power_available=current.power is not None and not current.power_used,
        entered_this_turn=set(state.entered_this_turn),
        rules=SimRules(
            board_slots=cfg.board_slots,
            max_resources=cfg.max_resources,
            max_hand=cfg.max_hand,
        ),
    )
