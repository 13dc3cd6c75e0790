"""Static position scoring.

A position is reduced to a fixed-length feature row (always from one side's
point of view) and scored as a weighted sum. Keeping the score linear lets
the numeric backends batch many rows at once and agree to float tolerance.
"""

from __future__ import annotations

from .snapshot import Side, Snapshot

WIN_SCORE = 1000.0

FEATURES: tuple[str, ...] = (
    "own_health",
    "opp_health",
    "own_armor",
    "opp_armor",
    "own_hand",
    "opp_hand",
    "own_units",
    "opp_units",
    "own_unit_attack",
    "opp_unit_attack",
    "own_unit_health",
    "opp_unit_health",
    "own_equipment",
    "opp_equipment",
    "own_graveyard",
    "opp_graveyard",
    "pool",
    "own_taunt",
    "opp_taunt",
    "own_frozen",
    "opp_frozen",
    "own_overload",
    "opp_overload",
)

WEIGHTS: tuple[float, ...] = (
    5.0,
    -5.0,
    3.0,
    -3.0,
    1.0,
    -1.0,
    3.0,
    -3.0,
    0.5,
    -0.5,
    0.25,
    -0.25,
    2.0,
    -2.0,
    0.5,
    -0.5,
    # Unspent resources score a little so empty plays are not preferred.
    0.3,
    2.0,
    -2.0,
    -2.0,
    2.0,
    -1.0,
    1.0,
)

assert len(FEATURES) == len(WEIGHTS)


def _frozen(side: Side) -> int:
    n = 1 if side.hero.frozen > 0 else 0
    return n + sum(1 for u in side.battlefield if u.frozen > 0)


def _taunts(side: Side) -> int:
    return sum(1 for u in side.battlefield if u.has("Taunt"))


def features(snapshot: Snapshot, perspective: int = 0) -> tuple[float, ...]:
    me = snapshot.sides[perspective]
    foe = snapshot.sides[1 - perspective]
    return (
        float(me.hero.health),
        float(foe.hero.health),
        float(me.hero.armor),
        float(foe.hero.armor),
        float(me.hand_size()),
        float(foe.hand_size()),
        float(len(me.battlefield)),
        float(len(foe.battlefield)),
        float(sum(u.attack for u in me.battlefield)),
        float(sum(u.attack for u in foe.battlefield)),
        float(sum(u.health for u in me.battlefield)),
        float(sum(u.health for u in foe.battlefield)),
        1.0 if me.hero.equipment is not None else 0.0,
        1.0 if foe.hero.equipment is not None else 0.0,
        float(me.graveyard),
        float(foe.graveyard),
        float(me.pool),
        float(_taunts(me)),
        float(_taunts(foe)),
        float(_frozen(me)),
        float(_frozen(foe)),
        float(me.pending_overload),
        float(foe.pending_overload),
    )


def terminal_score(snapshot: Snapshot, perspective: int = 0) -> float | None:
    """±WIN_SCORE when a hero is dead, otherwise None."""
    me = snapshot.sides[perspective].hero
    foe = snapshot.sides[1 - perspective].hero
    if foe.health <= 0 and me.health > 0:
        return WIN_SCORE
    if me.health <= 0 and foe.health > 0:
        return -WIN_SCORE
    if me.health <= 0 and foe.health <= 0:
        return 0.0
    return None


def linear_score(row: tuple[float, ...]) -> float:
    return sum(w * x for w, x in zip(WEIGHTS, row))


def evaluate(snapshot: Snapshot, perspective: int = 0) -> float:
    """Raw heuristic score; positive favours `perspective`."""
    terminal = terminal_score(snapshot, perspective)
    if terminal is not None:
        return terminal
    return linear_score(features(snapshot, perspective))
