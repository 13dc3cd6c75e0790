from __future__ import annotations


from .actions import Action, AttackAction, EndTurnAction, PlayCardAction, TargetRef, UsePowerAction
from .match import HeroState, MatchState, PlayerState, UnitInstance


def _target_to_dict(t: TargetRef | None) -> dict[str, object] | None:
    if t is None:
        return None
    return {"kind": t.kind, "player": t.player, "uid": t.uid}


def action_to_dict(a: Action) -> dict[str, object]:
    if isinstance(a, PlayCardAction):
        return {
            "type": "play",
            "player": a.player,
            "card_uid": a.card_uid,
            "target": _target_to_dict(a.target),
        }
    if isinstance(a, UsePowerAction):
        return {"type": "power", "player": a.player, "target": _target_to_dict(a.target)}
    if isinstance(a, AttackAction):
        return {
            "type": "attack",
            "player": a.player,
            "attacker_uid": a.attacker_uid,
            "target": _target_to_dict(a.target),
        }
    if isinstance(a, EndTurnAction):
        return {"type": "end_turn", "player": a.player}
    # should be unreachable
    return {"type": "unknown"}


def _unit_to_dict(u: UnitInstance) -> dict[str, object]:
    return {
        "uid": u.uid,
        "card_id": u.card_id,
        "attack": u.attack,
        "health": u.health,
        "max_health": u.max_health,
        "keywords": sorted(u.keywords),
        "attacks_used": u.attacks_used,
        "frozen": u.frozen,
    }


def _hero_to_dict(h: HeroState) -> dict[str, object]:
    eq = h.equipment
    return {
        "hero_id": h.hero_id,
        "health": h.health,
        "max_health": h.max_health,
        "armor": h.armor,
        "attack": h.attack,
        "equipment": None if eq is None else {"card_id": eq.card_id, "attack": eq.attack, "durability": eq.durability},
        "power_used": h.power_used,
        "frozen": h.frozen,
    }


def _player_to_dict(p: PlayerState) -> dict[str, object]:
    return {
        "hero": _hero_to_dict(p.hero),
        "resource_cap": p.resource_cap,
        "resources": p.resources,
        "pending_overload": p.pending_overload,
        "deck": list(p.deck),
        "hand": [c.card_id for c in p.hand],
        "board": [_unit_to_dict(u) for u in p.board],
        "graveyard": list(p.graveyard),
        "turns_taken": p.turns_taken,
    }


def snapshot(state: MatchState) -> dict[str, object]:
    """Return a JSON-serializable canonical snapshot of the current match state."""
    return {
        "seed": state.seed,
        "turn": state.turn,
        "current_player": state.current_player,
        "winner": state.winner,
        "players": [_player_to_dict(p) for p in state.players],
        "action_log": [action_to_dict(a) for a in state.action_log],
    }
