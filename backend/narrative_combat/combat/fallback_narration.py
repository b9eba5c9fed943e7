"""LLM 不可用时使用的确定性叙事"""
from typing import Any, Dict, Optional

from .models.action import RollTier

TIER_PHRASES = {
    RollTier.CRITICAL: "lands a devastating",
    RollTier.SUCCESS: "successfully uses",
    RollTier.PARTIAL: "partially lands",
    RollTier.FAILURE: "attempts but fails",
}


def _damage_clause(target_name: str, context: Dict[str, Any], lethal_key: str) -> str:
    damage = context.get("damage_dealt", 0)
    if not damage:
        return ""
    text = f" {target_name} takes {damage} damage."
    if context.get(lethal_key):
        text += f" {target_name} goes down!"
    return text


def enemy_attack(
    enemy_name: str, attack_name: str, target_name: str, context: Optional[Dict[str, Any]] = None
) -> str:
    context = context or {}
    target = context.get("target_name") or target_name
    return f"{enemy_name} uses {attack_name} against {target}." + _damage_clause(
        target, context, "is_lethal"
    )


def companion_attack(
    companion_name: str, attack_name: str, target_name: str, context: Optional[Dict[str, Any]] = None
) -> str:
    context = context or {}
    target = context.get("target_name") or target_name
    return f"{companion_name} joins the fray with {attack_name} on {target}." + _damage_clause(
        target, context, "is_lethal"
    )


def player_action(
    character_name: str,
    ability_name: str,
    tier: RollTier,
    enemy_name: str,
    context: Optional[Dict[str, Any]] = None,
) -> str:
    context = context or {}
    if tier == RollTier.FAILURE:
        return f"{character_name} attempts but fails to use {ability_name}."
    if tier == RollTier.CRITICAL:
        text = f"{character_name} lands a devastating {ability_name}!"
    else:
        text = f"{character_name} {TIER_PHRASES[tier]} {ability_name}."
    return text + _damage_clause(enemy_name, context, "is_killing_blow")


def enemy_special(enemy_name: str, special_name: str) -> str:
    return f"{enemy_name} unleashes {special_name}!"


def round_transition(round_number: int) -> str:
    return f"--- ROUND {round_number} ---"


def break_free(character_name: str, success: bool) -> str:
    if success:
        return f"{character_name} breaks free of the restraints!"
    return f"{character_name} struggles against the restraints but cannot break free."


def unconscious(character_name: str) -> str:
    return f"{character_name} is unconscious and cannot act."


def stunned(character_name: str) -> str:
    return f"{character_name} is stunned and loses the turn."
