"""
战斗系统数据模型
"""
from .character import (
    Character,
    CharacterStatus,
    CombatantType,
    EffectType,
    StatusEffectInstance,
    classify_health,
)
from .content import (
    Ability,
    CompanionDefinition,
    EffectPayload,
    EnemyAttack,
    EnemyDefinition,
    EnemySpecialAbility,
    PartyMemberDefinition,
)
from .action import (
    AbilityOption,
    ActionKind,
    ActionPlan,
    ActionResult,
    DamageEvent,
    EnemyDecision,
    HealEvent,
    RollResult,
    RollTier,
)
from .combat_state import CombatEndReason, CombatLogEntry, CombatPhase, CombatState, TurnSlot
from .combat_result import EncounterResult
from .snapshot import CharacterSnapshot, CombatSnapshot, EffectSnapshot

__all__ = [
    "Character",
    "CharacterStatus",
    "CombatantType",
    "EffectType",
    "StatusEffectInstance",
    "classify_health",
    "Ability",
    "CompanionDefinition",
    "EffectPayload",
    "EnemyAttack",
    "EnemyDefinition",
    "EnemySpecialAbility",
    "PartyMemberDefinition",
    "AbilityOption",
    "ActionKind",
    "ActionPlan",
    "ActionResult",
    "DamageEvent",
    "EnemyDecision",
    "HealEvent",
    "RollResult",
    "RollTier",
    "CombatEndReason",
    "CombatLogEntry",
    "CombatPhase",
    "CombatState",
    "TurnSlot",
    "EncounterResult",
    "CharacterSnapshot",
    "CombatSnapshot",
    "EffectSnapshot",
]
