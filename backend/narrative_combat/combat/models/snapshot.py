"""表现层与叙事边界使用的不可变战斗快照"""
from __future__ import annotations

from typing import Dict, Optional, Tuple

from pydantic import BaseModel, ConfigDict

from .character import Character, CharacterStatus, StatusEffectInstance
from .combat_state import CombatEndReason, CombatPhase, CombatState


class _Snapshot(BaseModel):
    model_config = ConfigDict(frozen=True)


class EffectSnapshot(_Snapshot):
    type: str
    label: str
    turns_remaining: int
    amount: Optional[int] = None
    reduction: Optional[int] = None
    bonus: Optional[int] = None

    @classmethod
    def from_effect(cls, effect: StatusEffectInstance) -> "EffectSnapshot":
        return cls(
            type=effect.effect.value,
            label=effect.label,
            turns_remaining=effect.turns_remaining,
            amount=effect.amount,
            reduction=effect.reduction,
            bonus=effect.bonus,
        )


class CharacterSnapshot(_Snapshot):
    id: str
    name: str
    side: str
    current_health: int
    max_health: int
    status: CharacterStatus
    stats: Dict[str, int]
    effects: Tuple[EffectSnapshot, ...] = ()

    @classmethod
    def from_character(cls, character: Character) -> "CharacterSnapshot":
        return cls(
            id=character.id,
            name=character.name,
            side=character.combatant_type.value,
            current_health=character.current_health,
            max_health=character.max_health,
            status=character.status,
            stats=dict(character.stats),
            effects=tuple(EffectSnapshot.from_effect(e) for e in character.effects),
        )


class CombatSnapshot(_Snapshot):
    """一次结算后的遭遇战视图，渲染层据此重绘"""

    encounter_id: str
    round: int
    phase: CombatPhase
    turn_owner: Optional[str] = None
    enemy: CharacterSnapshot
    companion: Optional[CharacterSnapshot] = None
    party: Tuple[CharacterSnapshot, ...] = ()
    party_effects: Tuple[EffectSnapshot, ...] = ()
    enemy_marked: bool = False
    enemy_form: Optional[str] = None
    end_reason: Optional[CombatEndReason] = None
    recent_log: Tuple[str, ...] = ()

    @classmethod
    def from_state(cls, state: CombatState, log_limit: int = 5) -> "CombatSnapshot":
        return cls(
            encounter_id=state.encounter_id,
            round=state.round,
            phase=state.phase,
            turn_owner=state.turn_owner_id,
            enemy=CharacterSnapshot.from_character(state.enemy),
            companion=(
                CharacterSnapshot.from_character(state.companion) if state.companion else None
            ),
            party=tuple(CharacterSnapshot.from_character(m) for m in state.party),
            party_effects=tuple(EffectSnapshot.from_effect(e) for e in state.party_effects),
            enemy_marked=state.enemy_marked,
            enemy_form=state.enemy_form,
            end_reason=state.end_reason,
            recent_log=tuple(state.recent_log(log_limit)),
        )

    def get_character(self, character_id: str) -> Optional[CharacterSnapshot]:
        if self.enemy.id == character_id:
            return self.enemy
        if self.companion and self.companion.id == character_id:
            return self.companion
        for member in self.party:
            if member.id == character_id:
                return member
        return None
