"""
战斗状态数据模型
"""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from .character import Character, CombatantType, StatusEffectInstance
from .content import Ability, CompanionDefinition, EnemyDefinition


class CombatPhase(str, Enum):
    """回合状态机阶段"""

    AWAITING_PLAYER_ACTION = "awaiting_player_action"
    RESOLVING_ACTION = "resolving_action"
    AWAITING_ENEMY_ACTION = "awaiting_enemy_action"
    ROUND_END = "round_end"
    ENCOUNTER_END = "encounter_end"


class CombatEndReason(str, Enum):
    """战斗结束原因"""

    VICTORY = "victory"  # 胜利
    DEFEAT = "defeat"  # 失败
    FLED = "fled"  # 逃跑/场景切换
    SPECIAL = "special"  # 特殊结束（调试工具等）


@dataclass
class CombatLogEntry:
    """战斗日志条目"""

    seq: int
    round: int
    actor_id: str
    event_type: str
    message: str
    timestamp: datetime = field(default_factory=datetime.now)
    payload: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "seq": self.seq,
            "round": self.round,
            "actor": self.actor_id,
            "event_type": self.event_type,
            "message": self.message,
            "timestamp": self.timestamp.isoformat(),
            "payload": self.payload,
        }


@dataclass
class TurnSlot:
    """行动顺序中的一个位置"""

    combatant_id: str
    side: CombatantType
    initiative: int = 0
    bonus: int = 0
    tiebreak: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "combatant_id": self.combatant_id,
            "side": self.side.value,
            "initiative": self.initiative,
        }


@dataclass
class CombatState:
    """
    一场遭遇战的权威状态

    遭遇战开始时创建，结束时丢弃。
    队伍名册只是引用（party 与外部持有的是同一个列表），不复制。
    """

    # ===== 基础信息 =====
    encounter_id: str
    enemy_definition: EnemyDefinition
    enemy: Character
    party: List[Character]

    # ===== 敌人同伴（可选） =====
    companion: Optional[Character] = None
    companion_definition: Optional[CompanionDefinition] = None

    # ===== 效果 =====
    party_effects: List[StatusEffectInstance] = field(default_factory=list)
    enemy_marked: bool = False  # 一次性标记：下一次命中的玩家伤害 +1

    # ===== 回合 =====
    round: int = 1
    phase: CombatPhase = CombatPhase.AWAITING_PLAYER_ACTION
    turn_order: List[TurnSlot] = field(default_factory=list)
    current_turn_index: int = 0

    # ===== 敌人资源 =====
    cooldowns: Dict[str, int] = field(default_factory=dict)
    used_specials: List[str] = field(default_factory=list)
    enemy_form: Optional[str] = None

    # ===== 技能次数 =====
    ability_usage: Dict[str, Dict[str, int]] = field(default_factory=dict)

    # ===== 统计 =====
    damage_dealt: int = 0
    damage_taken: int = 0

    # ===== 战斗日志 =====
    combat_log: List[CombatLogEntry] = field(default_factory=list)
    log_seq: int = 0

    # ===== 战斗结果（结束后填充） =====
    end_reason: Optional[CombatEndReason] = None

    # ===== 便捷方法 =====

    @property
    def current_slot(self) -> Optional[TurnSlot]:
        if 0 <= self.current_turn_index < len(self.turn_order):
            return self.turn_order[self.current_turn_index]
        return None

    @property
    def turn_owner_id(self) -> Optional[str]:
        slot = self.current_slot
        return slot.combatant_id if slot else None

    @property
    def active_party(self) -> List[Character]:
        """未倒地的队伍成员（保持名册顺序）"""
        return [member for member in self.party if not member.is_down]

    @property
    def is_party_wiped(self) -> bool:
        return not self.active_party

    def get_party_member(self, character_id: str) -> Optional[Character]:
        for member in self.party:
            if member.id == character_id:
                return member
        return None

    def get_combatant(self, combatant_id: str) -> Optional[Character]:
        """根据ID获取任意战斗单位"""
        if combatant_id == self.enemy.id:
            return self.enemy
        if self.companion and combatant_id == self.companion.id:
            return self.companion
        return self.get_party_member(combatant_id)

    def add_log(
        self,
        actor_id: str,
        message: str,
        event_type: str = "log",
        payload: Optional[Dict[str, Any]] = None,
    ) -> CombatLogEntry:
        """添加战斗日志"""
        self.log_seq += 1
        entry = CombatLogEntry(
            seq=self.log_seq,
            round=self.round,
            actor_id=actor_id,
            event_type=event_type,
            message=message,
            payload=payload,
        )
        self.combat_log.append(entry)
        return entry

    def get_log_since(self, since_seq: int = 0) -> List[CombatLogEntry]:
        return [entry for entry in self.combat_log if entry.seq > since_seq]

    def recent_log(self, limit: int = 5) -> List[str]:
        """最近的日志文本（用于叙事提示）"""
        if limit <= 0:
            return []
        return [entry.message for entry in self.combat_log[-limit:]]

    def uses_remaining(self, character_id: str, ability: Ability) -> Optional[int]:
        """剩余使用次数，None 表示不限次数"""
        if ability.uses is None:
            return None
        used = self.ability_usage.get(character_id, {}).get(ability.id, 0)
        return max(0, ability.uses - used)

    def record_ability_use(self, character_id: str, ability: Ability) -> None:
        if ability.uses is None:
            return
        usage = self.ability_usage.setdefault(character_id, {})
        usage[ability.id] = usage.get(ability.id, 0) + 1

    def is_on_cooldown(self, attack_id: str) -> bool:
        return self.cooldowns.get(attack_id, 0) > 0

    def check_combat_end(self) -> Optional[CombatEndReason]:
        """
        检查战斗是否结束

        Returns:
            Optional[CombatEndReason]: 如果战斗结束返回原因，否则None
        """
        if self.enemy.is_down:
            return CombatEndReason.VICTORY
        if self.is_party_wiped:
            return CombatEndReason.DEFEAT
        return None

    def to_dict(self) -> Dict[str, Any]:
        """转换为字典"""
        return {
            "encounter_id": self.encounter_id,
            "phase": self.phase.value,
            "round": self.round,
            "current_turn": self.turn_owner_id,
            "turn_order": [slot.to_dict() for slot in self.turn_order],
            "enemy": self.enemy.to_dict(),
            "companion": self.companion.to_dict() if self.companion else None,
            "party": [member.to_dict() for member in self.party],
            "party_effects": [effect.to_dict() for effect in self.party_effects],
            "enemy_marked": self.enemy_marked,
            "enemy_form": self.enemy_form,
            "cooldowns": dict(self.cooldowns),
            "combat_log": [entry.to_dict() for entry in self.combat_log[-10:]],
            "end_reason": self.end_reason.value if self.end_reason else None,
        }
