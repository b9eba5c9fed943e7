"""
战斗行动数据模型
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from .character import Character
from .content import Ability, EnemyAttack

if TYPE_CHECKING:
    from .combat_state import CombatEndReason
    from .snapshot import CombatSnapshot


class RollTier(str, Enum):
    """判定结果档位（按从低到高排列）"""

    FAILURE = "failure"
    PARTIAL = "partial"
    SUCCESS = "success"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return list(RollTier).index(self)


class ActionKind(str, Enum):
    """行动类型"""

    ABILITY = "ability"  # 队伍成员技能
    ENEMY_ATTACK = "enemy_attack"
    COMPANION_ATTACK = "companion_attack"


@dataclass
class RollResult:
    """d20 判定结果"""

    roll: int  # 骰出的自然值
    bonus: int  # 加值
    total: int  # 总值
    tier: RollTier
    difficulty: str = "normal"
    is_nat20: bool = False
    is_nat1: bool = False

    def __str__(self) -> str:
        sign = "+" if self.bonus >= 0 else "-"
        return f"d20 ({self.roll}) {sign} {abs(self.bonus)} = {self.total} → {self.tier.value}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "roll": self.roll,
            "bonus": self.bonus,
            "total": self.total,
            "tier": self.tier.value,
            "difficulty": self.difficulty,
            "is_nat20": self.is_nat20,
            "is_nat1": self.is_nat1,
        }


@dataclass
class DamageEvent:
    """一次伤害结算"""

    target_id: str
    target_name: str
    amount: int  # 实际扣除的生命
    health_before: int
    health_after: int

    @property
    def is_lethal(self) -> bool:
        """本次行动让目标从存活变为倒地"""
        return self.health_before > 0 and self.health_after == 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "target_id": self.target_id,
            "target_name": self.target_name,
            "amount": self.amount,
            "health_before": self.health_before,
            "health_after": self.health_after,
            "is_lethal": self.is_lethal,
        }


@dataclass
class HealEvent:
    """一次治疗结算"""

    target_id: str
    amount: int
    health_before: int
    health_after: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "target_id": self.target_id,
            "amount": self.amount,
            "health_before": self.health_before,
            "health_after": self.health_after,
        }


@dataclass
class AbilityOption:
    """
    可用技能选项（给玩家选择）
    """

    ability_id: str
    name: str
    description: str
    target_mode: str
    uses_remaining: Optional[int] = None  # None 表示不限次数
    available: bool = True
    damage: Optional[int] = None
    stat: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ability_id": self.ability_id,
            "name": self.name,
            "description": self.description,
            "target_mode": self.target_mode,
            "uses_remaining": self.uses_remaining,
            "available": self.available,
            "damage": self.damage,
            "stat": self.stat,
        }


@dataclass
class EnemyDecision:
    """敌方行动决策"""

    action_id: str
    target: Optional[str] = None  # 目标ID或目标关键字；None 时使用攻击自带的目标方式
    source: str = "caller"  # caller / tactics / llm
    reasoning: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "action_id": self.action_id,
            "target": self.target,
            "source": self.source,
            "reasoning": self.reasoning,
        }


@dataclass
class ActionPlan:
    """
    结算前的行动计划

    只包含已解析的目标与判定，不修改战斗状态。
    丢弃计划即等于取消行动。
    """

    encounter_id: str
    round: int
    turn_index: int
    kind: ActionKind
    actor_id: str
    targets: List[Character]
    is_aoe: bool = False
    ability: Optional[Ability] = None
    attack: Optional[EnemyAttack] = None
    roll: Optional[RollResult] = None
    decision: Optional[EnemyDecision] = None

    @property
    def action_id(self) -> str:
        if self.ability is not None:
            return self.ability.id
        if self.attack is not None:
            return self.attack.id
        return ""


@dataclass
class ActionResult:
    """
    行动执行结果
    """

    action_id: str
    kind: ActionKind
    actor_id: str
    target_ids: List[str] = field(default_factory=list)
    is_aoe: bool = False

    # 结果
    success: bool = True
    roll: Optional[RollResult] = None
    damage_events: List[DamageEvent] = field(default_factory=list)
    heal_events: List[HealEvent] = field(default_factory=list)
    effects_applied: List[str] = field(default_factory=list)
    mark_consumed: bool = False
    triggered_specials: List[str] = field(default_factory=list)

    # 行动之后自动发生的事（跳过回合、挣脱、轮次切换、持续伤害）
    follow_up: List[str] = field(default_factory=list)

    # 战斗结束原因（本次行动导致结束时填充）
    encounter_end: Optional["CombatEndReason"] = None

    # 结算后的权威快照（给表现层）
    snapshot: Optional["CombatSnapshot"] = None

    # 消息（给UI显示）
    messages: List[str] = field(default_factory=list)

    @property
    def is_killing_blow(self) -> bool:
        return any(event.is_lethal for event in self.damage_events)

    @property
    def total_damage(self) -> int:
        return sum(event.amount for event in self.damage_events)

    def add_message(self, message: str):
        """添加消息"""
        self.messages.append(message)

    def to_display_text(self) -> str:
        """转换为格式化文本（给UI显示）"""
        lines = []
        if self.roll:
            lines.append(str(self.roll))
        lines.extend(self.messages)
        return "\n".join(lines)

    def to_dict(self) -> Dict[str, Any]:
        """转换为字典"""
        return {
            "action_id": self.action_id,
            "kind": self.kind.value,
            "actor_id": self.actor_id,
            "target_ids": self.target_ids,
            "is_aoe": self.is_aoe,
            "success": self.success,
            "roll": self.roll.to_dict() if self.roll else None,
            "damage": [event.to_dict() for event in self.damage_events],
            "heals": [event.to_dict() for event in self.heal_events],
            "effects_applied": self.effects_applied,
            "mark_consumed": self.mark_consumed,
            "is_killing_blow": self.is_killing_blow,
            "triggered_specials": self.triggered_specials,
            "follow_up": self.follow_up,
            "encounter_end": self.encounter_end.value if self.encounter_end else None,
            "messages": self.messages,
        }
