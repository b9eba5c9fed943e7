"""
战斗角色数据模型
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from ..rules import HEALTH_THRESHOLDS, THREAT_STATS, health_fraction


class CombatantType(str, Enum):
    """战斗单位类型"""

    PARTY = "party"
    ENEMY = "enemy"
    COMPANION = "companion"  # 敌人的同伴


class CharacterStatus(str, Enum):
    """生命状态（由生命值推导，不允许直接设置）"""

    OK = "ok"
    HURT = "hurt"
    BADLY_HURT = "badly hurt"
    DOWN = "down"
    DOWNED = "down"  # DOWN 的别名
    UNKNOWN = "unknown"


class EffectType(str, Enum):
    """状态效果类型"""

    RESTRAIN = "restrain"
    MARK = "mark"
    SHIELD = "shield"
    STATIC_SHIELD = "static_shield"
    CONCEALMENT = "concealment"
    SLOW = "slow"
    DAMAGE_REDUCTION = "damage_reduction"
    ACCURACY_BOOST = "accuracy_boost"
    VULNERABLE = "vulnerable"
    HASTE = "haste"
    STUN = "stun"
    TAUNT = "taunt"
    POISON = "poison"
    BURNING = "burning"
    HEAL = "heal"  # 即时治疗，不会进入效果列表
    UNRECOGNIZED = "unrecognized"

    @classmethod
    def parse(cls, raw: Optional[str]) -> "EffectType":
        """解析内容里的效果类型，未知类型返回 UNRECOGNIZED"""
        key = (raw or "").strip().lower()
        try:
            return cls(key)
        except ValueError:
            return cls.UNRECOGNIZED


def classify_health(current: int, maximum: int) -> CharacterStatus:
    """
    根据生命值推导状态

    - 最大生命 <= 0：UNKNOWN
    - 生命 <= 0：DOWN
    - 生命比例 <= 危急阈值：BADLY_HURT
    - 未满血：HURT
    - 满血：OK
    """
    if maximum <= 0:
        return CharacterStatus.UNKNOWN
    if current <= 0:
        return CharacterStatus.DOWN
    if health_fraction(current, maximum) <= HEALTH_THRESHOLDS["critical"]:
        return CharacterStatus.BADLY_HURT
    if current < maximum:
        return CharacterStatus.HURT
    return CharacterStatus.OK


@dataclass
class StatusEffectInstance:
    """状态效果实例"""

    effect: EffectType
    turns_remaining: int  # 剩余轮数
    amount: Optional[int] = None
    reduction: Optional[int] = None
    bonus: Optional[int] = None
    source: str = ""  # 来源（谁施加的）
    label: str = ""  # 显示名（未识别类型保留内容里的原始写法）

    def __post_init__(self):
        if not self.label:
            self.label = self.effect.value

    def tick(self) -> bool:
        """
        轮次结束时调用，减少持续时间

        Returns:
            bool: 是否已过期
        """
        self.turns_remaining -= 1
        return self.turns_remaining <= 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.effect.value,
            "label": self.label,
            "turns_remaining": self.turns_remaining,
            "amount": self.amount,
            "reduction": self.reduction,
            "bonus": self.bonus,
            "source": self.source,
        }


@dataclass
class Character:
    """
    战斗角色（队伍成员 / 敌人 / 敌人同伴）

    状态（status）始终由当前生命推导，不单独存储。
    """

    # ===== 基础信息 =====
    id: str
    name: str
    combatant_type: CombatantType

    # ===== 生命值 =====
    max_health: int
    current_health: Optional[int] = None  # None 表示满血

    # ===== 属性 =====
    stats: Dict[str, int] = field(default_factory=dict)
    innate_reduction: int = 0  # 天生减伤（受到攻击时生效）

    # ===== 叙事信息 =====
    trait: Optional[str] = None
    description: str = ""

    # ===== 状态效果 =====
    effects: List[StatusEffectInstance] = field(default_factory=list)

    def __post_init__(self):
        if self.max_health < 0:
            raise ValueError(f"max_health must be non-negative: {self.max_health}")
        if self.current_health is None:
            self.current_health = self.max_health
        self.current_health = max(0, min(self.current_health, self.max_health))

    # ===== 派生属性 =====

    @property
    def status(self) -> CharacterStatus:
        return classify_health(self.current_health, self.max_health)

    @property
    def is_down(self) -> bool:
        return self.current_health <= 0

    @property
    def health_fraction(self) -> float:
        return health_fraction(self.current_health, self.max_health)

    @property
    def threat(self) -> int:
        """威胁值：力量与狡诈中较高者"""
        return max(self.stat(name) for name in THREAT_STATS)

    def stat(self, name: Optional[str]) -> int:
        """读取属性值，未设置视为0"""
        if not name:
            return 0
        return int(self.stats.get(name, 0) or 0)

    # ===== 生命变化 =====

    def take_damage(self, amount: int) -> int:
        """
        受到伤害

        Args:
            amount: 伤害值

        Returns:
            int: 实际受到的伤害（不会为负，不会超过当前生命）
        """
        actual_damage = min(max(0, amount), self.current_health)
        self.current_health -= actual_damage
        return actual_damage

    def heal(self, amount: int) -> int:
        """
        恢复生命值（倒地的角色无法被治疗）

        Returns:
            int: 实际恢复的量
        """
        if self.is_down:
            return 0
        actual_heal = min(max(0, amount), self.max_health - self.current_health)
        self.current_health += actual_heal
        return actual_heal

    def set_health(self, value: int) -> None:
        """直接设置生命值（调试用，限制在 [0, max]）"""
        self.current_health = max(0, min(int(value), self.max_health))

    def boost_max_health(self, amount: int) -> None:
        """提升生命上限并同步恢复同等生命（变身）"""
        if amount <= 0:
            return
        self.max_health += amount
        if not self.is_down:
            self.current_health += amount

    # ===== 状态效果 =====

    def add_effect(self, effect: StatusEffectInstance) -> None:
        self.effects.append(effect)

    def has_effect(self, effect_type: EffectType) -> bool:
        return any(e.effect == effect_type for e in self.effects)

    def get_effects(self, effect_type: EffectType) -> List[StatusEffectInstance]:
        return [e for e in self.effects if e.effect == effect_type]

    def remove_effects(self, effect_type: EffectType) -> int:
        """移除某类效果，返回移除数量"""
        before = len(self.effects)
        self.effects = [e for e in self.effects if e.effect != effect_type]
        return before - len(self.effects)

    def to_dict(self) -> Dict[str, Any]:
        """转换为字典（用于序列化）"""
        return {
            "id": self.id,
            "name": self.name,
            "type": self.combatant_type.value,
            "current_health": self.current_health,
            "max_health": self.max_health,
            "status": self.status.value,
            "stats": dict(self.stats),
            "effects": [e.to_dict() for e in self.effects],
        }
