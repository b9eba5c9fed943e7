"""
战斗内容模型

从内容库加载的只读定义；同时接受内容 JSON 中的驼峰键与下划线键。
"""
from __future__ import annotations

from typing import Dict, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from .character import EffectType


class _ContentModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)


class EffectPayload(_ContentModel):
    """技能或攻击附带的效果"""

    type: str
    duration: Optional[int] = None
    amount: Optional[int] = None
    reduction: Optional[int] = None
    bonus: Optional[int] = None
    description: str = ""

    @property
    def effect_type(self) -> EffectType:
        return EffectType.parse(self.type)


class Ability(_ContentModel):
    """队伍成员技能"""

    id: str = Field(..., min_length=1)
    name: str
    description: str = ""
    damage: Optional[int] = Field(default=None, ge=0)
    damage_type: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("damageType", "damage_type")
    )
    stat: Optional[str] = None
    difficulty: str = "normal"
    uses: Optional[int] = Field(default=None, ge=0)
    target_mode: str = Field(
        default="enemy",
        validation_alias=AliasChoices("targetMode", "target_mode", "targetType", "target_type"),
    )
    effect: Optional[EffectPayload] = None
    narration_hints: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("narrationHints", "narration_hints")
    )

    @property
    def targets_enemy(self) -> bool:
        return self.target_mode.strip().lower() == "enemy"

    @property
    def is_heal(self) -> bool:
        return self.effect is not None and self.effect.effect_type == EffectType.HEAL


class EnemyAttack(_ContentModel):
    """敌人或同伴的攻击"""

    id: str = Field(..., min_length=1)
    name: str
    description: str = ""
    damage: Optional[int] = Field(default=None, ge=0)
    targeting: str = Field(
        default="random",
        validation_alias=AliasChoices("targeting", "targetMode", "target_mode", "target"),
    )
    effect: Optional[EffectPayload] = None
    bonus_effect: Optional[EffectPayload] = Field(
        default=None, validation_alias=AliasChoices("bonusEffect", "bonus_effect")
    )
    cooldown: Optional[int] = Field(default=None, ge=0)
    narration_hints: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("narrationHints", "narration_hints")
    )


class SpecialTrigger(_ContentModel):
    type: str = "health_below"
    threshold: float = Field(default=0.5, ge=0, le=1)


class SpecialEffect(_ContentModel):
    type: str
    amount: Optional[int] = None
    duration: Optional[int] = None
    health_boost: int = Field(
        default=0, validation_alias=AliasChoices("healthBoost", "health_boost")
    )
    form: Optional[str] = None


class EnemySpecialAbility(_ContentModel):
    """生命值触发的一次性敌人特技"""

    id: str = Field(..., min_length=1)
    name: str
    description: str = ""
    trigger: SpecialTrigger = Field(default_factory=SpecialTrigger)
    effect: SpecialEffect
    narration_hints: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("narrationHints", "narration_hints")
    )


class CompanionDefinition(_ContentModel):
    """与敌人并肩作战的同伴"""

    id: str = Field(..., min_length=1)
    name: str
    description: str = ""
    max_health: int = Field(
        default=1, gt=0, validation_alias=AliasChoices("maxHealth", "max_health", "health")
    )
    stats: Dict[str, int] = Field(default_factory=dict)
    attacks: List[EnemyAttack] = Field(default_factory=list)


class EnemyTacticsConfig(_ContentModel):
    opening_move: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("openingMove", "opening_move")
    )
    notes: str = ""


class EnemyDefinition(_ContentModel):
    """敌人定义（按ID索引）"""

    id: str = Field(..., min_length=1)
    name: str
    short_name: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("shortName", "short_name")
    )
    description: str = ""
    personality: str = ""
    max_health: int = Field(
        ..., gt=0, validation_alias=AliasChoices("maxHealth", "max_health", "health")
    )
    stats: Dict[str, int] = Field(default_factory=dict)
    innate_reduction: int = Field(
        default=0, ge=0, validation_alias=AliasChoices("innateReduction", "innate_reduction")
    )
    attacks: List[EnemyAttack] = Field(..., min_length=1)
    special_abilities: List[EnemySpecialAbility] = Field(
        default_factory=list,
        validation_alias=AliasChoices("specialAbilities", "special_abilities"),
    )
    companion: Optional[CompanionDefinition] = None
    tactics: EnemyTacticsConfig = Field(default_factory=EnemyTacticsConfig)

    @property
    def display_name(self) -> str:
        return self.short_name or self.name

    def get_attack(self, attack_id: str) -> Optional[EnemyAttack]:
        for attack in self.attacks:
            if attack.id == attack_id:
                return attack
        return None


class PartyMemberDefinition(_ContentModel):
    """队伍名册条目"""

    id: str = Field(..., min_length=1)
    name: str
    max_health: int = Field(
        ..., gt=0, validation_alias=AliasChoices("maxHealth", "max_health", "health")
    )
    stats: Dict[str, int] = Field(default_factory=dict)
    innate_reduction: int = Field(
        default=0, ge=0, validation_alias=AliasChoices("innateReduction", "innate_reduction")
    )
    trait: Optional[str] = None
    description: str = ""
