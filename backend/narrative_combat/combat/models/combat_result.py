"""
遭遇战结果数据模型
"""
from dataclasses import dataclass, field
from typing import Any, Dict, List

from .combat_state import CombatEndReason


@dataclass
class EncounterResult:
    """
    遭遇战最终结果

    战斗状态被丢弃前生成，交给上层叙事/存档使用
    """

    # ===== 基础信息 =====
    encounter_id: str
    result: CombatEndReason
    enemy_id: str
    enemy_name: str

    # ===== 摘要（LLM叙事用） =====
    summary: str

    # ===== 队伍状态 =====
    party_health: Dict[str, Dict[str, int]] = field(default_factory=dict)
    # 示例：{"mira": {"current": 4, "max": 10}}

    # ===== 完整日志 =====
    full_log: List[str] = field(default_factory=list)

    # ===== 统计数据 =====
    total_rounds: int = 0
    total_damage_dealt: int = 0
    total_damage_taken: int = 0

    def to_dict(self) -> Dict[str, Any]:
        """转换为字典"""
        return {
            "encounter_id": self.encounter_id,
            "result": self.result.value,
            "enemy": {"id": self.enemy_id, "name": self.enemy_name},
            "summary": self.summary,
            "party_health": self.party_health,
            "statistics": {
                "total_rounds": self.total_rounds,
                "damage_dealt": self.total_damage_dealt,
                "damage_taken": self.total_damage_taken,
            },
            "full_log": self.full_log,
        }

    def to_llm_summary(self) -> str:
        """
        生成给LLM的简短摘要

        Returns:
            str: 适合LLM继续叙事的文本
        """
        lines = [self.summary]
        downed = [
            member_id
            for member_id, health in self.party_health.items()
            if health.get("current", 0) <= 0
        ]
        if downed:
            lines.append(f"Down: {', '.join(downed)}")
        lines.append(
            f"Rounds: {self.total_rounds}, damage dealt: {self.total_damage_dealt}, "
            f"damage taken: {self.total_damage_taken}."
        )
        return "\n".join(lines)
