"""
敌人战术（规则兜底）

LLM 决策不可用或返回无效结果时使用
"""
import random
from typing import List, Optional

from .models.action import EnemyDecision
from .models.combat_state import CombatState
from .models.content import EnemyAttack


class EnemyTactics:
    """
    敌人战术

    设计原则：
    - 简单规则树
    - 冷却中的攻击不可选
    - 第一轮优先使用开场招式
    """

    def __init__(self, state: CombatState):
        """
        Args:
            state: 当前战斗状态（只读）
        """
        self.state = state

    def available_attacks(self) -> List[EnemyAttack]:
        """不在冷却中的攻击；全部冷却时退回完整列表"""
        attacks = self.state.enemy_definition.attacks
        ready = [attack for attack in attacks if not self.state.is_on_cooldown(attack.id)]
        return ready or list(attacks)

    def decide_action(self) -> EnemyDecision:
        """
        为敌人决定行动

        流程：
        1. 过滤冷却中的攻击
        2. 第一轮且开场招式可用 → 开场招式
        3. 第一个有伤害的攻击
        4. 否则第一个可用攻击
        """
        attacks = self.available_attacks()

        opening_id = self.state.enemy_definition.tactics.opening_move
        if self.state.round == 1 and opening_id:
            opening = self._find(attacks, opening_id)
            if opening:
                return self._decision(opening)

        damaging = next((attack for attack in attacks if attack.damage), None)
        return self._decision(damaging or attacks[0])

    def decide_companion_action(self, rng: Optional[random.Random] = None) -> Optional[EnemyDecision]:
        """同伴随机选择一个攻击"""
        companion = self.state.companion_definition
        if not companion or not companion.attacks:
            return None
        rng = rng or random.Random()
        attack = companion.attacks[rng.randrange(len(companion.attacks))]
        return self._decision(attack)

    def is_valid_decision(self, decision: EnemyDecision) -> bool:
        return self._find(self.available_attacks(), decision.action_id) is not None

    # ===== 私有方法 =====

    @staticmethod
    def _find(attacks: List[EnemyAttack], attack_id: str) -> Optional[EnemyAttack]:
        for attack in attacks:
            if attack.id == attack_id:
                return attack
        return None

    @staticmethod
    def _decision(attack: EnemyAttack) -> EnemyDecision:
        return EnemyDecision(action_id=attack.id, target=attack.targeting, source="tactics")
