"""
战斗系统异常定义

规则类异常全部继承自 ValueError，调用方可以统一按 ValueError 处理；
叙事失败单独继承 RuntimeError。
"""
from typing import Optional


class CombatError(ValueError):
    """战斗系统异常基类"""


class NoValidTargetError(CombatError):
    """
    没有有效目标（可恢复）

    当前行动被中止，战斗状态保持不变，调用方可以重新选择行动。
    """

    def __init__(self, target_spec: str, actor_id: Optional[str] = None):
        self.target_spec = target_spec
        self.actor_id = actor_id
        super().__init__(f"No valid target for '{target_spec}'")


class UnknownTargetModeError(CombatError):
    """未识别的目标关键字（仅严格模式下抛出）"""

    def __init__(self, target_spec: str):
        self.target_spec = target_spec
        super().__init__(f"Unknown target mode: {target_spec!r}")


class ContentNotFoundError(CombatError):
    """战斗数据缺失（敌人/技能ID不存在），遭遇战无法开始"""

    def __init__(self, kind: str, content_id: str):
        self.kind = kind
        self.content_id = content_id
        super().__init__(f"{kind} not found: {content_id}")


class EncounterNotActiveError(CombatError):
    """当前没有进行中的遭遇战"""


class EncounterEndedError(CombatError):
    """遭遇战已结束，不再接受行动"""


class NotYourTurnError(CombatError):
    """不是该角色的回合，或当前阶段不接受此类行动"""


class AbilityUnavailableError(CombatError):
    """技能次数已用尽"""


class NarrationUnavailableError(RuntimeError):
    """
    叙事生成失败（禁用、重试耗尽或返回空文本）

    由叙事服务内部捕获并改用固定模板。
    """
