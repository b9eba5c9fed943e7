"""
目标解析

把符号化的目标写法（角色ID或关键字）映射为一个或多个存活的队伍成员。
不持有战斗状态；随机选择使用注入的随机源。
"""
import logging
import random
from enum import Enum
from typing import List, Optional, Sequence, Union

from ..config import settings
from .errors import UnknownTargetModeError
from .models.character import Character

logger = logging.getLogger(__name__)

TargetResult = Union[Character, List[Character], None]


class TargetMode(str, Enum):
    """目标关键字"""

    LOWEST_HEALTH = "lowest_health"
    HIGHEST_HEALTH = "highest_health"
    HIGHEST_THREAT = "highest_threat"
    GROUPED = "grouped"
    RANDOM = "random"
    UNRECOGNIZED = "unrecognized"


_KEYWORDS = {
    "lowest_health": TargetMode.LOWEST_HEALTH,
    "highest_health": TargetMode.HIGHEST_HEALTH,
    "highest_threat": TargetMode.HIGHEST_THREAT,
    "grouped": TargetMode.GROUPED,
    "all": TargetMode.GROUPED,
    "aoe": TargetMode.GROUPED,
    "random": TargetMode.RANDOM,
}


def parse_target_mode(target_spec: Optional[str]) -> TargetMode:
    """关键字解析，不认识的写法返回 UNRECOGNIZED"""
    return _KEYWORDS.get((target_spec or "").strip().lower(), TargetMode.UNRECOGNIZED)


def is_aoe(result: TargetResult) -> bool:
    """解析结果是否为群体目标（只有 grouped/all/aoe 会返回列表）"""
    return isinstance(result, list)


class TargetResolver:
    """
    目标解析器

    解析顺序：
    1. 角色ID直接命中（未倒地）→ 该角色；已倒地且不是关键字 → None
    2. 没有存活成员 → None
    3. 关键字分支
    4. 未识别关键字 → 首个存活成员（严格模式下抛出 UnknownTargetModeError）
    """

    def __init__(self, rng: Optional[random.Random] = None, strict: Optional[bool] = None):
        self.rng = rng or random.Random()
        self.strict = settings.strict_target_modes if strict is None else strict

    def resolve(
        self,
        target_spec: Optional[str],
        party: Sequence[Character],
        active_party: Optional[Sequence[Character]] = None,
    ) -> TargetResult:
        """
        解析目标

        Args:
            target_spec: 角色ID或目标关键字
            party: 完整名册（可能包含倒地成员）
            active_party: 未倒地的成员；不传时从 party 推导

        Returns:
            单个角色、角色列表（群体）或 None（没有有效目标）
        """
        if active_party is None:
            active_party = [member for member in party if not member.is_down]
        spec = (target_spec or "").strip()

        mode = parse_target_mode(spec)

        # 直接ID优先；已倒地时只有关键字写法才继续往下解析
        for member in party:
            if member.id == spec:
                if not member.is_down:
                    return member
                if mode == TargetMode.UNRECOGNIZED:
                    return None
                break

        if not active_party:
            return None

        if mode == TargetMode.LOWEST_HEALTH:
            return self.get_lowest_health(active_party)
        if mode == TargetMode.HIGHEST_HEALTH:
            return self.get_highest_health(active_party)
        if mode == TargetMode.HIGHEST_THREAT:
            return self.get_highest_threat(active_party)
        if mode == TargetMode.GROUPED:
            return list(active_party)
        if mode == TargetMode.RANDOM:
            return self.get_random(active_party)

        # TargetMode.UNRECOGNIZED
        if self.strict:
            raise UnknownTargetModeError(spec)
        fallback = active_party[0]
        logger.warning(
            "[TargetResolver] 未识别的目标写法 %r，回退到首个存活成员 %s（请检查战斗数据）",
            spec,
            fallback.id,
        )
        return fallback

    # ===== 关键字实现（平局取最先出现者） =====

    @staticmethod
    def get_lowest_health(members: Sequence[Character]) -> Optional[Character]:
        best: Optional[Character] = None
        for member in members:
            if best is None or member.current_health < best.current_health:
                best = member
        return best

    @staticmethod
    def get_highest_health(members: Sequence[Character]) -> Optional[Character]:
        best: Optional[Character] = None
        for member in members:
            if best is None or member.current_health > best.current_health:
                best = member
        return best

    @staticmethod
    def get_highest_threat(members: Sequence[Character]) -> Optional[Character]:
        best: Optional[Character] = None
        for member in members:
            if best is None or member.threat > best.threat:
                best = member
        return best

    def get_random(self, members: Sequence[Character]) -> Optional[Character]:
        if not members:
            return None
        return members[self.rng.randrange(len(members))]
