"""战斗结算包"""

from .combat_controller import CombatController
from .content_repository import CombatContentRepository
from .target_resolver import TargetResolver

__all__ = ["CombatController", "CombatContentRepository", "TargetResolver"]
