"""
业务逻辑服务包
"""
from .llm_service import LLMService, LLMServiceError
from .combat_narration_service import CombatNarrationService, NarrationUnavailableError
from .combat_turn_service import CombatTurnService, TurnOutcome

__all__ = [
    "LLMService",
    "LLMServiceError",
    "CombatNarrationService",
    "NarrationUnavailableError",
    "CombatTurnService",
    "TurnOutcome",
]
