"""
配置管理模块
"""
import os
import sys
from pathlib import Path
from pydantic import BaseModel, ConfigDict
from dotenv import load_dotenv

# 加载环境变量
load_dotenv()

_BACKEND_DIR = Path(__file__).resolve().parent.parent


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


class Settings(BaseModel):
    """应用配置"""

    # Gemini API 配置
    gemini_api_key: str = os.getenv("GEMINI_API_KEY", "")
    gemini_flash_model: str = os.getenv("GEMINI_FLASH_MODEL", "gemini-3-flash-preview")

    # 战斗叙事配置（LLM 失败时使用兜底文本，不影响数值结算）
    narration_enabled: bool = _env_flag("COMBAT_NARRATION_ENABLED", "true")
    narration_max_retries: int = int(os.getenv("COMBAT_NARRATION_MAX_RETRIES", "3"))
    narration_timeout_seconds: float = float(os.getenv("COMBAT_NARRATION_TIMEOUT", "5.0"))
    narration_retry_delay_seconds: float = float(os.getenv("COMBAT_NARRATION_RETRY_DELAY", "0.5"))
    narration_max_tokens: int = int(os.getenv("COMBAT_NARRATION_MAX_TOKENS", "200"))
    decision_max_tokens: int = int(os.getenv("COMBAT_DECISION_MAX_TOKENS", "150"))
    combat_log_limit: int = int(os.getenv("COMBAT_LOG_LIMIT", "5"))

    # 战斗数据
    combat_content_dir: str = os.getenv(
        "COMBAT_CONTENT_DIR",
        str(_BACKEND_DIR / "data" / "combat"),
    )
    # 未识别的目标关键字：False 时回退到首个存活成员，True 时直接报错
    strict_target_modes: bool = _env_flag("COMBAT_STRICT_TARGET_MODES", "false")

    # 日志
    log_level: str = os.getenv("LOG_LEVEL", "INFO").upper()

    model_config = ConfigDict(env_file=".env", case_sensitive=False)


# 全局配置实例
settings = Settings()


def validate_config() -> bool:
    """
    验证配置是否完整

    Returns:
        bool: 配置是否有效
    """
    if not Path(settings.combat_content_dir).is_dir():
        print(f"警告: 战斗数据目录不存在: {settings.combat_content_dir}", file=sys.stderr)
        return False

    if settings.narration_enabled and not settings.gemini_api_key:
        print("警告: 未设置 GEMINI_API_KEY，战斗叙事将使用兜底文本", file=sys.stderr)

    return True
