"""
LLM 服务模块（Gemini Flash，战斗叙事与敌人决策用）
"""
import asyncio
import json
import re
from typing import Any, Dict, Optional

from google import genai
from google.genai import types

from ..config import settings


class LLMServiceError(RuntimeError):
    """LLM 调用失败（超时、接口错误）"""


class LLMService:
    """LLM 服务类"""

    def __init__(self, api_key: Optional[str] = None, model: Optional[str] = None):
        """初始化 Gemini API"""
        self.client = genai.Client(api_key=api_key or settings.gemini_api_key)
        self.flash_model = model or settings.gemini_flash_model

    def _strip_code_block(self, text: str) -> str:
        """移除代码块标记"""
        cleaned = text.strip()
        if cleaned.startswith("```"):
            cleaned = re.sub(r"^```[a-zA-Z]*\n?", "", cleaned)
            cleaned = cleaned.rstrip("`").strip()
        return cleaned

    def parse_json(self, text: str) -> Optional[Dict[str, Any]]:
        """解析 JSON，失败或不是对象时返回 None"""
        cleaned = self._strip_code_block(text or "")
        try:
            data = json.loads(cleaned)
        except json.JSONDecodeError:
            return None
        return data if isinstance(data, dict) else None

    async def generate_simple(
        self,
        prompt: str,
        max_output_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
        timeout: float = 30.0,
    ) -> str:
        """
        简单文本生成

        Args:
            prompt: 提示文本
            max_output_tokens: 输出长度上限
            temperature: 采样温度
            timeout: 单次调用超时秒数

        Returns:
            生成的文本（不含思考部分）

        Raises:
            LLMServiceError: 超时或接口调用失败
        """
        config_kwargs: Dict[str, Any] = {}
        if max_output_tokens:
            config_kwargs["max_output_tokens"] = max_output_tokens
        if temperature is not None:
            config_kwargs["temperature"] = temperature

        try:
            response = await asyncio.wait_for(
                self.client.aio.models.generate_content(
                    model=self.flash_model,
                    contents=prompt,
                    config=types.GenerateContentConfig(**config_kwargs) if config_kwargs else None,
                ),
                timeout=timeout,
            )
        except asyncio.TimeoutError as exc:
            raise LLMServiceError(f"LLM 调用超时({timeout}s)") from exc
        except Exception as exc:
            raise LLMServiceError(f"文本生成失败: {exc}") from exc

        text = ""
        if getattr(response, "candidates", None):
            for part in response.candidates[0].content.parts or []:
                if getattr(part, "text", None):
                    # 跳过思考部分，只取实际回答
                    if not getattr(part, "thought", False):
                        text += part.text
        return text.strip()

    async def generate_json(
        self,
        prompt: str,
        max_output_tokens: Optional[int] = None,
        timeout: float = 30.0,
    ) -> Optional[Dict[str, Any]]:
        """生成 JSON 响应并解析；调用失败会抛出 LLMServiceError，解析失败返回 None"""
        text = await self.generate_simple(
            prompt, max_output_tokens=max_output_tokens, temperature=0.2, timeout=timeout
        )
        return self.parse_json(text)
