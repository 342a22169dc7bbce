"""LLM Provider 集成层。

该包下的模块负责：
- 定义 Provider 抽象接口 (base)。
- 维护 Provider 与模型配置 (registry)。
- 提供厂商的具体实现 (gemini_client)。
"""

from typing import Literal, Optional

from account_planner.config.settings import settings
from account_planner.domain.exceptions import ValidationError
from account_planner.providers.base import ProviderClient
from account_planner.providers.gemini_client import GeminiClient


def create_provider(name: Optional[str] = None) -> ProviderClient:
    """根据名称创建 Provider 实例，默认取配置中的 provider。"""

    provider_name = (name or getattr(settings, "default_provider", "gemini")).lower()
    if provider_name == "gemini":
        return GeminiClient(settings)
    raise ValidationError(code="UNKNOWN_PROVIDER", message=f"Unknown provider: {provider_name}")


DefaultProviderName = Literal["gemini"]
