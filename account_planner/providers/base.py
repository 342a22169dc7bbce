"""Provider 抽象接口。

上层 ConversationSession 不直接依赖具体厂商的 HTTP API，而是依赖此协议：

- 每个厂商实现一个 ProviderClient（如 GeminiClient）。
- 负责：将 GenerateRequest 转成具体 API 请求，并把响应 JSON 解析为 TurnResponse。
"""

from typing import Protocol
from account_planner.domain.models import GenerateRequest, TurnResponse


class ProviderClient(Protocol):
    """LLM Provider 客户端协议。

    实现者需要提供：
    - name: Provider 名称，用于日志/统计。
    - generate(req): 执行一次非流式生成调用，返回统一的 TurnResponse。
    """

    name: str

    def generate(self, req: GenerateRequest) -> TurnResponse:
        ...
