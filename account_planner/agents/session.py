"""与远端模型的单个长生命周期会话。

会话持有模型侧历史与会话级固定配置（系统提示词、函数工具、联网搜索），
每次 send_message 只携带一种输入：用户文本，或上一轮全部工具结果。
"""

from typing import List, Optional, Sequence, Union
from uuid import uuid4

from account_planner.config.settings import settings
from account_planner.domain.exceptions import ValidationError
from account_planner.domain.models import Content, GenerateRequest, Part, TurnResponse
from account_planner.prompts import load_system_prompt
from account_planner.providers import create_provider
from account_planner.providers.base import ProviderClient
from account_planner.tools.definitions import ToolDef, ToolResult, default_tool_defs

TurnMessage = Union[str, Sequence[ToolResult]]


class ConversationSession:
    def __init__(
        self,
        provider_client: ProviderClient,
        *,
        model: str,
        system_instruction: Optional[str] = None,
        tool_defs: Optional[List[ToolDef]] = None,
        web_search: bool = True,
        temperature: float = 0.7,
    ):
        self.id = f"s-{uuid4().hex}"
        self._provider_client = provider_client
        self._model = model
        self._system_instruction = system_instruction
        self._tool_defs = list(tool_defs or [])
        self._web_search = web_search
        self._temperature = temperature
        self._history: List[Content] = []

    @property
    def provider_name(self) -> str:
        return getattr(self._provider_client, "name", "unknown")

    @property
    def history(self) -> List[Content]:
        return list(self._history)

    def send_message(self, message: TurnMessage) -> TurnResponse:
        """发送一轮输入并返回模型响应。

        仅当响应首个候选带有内容时，本轮输入与输出才会写入历史；
        调用失败时历史保持不变。
        """

        pending = self._to_content(message)
        req = GenerateRequest(
            provider=self.provider_name,
            model=self._model,
            contents=self._history + [pending],
            system_instruction=self._system_instruction,
            tools=self._tool_defs or None,
            web_search=self._web_search,
            temperature=self._temperature,
        )
        result = self._provider_client.generate(req)
        candidate = result.first_candidate
        if candidate is not None and candidate.parts:
            self._history.append(pending)
            self._history.append(Content(role="model", parts=list(candidate.parts)))
        return result

    @staticmethod
    def _to_content(message: TurnMessage) -> Content:
        if isinstance(message, str):
            if not message:
                raise ValidationError(code="EMPTY_MESSAGE", message="message must not be empty")
            return Content(role="user", parts=[Part(text=message)])
        results = list(message)
        if not results:
            raise ValidationError(code="EMPTY_MESSAGE", message="tool results must not be empty")
        return Content(role="user", parts=[Part(function_response=r) for r in results])


def create_session(provider_client: Optional[ProviderClient] = None) -> ConversationSession:
    """按全局配置创建会话：固定系统提示词 + 联网搜索 + updateAccountPlan。"""

    client = provider_client or create_provider()
    return ConversationSession(
        client,
        model=getattr(settings, "default_model", "plan-chat"),
        system_instruction=load_system_prompt("account-planner"),
        tool_defs=default_tool_defs(),
        web_search=getattr(settings, "enable_web_search", True),
        temperature=getattr(settings, "temperature", 0.7),
    )
