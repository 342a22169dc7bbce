"""统一的对话与结果数据模型。

本模块定义了 Agent 内部与 Provider 之间共享的标准数据结构：

- Part / Content: 一条模型侧消息及其有序片段（文本、函数调用、函数结果）。
- GenerateRequest: 发给底层 LLM Provider 的完整请求。
- TurnResponse / Candidate: 从 Provider 解析后的统一响应结果（含引用元数据）。
- AggregatedTurnResult: 引擎处理一条用户消息后的最终聚合结果。
- ChatMessage / ChatStatus: 控制器维护的聊天记录与状态标记。

Provider 适配器（如 GeminiClient）只依赖这些模型，
并负责在各自的 API JSON 和这些模型之间做转换。
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Literal, Optional, Any, Dict, List, TYPE_CHECKING

from account_planner.tools.definitions import ToolCall, ToolResult

if TYPE_CHECKING:
    from account_planner.domain.plan import PlanUpdate
    from account_planner.tools.definitions import ToolDef


# 模型侧内容的角色（与 Gemini contents[].role 对应）
ContentRole = Literal["user", "model"]

# 聊天记录中的消息角色
Role = Literal["user", "model", "system"]


@dataclass
class Part:
    """内容中的单个片段，text / function_call / function_response 至多其一。

    raw 保存 Provider 返回的原始 part，回放历史时原样发回（含签名等未建模字段）。
    """

    text: Optional[str] = None
    function_call: Optional[ToolCall] = None
    function_response: Optional[ToolResult] = None
    raw: Optional[Dict[str, Any]] = None


@dataclass
class Content:
    """一条模型侧消息。

    parts 为 None 表示响应中缺少 parts 字段，与空列表区分对待。
    """

    role: ContentRole
    parts: Optional[List[Part]] = None


@dataclass
class GroundingSource:
    """一条引用来源，供界面渲染为链接。"""

    uri: str
    title: str


@dataclass
class GroundingChunk:
    """groundingMetadata.groundingChunks 中的单个条目，字段均可能缺失。"""

    uri: Optional[str] = None
    title: Optional[str] = None


@dataclass
class ChatUsage:
    """Provider 返回的 token 统计信息（统一格式）。"""

    prompt_tokens: int
    completion_tokens: int
    total_tokens: int


@dataclass
class Candidate:
    """单个候选回答（只消费 index=0 的一条）。"""

    index: int
    content: Optional[Content] = None
    grounding_chunks: List[GroundingChunk] = field(default_factory=list)
    finish_reason: Optional[str] = None

    @property
    def parts(self) -> Optional[List[Part]]:
        if self.content is None:
            return None
        return self.content.parts

    def sources(self) -> List[GroundingSource]:
        """提取引用来源：没有 uri 的条目被丢弃，缺失标题时以 uri 代替。"""

        return [
            GroundingSource(uri=chunk.uri, title=chunk.title or chunk.uri)
            for chunk in self.grounding_chunks
            if chunk.uri
        ]


@dataclass
class GenerateRequest:
    """一次完整的生成请求。

    ConversationSession 负责把历史与会话级固定配置组装成 GenerateRequest，
    Provider 适配层负责把本结构转换成具体 API 的 JSON 请求体。
    """

    provider: str  # 逻辑 Provider 名，如 "gemini"
    model: str  # 逻辑模型名，如 "plan-chat"（再由 registry 映射为真实模型名）
    contents: List[Content]
    system_instruction: Optional[str] = None
    tools: Optional[List["ToolDef"]] = None
    web_search: bool = False
    temperature: float = 0.7
    top_p: float = 0.95
    max_tokens: Optional[int] = None


@dataclass
class TurnResponse:
    """一次模型调用的结果。

    - provider / model: 逻辑名。
    - candidates: 候选回答，可能为空。
    - usage: 可选的 token 使用统计。
    - raw: 原始响应 JSON，用于调试或日志记录。
    """

    provider: str
    model: str
    candidates: List[Candidate]
    usage: Optional[ChatUsage] = None
    raw: Optional[dict] = None

    @property
    def first_candidate(self) -> Optional[Candidate]:
        return self.candidates[0] if self.candidates else None


@dataclass
class AggregatedTurnResult:
    """一条用户消息经过完整 Agent 循环后的结果。

    - text: 所有轮次中全部文本片段按出现顺序拼接。
    - sources: 所有轮次的引用来源按出现顺序拼接（不去重）；远端失败时为 None。
    - plan_updates: 本次调用中已成功发出的计划更新事件。
    - tool_rounds: 回传工具结果的轮数。
    - failed: 是否因远端调用失败而返回兜底文本。
    """

    text: str
    sources: Optional[List[GroundingSource]] = None
    plan_updates: List["PlanUpdate"] = field(default_factory=list)
    tool_rounds: int = 0
    failed: bool = False


class ChatStatus(str, Enum):
    """控制器状态标记，非 IDLE 时界面应禁止提交新消息。"""

    IDLE = "IDLE"
    SEARCHING = "SEARCHING"
    THINKING = "THINKING"
    UPDATING_PLAN = "UPDATING_PLAN"


@dataclass
class ChatMessage:
    """聊天记录中的一条消息（供界面渲染）。"""

    id: str
    role: Role
    content: str
    timestamp: datetime
    grounding_sources: Optional[List[GroundingSource]] = None
    meta: Dict[str, Any] = field(default_factory=dict)
