"""工具数据结构定义。

这些 dataclass 描述了“工具调用”的 schema，既用于：
- 将可用工具列表暴露给 LLM（ToolDef / ToolParam）。
- 在 AgentEngine 中保存和执行模型触发的工具调用（ToolCall / ToolResult）。
"""

from dataclasses import dataclass, field
from typing import Dict, Any, Optional


@dataclass
class ToolParam:
    """单个工具参数的定义。"""

    name: str
    description: str
    required: bool
    schema: Dict[str, Any]


@dataclass
class ToolDef:
    """一个可供 LLM 调用的工具定义。"""

    name: str
    description: str
    params: Dict[str, ToolParam]


@dataclass
class ToolCall:
    """模型发起的一次工具调用请求。

    id 为模型侧的调用标识，部分响应不携带，此时为 None。
    """

    name: str
    arguments: Dict[str, Any] = field(default_factory=dict)
    id: Optional[str] = None


@dataclass
class ToolResult:
    """工具执行结果，作为 functionResponse 回传给模型。

    - response: 成功时为 {"result": ...}，失败时为 {"error": ...}。
    - call_id: 仅当原始 ToolCall 带有 id 时才会回传。
    """

    name: str
    response: Dict[str, Any]
    call_id: Optional[str] = None

    @property
    def is_error(self) -> bool:
        return "error" in self.response


UPDATE_ACCOUNT_PLAN = "updateAccountPlan"

UPDATE_ACCOUNT_PLAN_TOOL = ToolDef(
    name=UPDATE_ACCOUNT_PLAN,
    description=(
        "Create or update sections of the account plan. Use this when you have gathered "
        "enough information to structure a plan or when the user asks to modify specific parts."
    ),
    params={
        "companyName": ToolParam(
            name="companyName",
            description='Name of the company being researched. If unknown, use "Target Company".',
            required=False,
            schema={"type": "STRING"},
        ),
        "sections": ToolParam(
            name="sections",
            description=(
                "List of sections to add or update. If a section with the same ID exists, "
                "it will be overwritten."
            ),
            required=True,
            schema={
                "type": "ARRAY",
                "items": {
                    "type": "OBJECT",
                    "properties": {
                        "id": {
                            "type": "STRING",
                            "description": 'Unique ID for section (e.g., "exec_summary", "financials")',
                        },
                        "title": {"type": "STRING", "description": "Human readable title"},
                        "content": {"type": "STRING", "description": "The Markdown content of the section."},
                    },
                    "required": ["id", "title", "content"],
                },
            },
        ),
    },
)


def default_tool_defs() -> list[ToolDef]:
    """会话固定启用的函数工具列表。"""

    return [UPDATE_ACCOUNT_PLAN_TOOL]
