from dataclasses import dataclass
from typing import Callable, Dict, Any

from account_planner.domain.plan import PlanUpdate, parse_plan_update
from .definitions import ToolCall, ToolResult, UPDATE_ACCOUNT_PLAN


PlanUpdateSink = Callable[[PlanUpdate], None]
ToolFunc = Callable[[Dict[str, Any], PlanUpdateSink], str]


@dataclass
class ToolSpec:
    name: str
    handler: ToolFunc
    failure_message: str  # 失败时 error 文本的前缀


class ToolExecutor:
    """按名称分发模型发起的工具调用。

    工具本身只产生本地副作用（通过 emit 发出事件），执行结果以
    ToolResult 的形式交回引擎，再由引擎回传给模型。
    """

    def __init__(self, tools: Dict[str, ToolSpec]):
        self._tools = tools

    def has_tool(self, name: str) -> bool:
        return name in self._tools

    def execute(self, call: ToolCall, emit: PlanUpdateSink) -> ToolResult:
        spec = self._tools.get(call.name)
        if spec is None:
            return ToolResult(
                name=call.name,
                response={"error": f"Function {call.name} not found."},
                call_id=call.id,
            )
        try:
            content = spec.handler(call.arguments, emit)
        except Exception as exc:
            reason = str(exc) or "Unknown error"
            return ToolResult(
                name=call.name,
                response={"error": f"{spec.failure_message}: {reason}"},
                call_id=call.id,
            )
        return ToolResult(name=call.name, response={"result": content}, call_id=call.id)


def _update_account_plan(args: Dict[str, Any], emit: PlanUpdateSink) -> str:
    # 先校验再发出事件，参数不合法时不会产生任何副作用
    update = parse_plan_update(args)
    emit(update)
    return "Account plan updated successfully."


def default_tools() -> Dict[str, ToolSpec]:
    return {
        UPDATE_ACCOUNT_PLAN: ToolSpec(
            name=UPDATE_ACCOUNT_PLAN,
            handler=_update_account_plan,
            failure_message="Failed to update plan",
        ),
    }
