"""High-level entry point for the LangGraph plan agent."""

from __future__ import annotations

from typing import List, Optional

from account_planner.agents.plan_agent import FALLBACK_TEXT, PlanUpdateCallback
from account_planner.agents.session import ConversationSession, create_session
from account_planner.config.settings import settings
from account_planner.domain.exceptions import BusinessError
from account_planner.domain.models import AggregatedTurnResult
from account_planner.domain.plan import PlanUpdate
from account_planner.flows.graph import build_graph
from account_planner.flows.state import PlanAgentState
from account_planner.infrastructure.logging.logger import logger
from account_planner.tools.executor import ToolExecutor, default_tools

_session: Optional[ConversationSession] = None
_in_flight = False


def _get_session() -> ConversationSession:
    global _session
    if _session is None:
        _session = create_session()
    return _session


def run_agent(
    user_message: str,
    *,
    session: Optional[ConversationSession] = None,
    on_plan_update: Optional[PlanUpdateCallback] = None,
    max_loops: Optional[int] = None,
) -> AggregatedTurnResult:
    """Execute the LangGraph agent loop for one user message.

    Args:
        user_message: 用户输入
        session: 指定会话；缺省时复用模块级会话（首次调用时创建）
        on_plan_update: 计划增量回调，返回前同步调用
        max_loops: 工具结果回传轮数上限，缺省取配置 max_tool_rounds
    """

    global _in_flight
    if _in_flight:
        raise BusinessError(
            code="TURN_IN_FLIGHT",
            message="Another message is still being processed",
            http_status=409,
        )

    limit = max_loops if max_loops is not None else getattr(settings, "max_tool_rounds", 5)
    emitted: List[PlanUpdate] = []

    def sink(update: PlanUpdate) -> None:
        if on_plan_update is not None:
            on_plan_update(update)
        emitted.append(update)

    state: PlanAgentState = {
        "user_message": user_message,
        "response": None,
        "text": "",
        "sources": [],
        "pending_results": [],
        "loop_count": 0,
        "max_loops": limit,
        "done": False,
    }
    _in_flight = True
    try:
        graph = build_graph(session or _get_session(), ToolExecutor(default_tools()), sink)
        # 每轮往返经过 process + send_tools 两个节点
        result = graph.invoke(state, config={"recursion_limit": 2 * limit + 10})
    except Exception as exc:
        logger.error("run_agent.failed", extra={"extra": {"error": str(exc)}})
        return AggregatedTurnResult(text=FALLBACK_TEXT, sources=None, plan_updates=emitted, failed=True)
    finally:
        _in_flight = False

    return AggregatedTurnResult(
        text=result.get("text") or "",
        sources=result.get("sources") or [],
        plan_updates=emitted,
        tool_rounds=result.get("loop_count", 0),
    )


def reset_session() -> None:
    """Drop the module-level session so the next call starts a new conversation."""

    global _session
    _session = None
