"""LangGraph construction and node implementations."""

from __future__ import annotations

from langgraph.graph import END, StateGraph
from langgraph.graph.state import CompiledStateGraph

from account_planner.agents.session import ConversationSession
from account_planner.flows.state import PlanAgentState
from account_planner.infrastructure.logging.logger import logger
from account_planner.tools.executor import PlanUpdateSink, ToolExecutor


def send_user_node(state: PlanAgentState, session: ConversationSession) -> PlanAgentState:
    logger.info("send_user_node.start", extra={"extra": {"session_id": session.id}})
    state["response"] = session.send_message(state["user_message"])
    return state


def process_node(state: PlanAgentState, executor: ToolExecutor, sink: PlanUpdateSink) -> PlanAgentState:
    if state["loop_count"] >= state["max_loops"]:
        logger.warning("process_node.max_loops", extra={"extra": {"max_loops": state["max_loops"]}})
        state["done"] = True
        return state

    response = state.get("response")
    candidate = response.first_candidate if response else None
    if candidate is None or candidate.parts is None:
        state["done"] = True
        return state

    state["sources"].extend(candidate.sources())
    pending = []
    for part in candidate.parts:
        if part.text:
            state["text"] += part.text
        if part.function_call is not None:
            logger.info("process_node.tool_call", extra={"extra": {"tool_name": part.function_call.name}})
            pending.append(executor.execute(part.function_call, sink))
    state["pending_results"] = pending
    state["done"] = not pending
    return state


def send_tools_node(state: PlanAgentState, session: ConversationSession) -> PlanAgentState:
    results = state.get("pending_results") or []
    logger.info("send_tools_node.start", extra={"extra": {"results": len(results)}})
    state["response"] = session.send_message(results)
    state["pending_results"] = []
    state["loop_count"] += 1
    return state


def process_router(state: PlanAgentState) -> str:
    if state.get("pending_results"):
        return "send_tools"
    return "end"


def build_graph(
    session: ConversationSession,
    executor: ToolExecutor,
    sink: PlanUpdateSink,
) -> CompiledStateGraph:
    graph = StateGraph(PlanAgentState)
    graph.add_node("send_user", lambda s: send_user_node(s, session))
    graph.add_node("process", lambda s: process_node(s, executor, sink))
    graph.add_node("send_tools", lambda s: send_tools_node(s, session))
    graph.set_entry_point("send_user")
    graph.add_edge("send_user", "process")
    graph.add_conditional_edges("process", process_router, {"send_tools": "send_tools", "end": END})
    graph.add_edge("send_tools", "process")
    return graph.compile()
