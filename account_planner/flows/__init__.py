"""LangGraph 版本的账户计划 Agent 循环。"""

from account_planner.flows.runner import run_agent, reset_session

__all__ = ["run_agent", "reset_session"]
