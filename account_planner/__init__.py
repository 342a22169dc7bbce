"""Account Planner 顶层包。

该包提供公司调研与账户计划助手的核心实现，
包括配置加载、领域模型、Provider 适配、工具系统、
多轮工具调用引擎、应用状态控制器与计划导出等能力。
"""

from account_planner.agents.plan_agent import AgentEngine
from account_planner.app.controller import AccountPlanController

__all__ = ["AgentEngine", "AccountPlanController"]
