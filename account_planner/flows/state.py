"""State definition for the LangGraph plan agent."""

from __future__ import annotations

from typing import List, Optional, TypedDict

from account_planner.domain.models import GroundingSource, TurnResponse
from account_planner.tools.definitions import ToolResult


class PlanAgentState(TypedDict, total=False):
    """State shared across LangGraph nodes."""

    user_message: str
    response: Optional[TurnResponse]
    text: str
    sources: List[GroundingSource]
    pending_results: List[ToolResult]
    loop_count: int
    max_loops: int
    done: bool
