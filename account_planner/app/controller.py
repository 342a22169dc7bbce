"""应用状态控制器。

持有聊天记录、账户计划与状态标记，每条用户消息调用一次 AgentEngine，
并把引擎产出的计划增量按节 upsert 合并进文档。本身不做任何渲染，
界面通过 on_change 回调得知状态变化后自行重绘。
"""

from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, List, Optional
from uuid import uuid4
import logging

from account_planner.agents.plan_agent import AgentEngine
from account_planner.domain.exceptions import BusinessError, ValidationError
from account_planner.domain.models import ChatMessage, ChatStatus, GroundingSource, Role
from account_planner.domain.plan import AccountPlan, PlanUpdate, merge_plan_update, update_section_content
from account_planner.infrastructure.logging.logger import logger
from account_planner.infrastructure.storage.plan_export import export_plan

WELCOME_TEXT = (
    "Hello! I'm your Company Research Assistant. I can help you gather intelligence on companies "
    "and generate detailed account plans. \n\n"
    'Try saying: **"Research Eightfold.ai and create an account plan."**'
)
APOLOGY_TEXT = "I'm sorry, I encountered an unexpected error. Please try again."

_STAGE_STATUS = {
    "searching": ChatStatus.SEARCHING,
    "thinking": ChatStatus.THINKING,
    "updating_plan": ChatStatus.UPDATING_PLAN,
}

ChangeListener = Callable[["AccountPlanController"], None]


class AccountPlanController:
    def __init__(self, engine: AgentEngine, on_change: Optional[ChangeListener] = None):
        self._engine = engine
        self._on_change = on_change
        self.messages: List[ChatMessage] = [self._new_message("model", WELCOME_TEXT, message_id="welcome")]
        self.plan: Optional[AccountPlan] = None
        self.status: ChatStatus = ChatStatus.IDLE
        self.last_error: Optional[str] = None

    @property
    def can_send(self) -> bool:
        return self.status == ChatStatus.IDLE

    def send_message(self, text: str) -> ChatMessage:
        """提交一条用户消息，返回追加到记录中的助手消息。

        Raises:
            ValidationError: 文本为空。
            BusinessError: 上一条消息仍在处理中（TURN_IN_FLIGHT）。
        """

        if not text or not text.strip():
            raise ValidationError(code="EMPTY_MESSAGE", message="message must not be empty")
        if not self.can_send:
            raise BusinessError(
                code="TURN_IN_FLIGHT",
                message="Another message is still being processed",
                http_status=409,
            )

        self.messages.append(self._new_message("user", text))
        self.last_error = None
        self._set_status(ChatStatus.SEARCHING)
        try:
            result = None
            for event in self._engine.submit_user_message_stream(text):
                if event.kind == "plan_update" and event.plan_update is not None:
                    self._set_status(ChatStatus.UPDATING_PLAN)
                    self.apply_plan_update(event.plan_update)
                elif event.kind == "status" and event.stage:
                    self._set_status(_STAGE_STATUS[event.stage])
                elif event.kind == "final":
                    result = event.result
            if result is None:
                raise RuntimeError("Agent turn ended without a result")
            if result.failed:
                self.last_error = result.text
            reply = self._new_message("model", result.text, sources=result.sources)
        except Exception as e:
            logger.error("Controller turn failed", extra={"extra": {"error": str(e)}})
            self.last_error = str(e)
            reply = self._new_message("model", APOLOGY_TEXT)
        finally:
            self.status = ChatStatus.IDLE

        self.messages.append(reply)
        self._notify()
        return reply

    def apply_plan_update(self, update: PlanUpdate) -> AccountPlan:
        self.plan = merge_plan_update(self.plan, update)
        logger.log(
            logging.INFO,
            "Merged plan update",
            extra={"extra": {
                "company_name": self.plan.company_name,
                "updated_sections": [s.id for s in update.sections],
                "section_count": len(self.plan.sections),
            }},
        )
        self._notify()
        return self.plan

    def update_section(self, section_id: str, content: str) -> Optional[AccountPlan]:
        """用户直接编辑某节正文；id 不存在时不新建节。"""

        self.plan = update_section_content(self.plan, section_id, content)
        self._notify()
        return self.plan

    def export_plan(self, directory: str | Path | None = None) -> Path:
        if self.plan is None:
            raise BusinessError(code="PLAN_NOT_FOUND", message="No account plan to export", http_status=404)
        return export_plan(self.plan, directory)

    def _set_status(self, status: ChatStatus) -> None:
        if self.status != status:
            self.status = status
            self._notify()

    def _notify(self) -> None:
        if self._on_change is not None:
            self._on_change(self)

    @staticmethod
    def _new_message(
        role: Role,
        content: str,
        sources: Optional[List[GroundingSource]] = None,
        message_id: Optional[str] = None,
    ) -> ChatMessage:
        return ChatMessage(
            id=message_id or f"m-{uuid4().hex}",
            role=role,
            content=content,
            timestamp=datetime.now(timezone.utc),
            grounding_sources=sources,
        )
