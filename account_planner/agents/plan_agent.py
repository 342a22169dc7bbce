"""Agent 引擎核心模块。

实现账户计划助手的多轮工具调用循环：发送用户消息、聚合文本与引用来源、
执行 updateAccountPlan 工具、回传工具结果，直到模型不再调用工具或达到轮数上限。
"""

from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterator, List, Literal, Optional
from uuid import uuid4
import time
import logging

from account_planner.agents.session import ConversationSession, TurnMessage, create_session
from account_planner.config.settings import settings
from account_planner.domain.exceptions import BusinessError
from account_planner.domain.models import AggregatedTurnResult, GroundingSource, TurnResponse
from account_planner.domain.plan import PlanUpdate
from account_planner.infrastructure.logging.logger import logger
from account_planner.tools.definitions import ToolResult
from account_planner.tools.executor import ToolExecutor, default_tools

FALLBACK_TEXT = "I encountered an error while processing your request. Please try again."

Stage = Literal["searching", "thinking", "updating_plan"]
SessionFactory = Callable[[], ConversationSession]
PlanUpdateCallback = Callable[[PlanUpdate], None]


@dataclass
class AgentConfig:
    agent_type: str = "account-planner"
    max_tool_rounds: int = 5  # 首次发送之后最多再回传多少轮工具结果
    fallback_text: str = FALLBACK_TEXT


@dataclass
class AgentStreamEvent:
    """AgentEngine 产生的事件。

    kind:
        - "status": 循环进度（检索中/回传工具结果中），仅用于前端可视化。
        - "plan_update": 模型通过工具声明的计划增量，只含本次新声明的节。
        - "final": 本条用户消息处理结束，携带 AggregatedTurnResult。
    """

    kind: Literal["status", "plan_update", "final"]
    stage: Optional[Stage] = None
    message: Optional[str] = None
    plan_update: Optional[PlanUpdate] = None
    result: Optional[AggregatedTurnResult] = None


class AgentEngine:
    def __init__(
        self,
        session_factory: Optional[SessionFactory] = None,
        tool_executor: Optional[ToolExecutor] = None,
        config: Optional[AgentConfig] = None,
        session: Optional[ConversationSession] = None,
    ):
        self._session_factory = session_factory or create_session
        self._session = session
        self._tool_executor = tool_executor or ToolExecutor(default_tools())
        self._config = config or AgentConfig(max_tool_rounds=getattr(settings, "max_tool_rounds", 5))
        self._in_flight = False

    @property
    def session(self) -> Optional[ConversationSession]:
        return self._session

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    def submit_user_message(
        self,
        text: str,
        on_plan_update: Optional[PlanUpdateCallback] = None,
    ) -> AggregatedTurnResult:
        """处理一条用户消息并返回聚合结果。

        on_plan_update 在返回前被同步调用零到多次，每次只携带新声明的节，
        合并由调用方负责。远端调用失败不会抛出，而是返回兜底文本。
        """

        result: Optional[AggregatedTurnResult] = None
        for event in self.submit_user_message_stream(text, on_plan_update):
            if event.kind == "final":
                result = event.result
        if result is None:
            raise BusinessError(
                code="TURN_WITHOUT_RESULT",
                message="Agent turn ended without a result",
                http_status=500,
            )
        return result

    def submit_user_message_stream(
        self,
        text: str,
        on_plan_update: Optional[PlanUpdateCallback] = None,
    ) -> Iterator[AgentStreamEvent]:
        """以事件流方式处理一条用户消息。

        每个 plan_update 事件都在对应工具调用成功之后、下一次远端往返之前产出，
        最后一个事件总是 kind="final"。
        """

        if self._in_flight:
            raise BusinessError(
                code="TURN_IN_FLIGHT",
                message="Another message is still being processed",
                http_status=409,
            )
        self._in_flight = True
        try:
            yield from self._run_turn(text, on_plan_update)
        finally:
            self._in_flight = False

    def _run_turn(
        self,
        text: str,
        on_plan_update: Optional[PlanUpdateCallback],
    ) -> Iterator[AgentStreamEvent]:
        start_time = time.time()
        log_ctx: Dict[str, Any] = {
            "trace_id": f"tr-{uuid4().hex}",
            "agent_type": self._config.agent_type,
        }
        max_loops = self._config.max_tool_rounds
        emitted: List[PlanUpdate] = []

        def sink(update: PlanUpdate) -> None:
            # 回调抛出的异常由 ToolExecutor 转成错误结果
            if on_plan_update is not None:
                on_plan_update(update)
            emitted.append(update)

        final_text = ""
        sources: List[GroundingSource] = []
        loop_count = 0

        yield AgentStreamEvent(kind="status", stage="searching", message="Researching sources...")
        try:
            response = self._send(text, log_ctx, round_num=0)

            while loop_count < max_loops:
                candidate = response.first_candidate
                if candidate is None or candidate.parts is None:
                    break

                sources.extend(candidate.sources())

                tool_results: List[ToolResult] = []
                for part in candidate.parts:
                    if part.text:
                        final_text += part.text
                    if part.function_call is None:
                        continue
                    call = part.function_call
                    self._log(
                        logging.INFO,
                        "Tool call received",
                        log_ctx,
                        tool_name=call.name,
                        tool_call_id=call.id,
                    )
                    already_emitted = len(emitted)
                    tool_result = self._tool_executor.execute(call, sink)
                    if tool_result.is_error:
                        self._log(
                            logging.WARNING,
                            "Tool execution failed",
                            log_ctx,
                            tool_name=call.name,
                            tool_call_id=call.id,
                            error=tool_result.response.get("error"),
                        )
                    tool_results.append(tool_result)
                    for update in emitted[already_emitted:]:
                        yield AgentStreamEvent(
                            kind="plan_update",
                            stage="updating_plan",
                            message="Updating account plan...",
                            plan_update=update,
                        )

                if not tool_results:
                    break

                yield AgentStreamEvent(kind="status", stage="thinking", message="Thinking...")
                response = self._send(tool_results, log_ctx, round_num=loop_count + 1)
                loop_count += 1
            else:
                self._log(logging.WARNING, "Reached max tool rounds", log_ctx, max_rounds=max_loops)

        except Exception as e:
            self._log(
                logging.ERROR,
                "Remote model call failed",
                log_ctx,
                error=str(e),
                error_code=getattr(e, "code", type(e).__name__),
                tool_rounds=loop_count,
            )
            yield AgentStreamEvent(
                kind="final",
                result=AggregatedTurnResult(
                    text=self._config.fallback_text,
                    sources=None,
                    plan_updates=list(emitted),
                    tool_rounds=loop_count,
                    failed=True,
                ),
            )
            return

        self._log(
            logging.INFO,
            "Completed agent turn",
            log_ctx,
            elapsed_seconds=round(time.time() - start_time, 2),
            tool_rounds=loop_count,
            plan_updates=len(emitted),
            source_count=len(sources),
        )
        yield AgentStreamEvent(
            kind="final",
            result=AggregatedTurnResult(
                text=final_text,
                sources=sources,
                plan_updates=list(emitted),
                tool_rounds=loop_count,
            ),
        )

    def _send(self, message: TurnMessage, log_ctx: Dict[str, Any], round_num: int) -> TurnResponse:
        if self._session is None:
            self._session = self._session_factory()
            log_ctx["session_id"] = self._session.id
            self._log(logging.INFO, "Created conversation session", log_ctx)
        log_ctx.setdefault("session_id", self._session.id)
        self._log(
            logging.INFO,
            "Calling provider",
            log_ctx,
            round=round_num,
            tool_results=0 if isinstance(message, str) else len(message),
        )
        response = self._session.send_message(message)
        if response.usage:
            self._log(
                logging.INFO,
                "Token usage",
                log_ctx,
                prompt_tokens=response.usage.prompt_tokens,
                completion_tokens=response.usage.completion_tokens,
                total_tokens=response.usage.total_tokens,
            )
        return response

    @staticmethod
    def _log(level: int, message: str, log_ctx: Dict[str, Any], **fields: Any) -> None:
        payload = dict(log_ctx)
        payload.update(fields)
        logger.log(level, message, extra={"extra": payload})
