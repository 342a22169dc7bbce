"""多轮工具调用循环的行为测试。"""

import pytest

from account_planner.agents.plan_agent import AgentEngine, AgentConfig, AgentStreamEvent, FALLBACK_TEXT
from account_planner.agents.session import ConversationSession
from account_planner.domain.exceptions import BusinessError, NetworkError, ApiError
from account_planner.domain.models import Candidate, Content, GroundingChunk, Part, TurnResponse
from account_planner.tools.definitions import ToolCall, default_tool_defs


VALID_ARGS = {
    "companyName": "Eightfold",
    "sections": [{"id": "exec_summary", "title": "Executive Summary", "content": "AI talent platform."}],
}


def text(t):
    return Part(text=t)


def call(name, args, call_id=None):
    return Part(function_call=ToolCall(name=name, arguments=args, id=call_id))


def response(*parts, chunks=None):
    return TurnResponse(
        provider="fake",
        model="plan-chat",
        candidates=[
            Candidate(
                index=0,
                content=Content(role="model", parts=list(parts)),
                grounding_chunks=list(chunks or []),
            )
        ],
    )


class ScriptedProvider:
    name = "fake"

    def __init__(self, responses):
        self._responses = list(responses)
        self.requests = []

    def generate(self, req):
        self.requests.append(req)
        item = self._responses.pop(0)
        if isinstance(item, Exception):
            raise item
        return item


class LoopingProvider:
    """每一轮都要求调用工具的失控模型。"""

    name = "fake"

    def __init__(self):
        self.requests = []

    def generate(self, req):
        self.requests.append(req)
        return response(text("again "), call("updateAccountPlan", VALID_ARGS))


def make_engine(provider, max_rounds=5):
    session = ConversationSession(
        provider,
        model="plan-chat",
        system_instruction="sys",
        tool_defs=default_tool_defs(),
    )
    return AgentEngine(session=session, config=AgentConfig(max_tool_rounds=max_rounds))


def tool_results_sent(req):
    return [p.function_response for p in req.contents[-1].parts]


def test_text_accumulates_across_round_trips():
    provider = ScriptedProvider([
        response(text("Found data. "), call("updateAccountPlan", VALID_ARGS)),
        response(text("Plan updated.")),
    ])
    updates = []
    result = make_engine(provider).submit_user_message("Research Eightfold", updates.append)

    assert result.text == "Found data. Plan updated."
    assert result.sources == []
    assert result.tool_rounds == 1
    assert not result.failed
    assert len(updates) == 1
    assert updates[0].company_name == "Eightfold"
    assert [s.id for s in updates[0].sections] == ["exec_summary"]
    assert result.plan_updates == updates
    assert len(provider.requests) == 2


def test_plan_update_fires_once_per_recognized_call_and_never_for_unknown():
    provider = ScriptedProvider([
        response(
            call("updateAccountPlan", VALID_ARGS, "c1"),
            call("lookupCompany", {"name": "Eightfold"}, "c2"),
            call("updateAccountPlan", VALID_ARGS, "c3"),
        ),
        response(call("deleteEverything", {})),
        response(text("done")),
    ])
    updates = []
    result = make_engine(provider).submit_user_message("go", updates.append)

    assert len(updates) == 2
    assert result.text == "done"
    first_batch = tool_results_sent(provider.requests[1])
    assert [r.name for r in first_batch] == ["updateAccountPlan", "lookupCompany", "updateAccountPlan"]
    assert first_batch[0].response == {"result": "Account plan updated successfully."}
    assert first_batch[1].response == {"error": "Function lookupCompany not found."}
    second_batch = tool_results_sent(provider.requests[2])
    assert second_batch[0].response == {"error": "Function deleteEverything not found."}


def test_runaway_model_is_bounded_by_max_loops():
    provider = LoopingProvider()
    updates = []
    result = make_engine(provider, max_rounds=5).submit_user_message("go", updates.append)

    # 首次发送 + 至多 5 次工具结果回传
    assert len(provider.requests) == 6
    assert result.tool_rounds == 5
    assert not result.failed
    # 最后一次回传的响应不再被处理
    assert len(updates) == 5
    assert result.text == "again " * 5


def test_max_loops_is_configurable():
    provider = LoopingProvider()
    result = make_engine(provider, max_rounds=2).submit_user_message("go")
    assert len(provider.requests) == 3
    assert result.tool_rounds == 2


def test_sources_are_concatenated_without_dedup():
    cite = GroundingChunk(uri="https://example.com/eightfold", title="Eightfold news")
    provider = ScriptedProvider([
        response(
            text("A "),
            call("updateAccountPlan", VALID_ARGS),
            chunks=[cite, GroundingChunk(uri=None, title="no link"), GroundingChunk(uri="https://b.example")],
        ),
        response(text("B"), chunks=[cite]),
    ])
    result = make_engine(provider).submit_user_message("go")

    assert [(s.uri, s.title) for s in result.sources] == [
        ("https://example.com/eightfold", "Eightfold news"),
        ("https://b.example", "https://b.example"),
        ("https://example.com/eightfold", "Eightfold news"),
    ]


def test_malformed_arguments_yield_error_result_and_loop_continues():
    bad_args = {"sections": [{"id": "financials", "title": "Financials"}]}
    provider = ScriptedProvider([
        response(call("updateAccountPlan", bad_args, "call-1")),
        response(text("Let me fix that.")),
    ])
    updates = []
    result = make_engine(provider).submit_user_message("go", updates.append)

    assert updates == []
    assert result.text == "Let me fix that."
    sent = tool_results_sent(provider.requests[1])
    assert sent[0].call_id == "call-1"
    assert sent[0].response["error"].startswith("Failed to update plan:")
    assert "content" in sent[0].response["error"]


def test_callback_failure_is_reported_to_model():
    provider = ScriptedProvider([
        response(call("updateAccountPlan", VALID_ARGS)),
        response(text("ok")),
    ])

    def broken(update):
        raise RuntimeError("view unavailable")

    result = make_engine(provider).submit_user_message("go", broken)

    sent = tool_results_sent(provider.requests[1])
    assert sent[0].response == {"error": "Failed to update plan: view unavailable"}
    assert result.plan_updates == []
    assert result.text == "ok"


def test_remote_failure_on_first_send_returns_fallback():
    provider = ScriptedProvider([NetworkError(code="NETWORK_ERROR", message="connection refused")])
    result = make_engine(provider).submit_user_message("go")

    assert result.text == FALLBACK_TEXT
    assert result.sources is None
    assert result.failed


def test_remote_failure_mid_loop_discards_partial_text():
    provider = ScriptedProvider([
        response(text("partial "), call("updateAccountPlan", VALID_ARGS)),
        ApiError(code="API_ERROR", message="boom", http_status=500),
    ])
    updates = []
    result = make_engine(provider).submit_user_message("go", updates.append)

    assert result.text == FALLBACK_TEXT
    assert result.sources is None
    # 已经发生的副作用不会回滚
    assert len(updates) == 1
    assert len(result.plan_updates) == 1


def test_empty_candidates_end_turn():
    provider = ScriptedProvider([TurnResponse(provider="fake", model="plan-chat", candidates=[])])
    result = make_engine(provider).submit_user_message("go")
    assert result.text == ""
    assert result.sources == []
    assert not result.failed


def test_candidate_without_parts_ends_turn():
    first = response(text("Checking. "), call("updateAccountPlan", VALID_ARGS))
    empty = TurnResponse(
        provider="fake",
        model="plan-chat",
        candidates=[Candidate(index=0, content=Content(role="model", parts=None))],
    )
    provider = ScriptedProvider([first, empty])
    result = make_engine(provider).submit_user_message("go")
    assert result.text == "Checking. "
    assert result.tool_rounds == 1


def test_call_ids_propagate_only_when_present():
    provider = ScriptedProvider([
        response(
            call("updateAccountPlan", VALID_ARGS, "abc"),
            call("updateAccountPlan", VALID_ARGS),
        ),
        response(text("done")),
    ])
    make_engine(provider).submit_user_message("go")

    sent = tool_results_sent(provider.requests[1])
    assert [r.call_id for r in sent] == ["abc", None]


def test_session_is_created_lazily_once():
    created = []
    provider = ScriptedProvider([response(text("one")), response(text("two"))])

    def factory():
        session = ConversationSession(provider, model="plan-chat", tool_defs=default_tool_defs())
        created.append(session)
        return session

    engine = AgentEngine(session_factory=factory, config=AgentConfig(max_tool_rounds=5))
    assert engine.session is None
    assert engine.submit_user_message("first").text == "one"
    assert engine.submit_user_message("second").text == "two"
    assert len(created) == 1
    assert engine.session is created[0]
    # 第二次请求携带了第一轮的历史
    assert len(provider.requests[1].contents) == 3


def test_stream_emits_plan_updates_before_final():
    provider = ScriptedProvider([
        response(text("a"), call("updateAccountPlan", VALID_ARGS)),
        response(text("b")),
    ])
    events = list(make_engine(provider).submit_user_message_stream("go"))

    assert [e.kind for e in events] == ["status", "plan_update", "status", "final"]
    assert [e.stage for e in events[:3]] == ["searching", "updating_plan", "thinking"]
    assert events[-1].result.text == "ab"


def test_reentrant_submit_is_rejected():
    provider = ScriptedProvider([
        response(call("updateAccountPlan", VALID_ARGS)),
        response(text("done")),
    ])
    engine = make_engine(provider)

    def reenter(update):
        engine.submit_user_message("nested")

    result = engine.submit_user_message("go", reenter)

    sent = tool_results_sent(provider.requests[1])
    assert sent[0].response == {"error": "Failed to update plan: Another message is still being processed"}
    assert result.text == "done"
    assert not engine.in_flight
    assert len(provider.requests) == 2


def test_submit_raises_when_stream_has_no_final_event(monkeypatch):
    engine = make_engine(ScriptedProvider([]))
    monkeypatch.setattr(
        engine,
        "submit_user_message_stream",
        lambda text, on_plan_update=None: iter([AgentStreamEvent(kind="status", stage="searching")]),
    )
    with pytest.raises(BusinessError) as exc:
        engine.submit_user_message("hi")
    assert exc.value.code == "TURN_WITHOUT_RESULT"
