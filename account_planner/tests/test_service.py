import pytest

from account_planner.agents.plan_agent import AgentEngine
from account_planner.agents.session import ConversationSession
from account_planner.api import service
from account_planner.app.controller import AccountPlanController
from account_planner.domain.exceptions import ValidationError
from account_planner.domain.models import Candidate, Content, Part, TurnResponse
from account_planner.tools.definitions import ToolCall, default_tool_defs


class FakeProvider:
    name = "fake"

    def __init__(self, responses):
        self._responses = list(responses)

    def generate(self, req):
        return self._responses.pop(0)


def _response(*parts):
    return TurnResponse(
        provider="fake",
        model="plan-chat",
        candidates=[Candidate(index=0, content=Content(role="model", parts=list(parts)))],
    )


@pytest.fixture
def controller(monkeypatch):
    provider = FakeProvider([
        _response(
            Part(text="Drafted. "),
            Part(function_call=ToolCall(
                name="updateAccountPlan",
                arguments={
                    "companyName": "Acme",
                    "sections": [{"id": "overview", "title": "Overview", "content": "Widgets."}],
                },
            )),
        ),
        _response(Part(text="Done.")),
    ])
    session = ConversationSession(provider, model="plan-chat", tool_defs=default_tool_defs())
    ctl = AccountPlanController(engine=AgentEngine(session=session))
    monkeypatch.setattr(service, "_controller", ctl)
    return ctl


def test_run_plan_chat_returns_reply_and_plan(controller):
    out = service.run_plan_chat("Research Acme")
    assert out["assistant_message"]["content"] == "Drafted. Done."
    assert out["assistant_message"]["grounding_sources"] == []
    assert out["plan"]["companyName"] == "Acme"
    assert out["error"] is None
    assert [m["role"] for m in service.get_chat_messages()] == ["model", "user", "model"]


def test_update_and_export(controller, tmp_path):
    assert service.get_account_plan() is None
    service.run_plan_chat("Research Acme")
    plan = service.update_plan_section("overview", "Gadgets.")
    assert plan["sections"][0]["content"] == "Gadgets."
    path = service.export_account_plan(str(tmp_path))
    assert path.name == "Acme_Account_Plan.json"


def test_run_plan_chat_propagates_validation_errors(controller):
    with pytest.raises(ValidationError):
        service.run_plan_chat("")
