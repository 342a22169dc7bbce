import json
import tempfile
from datetime import datetime, timezone
from pathlib import Path

import pytest

from account_planner.domain.plan import AccountPlan, PlanSection
from account_planner.infrastructure.storage.plan_export import export_filename, export_plan


def test_export_filename_replaces_whitespace_runs():
    assert export_filename("Acme  Corp\tInc") == "Acme_Corp_Inc_Account_Plan.json"


def test_export_plan_writes_json_and_overwrites():
    plan = AccountPlan(
        company_name="Acme Corp",
        sections=[PlanSection(id="exec", title="Executive Summary", content="**Bold** move")],
        last_updated=datetime(2025, 3, 4, 5, 6, 7, tzinfo=timezone.utc),
    )
    with tempfile.TemporaryDirectory() as d:
        root = Path(d) / "exports"
        path = export_plan(plan, root)
        assert path.parent == root.resolve()
        data = json.loads(path.read_text(encoding="utf-8"))
        assert data == {
            "companyName": "Acme Corp",
            "sections": [{"id": "exec", "title": "Executive Summary", "content": "**Bold** move"}],
            "lastUpdated": "2025-03-04T05:06:07Z",
        }

        plan.sections[0].content = "changed"
        export_plan(plan, root)
        assert json.loads(path.read_text(encoding="utf-8"))["sections"][0]["content"] == "changed"
        assert [p.name for p in root.iterdir()] == ["Acme_Corp_Account_Plan.json"]


@pytest.mark.parametrize(
    "name, expected",
    [
        ("AT/T Inc", "AT_T_Inc_Account_Plan.json"),
        ("../../escaped", "_.._escaped_Account_Plan.json"),
        ("a\\b\x00c", "a_b_c_Account_Plan.json"),
        ("...", "New_Company_Account_Plan.json"),
        ("  ", "New_Company_Account_Plan.json"),
    ],
)
def test_export_filename_strips_unsafe_characters(name, expected):
    assert export_filename(name) == expected


@pytest.mark.parametrize("name", ["../../escaped", "AT/T Inc", "/etc/passwd"])
def test_export_plan_stays_inside_export_dir(name):
    plan = AccountPlan(
        company_name=name,
        sections=[PlanSection(id="exec", title="Summary", content="x")],
        last_updated=datetime(2025, 1, 1, tzinfo=timezone.utc),
    )
    with tempfile.TemporaryDirectory() as d:
        root = Path(d) / "exports"
        path = export_plan(plan, root)
        assert path.parent == root.resolve()
        assert path.exists()
        assert [p.name for p in root.iterdir()] == [path.name]
        assert sorted(p.name for p in Path(d).iterdir()) == ["exports"]
