"""账户计划文档模型与合并逻辑。

账户计划只能通过两种途径修改：
- merge_plan_update: 模型经由 updateAccountPlan 工具发出的增量，按 section id upsert。
- update_section_content: 用户在界面上直接编辑某一节的正文。

两者都返回新的 AccountPlan 对象，不修改入参。
"""

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional

from account_planner.domain.exceptions import ValidationError

DEFAULT_COMPANY_NAME = "New Company"


@dataclass
class PlanSection:
    id: str
    title: str
    content: str


@dataclass
class SectionUpdate:
    """一节的增量：id 必填，其余字段缺省表示保留原值。"""

    id: str
    title: Optional[str] = None
    content: Optional[str] = None


@dataclass
class PlanUpdate:
    """部分账户计划，只携带本次新声明的内容。"""

    company_name: Optional[str] = None
    sections: List[SectionUpdate] = field(default_factory=list)


@dataclass
class AccountPlan:
    company_name: str
    sections: List[PlanSection]
    last_updated: datetime

    def get_section(self, section_id: str) -> Optional[PlanSection]:
        for section in self.sections:
            if section.id == section_id:
                return section
        return None

    def to_dict(self) -> Dict[str, Any]:
        """导出用的 JSON 结构（字段名与前端约定一致）。"""

        return {
            "companyName": self.company_name,
            "sections": [
                {"id": s.id, "title": s.title, "content": s.content} for s in self.sections
            ],
            "lastUpdated": self.last_updated.astimezone(timezone.utc).isoformat().replace("+00:00", "Z"),
        }


def merge_plan_update(
    current: Optional[AccountPlan],
    update: PlanUpdate,
    now: Optional[datetime] = None,
) -> AccountPlan:
    """把一次计划增量合并进当前计划。

    - company_name: 增量非空时替换，否则沿用原值，再否则使用默认名称。
    - sections: 逐节按 id upsert。已有的节原位浅合并，新节追加到末尾，
      未涉及的节保持原有顺序。
    - last_updated: 每次合并都刷新为当前时间。
    """

    sections = [replace(s) for s in current.sections] if current else []
    index_by_id = {s.id: i for i, s in enumerate(sections)}

    for patch in update.sections:
        idx = index_by_id.get(patch.id)
        if idx is not None:
            existing = sections[idx]
            sections[idx] = PlanSection(
                id=existing.id,
                title=patch.title if patch.title is not None else existing.title,
                content=patch.content if patch.content is not None else existing.content,
            )
        else:
            index_by_id[patch.id] = len(sections)
            sections.append(
                PlanSection(
                    id=patch.id,
                    title=patch.title if patch.title is not None else patch.id,
                    content=patch.content or "",
                )
            )

    company_name = update.company_name or (current.company_name if current else None) or DEFAULT_COMPANY_NAME
    return AccountPlan(
        company_name=company_name,
        sections=sections,
        last_updated=now or datetime.now(timezone.utc),
    )


def update_section_content(
    plan: Optional[AccountPlan],
    section_id: str,
    content: str,
) -> Optional[AccountPlan]:
    """用户手动编辑：只替换目标节的 content。

    id 不存在时节列表保持不变，手动编辑不会新建节。
    """

    if plan is None:
        return None
    sections = [
        replace(s, content=content) if s.id == section_id else replace(s)
        for s in plan.sections
    ]
    return replace(plan, sections=sections)


def parse_plan_update(args: Mapping[str, Any]) -> PlanUpdate:
    """把 updateAccountPlan 的松散参数校验并转换为 PlanUpdate。

    sections 为必填数组，每一项的 id/title/content 都必须是字符串；
    companyName 可选，出现时必须是字符串。

    Raises:
        ValidationError: 参数不符合工具 schema。
    """

    if not isinstance(args, Mapping):
        raise _invalid("arguments must be an object")

    company_name = args.get("companyName")
    if company_name is not None and not isinstance(company_name, str):
        raise _invalid("companyName must be a string")

    raw_sections = args.get("sections")
    if not isinstance(raw_sections, list):
        raise _invalid("sections must be a list")

    sections: List[SectionUpdate] = []
    for i, raw in enumerate(raw_sections):
        if not isinstance(raw, Mapping):
            raise _invalid(f"sections[{i}] must be an object")
        values = {}
        for key in ("id", "title", "content"):
            value = raw.get(key)
            if not isinstance(value, str):
                raise _invalid(f"sections[{i}].{key} is required and must be a string")
            values[key] = value
        if not values["id"].strip():
            raise _invalid(f"sections[{i}].id must not be empty")
        sections.append(SectionUpdate(**values))

    return PlanUpdate(company_name=company_name, sections=sections)


def _invalid(message: str) -> ValidationError:
    return ValidationError(code="INVALID_TOOL_ARGS", message=message)
