import json
import os
import re
from pathlib import Path
from uuid import uuid4

from account_planner.config.settings import settings
from account_planner.domain.exceptions import BusinessError
from account_planner.domain.plan import DEFAULT_COMPANY_NAME, AccountPlan


def export_filename(company_name: str) -> str:
    """由公司名生成导出文件名。

    连续空白替换为下划线，路径分隔符等文件名中不安全的字符同样替换为下划线，
    并去掉开头的点；清理后为空时使用默认公司名。
    """

    stem = re.sub(r"\s+", "_", company_name)
    stem = re.sub(r"[^\w.\-]+", "_", stem).lstrip(".")
    if not stem.strip("_"):
        stem = re.sub(r"\s+", "_", DEFAULT_COMPANY_NAME)
    return f"{stem}_Account_Plan.json"


def export_plan(plan: AccountPlan, directory: str | Path | None = None) -> Path:
    """把账户计划写成 JSON 文件并返回路径（先写临时文件再原子替换）。

    Raises:
        BusinessError: 目标路径不在导出目录内（EXPORT_PATH_INVALID）或写入失败（EXPORT_WRITE_ERROR）。
    """

    root = Path(directory or settings.export_dir).resolve()
    target = root / export_filename(plan.company_name)
    if target.resolve().parent != root:
        raise BusinessError(code="EXPORT_PATH_INVALID", message=f"Export path escapes {root}")
    tmp_path = root / f"{target.stem}.{uuid4().hex}.json.tmp"
    try:
        root.mkdir(parents=True, exist_ok=True)
        tmp_path.write_text(json.dumps(plan.to_dict(), ensure_ascii=False, indent=2), encoding="utf-8")
        os.replace(tmp_path, target)
    except OSError as e:
        if tmp_path.exists():
            tmp_path.unlink(missing_ok=True)
        raise BusinessError(code="EXPORT_WRITE_ERROR", message=str(e))
    return target
