"""系统提示词加载工具。

按 Agent 类型与语言(locale) 从 prompts/<locale> 目录读取对应的
system instruction 文本，会话创建时一次性注入。
"""

from pathlib import Path


PROMPTS_DIR = Path(__file__).resolve().parent

_PROMPT_FILES = {
    "account-planner": "account_planner_system.md",
}


def load_system_prompt(agent_type: str = "account-planner", locale: str = "en") -> str:
    """根据 Agent 类型和语言加载系统提示词文本。

    目前 agent_type 仅支持 "account-planner"。
    """

    fname = PROMPTS_DIR / locale / _PROMPT_FILES[agent_type]
    return fname.read_text(encoding="utf-8")
