"""对外 API 服务模块。

提供简化的函数接口供上层应用（界面、脚本）调用，
进程内只维护一个控制器与一个对话会话。
"""

from pathlib import Path
from typing import Optional, Dict, Any

from account_planner.agents.plan_agent import AgentEngine
from account_planner.app.controller import AccountPlanController
from account_planner.domain.models import ChatMessage
from account_planner.infrastructure.logging.logger import logger


_controller: Optional[AccountPlanController] = None


def get_default_controller() -> AccountPlanController:
    """获取默认的控制器实例（单例）。会话在首条消息时才创建。"""
    global _controller
    if _controller is None:
        _controller = AccountPlanController(engine=AgentEngine())
    return _controller


def run_plan_chat(user_input: str) -> Dict[str, Any]:
    """发送一条消息并返回助手回复与当前计划。

    Args:
        user_input: 用户输入内容

    Returns:
        包含助手消息、当前账户计划与错误信息的字典

    Raises:
        各种 domain.exceptions 中定义的异常（空消息、并发提交）
    """
    controller = get_default_controller()
    try:
        reply = controller.send_message(user_input)
    except Exception as e:
        logger.error(f"Chat failed: {e}", extra={"extra": {
            "error": str(e),
            "error_code": getattr(e, "code", None),
        }})
        raise
    return {
        "assistant_message": _message_to_dict(reply),
        "plan": get_account_plan(),
        "error": controller.last_error,
    }


def get_account_plan() -> Optional[Dict[str, Any]]:
    """返回当前账户计划的 JSON 结构，尚未生成时为 None。"""
    plan = get_default_controller().plan
    return plan.to_dict() if plan else None


def get_chat_messages() -> list[Dict[str, Any]]:
    """返回完整的聊天记录。"""
    return [_message_to_dict(m) for m in get_default_controller().messages]


def update_plan_section(section_id: str, content: str) -> Optional[Dict[str, Any]]:
    """手动编辑某节正文并返回更新后的计划。"""
    plan = get_default_controller().update_section(section_id, content)
    return plan.to_dict() if plan else None


def export_account_plan(directory: Optional[str] = None) -> Path:
    """导出当前账户计划为 JSON 文件。"""
    return get_default_controller().export_plan(directory)


def _message_to_dict(message: ChatMessage) -> Dict[str, Any]:
    return {
        "id": message.id,
        "role": message.role,
        "content": message.content,
        "timestamp": message.timestamp.isoformat(),
        "grounding_sources": (
            [{"uri": s.uri, "title": s.title} for s in message.grounding_sources]
            if message.grounding_sources is not None
            else None
        ),
    }
