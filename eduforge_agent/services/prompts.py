"""
Prompt and history building for agent turns.

User-facing strings are Chinese; the platform's UI and users are.
"""

from typing import Any

from eduforge_agent.models.domain import ChatMessage, ToolDefinition, UserIdentity, dump_json
from eduforge_agent.models.requests import ReasoningMessage

DEGRADED_REPLY = "抱歉，处理超时，请重试。"
DEFAULT_USER_NAME = "用户"


def build_system_prompt(user: UserIdentity) -> str:
    """Identify the acting user and tell the model to call tools directly."""
    name = user.name or DEFAULT_USER_NAME
    return (
        "你是 EduForge AI 教学助手。\n"
        f"当前用户：{name}（角色：{user.role}）\n"
        "\n"
        "你可以使用提供的工具来完成任务。请注意：\n"
        "- 查询类工具（query_*）可以直接调用，结果会立即返回\n"
        "- 修改类工具（generate_questions、create_assignment 等）也请直接调用，"
        "系统会自动弹出确认对话框让用户确认\n"
        "- 不要自己描述确认流程，直接调用工具即可\n"
        "- 回复使用中文\n"
        "- 如果用户问的问题不需要工具，直接回答即可"
    )


def build_preview(tool: ToolDefinition, params: dict[str, Any]) -> str:
    """
    Describe a confirm-required call for the user.

    Example:
        >>> build_preview(GENERATE_QUESTIONS, {"topic": "一元二次方程", "count": 3})
        '将执行「AI 自动出题并入库，需要用户确认后执行」，参数：{"topic": "一元二次方程", "count": 3}'
    """
    return f"将执行「{tool.description}」，参数：{dump_json(params)}"


def confirmation_reply(preview: str) -> str:
    return f"操作需要确认：{preview}"


def session_title(message: str, length: int = 50) -> str:
    return message.strip()[:length]


def history_to_messages(history: list[ChatMessage]) -> list[ReasoningMessage]:
    """
    Rebuild stored messages into the reasoning service's message list.

    The window is cut at an arbitrary point and a confirm-required call ends
    a batch early, so two repairs keep the list acceptable to the service:
    tool messages whose assistant message fell outside the window are
    dropped, and an assistant message only keeps the tool calls that have a
    stored result right after it.

    Args:
        history: Stored messages, oldest first.

    Returns:
        Messages in chronological order.
    """
    messages: list[ReasoningMessage] = []
    i = 0
    while i < len(history):
        message = history[i]

        if message.role == "tool":
            # orphaned by the history window
            i += 1
            continue

        if message.role == "assistant" and message.tool_calls:
            results: list[ChatMessage] = []
            j = i + 1
            while j < len(history) and history[j].role == "tool":
                results.append(history[j])
                j += 1
            answered = {r.tool_call_id for r in results}
            calls = [tc for tc in message.tool_calls if tc.id in answered]
            messages.append(
                ReasoningMessage(
                    role="assistant",
                    content=message.content or "",
                    tool_calls=[tc.to_openai_format() for tc in calls] or None,
                )
            )
            kept = {tc.id for tc in calls}
            for result in results:
                if result.tool_call_id in kept:
                    messages.append(ReasoningMessage(**result.to_reasoning_message()))
            i = j
            continue

        messages.append(ReasoningMessage(role=message.role, content=message.content or ""))
        i += 1
    return messages
