"""
Question Bank Tools

query_questions searches the question bank; generate_questions asks the
plugin to generate questions with AI and store them, which changes data and
therefore waits for the user's confirmation.

Pattern: Service Proxy (delegates to the plugin backend)
"""

import logging
from typing import Any

from eduforge_agent.clients.plugin_backend import PluginBackendClient, PluginBackendError
from eduforge_agent.models.domain import Role, ToolContext, ToolDefinition

logger = logging.getLogger(__name__)

DIFFICULTIES = ["EASY", "MEDIUM", "HARD"]
QUESTION_TYPES = ["CHOICE", "FILL", "SHORT_ANSWER", "ESSAY"]


def backend_of(context: ToolContext) -> PluginBackendClient:
    """Return the plugin backend handle carried by the context."""
    if context.backend is None:
        raise PluginBackendError("Plugin backend is not configured")
    return context.backend


async def query_questions(params: dict[str, Any], context: ToolContext) -> Any:
    """
    Search the question bank.

    Args:
        params: subject, difficulty, type, keyword, limit (all optional).
        context: Acting user context.

    Returns:
        List of questions as returned by the plugin.
    """
    logger.debug(f"Querying questions for {context.user_id}: {params}")
    return await backend_of(context).query_questions(
        context,
        subject=params.get("subject"),
        difficulty=params.get("difficulty"),
        type=params.get("type"),
        keyword=params.get("keyword"),
        limit=params.get("limit", 10),
    )


async def generate_questions(params: dict[str, Any], context: ToolContext) -> Any:
    payload = {
        "subject": params["subject"],
        "topic": params["topic"],
        "count": params["count"],
        "difficulty": params["difficulty"],
        "schoolId": context.school_id,
        "createdBy": context.user_id,
    }
    logger.info(
        f"Generating {params['count']} questions on {params['topic']!r} for {context.user_id}"
    )
    return await backend_of(context).generate_questions(context, payload)


QUERY_QUESTIONS = ToolDefinition(
    name="query_questions",
    description="查询题库中的题目，支持按科目、难度、类型、关键词筛选",
    parameters={
        "type": "object",
        "properties": {
            "subject": {"type": "string", "description": "科目"},
            "difficulty": {
                "type": "string",
                "description": "难度: EASY/MEDIUM/HARD",
                "enum": DIFFICULTIES,
            },
            "type": {
                "type": "string",
                "description": "题型: CHOICE/FILL/SHORT_ANSWER/ESSAY",
                "enum": QUESTION_TYPES,
            },
            "keyword": {"type": "string", "description": "关键词搜索"},
            "limit": {"type": "number", "description": "返回数量，默认10"},
        },
    },
    roles={Role.TEACHER, Role.STUDENT},
    handler=query_questions,
)

GENERATE_QUESTIONS = ToolDefinition(
    name="generate_questions",
    description="AI 自动出题并入库，需要用户确认后执行",
    parameters={
        "type": "object",
        "properties": {
            "subject": {"type": "string", "description": "科目"},
            "topic": {"type": "string", "description": "知识点/主题"},
            "count": {"type": "number", "description": "题目数量"},
            "difficulty": {
                "type": "string",
                "description": "难度: EASY/MEDIUM/HARD",
                "enum": DIFFICULTIES,
            },
        },
        "required": ["subject", "topic", "count", "difficulty"],
    },
    roles={Role.TEACHER},
    confirm_required=True,
    handler=generate_questions,
)
