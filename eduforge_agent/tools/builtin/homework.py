"""
Homework Tools

Read tools for assignments, submissions and class analytics, plus
create_assignment which publishes homework to a class and needs the
user's confirmation.

Pattern: Service Proxy (delegates to the plugin backend)
"""

import logging
from typing import Any

from eduforge_agent.models.domain import Role, ToolContext, ToolDefinition
from eduforge_agent.tools.builtin.question_bank import backend_of

logger = logging.getLogger(__name__)


async def query_assignments(params: dict[str, Any], context: ToolContext) -> Any:
    return await backend_of(context).query_assignments(
        context,
        classId=params.get("classId"),
        status=params.get("status"),
    )


async def query_submissions(params: dict[str, Any], context: ToolContext) -> Any:
    """
    List submissions and grading results.

    Students only ever see their own submissions: the student filter is
    pinned to the acting user whatever the model asked for.
    """
    if context.role == Role.STUDENT:
        student_id = context.user_id
    else:
        student_id = params.get("studentId")
    return await backend_of(context).query_submissions(
        context,
        assignmentId=params.get("assignmentId"),
        studentId=student_id,
    )


async def query_analytics(params: dict[str, Any], context: ToolContext) -> Any:
    return await backend_of(context).query_analytics(
        context, class_id=params["classId"], metric=params.get("metric")
    )


async def create_assignment(params: dict[str, Any], context: ToolContext) -> Any:
    payload = {
        "title": params["title"],
        "description": params.get("description"),
        "classId": params["classId"],
        "subjectId": params["subjectId"],
        "questionIds": params["questionIds"],
        "deadline": params.get("deadline"),
        "teacherId": context.user_id,
    }
    logger.info(f"Creating assignment {params['title']!r} for class {params['classId']}")
    return await backend_of(context).create_assignment(context, payload)


QUERY_ASSIGNMENTS = ToolDefinition(
    name="query_assignments",
    description="查看作业列表，教师可看所有，学生看自己班级的",
    parameters={
        "type": "object",
        "properties": {
            "classId": {"type": "string", "description": "班级ID"},
            "status": {"type": "string", "description": "状态: DRAFT/PUBLISHED/CLOSED"},
        },
    },
    roles={Role.TEACHER, Role.STUDENT},
    handler=query_assignments,
)

QUERY_SUBMISSIONS = ToolDefinition(
    name="query_submissions",
    description="查看作业提交和批改结果",
    parameters={
        "type": "object",
        "properties": {
            "assignmentId": {"type": "string", "description": "作业ID"},
            "studentId": {"type": "string", "description": "学生ID"},
        },
    },
    roles={Role.TEACHER, Role.STUDENT},
    handler=query_submissions,
)

QUERY_ANALYTICS = ToolDefinition(
    name="query_analytics",
    description="查询班级学情数据，包括平均分、提交率等",
    parameters={
        "type": "object",
        "properties": {
            "classId": {"type": "string", "description": "班级ID"},
            "metric": {
                "type": "string",
                "description": "指标: avg_score/submission_rate/all",
                "enum": ["avg_score", "submission_rate", "all"],
            },
        },
        "required": ["classId"],
    },
    roles={Role.TEACHER},
    handler=query_analytics,
)

CREATE_ASSIGNMENT = ToolDefinition(
    name="create_assignment",
    description="为班级布置作业，需要用户确认后执行",
    parameters={
        "type": "object",
        "properties": {
            "title": {"type": "string", "description": "作业标题"},
            "description": {"type": "string", "description": "作业说明"},
            "classId": {"type": "string", "description": "班级ID"},
            "subjectId": {"type": "string", "description": "科目ID"},
            "questionIds": {
                "type": "array",
                "items": {"type": "string"},
                "description": "题目ID列表",
            },
            "deadline": {"type": "string", "description": "截止时间 (ISO 8601)"},
        },
        "required": ["title", "classId", "subjectId", "questionIds"],
    },
    roles={Role.TEACHER},
    confirm_required=True,
    handler=create_assignment,
)
