"""MCPツール用共通ヘルパー関数。

ツールは例外を送出せず、失敗は構造化された辞書として返す。
"""

import logging
from datetime import datetime
from typing import Any

from team_ai.context import AppContext
from team_ai.models.agent import Agent
from team_ai.models.errors import CoordinationError, ErrorKind, InvalidInputError
from team_ai.models.message import Message
from team_ai.models.plan import Plan
from team_ai.models.task import Task
from team_ai.models.team import Team

logger = logging.getLogger(__name__)


def get_app_ctx(ctx) -> AppContext:
    """MCP Context から AppContext を取り出す。"""
    return ctx.request_context.lifespan_context


def error_response(error: CoordinationError | OSError) -> dict[str, Any]:
    """例外をツールのエラーレスポンスに変換する。

    Args:
        error: 操作中に発生した例外

    Returns:
        success=False のレスポンス辞書
    """
    if isinstance(error, CoordinationError):
        logger.info(f"操作が失敗しました: {error}")
        return error.to_dict()
    logger.warning(f"ストアへのアクセスに失敗しました: {error}")
    return {
        "success": False,
        "error": f"store_unavailable: {error}",
        "error_kind": ErrorKind.UNAVAILABLE.value,
        "error_code": "store_unavailable",
        "retryable": True,
    }


def resolve_caller(app_ctx: AppContext, agent_id: str | None) -> str | None:
    """呼び出し元エージェントIDを決める（未指定ならサーバー登録エージェント）。"""
    return agent_id or app_ctx.registered_agent_id


def missing_argument_response(name: str) -> dict[str, Any]:
    """呼び出し元を決められない場合のエラーレスポンス。"""
    return error_response(InvalidInputError("invalid_value", f"{name} を指定してください"))


def _format_time(value: datetime | None) -> str:
    if value is None:
        return "-"
    return value.strftime("%Y-%m-%d %H:%M:%S")


# ========== 一覧表示の整形 ==========


def format_agent_line(agent: Agent, verbose: bool = False) -> str:
    line = f"- {agent.name} ({agent.short_id}): {agent.command or '-'} [{agent.state.value}]"
    if verbose:
        line += (
            f"\n  model: {agent.model} / role: {agent.role.value}"
            f" / tags: {', '.join(agent.tags) or '-'}"
            f" / caps: {', '.join(agent.capabilities) or '-'}"
            f" / last heartbeat: {_format_time(agent.last_heartbeat)}"
        )
    return line


def format_message_block(message: Message) -> str:
    sender = message.sender_id[:8] if message.sender_id else "-"
    lines = [
        f"### [{message.priority.value.upper()}] {message.subject} ({message.id[:8]})",
        f"from: {sender} / type: {message.message_type.value} / "
        f"at: {_format_time(message.created_at)}",
    ]
    if message.artifact_path:
        lines.append(f"artifact: {message.artifact_path}")
    lines.append("")
    lines.append(message.content)
    return "\n".join(lines)


def format_task_line(task: Task) -> str:
    line = f"- [{task.status.value.upper()}] {task.title} ({task.short_id}) priority: {task.priority.value}"
    if task.assignee:
        line += f" assignee: {task.assignee[:8]}"
    if task.depends_on:
        line += " deps: " + ", ".join(d[:8] for d in task.depends_on)
    return line


def format_team_line(team: Team) -> str:
    return (
        f"- {team.name} ({team.short_id}) lead: {team.lead[:8]} "
        f"members: {len(team.members)}"
    )


def format_plan_line(plan: Plan) -> str:
    return (
        f"- [{plan.status.value.upper()}] {plan.title} ({plan.short_id}) "
        f"reviewer: {plan.reviewer[:8]}"
    )
