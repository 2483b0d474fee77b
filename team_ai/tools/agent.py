"""エージェント（Identity Store）ツール。"""

from typing import Any

from mcp.server.fastmcp import Context, FastMCP

from team_ai.managers.heartbeat_daemon import stop_heartbeat_daemon
from team_ai.managers.message_watch_daemon import stop_message_watch
from team_ai.managers.store import RecordKind
from team_ai.models.errors import (
    CoordinationError,
    InvalidStateError,
    NotFoundError,
    UnavailableError,
)
from team_ai.tools.helpers import error_response, format_agent_line, get_app_ctx


def register_tools(mcp: FastMCP) -> None:
    """エージェント管理ツールを登録する。"""

    @mcp.tool()
    async def agent_register(
        name: str,
        command: str,
        model: str = "unknown",
        tags: str | None = None,
        capabilities: str | None = None,
        role: str = "worker",
        ctx: Context = None,
    ) -> dict[str, Any]:
        """エージェントを登録する。

        Args:
            name: 表示名
            command: 現在取り組んでいるタスクの説明
            model: 使用モデル
            tags: タグ（カンマ区切り）
            capabilities: ケイパビリティ（カンマ区切り）
            role: 役割（worker/lead/delegate）

        Returns:
            登録結果（success, agent_id, message）
        """
        app_ctx = get_app_ctx(ctx)
        try:
            agent = app_ctx.identity_manager.register(
                name=name,
                command=command,
                model=model,
                tags=tags,
                capabilities=capabilities,
                role=role,
            )
        except (CoordinationError, OSError) as e:
            return error_response(e)

        return {
            "success": True,
            "agent_id": agent.id,
            "agent": agent.model_dump(mode="json"),
            "message": f"Registered as {agent.name} ({agent.id})",
        }

    @mcp.tool()
    async def agent_list(
        include_completed: bool = False,
        verbose: bool = False,
        ctx: Context = None,
    ) -> dict[str, Any]:
        """登録済みエージェントの一覧を取得する。

        状態はハートビートの鮮度から導出される（active / idle / completed）。

        Args:
            include_completed: 登録解除済みも含めるか
            verbose: モデル・タグ・ケイパビリティ等の詳細も表示するか

        Returns:
            エージェント一覧（success, agents, count, text）
        """
        app_ctx = get_app_ctx(ctx)
        try:
            agents = app_ctx.identity_manager.list_agents(include_completed=include_completed)
        except (CoordinationError, OSError) as e:
            return error_response(e)

        text = (
            "\n".join(format_agent_line(a, verbose=verbose) for a in agents)
            if agents
            else "No agents"
        )
        return {
            "success": True,
            "agents": [a.model_dump(mode="json") for a in agents],
            "count": len(agents),
            "text": text,
        }

    @mcp.tool()
    async def agent_heartbeat(
        agent_id: str,
        ctx: Context = None,
    ) -> dict[str, Any]:
        """エージェントのハートビートを更新する。

        Args:
            agent_id: エージェントID

        Returns:
            更新結果（success, message）
        """
        app_ctx = get_app_ctx(ctx)
        if app_ctx.identity_manager.heartbeat(agent_id):
            return {"success": True, "message": f"Heartbeat updated: {agent_id}"}

        # 更新できなかった理由を判別してエラー種別を返す
        try:
            agent = app_ctx.identity_manager.get(agent_id)
        except (CoordinationError, OSError) as e:
            return error_response(e)
        if agent.is_completed:
            return error_response(
                InvalidStateError(
                    "agent_deregistered", f"登録解除済みのエージェントです: {agent.id}"
                )
            )
        return error_response(
            UnavailableError(
                "store_unavailable", f"heartbeat を更新できませんでした: {agent.id}"
            )
        )

    @mcp.tool()
    async def agent_deregister(
        agent_id: str,
        ctx: Context = None,
    ) -> dict[str, Any]:
        """エージェントの登録を解除する（冪等）。

        Args:
            agent_id: エージェントID

        Returns:
            解除結果（success, message）
        """
        app_ctx = get_app_ctx(ctx)
        try:
            resolved_id = app_ctx.store.resolve_id(RecordKind.AGENT, agent_id)
        except NotFoundError:
            return {
                "success": True,
                "changed": False,
                "message": f"Already deregistered: {agent_id}",
            }
        except (CoordinationError, OSError) as e:
            return error_response(e)

        changed = app_ctx.identity_manager.deregister(resolved_id)
        if resolved_id == app_ctx.registered_agent_id:
            await stop_message_watch(app_ctx)
            await stop_heartbeat_daemon(app_ctx)
            app_ctx.registered_agent_id = None
        message = (
            f"Deregistered: {resolved_id}" if changed else f"Already deregistered: {resolved_id}"
        )
        return {"success": True, "changed": changed, "message": message}

    @mcp.tool()
    async def agents_by_capability(
        capability: str,
        ctx: Context = None,
    ) -> dict[str, Any]:
        """指定ケイパビリティを持つエージェントを検索する（大文字小文字を区別しない）。

        Args:
            capability: ケイパビリティ

        Returns:
            検索結果（success, agents, count, text）
        """
        app_ctx = get_app_ctx(ctx)
        try:
            agents = app_ctx.identity_manager.find_by_capability(capability)
        except (CoordinationError, OSError) as e:
            return error_response(e)

        text = (
            "\n".join(format_agent_line(a, verbose=True) for a in agents)
            if agents
            else f"No agents with capability: {capability}"
        )
        return {
            "success": True,
            "agents": [a.model_dump(mode="json") for a in agents],
            "count": len(agents),
            "text": text,
        }
