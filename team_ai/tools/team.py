"""チーム管理ツール。"""

from typing import Any

from mcp.server.fastmcp import Context, FastMCP

from team_ai.models.errors import CoordinationError
from team_ai.tools.helpers import (
    error_response,
    format_team_line,
    get_app_ctx,
    missing_argument_response,
    resolve_caller,
)


def register_tools(mcp: FastMCP) -> None:
    """チーム関連ツールを登録する。"""

    @mcp.tool()
    async def team_create(
        name: str,
        lead: str | None = None,
        description: str = "",
        ctx: Context = None,
    ) -> dict[str, Any]:
        """チームを作成する。リードは自動でメンバーになる。

        Args:
            name: チーム名
            lead: リードのエージェントID（省略時はこのサーバーの登録エージェント）
            description: チームの説明

        Returns:
            作成結果（success, team_id, message）
        """
        app_ctx = get_app_ctx(ctx)
        lead_id = resolve_caller(app_ctx, lead)
        if not lead_id:
            return missing_argument_response("lead")
        try:
            team = app_ctx.team_manager.create(name, lead_id, description=description)
        except (CoordinationError, OSError) as e:
            return error_response(e)

        return {
            "success": True,
            "team_id": team.id,
            "team": team.model_dump(mode="json"),
            "message": f"Team created: {team.name} ({team.id})",
        }

    @mcp.tool()
    async def team_list(
        agent_id: str | None = None,
        ctx: Context = None,
    ) -> dict[str, Any]:
        """チーム一覧を取得する。

        Args:
            agent_id: 指定時はこのエージェントが所属するチームのみ

        Returns:
            チーム一覧（success, teams, count, text）
        """
        app_ctx = get_app_ctx(ctx)
        try:
            teams = app_ctx.team_manager.list_teams(agent_id=agent_id)
        except (CoordinationError, OSError) as e:
            return error_response(e)

        text = "\n".join(format_team_line(t) for t in teams) if teams else "No teams"
        return {
            "success": True,
            "teams": [t.model_dump(mode="json") for t in teams],
            "count": len(teams),
            "text": text,
        }

    @mcp.tool()
    async def team_join(
        team_id: str,
        agent_id: str | None = None,
        ctx: Context = None,
    ) -> dict[str, Any]:
        """チームに参加する（既にメンバーなら何もしない）。

        Args:
            team_id: チームID
            agent_id: 参加するエージェントID（省略時はこのサーバーの登録エージェント）

        Returns:
            参加結果（success, joined, message）
        """
        app_ctx = get_app_ctx(ctx)
        member_id = resolve_caller(app_ctx, agent_id)
        if not member_id:
            return missing_argument_response("agent_id")
        try:
            team, joined = app_ctx.team_manager.join(team_id, member_id)
        except (CoordinationError, OSError) as e:
            return error_response(e)

        message = (
            f"Joined team: {team.name} ({team.id})"
            if joined
            else f"Already a member of team: {team.name} ({team.id})"
        )
        return {
            "success": True,
            "joined": joined,
            "team": team.model_dump(mode="json"),
            "message": message,
        }

    @mcp.tool()
    async def team_leave(
        team_id: str,
        agent_id: str | None = None,
        ctx: Context = None,
    ) -> dict[str, Any]:
        """チームから離脱する。リードは離脱できない。

        Args:
            team_id: チームID
            agent_id: 離脱するエージェントID（省略時はこのサーバーの登録エージェント）

        Returns:
            離脱結果（success, left, message）
        """
        app_ctx = get_app_ctx(ctx)
        member_id = resolve_caller(app_ctx, agent_id)
        if not member_id:
            return missing_argument_response("agent_id")
        try:
            team, left = app_ctx.team_manager.leave(team_id, member_id)
        except (CoordinationError, OSError) as e:
            return error_response(e)

        message = (
            f"Left team: {team.name} ({team.id})"
            if left
            else f"Not a member of team: {team.name} ({team.id})"
        )
        return {
            "success": True,
            "left": left,
            "team": team.model_dump(mode="json"),
            "message": message,
        }
