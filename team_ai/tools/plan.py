"""プラン承認ワークフローツール。"""

from typing import Any

from mcp.server.fastmcp import Context, FastMCP

from team_ai.models.errors import CoordinationError
from team_ai.tools.helpers import (
    error_response,
    format_plan_line,
    get_app_ctx,
    resolve_caller,
)


def register_tools(mcp: FastMCP) -> None:
    """プラン関連ツールを登録する。"""

    @mcp.tool()
    async def plan_submit(
        title: str,
        body: str,
        reviewer: str,
        submitter: str | None = None,
        team: str | None = None,
        ctx: Context = None,
    ) -> dict[str, Any]:
        """プランをレビュー依頼として提出する（pending で作成）。

        Args:
            title: タイトル
            body: 本文（Markdown）
            reviewer: レビュアーのエージェントID
            submitter: 提出エージェントID（省略時はこのサーバーの登録エージェント）
            team: 関連チームID

        Returns:
            提出結果（success, plan_id, message）
        """
        app_ctx = get_app_ctx(ctx)
        try:
            plan = app_ctx.plan_manager.submit(
                title=title,
                body=body,
                reviewer=reviewer,
                submitter=resolve_caller(app_ctx, submitter),
                team=team,
            )
        except (CoordinationError, OSError) as e:
            return error_response(e)

        return {
            "success": True,
            "plan_id": plan.id,
            "plan": plan.model_dump(mode="json"),
            "message": f"Plan submitted: {plan.title} ({plan.id})",
        }

    @mcp.tool()
    async def plan_review(
        plan_id: str,
        action: str,
        feedback: str | None = None,
        ctx: Context = None,
    ) -> dict[str, Any]:
        """プランを承認または却下する（一度だけ）。

        Args:
            plan_id: プランID
            action: approve または reject
            feedback: レビューコメント

        Returns:
            レビュー結果（success, plan, message）
        """
        app_ctx = get_app_ctx(ctx)
        try:
            plan = app_ctx.plan_manager.review(plan_id, action, feedback=feedback)
        except (CoordinationError, OSError) as e:
            return error_response(e)

        return {
            "success": True,
            "plan": plan.model_dump(mode="json"),
            "message": f"Plan {plan.status.value}: {plan.title} ({plan.id})",
        }

    @mcp.tool()
    async def plan_list(
        status: str | None = None,
        reviewer: str | None = None,
        ctx: Context = None,
    ) -> dict[str, Any]:
        """プラン一覧を取得する。

        Args:
            status: ステータスで絞り込み（pending/approved/rejected）
            reviewer: レビュアーのエージェントIDで絞り込み

        Returns:
            プラン一覧（success, plans, count, text）
        """
        app_ctx = get_app_ctx(ctx)
        try:
            plans = app_ctx.plan_manager.list_plans(status=status, reviewer=reviewer)
        except (CoordinationError, OSError) as e:
            return error_response(e)

        text = "\n".join(format_plan_line(p) for p in plans) if plans else "No plans"
        return {
            "success": True,
            "plans": [p.model_dump(mode="json") for p in plans],
            "count": len(plans),
            "text": text,
        }
