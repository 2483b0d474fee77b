"""タスクグラフツール。"""

from typing import Any

from mcp.server.fastmcp import Context, FastMCP

from team_ai.models.errors import CoordinationError
from team_ai.tools.helpers import (
    error_response,
    format_task_line,
    get_app_ctx,
    missing_argument_response,
    resolve_caller,
)


def register_tools(mcp: FastMCP) -> None:
    """タスク関連ツールを登録する。"""

    @mcp.tool()
    async def task_create(
        title: str,
        description: str = "",
        depends_on: str | None = None,
        created_by: str | None = None,
        tags: str | None = None,
        priority: str = "normal",
        team: str | None = None,
        ctx: Context = None,
    ) -> dict[str, Any]:
        """タスクを作成する。

        Args:
            title: タスクタイトル
            description: タスク説明
            depends_on: 依存先タスクID（カンマ区切り、既存タスクのみ）
            created_by: 作成エージェントID（省略時はこのサーバーの登録エージェント）
            tags: タグ（カンマ区切り）
            priority: 優先度（low/normal/high）
            team: 所属チームID

        Returns:
            作成結果（success, task_id, message）
        """
        app_ctx = get_app_ctx(ctx)
        try:
            task = app_ctx.task_manager.create(
                title=title,
                description=description,
                depends_on=depends_on,
                created_by=resolve_caller(app_ctx, created_by),
                tags=tags,
                priority=priority,
                team=team,
            )
        except (CoordinationError, OSError) as e:
            return error_response(e)

        return {
            "success": True,
            "task_id": task.id,
            "task": task.model_dump(mode="json"),
            "message": f"Task created: {task.title} ({task.id})",
        }

    @mcp.tool()
    async def task_list(
        status: str | None = None,
        assignee: str | None = None,
        team: str | None = None,
        tag: str | None = None,
        available_only: bool = False,
        ctx: Context = None,
    ) -> dict[str, Any]:
        """タスク一覧を取得する。

        available_only=True の場合、pending かつ依存が全て completed のタスクのみ返す。

        Args:
            status: ステータスで絞り込み（pending/in_progress/completed/blocked）
            assignee: 担当エージェントIDで絞り込み
            team: チームIDで絞り込み
            tag: タグで絞り込み
            available_only: claim 可能なタスクのみ

        Returns:
            タスク一覧（success, tasks, count, text）
        """
        app_ctx = get_app_ctx(ctx)
        try:
            tasks = app_ctx.task_manager.list_tasks(
                status=status,
                assignee=assignee,
                team=team,
                tag=tag,
                available_only=available_only,
            )
        except (CoordinationError, OSError) as e:
            return error_response(e)

        text = "\n".join(format_task_line(t) for t in tasks) if tasks else "No tasks"
        return {
            "success": True,
            "tasks": [t.model_dump(mode="json") for t in tasks],
            "count": len(tasks),
            "text": text,
        }

    @mcp.tool()
    async def task_claim(
        task_id: str,
        agent_id: str | None = None,
        ctx: Context = None,
    ) -> dict[str, Any]:
        """タスクを claim する（同時に claim した場合は1人だけが成功する）。

        Args:
            task_id: タスクID
            agent_id: claim するエージェントID（省略時はこのサーバーの登録エージェント）

        Returns:
            claim 結果（success, task, message）。競合時は retryable=True
        """
        app_ctx = get_app_ctx(ctx)
        claimant = resolve_caller(app_ctx, agent_id)
        if not claimant:
            return missing_argument_response("agent_id")
        try:
            task = app_ctx.task_manager.claim(task_id, claimant)
        except (CoordinationError, OSError) as e:
            return error_response(e)

        return {
            "success": True,
            "task": task.model_dump(mode="json"),
            "message": f"Claimed task: {task.title} ({task.id})",
        }

    @mcp.tool()
    async def task_complete(
        task_id: str,
        result: str | None = None,
        ctx: Context = None,
    ) -> dict[str, Any]:
        """進行中のタスクを完了にする。

        Args:
            task_id: タスクID
            result: 結果サマリー

        Returns:
            完了結果（success, task, message）
        """
        app_ctx = get_app_ctx(ctx)
        try:
            task = app_ctx.task_manager.complete(task_id, result=result)
        except (CoordinationError, OSError) as e:
            return error_response(e)

        return {
            "success": True,
            "task": task.model_dump(mode="json"),
            "message": f"Task completed: {task.title} ({task.id})",
        }

    @mcp.tool()
    async def task_update(
        task_id: str,
        title: str | None = None,
        description: str | None = None,
        status: str | None = None,
        assignee: str | None = None,
        priority: str | None = None,
        add_dep: str | None = None,
        remove_dep: str | None = None,
        team: str | None = None,
        tags: str | None = None,
        ctx: Context = None,
    ) -> dict[str, Any]:
        """タスクのフィールドを更新する。

        assignee="none" で割り当てを解除する（in_progress なら pending に戻る）。
        add_dep は循環依存になる場合に拒否される。

        Args:
            task_id: タスクID
            title: 新しいタイトル
            description: 新しい説明
            status: 新しいステータス（pending/blocked）
            assignee: 新しい担当者（"none" で解除）
            priority: 新しい優先度
            add_dep: 追加する依存先タスクID
            remove_dep: 削除する依存先タスクID
            team: 所属チームID（"none" で解除）
            tags: タグ（カンマ区切り、置き換え）

        Returns:
            更新結果（success, task, message）
        """
        app_ctx = get_app_ctx(ctx)
        try:
            task = app_ctx.task_manager.update(
                task_id,
                title=title,
                description=description,
                status=status,
                assignee=assignee,
                priority=priority,
                add_dep=add_dep,
                remove_dep=remove_dep,
                team=team,
                tags=tags,
            )
        except (CoordinationError, OSError) as e:
            return error_response(e)

        return {
            "success": True,
            "task": task.model_dump(mode="json"),
            "message": f"Task updated: {task.title} ({task.id}) [{task.status.value}]",
        }
