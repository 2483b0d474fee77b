"""タスクツールのテスト。"""

import pytest
from mcp.server.fastmcp import FastMCP

from team_ai.tools.task import register_tools


def _get_tool(name: str):
    mcp = FastMCP("test")
    register_tools(mcp)
    for tool in mcp._tool_manager._tools.values():
        if tool.name == name:
            return tool.fn
    raise AssertionError(f"tool not found: {name}")


@pytest.fixture
def worker(app_ctx):
    """claim するエージェント。"""
    return app_ctx.identity_manager.register(name="worker", command="build")


class TestTaskTools:
    """タスクツールのテスト。"""

    @pytest.mark.asyncio
    async def test_create_and_list(self, mock_ctx):
        """作成したタスクが一覧に表示されることをテスト。"""
        task_create = _get_tool("task_create")
        task_list = _get_tool("task_list")

        created = await task_create(title="設計", priority="high", ctx=mock_ctx)
        listed = await task_list(ctx=mock_ctx)

        assert created["success"] is True
        assert listed["count"] == 1
        assert f"- [PENDING] 設計 ({created['task_id'][:8]}) priority: high" in listed["text"]

    @pytest.mark.asyncio
    async def test_create_unknown_dependency(self, mock_ctx):
        """未知の依存は validation_error になることをテスト。"""
        task_create = _get_tool("task_create")

        result = await task_create(title="B", depends_on="missing", ctx=mock_ctx)

        assert result["success"] is False
        assert result["error_kind"] == "validation_error"
        assert result["error_code"] == "unknown_dependency"

    @pytest.mark.asyncio
    async def test_claim_conflict_is_retryable(self, mock_ctx, app_ctx, worker):
        """claim 競合は conflict かつ retryable で返ることをテスト。"""
        other = app_ctx.identity_manager.register(name="other", command="build")
        task = app_ctx.task_manager.create("A")
        task_claim = _get_tool("task_claim")

        won = await task_claim(task_id=task.id, agent_id=worker.id, ctx=mock_ctx)
        lost = await task_claim(task_id=task.id, agent_id=other.id, ctx=mock_ctx)

        assert won["success"] is True
        assert lost["success"] is False
        assert lost["error_kind"] == "conflict"
        assert lost["retryable"] is True

    @pytest.mark.asyncio
    async def test_claim_requires_agent(self, mock_ctx, app_ctx):
        """claim するエージェントが決まらない場合はエラーになることをテスト。"""
        task = app_ctx.task_manager.create("A")
        task_claim = _get_tool("task_claim")

        result = await task_claim(task_id=task.id, ctx=mock_ctx)

        assert result["success"] is False
        assert result["error_kind"] == "validation_error"
        assert result["error_code"] == "invalid_value"

    @pytest.mark.asyncio
    async def test_complete_pending(self, mock_ctx, app_ctx):
        """pending のタスク完了は invalid_state になることをテスト。"""
        task = app_ctx.task_manager.create("A")
        task_complete = _get_tool("task_complete")

        result = await task_complete(task_id=task.id, ctx=mock_ctx)

        assert result["success"] is False
        assert result["error_kind"] == "invalid_state"
        assert result["error_code"] == "not_in_progress"

    @pytest.mark.asyncio
    async def test_full_flow(self, mock_ctx, app_ctx, worker):
        """available 一覧・claim・完了の流れをテスト。"""
        task_create = _get_tool("task_create")
        task_list = _get_tool("task_list")
        task_claim = _get_tool("task_claim")
        task_complete = _get_tool("task_complete")

        a = await task_create(title="A", ctx=mock_ctx)
        b = await task_create(title="B", depends_on=a["task_id"], ctx=mock_ctx)

        available = await task_list(available_only=True, ctx=mock_ctx)
        assert [t["id"] for t in available["tasks"]] == [a["task_id"]]

        await task_claim(task_id=a["task_id"], agent_id=worker.id, ctx=mock_ctx)
        done = await task_complete(task_id=a["task_id"], result="ok", ctx=mock_ctx)
        assert done["task"]["status"] == "completed"

        available = await task_list(available_only=True, ctx=mock_ctx)
        assert [t["id"] for t in available["tasks"]] == [b["task_id"]]

    @pytest.mark.asyncio
    async def test_update_cycle(self, mock_ctx, app_ctx):
        """循環依存の追加は cyclic_dependency になることをテスト。"""
        a = app_ctx.task_manager.create("A")
        b = app_ctx.task_manager.create("B", depends_on=a.id)
        task_update = _get_tool("task_update")

        result = await task_update(task_id=a.id, add_dep=b.id, ctx=mock_ctx)

        assert result["success"] is False
        assert result["error_code"] == "cyclic_dependency"

    @pytest.mark.asyncio
    async def test_update_release_assignment(self, mock_ctx, app_ctx, worker):
        """assignee="none" で pending に戻ることをテスト。"""
        task = app_ctx.task_manager.create("A")
        app_ctx.task_manager.claim(task.id, worker.id)
        task_update = _get_tool("task_update")

        result = await task_update(task_id=task.id, assignee="none", ctx=mock_ctx)

        assert result["success"] is True
        assert result["task"]["status"] == "pending"
        assert result["task"]["assignee"] is None
