"""エージェントツールのテスト。"""

import pytest
from mcp.server.fastmcp import FastMCP

from team_ai.managers.heartbeat_daemon import (
    is_heartbeat_daemon_running,
    start_heartbeat_daemon,
)
from team_ai.managers.message_watch_daemon import is_message_watch_running, start_message_watch
from team_ai.tools.agent import register_tools


def _get_tool(name: str):
    mcp = FastMCP("test")
    register_tools(mcp)
    for tool in mcp._tool_manager._tools.values():
        if tool.name == name:
            return tool.fn
    raise AssertionError(f"tool not found: {name}")


class TestAgentRegister:
    """agent_register ツールのテスト。"""

    @pytest.mark.asyncio
    async def test_register(self, mock_ctx, app_ctx):
        """登録結果に ID が含まれることをテスト。"""
        agent_register = _get_tool("agent_register")

        result = await agent_register(
            name="cursor-api",
            command="API 実装",
            capabilities="python,review",
            ctx=mock_ctx,
        )

        assert result["success"] is True
        assert result["message"].startswith("Registered as cursor-api")
        agent = app_ctx.identity_manager.get(result["agent_id"])
        assert agent.capabilities == ["python", "review"]

    @pytest.mark.asyncio
    async def test_register_invalid_role(self, mock_ctx):
        """不正なロールは構造化エラーになることをテスト。"""
        agent_register = _get_tool("agent_register")

        result = await agent_register(name="x", command="y", role="owner", ctx=mock_ctx)

        assert result["success"] is False
        assert result["error_kind"] == "validation_error"


class TestAgentList:
    """agent_list ツールのテスト。"""

    @pytest.mark.asyncio
    async def test_list_text(self, mock_ctx, app_ctx):
        """一覧のテキスト表現をテスト。"""
        agent = app_ctx.identity_manager.register(name="worker", command="build")
        agent_list = _get_tool("agent_list")

        result = await agent_list(ctx=mock_ctx)

        assert result["count"] == 1
        assert f"- worker ({agent.id[:8]}): build [active]" in result["text"]

    @pytest.mark.asyncio
    async def test_list_verbose(self, mock_ctx, app_ctx):
        """verbose でケイパビリティが表示されることをテスト。"""
        app_ctx.identity_manager.register(name="worker", command="build", capabilities="go")
        agent_list = _get_tool("agent_list")

        result = await agent_list(verbose=True, ctx=mock_ctx)

        assert "caps: go" in result["text"]

    @pytest.mark.asyncio
    async def test_list_empty(self, mock_ctx):
        """エージェントがいない場合のテキストをテスト。"""
        agent_list = _get_tool("agent_list")

        result = await agent_list(ctx=mock_ctx)

        assert result["text"] == "No agents"


class TestAgentLifecycleTools:
    """heartbeat / deregister ツールのテスト。"""

    @pytest.mark.asyncio
    async def test_heartbeat_unknown(self, mock_ctx):
        """未知のエージェントへのハートビートは not_found を返すことをテスト。"""
        agent_heartbeat = _get_tool("agent_heartbeat")

        result = await agent_heartbeat(agent_id="ghost", ctx=mock_ctx)

        assert result["success"] is False
        assert result["error_kind"] == "not_found"
        assert result["error_code"] == "unknown_agent"
        assert result["retryable"] is False

    @pytest.mark.asyncio
    async def test_heartbeat_deregistered(self, mock_ctx, app_ctx):
        """登録解除済みエージェントへのハートビートは invalid_state を返すことをテスト。"""
        agent = app_ctx.identity_manager.register(name="worker", command="build")
        app_ctx.identity_manager.deregister(agent.id)
        agent_heartbeat = _get_tool("agent_heartbeat")

        result = await agent_heartbeat(agent_id=agent.id, ctx=mock_ctx)

        assert result["success"] is False
        assert result["error_kind"] == "invalid_state"
        assert result["error_code"] == "agent_deregistered"

    @pytest.mark.asyncio
    async def test_deregister_unknown_is_noop(self, mock_ctx):
        """未知のエージェントの登録解除は何もせず成功を返すことをテスト。"""
        agent_deregister = _get_tool("agent_deregister")

        result = await agent_deregister(agent_id="ghost", ctx=mock_ctx)

        assert result["success"] is True
        assert result["changed"] is False

    @pytest.mark.asyncio
    async def test_deregister_twice(self, mock_ctx, app_ctx):
        """2回目の登録解除も成功として返ることをテスト。"""
        agent = app_ctx.identity_manager.register(name="worker", command="build")
        agent_deregister = _get_tool("agent_deregister")

        first = await agent_deregister(agent_id=agent.id, ctx=mock_ctx)
        second = await agent_deregister(agent_id=agent.id, ctx=mock_ctx)

        assert first["success"] is True and first["changed"] is True
        assert second["success"] is True and second["changed"] is False

    @pytest.mark.asyncio
    async def test_deregister_clears_session_agent(self, mock_ctx, app_ctx):
        """サーバーの登録エージェントを解除すると参照がクリアされることをテスト。"""
        agent = app_ctx.identity_manager.register(name="session", command="idle")
        app_ctx.registered_agent_id = agent.id
        agent_deregister = _get_tool("agent_deregister")

        await agent_deregister(agent_id=agent.id, ctx=mock_ctx)

        assert app_ctx.registered_agent_id is None

    @pytest.mark.asyncio
    async def test_deregister_session_agent_by_prefix_stops_daemons(self, mock_ctx, app_ctx):
        """プレフィックスでセッションのエージェントを解除すると常駐ループも止まることをテスト。"""
        agent = app_ctx.identity_manager.register(name="session", command="idle")
        app_ctx.registered_agent_id = agent.id
        await start_heartbeat_daemon(app_ctx, agent.id)
        await start_message_watch(app_ctx, agent.id, interval_seconds=60)
        agent_deregister = _get_tool("agent_deregister")

        result = await agent_deregister(agent_id=agent.id[:8], ctx=mock_ctx)

        assert result["changed"] is True
        assert app_ctx.registered_agent_id is None
        assert not is_heartbeat_daemon_running(app_ctx)
        assert not is_message_watch_running(app_ctx)


class TestAgentsByCapability:
    """agents_by_capability ツールのテスト。"""

    @pytest.mark.asyncio
    async def test_search(self, mock_ctx, app_ctx):
        """ケイパビリティ検索をテスト。"""
        app_ctx.identity_manager.register(name="py", command="c", capabilities="Python")
        agents_by_capability = _get_tool("agents_by_capability")

        result = await agents_by_capability(capability="python", ctx=mock_ctx)

        assert result["count"] == 1
        assert "- py (" in result["text"]

    @pytest.mark.asyncio
    async def test_no_match(self, mock_ctx):
        """一致なしのテキストをテスト。"""
        agents_by_capability = _get_tool("agents_by_capability")

        result = await agents_by_capability(capability="rust", ctx=mock_ctx)

        assert result["success"] is True
        assert result["text"] == "No agents with capability: rust"
