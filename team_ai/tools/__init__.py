"""MCP Tools モジュール。"""

from mcp.server.fastmcp import FastMCP

from team_ai.tools import agent, message, plan, task, team


def register_all_tools(mcp: FastMCP) -> None:
    """全ツールをMCPサーバーに登録する。

    Args:
        mcp: FastMCPインスタンス
    """
    # エージェント（Identity Store）
    agent.register_tools(mcp)

    # メッセージバス
    message.register_tools(mcp)

    # タスクグラフ
    task.register_tools(mcp)

    # チーム
    team.register_tools(mcp)

    # プラン承認
    plan.register_tools(mcp)
