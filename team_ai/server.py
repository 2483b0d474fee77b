"""Team AI MCP Server エントリーポイント。"""

import logging
import os
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path

from mcp.server.fastmcp import FastMCP

from team_ai.config.settings import load_settings
from team_ai.context import AppContext, create_app_context
from team_ai.managers.heartbeat_daemon import start_heartbeat_daemon, stop_heartbeat_daemon
from team_ai.managers.message_watch_daemon import stop_message_watch
from team_ai.models.errors import CoordinationError
from team_ai.tools import register_all_tools

# ログ設定（stderrに出力）
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


def auto_register_session(app_ctx: AppContext, cwd: str | None = None) -> str | None:
    """このサーバーのセッションをエージェントとして登録する。

    エージェント名は "{client_name}-{作業ディレクトリ名}"。
    失敗してもサーバーの起動は継続する。

    Args:
        app_ctx: アプリケーションコンテキスト
        cwd: 作業ディレクトリ（省略時はカレントディレクトリ）

    Returns:
        登録したエージェントID、失敗時は None
    """
    settings = app_ctx.settings
    workdir = cwd or os.getcwd()
    dir_name = Path(workdir).name or settings.client_name
    agent_name = f"{settings.client_name}-{dir_name}"
    try:
        agent = app_ctx.identity_manager.register(
            name=agent_name,
            command=f"{settings.client_name.capitalize()} session in {workdir}",
            model=settings.model_name,
        )
    except (CoordinationError, OSError) as e:
        logger.warning(f"自動登録に失敗しました: {e}")
        return None

    app_ctx.registered_agent_id = agent.id
    logger.info(f"Registered as {agent_name} ({agent.id})")
    return agent.id


async def shutdown_session(app_ctx: AppContext) -> None:
    """常駐ループを止めて登録を解除する。エラーは握りつぶす。"""
    await stop_message_watch(app_ctx)
    await stop_heartbeat_daemon(app_ctx)
    agent_id = app_ctx.registered_agent_id
    if agent_id:
        app_ctx.identity_manager.deregister(agent_id)
        app_ctx.registered_agent_id = None
        logger.info(f"Deregistered {agent_id}")


@asynccontextmanager
async def app_lifespan(server: FastMCP) -> AsyncIterator[AppContext]:
    """サーバーライフサイクルを管理する。

    Args:
        server: FastMCPサーバーインスタンス

    Yields:
        アプリケーションコンテキスト
    """
    logger.info("Team AI MCP Server を起動しています...")

    settings = load_settings()
    app_ctx = create_app_context(settings)
    logger.info(f"ストア: {settings.home_path}")

    if settings.auto_register:
        agent_id = auto_register_session(app_ctx)
        if agent_id:
            await start_heartbeat_daemon(app_ctx, agent_id)

    try:
        yield app_ctx
    finally:
        logger.info("サーバーをシャットダウンしています...")
        await shutdown_session(app_ctx)


# FastMCPサーバーを作成
mcp = FastMCP("Team AI MCP", lifespan=app_lifespan)

register_all_tools(mcp)


def main() -> None:
    """MCPサーバーを起動する。"""
    mcp.run()


if __name__ == "__main__":
    main()
