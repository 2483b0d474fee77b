"""アプリケーションコンテキストの定義。

マネージャーは全て同じ FileStore を共有し、呼び出しをまたいだ状態は持たない。
各操作はストアを開き、検証し、更新し、永続化して完結する。
"""

import asyncio
from dataclasses import dataclass

from team_ai.config.settings import Settings
from team_ai.managers.identity_manager import IdentityManager
from team_ai.managers.message_manager import MessageManager
from team_ai.managers.plan_manager import PlanManager
from team_ai.managers.store import FileStore
from team_ai.managers.task_manager import TaskManager
from team_ai.managers.team_manager import TeamManager


@dataclass
class AppContext:
    """アプリケーションコンテキスト。"""

    settings: Settings
    store: FileStore
    identity_manager: IdentityManager
    message_manager: MessageManager
    task_manager: TaskManager
    team_manager: TeamManager
    plan_manager: PlanManager

    # --- セッション情報 ---
    registered_agent_id: str | None = None
    """このサーバーが登録したエージェントID（ブロードキャストの自己除外に使う）"""

    # --- heartbeat daemon ---
    heartbeat_daemon_task: asyncio.Task | None = None
    heartbeat_daemon_stop_event: asyncio.Event | None = None
    heartbeat_daemon_lock: asyncio.Lock | None = None

    # --- inbox 監視 ---
    message_watch_task: asyncio.Task | None = None
    message_watch_stop_event: asyncio.Event | None = None
    message_watch_lock: asyncio.Lock | None = None
    message_watch_unread: int = 0
    """直近のポーリングで観測した未読件数"""


def create_app_context(settings: Settings) -> AppContext:
    """設定からストアと各マネージャーを組み立てる。

    Args:
        settings: 読み込み済みの設定

    Returns:
        初期化済みの AppContext
    """
    store = FileStore(settings.home_path, lock_timeout_seconds=settings.lock_timeout_seconds)
    store.initialize()
    identity = IdentityManager(
        store, liveness_window_seconds=settings.liveness_window_seconds
    )
    return AppContext(
        settings=settings,
        store=store,
        identity_manager=identity,
        message_manager=MessageManager(store, identity),
        task_manager=TaskManager(store, identity),
        team_manager=TeamManager(store, identity),
        plan_manager=PlanManager(store, identity),
    )
