"""pytest設定とフィクスチャ。"""

import tempfile
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from team_ai.config.settings import Settings
from team_ai.context import AppContext, create_app_context
from team_ai.managers.identity_manager import IdentityManager
from team_ai.managers.message_manager import MessageManager
from team_ai.managers.plan_manager import PlanManager
from team_ai.managers.store import FileStore
from team_ai.managers.task_manager import TaskManager
from team_ai.managers.team_manager import TeamManager


@pytest.fixture
def temp_dir():
    """一時ディレクトリを作成する。"""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def settings(temp_dir):
    """テスト用の設定を作成する。"""
    return Settings(
        _env_file=None,
        home_dir=str(temp_dir / "team-ai"),
        heartbeat_interval_seconds=60,
        liveness_window_seconds=180,
        lock_timeout_seconds=5.0,
    )


@pytest.fixture
def store(settings):
    """初期化済みの FileStore を作成する。"""
    file_store = FileStore(settings.home_path, lock_timeout_seconds=settings.lock_timeout_seconds)
    file_store.initialize()
    return file_store


@pytest.fixture
def identity_manager(store, settings):
    """IdentityManagerインスタンスを作成する。"""
    return IdentityManager(store, liveness_window_seconds=settings.liveness_window_seconds)


@pytest.fixture
def message_manager(store, identity_manager):
    """MessageManagerインスタンスを作成する。"""
    return MessageManager(store, identity_manager)


@pytest.fixture
def task_manager(store, identity_manager):
    """TaskManagerインスタンスを作成する。"""
    return TaskManager(store, identity_manager)


@pytest.fixture
def team_manager(store, identity_manager):
    """TeamManagerインスタンスを作成する。"""
    return TeamManager(store, identity_manager)


@pytest.fixture
def plan_manager(store, identity_manager):
    """PlanManagerインスタンスを作成する。"""
    return PlanManager(store, identity_manager)


@pytest.fixture
def register_agent(identity_manager):
    """テスト用エージェントを登録するファクトリ。"""

    def _register(name="worker", **kwargs):
        kwargs.setdefault("command", f"{name} の作業")
        return identity_manager.register(name=name, **kwargs)

    return _register


@pytest.fixture
def app_ctx(settings) -> AppContext:
    """テスト用の AppContext を作成する。"""
    return create_app_context(settings)


@pytest.fixture
def mock_ctx(app_ctx):
    """MCP Context のモック。"""
    mock = MagicMock()
    mock.request_context.lifespan_context = app_ctx
    return mock
