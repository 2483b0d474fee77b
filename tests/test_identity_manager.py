"""IdentityManagerのテスト。"""

import json
from datetime import datetime, timedelta

import pytest

from team_ai.managers.store import RecordKind
from team_ai.models.agent import Agent, AgentRole, AgentState
from team_ai.models.errors import InvalidInputError, NotFoundError


class TestRegister:
    """register のテスト。"""

    def test_register_returns_fresh_id(self, identity_manager):
        """登録ごとに新しい ID が払い出されることをテスト。"""
        first = identity_manager.register(name="worker", command="build")
        second = identity_manager.register(name="worker", command="build")

        assert first.id != second.id
        assert first.state == AgentState.ACTIVE
        assert first.role == AgentRole.WORKER

    def test_register_persists_metadata(self, identity_manager, store):
        """metadata.json にカンマ区切りのタグが保存されることをテスト。"""
        agent = identity_manager.register(
            name="reviewer",
            command="review PRs",
            model="sonnet",
            tags="backend, api",
            capabilities="python,review",
            role="lead",
        )

        path = store.agent_dir(agent.id) / "metadata.json"
        data = json.loads(path.read_text(encoding="utf-8"))

        assert data["name"] == "reviewer"
        assert data["tags"] == "backend,api"
        assert data["capabilities"] == "python,review"
        assert data["role"] == "lead"
        assert data["state"] == "active"
        assert store.inbox_dir(agent.id).is_dir()

    def test_register_rejects_invalid_role(self, identity_manager):
        """不正なロールを拒否することをテスト。"""
        with pytest.raises(InvalidInputError):
            identity_manager.register(name="x", command="y", role="owner")

    def test_register_rejects_empty_name(self, identity_manager):
        """空の名前を拒否することをテスト。"""
        with pytest.raises(InvalidInputError):
            identity_manager.register(name="  ", command="y")


class TestHeartbeat:
    """heartbeat のテスト。"""

    def test_heartbeat_updates_timestamp(self, identity_manager, store, register_agent):
        """最終ハートビートが更新されることをテスト。"""
        agent = register_agent()
        stale = agent.model_copy(update={"last_heartbeat": datetime.now() - timedelta(hours=1)})
        store.save(RecordKind.AGENT, stale)

        assert identity_manager.heartbeat(agent.id) is True
        assert identity_manager.get(agent.id).last_heartbeat > stale.last_heartbeat

    def test_heartbeat_unknown_agent(self, identity_manager):
        """未知のエージェントは False を返すことをテスト。"""
        assert identity_manager.heartbeat("unknown-agent") is False

    def test_heartbeat_completed_agent(self, identity_manager, register_agent):
        """登録解除済みのエージェントは False を返すことをテスト。"""
        agent = register_agent()
        identity_manager.deregister(agent.id)

        assert identity_manager.heartbeat(agent.id) is False


class TestDeregister:
    """deregister のテスト。"""

    def test_deregister_is_idempotent(self, identity_manager, store, register_agent):
        """2回目の登録解除は状態を変えないことをテスト。"""
        agent = register_agent()

        assert identity_manager.deregister(agent.id) is True
        after_first = (store.agent_dir(agent.id) / "metadata.json").read_text(encoding="utf-8")

        assert identity_manager.deregister(agent.id) is False
        after_second = (store.agent_dir(agent.id) / "metadata.json").read_text(encoding="utf-8")

        assert after_first == after_second
        assert identity_manager.get(agent.id).state == AgentState.COMPLETED

    def test_deregister_unknown_is_noop(self, identity_manager):
        """未知のエージェントの登録解除はエラーにならないことをテスト。"""
        assert identity_manager.deregister("unknown-agent") is False
        assert identity_manager.deregister("") is False

    def test_record_is_kept(self, identity_manager, store, register_agent):
        """登録解除後もレコードは削除されないことをテスト。"""
        agent = register_agent()
        identity_manager.deregister(agent.id)

        assert (store.agent_dir(agent.id) / "metadata.json").exists()


class TestListAgents:
    """list_agents のテスト。"""

    def test_list_excludes_completed_by_default(self, identity_manager, register_agent):
        """登録解除済みはデフォルトで除外されることをテスト。"""
        alive = register_agent("alive")
        gone = register_agent("gone")
        identity_manager.deregister(gone.id)

        ids = [a.id for a in identity_manager.list_agents()]
        all_ids = [a.id for a in identity_manager.list_agents(include_completed=True)]

        assert ids == [alive.id]
        assert set(all_ids) == {alive.id, gone.id}

    def test_liveness_is_derived(self, identity_manager, store, register_agent):
        """古いハートビートのエージェントは idle として表示されることをテスト。"""
        agent = register_agent()
        stale = agent.model_copy(update={"last_heartbeat": datetime.now() - timedelta(hours=1)})
        store.save(RecordKind.AGENT, stale)

        listed = identity_manager.list_agents()[0]

        assert listed.state == AgentState.IDLE
        # 保存値は active のまま
        stored = store.load(RecordKind.AGENT, agent.id, Agent)
        assert stored.state == AgentState.ACTIVE

    def test_heartbeat_revives_idle_agent(self, identity_manager, store, register_agent):
        """ハートビートで idle から active に戻ることをテスト。"""
        agent = register_agent()
        stale = agent.model_copy(update={"last_heartbeat": datetime.now() - timedelta(hours=1)})
        store.save(RecordKind.AGENT, stale)

        identity_manager.heartbeat(agent.id)

        assert identity_manager.get(agent.id).state == AgentState.ACTIVE


class TestFindByCapability:
    """find_by_capability のテスト。"""

    def test_case_insensitive_exact_match(self, identity_manager, register_agent):
        """大文字小文字を区別しない完全一致で検索することをテスト。"""
        py = register_agent("py", capabilities="Python,SQL")
        register_agent("go", capabilities="go")
        register_agent("pyish", capabilities="python3")

        found = identity_manager.find_by_capability("python")

        assert [a.id for a in found] == [py.id]


class TestResolveRecipient:
    """resolve_recipient のテスト。"""

    def test_resolve_by_prefix(self, identity_manager, register_agent):
        """ID プレフィックスで解決できることをテスト。"""
        agent = register_agent()

        assert identity_manager.resolve_recipient(agent.id[:8]).id == agent.id

    def test_resolve_by_name(self, identity_manager, register_agent):
        """名前で解決できることをテスト。"""
        agent = register_agent("cursor-backend")

        assert identity_manager.resolve_recipient("Cursor-Backend").id == agent.id

    def test_resolve_name_with_slash(self, identity_manager, register_agent):
        """パス区切りを含む名前でも解決できることをテスト。"""
        agent = register_agent("team/backend")

        assert identity_manager.resolve_recipient("team/backend").id == agent.id

    def test_ambiguous_name(self, identity_manager, register_agent):
        """同名のエージェントが複数いる場合はエラーになることをテスト。"""
        register_agent("twin")
        register_agent("twin")

        with pytest.raises(InvalidInputError) as exc_info:
            identity_manager.resolve_recipient("twin")

        assert exc_info.value.code == "ambiguous_reference"

    def test_unknown_recipient(self, identity_manager):
        """未知の宛先は unknown_recipient になることをテスト。"""
        with pytest.raises(NotFoundError) as exc_info:
            identity_manager.resolve_recipient("nobody")

        assert exc_info.value.code == "unknown_recipient"

    def test_name_wins_over_id_prefix(self, identity_manager, register_agent):
        """他エージェントの ID プレフィックスと同じ名前は名前として解決されることをテスト。"""
        other = register_agent("other")
        named = register_agent(other.id[:2])

        assert identity_manager.resolve_recipient(other.id[:2]).id == named.id

    def test_full_id_wins_over_name(self, identity_manager, register_agent):
        """完全な ID は同名のエージェントより優先されることをテスト。"""
        target = register_agent("target")
        register_agent(target.id)

        assert identity_manager.resolve_recipient(target.id).id == target.id

    def test_ambiguous_prefix(self, identity_manager, register_agent):
        """複数の ID に一致するプレフィックスはエラーになることをテスト。"""
        agents = [register_agent(f"agent-{i}") for i in range(20)]
        counts: dict[str, int] = {}
        for agent in agents:
            counts[agent.id[0]] = counts.get(agent.id[0], 0) + 1
        shared = next(c for c, n in counts.items() if n > 1)

        with pytest.raises(InvalidInputError) as exc_info:
            identity_manager.resolve_recipient(shared)

        assert exc_info.value.code == "ambiguous_reference"
