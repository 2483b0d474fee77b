"""エージェント登録（Identity Store）管理モジュール。"""

import logging
import uuid
from datetime import datetime

from team_ai.managers.query import find_agents_by_capability
from team_ai.managers.store import FileStore, RecordKind
from team_ai.models.agent import Agent, AgentRole, AgentState
from team_ai.models.common import parse_enum
from team_ai.models.errors import CoordinationError, InvalidInputError, NotFoundError

logger = logging.getLogger(__name__)


class IdentityManager:
    """エージェントの登録・ハートビート・登録解除を管理するクラス。

    エージェントは物理削除されず、登録解除は completed への状態遷移として記録される。
    active / idle は保存せず、最終ハートビートから都度導出する。
    """

    def __init__(self, store: FileStore, liveness_window_seconds: float = 900) -> None:
        """IdentityManager を初期化する。

        Args:
            store: 共有ファイルストア
            liveness_window_seconds: active と判定する最大経過秒数
        """
        self.store = store
        self.liveness_window_seconds = liveness_window_seconds

    def register(
        self,
        name: str,
        command: str,
        model: str = "unknown",
        tags: str | list[str] | None = None,
        capabilities: str | list[str] | None = None,
        role: AgentRole | str = AgentRole.WORKER,
    ) -> Agent:
        """エージェントを登録する。

        名前の一意性は要求せず、常に新しい ID を払い出す。

        Args:
            name: 表示名
            command: 現在のタスク説明
            model: 使用モデル
            tags: タグ（カンマ区切り文字列またはリスト）
            capabilities: ケイパビリティ（カンマ区切り文字列またはリスト）
            role: 役割

        Returns:
            登録された Agent
        """
        if not name or not name.strip():
            raise InvalidInputError("invalid_value", "エージェント名が指定されていません")
        agent_role = parse_enum(AgentRole, role, "ロール")

        now = datetime.now()
        agent = Agent(
            id=str(uuid.uuid4()),
            name=name.strip(),
            model=model or "unknown",
            command=command or "",
            tags=tags,
            capabilities=capabilities,
            role=agent_role,
            state=AgentState.ACTIVE,
            last_heartbeat=now,
            created_at=now,
        )
        with self.store.entity_lock(RecordKind.AGENT, agent.id):
            self.store.save(RecordKind.AGENT, agent)
            self.store.inbox_dir(agent.id).mkdir(parents=True, exist_ok=True)

        logger.info(f"エージェントを登録しました: {agent.name} ({agent.id})")
        return agent

    def heartbeat(self, agent_id: str) -> bool:
        """最終ハートビートを更新する。

        未知のエージェントや登録解除済みの場合は False を返す（例外は送出しない）。

        Args:
            agent_id: エージェントID（一意なプレフィックス可）

        Returns:
            更新できた場合 True
        """
        try:
            resolved_id = self.store.resolve_id(RecordKind.AGENT, agent_id)
            with self.store.entity_lock(RecordKind.AGENT, resolved_id):
                agent = self.store.load(RecordKind.AGENT, resolved_id, Agent)
                if agent is None or agent.is_completed:
                    return False
                agent.last_heartbeat = datetime.now()
                self.store.save(RecordKind.AGENT, agent)
        except CoordinationError as e:
            logger.debug(f"ハートビート更新をスキップ ({agent_id}): {e}")
            return False

        logger.debug(f"ハートビートを更新しました: {resolved_id}")
        return True

    def deregister(self, agent_id: str) -> bool:
        """エージェントの登録を解除する（冪等）。

        未知のエージェントや解除済みエージェントに対しては何もしない。
        シャットダウン経路から呼ばれるため、失敗しても例外を送出しない。

        Args:
            agent_id: エージェントID（一意なプレフィックス可）

        Returns:
            今回の呼び出しで completed に遷移した場合 True
        """
        try:
            resolved_id = self.store.resolve_id(RecordKind.AGENT, agent_id)
            with self.store.entity_lock(RecordKind.AGENT, resolved_id):
                agent = self.store.load(RecordKind.AGENT, resolved_id, Agent)
                if agent is None or agent.is_completed:
                    return False
                agent.state = AgentState.COMPLETED
                agent.completed_at = datetime.now()
                self.store.save(RecordKind.AGENT, agent)
        except CoordinationError as e:
            logger.debug(f"登録解除をスキップ ({agent_id}): {e}")
            return False
        except OSError as e:
            logger.warning(f"登録解除に失敗 ({agent_id}): {e}")
            return False

        logger.info(f"エージェントの登録を解除しました: {resolved_id}")
        return True

    def get(self, agent_id: str) -> Agent:
        """エージェントを取得する（状態は導出済み）。

        Raises:
            NotFoundError: 未知のエージェント
        """
        resolved_id = self.store.resolve_id(RecordKind.AGENT, agent_id)
        agent = self.store.load(RecordKind.AGENT, resolved_id, Agent)
        if agent is None:
            raise NotFoundError("unknown_agent", f"agent が見つかりません: {agent_id}")
        return self._with_effective_state(agent, datetime.now())

    def list_agents(self, include_completed: bool = False) -> list[Agent]:
        """エージェント一覧を登録順に返す。

        Args:
            include_completed: 登録解除済みも含めるか

        Returns:
            状態を導出済みの Agent リスト
        """
        now = datetime.now()
        agents = [
            self._with_effective_state(agent, now)
            for agent in self.store.load_all(RecordKind.AGENT, Agent)
        ]
        if not include_completed:
            agents = [a for a in agents if a.state != AgentState.COMPLETED]
        agents.sort(key=lambda a: a.created_at)
        return agents

    def find_by_capability(self, capability: str) -> list[Agent]:
        """ケイパビリティを持つエージェントを検索する（大文字小文字を区別しない）。"""
        return find_agents_by_capability(
            self.store, capability, liveness_window_seconds=self.liveness_window_seconds
        )

    def resolve_recipient(self, target: str) -> Agent:
        """送信先を完全なID・名前・一意なプレフィックスの順で解決する。

        名前での解決は登録解除済みを除いたエージェントが対象。
        名前は完全一致なので、同じ文字列で始まる別エージェントの ID より優先する。

        Raises:
            NotFoundError: 該当なし（unknown_recipient）
            InvalidInputError: 複数に一致（ambiguous_reference）
        """
        ref = (target or "").strip()
        if not ref:
            raise InvalidInputError("invalid_value", "送信先が指定されていません")

        # ID として使えない文字列（"/" を含む等）は名前としてのみ扱う
        try:
            exact = self.store.load(RecordKind.AGENT, ref, Agent)
        except InvalidInputError:
            exact = None
        if exact is not None:
            return self._with_effective_state(exact, datetime.now())

        named = [a for a in self.list_agents() if a.name.lower() == ref.lower()]
        if len(named) == 1:
            return named[0]
        if len(named) > 1:
            raise InvalidInputError(
                "ambiguous_reference",
                f"名前 '{ref}' のエージェントが複数存在します: "
                + ", ".join(a.short_id for a in named),
            )

        prefixed = [
            agent_id for agent_id in self.store.list_ids(RecordKind.AGENT)
            if agent_id.startswith(ref)
        ]
        if len(prefixed) > 1:
            raise InvalidInputError(
                "ambiguous_reference",
                f"agent ID '{ref}' が複数に一致します: "
                + ", ".join(p[:8] for p in prefixed),
            )
        if prefixed:
            return self.get(prefixed[0])
        raise NotFoundError("unknown_recipient", f"送信先が見つかりません: {ref}")

    def _with_effective_state(self, agent: Agent, now: datetime) -> Agent:
        state = agent.effective_state(now, self.liveness_window_seconds)
        return agent.model_copy(update={"state": state})
