"""タスクグラフ管理モジュール。

依存関係付きタスクの作成・claim・完了・更新を行う。

排他制御:
- claim / complete / update はタスク単位のロック内で「前提条件の確認 → 更新」を行う。
  同一タスクへの同時 claim は必ず 1 件だけが成功する。
- 依存集合を変更する update はさらに task-graph ロックを先に取得し、
  循環検出と辺の追加を直列化する（ロック順序: graph → task）。
- completed は終端状態のため、依存先のステータスはロックなしで読んでよい。
"""

import logging
import uuid
from collections.abc import Iterable
from datetime import datetime
from typing import ClassVar

from team_ai.managers.identity_manager import IdentityManager
from team_ai.managers.store import GRAPH_LOCK_NAME, FileStore, RecordKind
from team_ai.models.common import Priority, parse_enum, split_csv
from team_ai.models.errors import (
    ConflictError,
    InvalidInputError,
    InvalidStateError,
    NotFoundError,
)
from team_ai.models.task import Task, TaskStatus

logger = logging.getLogger(__name__)

# "none" 指定で値をクリアする
_CLEAR_VALUES = frozenset({"none", "null", ""})

_PRIORITY_RANK = {Priority.HIGH: 0, Priority.NORMAL: 1, Priority.LOW: 2}


def _is_clear_value(value: str) -> bool:
    return value.strip().lower() in _CLEAR_VALUES


def would_create_cycle(
    depends_on: dict[str, Iterable[str]], task_id: str, new_dependency: str
) -> bool:
    """task_id -> new_dependency の辺を追加すると循環するか判定する。

    new_dependency から依存を辿って task_id に到達できる場合に循環となる。

    Args:
        depends_on: タスクID -> 依存先タスクID の隣接リスト
        task_id: 依存を追加されるタスク
        new_dependency: 追加する依存先

    Returns:
        循環する場合 True
    """
    if task_id == new_dependency:
        return True
    stack = [new_dependency]
    visited: set[str] = set()
    while stack:
        current = stack.pop()
        if current == task_id:
            return True
        if current in visited:
            continue
        visited.add(current)
        stack.extend(depends_on.get(current, ()))
    return False


class TaskManager:
    """依存グラフ上のタスクを管理するクラス。"""

    # update で手動指定できる状態遷移
    # in_progress は claim、completed は complete 経由でのみ到達する
    _MANUAL_TRANSITIONS: ClassVar[dict[TaskStatus, set[TaskStatus]]] = {
        TaskStatus.PENDING: {TaskStatus.PENDING, TaskStatus.BLOCKED},
        TaskStatus.IN_PROGRESS: {TaskStatus.IN_PROGRESS, TaskStatus.BLOCKED},
        TaskStatus.BLOCKED: {TaskStatus.BLOCKED, TaskStatus.PENDING},
        TaskStatus.COMPLETED: {TaskStatus.COMPLETED},
    }

    def __init__(self, store: FileStore, identity: IdentityManager) -> None:
        """TaskManager を初期化する。

        Args:
            store: 共有ファイルストア
            identity: 担当者の検証に使う IdentityManager
        """
        self.store = store
        self.identity = identity

    # ========== 内部ヘルパー ==========

    def _resolve_task_id(self, task_id: str) -> str:
        return self.store.resolve_id(RecordKind.TASK, task_id)

    def _load_task(self, task_id: str) -> Task:
        task = self.store.load(RecordKind.TASK, task_id, Task)
        if task is None:
            raise NotFoundError("unknown_task", f"task が見つかりません: {task_id}")
        return task

    def _resolve_dependency(self, dependency: str) -> str:
        try:
            return self._resolve_task_id(dependency)
        except NotFoundError as e:
            raise InvalidInputError(
                "unknown_dependency", f"依存先タスクが存在しません: {dependency}"
            ) from e

    @staticmethod
    def _resolve_existing_dep(task: Task, reference: str) -> str | None:
        """task.depends_on の中から1件を完全一致または一意なプレフィックスで選ぶ。"""
        if reference in task.depends_on:
            return reference
        matches = [d for d in task.depends_on if d.startswith(reference)]
        if len(matches) > 1:
            raise InvalidInputError(
                "ambiguous_reference",
                f"依存 '{reference}' が複数に一致します: " + ", ".join(m[:8] for m in matches),
            )
        return matches[0] if matches else None

    def _resolve_team_id(self, team: str) -> str:
        return self.store.resolve_id(RecordKind.TEAM, team)

    def _dependency_statuses(self, task: Task) -> dict[str, TaskStatus]:
        statuses: dict[str, TaskStatus] = {}
        for dep in task.depends_on:
            dep_task = self.store.load(RecordKind.TASK, dep, Task)
            if dep_task is not None:
                statuses[dep] = dep_task.status
        return statuses

    # ========== 作成・参照 ==========

    def create(
        self,
        title: str,
        description: str = "",
        depends_on: str | list[str] | None = None,
        created_by: str | None = None,
        tags: str | list[str] | None = None,
        priority: Priority | str = Priority.NORMAL,
        team: str | None = None,
    ) -> Task:
        """新しいタスクを作成する。

        依存先は既存タスクのみ指定できるため、作成時点でグラフは DAG のまま保たれる。

        Args:
            title: タスクタイトル
            description: タスク説明
            depends_on: 依存先タスクID（カンマ区切り文字列またはリスト）
            created_by: 作成エージェントID
            tags: タグ
            priority: 優先度
            team: 所属チームID

        Returns:
            作成された Task

        Raises:
            InvalidInputError: 依存先が存在しない（unknown_dependency）
        """
        if not title or not title.strip():
            raise InvalidInputError("invalid_value", "タスクタイトルが指定されていません")
        task_priority = parse_enum(Priority, priority, "優先度")
        dependencies = [self._resolve_dependency(dep) for dep in split_csv(depends_on)]
        creator = self.identity.get(created_by).id if created_by else None
        team_id = self._resolve_team_id(team) if team else None

        now = datetime.now()
        task = Task(
            id=str(uuid.uuid4()),
            title=title.strip(),
            description=description or "",
            status=TaskStatus.PENDING,
            depends_on=dependencies,
            priority=task_priority,
            tags=tags,
            team=team_id,
            created_by=creator,
            created_at=now,
            updated_at=now,
        )
        with self.store.entity_lock(RecordKind.TASK, task.id):
            self.store.save(RecordKind.TASK, task)

        logger.info(f"タスクを作成しました: {task.id} - {task.title}")
        return task

    def get(self, task_id: str) -> Task:
        """タスクを取得する。"""
        return self._load_task(self._resolve_task_id(task_id))

    def list_tasks(
        self,
        status: TaskStatus | str | None = None,
        assignee: str | None = None,
        team: str | None = None,
        tag: str | None = None,
        available_only: bool = False,
    ) -> list[Task]:
        """タスクを絞り込んで返す。

        available_only の場合は pending かつ依存が全て completed のタスクのみ返す。
        並び順は優先度（high → low）、作成日時の順。

        Args:
            status: ステータスで絞り込み
            assignee: 担当エージェントID（プレフィックス可）
            team: チームID（プレフィックス可）
            tag: タグ（大文字小文字を区別しない）
            available_only: claim 可能なタスクのみ

        Returns:
            Task のリスト
        """
        status_filter = parse_enum(TaskStatus, status, "ステータス") if status else None
        tasks = self.store.load_all(RecordKind.TASK, Task)
        statuses = {t.id: t.status for t in tasks}

        result: list[Task] = []
        for task in tasks:
            if status_filter is not None and task.status != status_filter:
                continue
            if assignee and not (task.assignee or "").startswith(assignee):
                continue
            if team and not (task.team or "").startswith(team):
                continue
            if tag and not task.has_tag(tag):
                continue
            if available_only and not task.is_available(statuses):
                continue
            result.append(task)

        result.sort(key=lambda t: (_PRIORITY_RANK[t.priority], t.created_at))
        return result

    # ========== 状態遷移 ==========

    def claim(self, task_id: str, agent_id: str) -> Task:
        """タスクを claim する。

        前提条件（依存の完了、pending であること）はタスクロック内で確認する。

        Args:
            task_id: タスクID
            agent_id: claim するエージェントID

        Returns:
            claim 後の Task

        Raises:
            NotFoundError: タスクまたはエージェントが未知
            InvalidStateError: 依存が未完了（dependencies_unmet）、または pending 以外
            ConflictError: 既に他のエージェントが claim 済み（already_claimed）
        """
        resolved_id = self._resolve_task_id(task_id)
        agent = self.identity.get(agent_id)
        if agent.is_completed:
            raise InvalidStateError(
                "agent_deregistered", f"登録解除済みのエージェントです: {agent.id}"
            )

        with self.store.entity_lock(RecordKind.TASK, resolved_id):
            task = self._load_task(resolved_id)

            unmet = task.unmet_dependencies(self._dependency_statuses(task))
            if unmet:
                raise InvalidStateError(
                    "dependencies_unmet",
                    "未完了の依存タスクがあります: " + ", ".join(d[:8] for d in unmet),
                )
            if task.status == TaskStatus.IN_PROGRESS:
                raise ConflictError(
                    "already_claimed",
                    f"タスク {task.short_id} は既に {task.assignee} が claim しています",
                )
            if task.status != TaskStatus.PENDING:
                raise InvalidStateError(
                    "invalid_transition",
                    f"{task.status.value} のタスクは claim できません: {task.short_id}",
                )

            now = datetime.now()
            task.status = TaskStatus.IN_PROGRESS
            task.assignee = agent.id
            task.claimed_at = now
            task.updated_at = now
            self.store.save(RecordKind.TASK, task)

        logger.info(f"タスクを claim しました: {task.id} by {agent.id}")
        return task

    def complete(self, task_id: str, result: str | None = None) -> Task:
        """進行中のタスクを完了にする。

        Args:
            task_id: タスクID
            result: 結果サマリー

        Returns:
            完了後の Task

        Raises:
            InvalidStateError: in_progress 以外（not_in_progress）
        """
        resolved_id = self._resolve_task_id(task_id)
        with self.store.entity_lock(RecordKind.TASK, resolved_id):
            task = self._load_task(resolved_id)
            if task.status != TaskStatus.IN_PROGRESS:
                raise InvalidStateError(
                    "not_in_progress",
                    f"in_progress ではないタスクは完了できません"
                    f"（現在: {task.status.value}）: {task.short_id}",
                )
            now = datetime.now()
            task.status = TaskStatus.COMPLETED
            task.result = result
            task.completed_at = now
            task.updated_at = now
            self.store.save(RecordKind.TASK, task)

        logger.info(f"タスクを完了しました: {task.id}")
        return task

    def update(
        self,
        task_id: str,
        title: str | None = None,
        description: str | None = None,
        status: TaskStatus | str | None = None,
        assignee: str | None = None,
        priority: Priority | str | None = None,
        add_dep: str | None = None,
        remove_dep: str | None = None,
        team: str | None = None,
        tags: str | list[str] | None = None,
    ) -> Task:
        """タスクのフィールドを更新する。

        assignee="none" は割り当てを解除し、in_progress のタスクは pending に戻す。
        add_dep は循環を作る場合に拒否する。

        Args:
            task_id: タスクID
            title: 新しいタイトル
            description: 新しい説明
            status: 新しいステータス（pending / blocked 間の手動遷移のみ）
            assignee: 新しい担当者（"none" で解除）
            priority: 新しい優先度
            add_dep: 追加する依存先タスクID
            remove_dep: 削除する依存先タスクID
            team: チームID（"none" で解除）
            tags: タグ（置き換え）

        Returns:
            更新後の Task

        Raises:
            InvalidInputError: 循環依存（cyclic_dependency）・未知の依存先など
            InvalidStateError: 許可されない状態遷移
        """
        resolved_id = self._resolve_task_id(task_id)
        if add_dep or remove_dep:
            with self.store.lock(GRAPH_LOCK_NAME):
                return self._update_locked(
                    resolved_id, title, description, status, assignee,
                    priority, add_dep, remove_dep, team, tags,
                )
        return self._update_locked(
            resolved_id, title, description, status, assignee,
            priority, add_dep, remove_dep, team, tags,
        )

    def _update_locked(
        self,
        task_id: str,
        title: str | None,
        description: str | None,
        status: TaskStatus | str | None,
        assignee: str | None,
        priority: Priority | str | None,
        add_dep: str | None,
        remove_dep: str | None,
        team: str | None,
        tags: str | list[str] | None,
    ) -> Task:
        # ロック外で検証できる値は先に解決する
        new_status = parse_enum(TaskStatus, status, "ステータス") if status else None
        new_priority = parse_enum(Priority, priority, "優先度") if priority else None
        new_assignee: str | None = None
        if assignee is not None and not _is_clear_value(assignee):
            new_assignee = self.identity.get(assignee).id
        new_team: str | None = None
        if team is not None and not _is_clear_value(team):
            new_team = self._resolve_team_id(team)
        dependency_to_add = self._resolve_dependency(add_dep) if add_dep else None

        with self.store.entity_lock(RecordKind.TASK, task_id):
            task = self._load_task(task_id)
            changes: list[str] = []

            if title is not None:
                if not title.strip():
                    raise InvalidInputError("invalid_value", "タイトルを空にはできません")
                task.title = title.strip()
                changes.append("title")
            if description is not None:
                task.description = description
                changes.append("description")
            if new_priority is not None:
                task.priority = new_priority
                changes.append("priority")
            if tags is not None:
                task.tags = split_csv(tags)
                changes.append("tags")

            if team is not None:
                task.team = new_team
                changes.append("team")

            if assignee is not None:
                if new_assignee is None:
                    task.assignee = None
                    if task.status == TaskStatus.IN_PROGRESS:
                        task.status = TaskStatus.PENDING
                        task.claimed_at = None
                else:
                    task.assignee = new_assignee
                changes.append("assignee")

            if new_status is not None:
                allowed = self._MANUAL_TRANSITIONS[task.status]
                if new_status not in allowed:
                    raise InvalidStateError(
                        "invalid_transition",
                        f"状態遷移が許可されていません: {task.status.value} -> {new_status.value}",
                    )
                task.status = new_status
                changes.append("status")

            if dependency_to_add is not None and dependency_to_add not in task.depends_on:
                graph = {
                    t.id: t.depends_on for t in self.store.load_all(RecordKind.TASK, Task)
                }
                graph[task.id] = task.depends_on
                if would_create_cycle(graph, task.id, dependency_to_add):
                    raise InvalidInputError(
                        "cyclic_dependency",
                        f"依存を追加すると循環します: {task.short_id} -> {dependency_to_add[:8]}",
                    )
                task.depends_on = [*task.depends_on, dependency_to_add]
                changes.append("depends_on")

            remove_ref = (remove_dep or "").strip()
            if remove_ref:
                dependency_to_remove = self._resolve_existing_dep(task, remove_ref)
                if dependency_to_remove is not None:
                    task.depends_on = [d for d in task.depends_on if d != dependency_to_remove]
                    changes.append("depends_on")

            task.updated_at = datetime.now()
            self.store.save(RecordKind.TASK, task)

        logger.info(f"タスクを更新しました: {task.id} ({', '.join(changes) or 'no changes'})")
        return task
