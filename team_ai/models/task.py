"""タスクモデル。"""

from collections.abc import Mapping
from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field

from team_ai.models.common import Priority, StrList, contains_ci


class TaskStatus(str, Enum):
    """タスクのステータス。"""

    PENDING = "pending"  # 未着手（claim 待ち）
    IN_PROGRESS = "in_progress"  # 進行中
    COMPLETED = "completed"  # 完了（終端）
    BLOCKED = "blocked"  # 手動ブロック中


class Task(BaseModel):
    """依存グラフ上の作業単位。"""

    id: str = Field(..., description="タスクID")
    title: str = Field(..., description="タスクタイトル")
    description: str = Field(default="", description="タスク説明")
    status: TaskStatus = Field(default=TaskStatus.PENDING, description="ステータス")
    depends_on: StrList = Field(default_factory=list, description="依存先タスクID")
    assignee: str | None = Field(None, description="担当エージェントID")
    priority: Priority = Field(default=Priority.NORMAL, description="優先度")
    tags: StrList = Field(default_factory=list, description="タグ")
    team: str | None = Field(None, description="所属チームID")
    created_by: str | None = Field(None, description="作成エージェントID")
    result: str | None = Field(None, description="完了時の結果サマリー")
    created_at: datetime = Field(default_factory=datetime.now, description="作成日時")
    updated_at: datetime = Field(default_factory=datetime.now, description="更新日時")
    claimed_at: datetime | None = Field(None, description="claim 日時")
    completed_at: datetime | None = Field(None, description="完了日時")

    @property
    def short_id(self) -> str:
        return self.id[:8]

    def has_tag(self, tag: str) -> bool:
        return contains_ci(self.tags, tag)

    def unmet_dependencies(self, statuses: Mapping[str, TaskStatus]) -> list[str]:
        """完了していない依存先を返す。

        Args:
            statuses: タスクID -> ステータス（存在しないIDは未完了扱い）

        Returns:
            未完了の依存先タスクIDリスト
        """
        return [
            dep for dep in self.depends_on if statuses.get(dep) != TaskStatus.COMPLETED
        ]

    def is_available(self, statuses: Mapping[str, TaskStatus]) -> bool:
        """claim 可能（pending かつ依存が全て完了）かどうか。"""
        return self.status == TaskStatus.PENDING and not self.unmet_dependencies(statuses)
