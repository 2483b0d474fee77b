"""エージェントモデル定義。"""

from datetime import datetime, timedelta
from enum import Enum

from pydantic import BaseModel, Field, field_validator

from team_ai.models.common import CsvList, contains_ci


class AgentRole(str, Enum):
    """エージェントの役割。"""

    WORKER = "worker"
    """タスクを実行する通常エージェント"""

    LEAD = "lead"
    """チームを率いるエージェント"""

    DELEGATE = "delegate"
    """調整専任（自身では実装しない）"""


class AgentState(str, Enum):
    """エージェントの状態。

    永続化されるのは ACTIVE / COMPLETED（ライフサイクルフラグ）のみ。
    IDLE は最終ハートビートから導出される表示用の状態。
    """

    ACTIVE = "active"
    """liveness window 内にハートビートあり"""

    IDLE = "idle"
    """liveness window を超えて無通信"""

    COMPLETED = "completed"
    """登録解除済み（終端）"""


class Agent(BaseModel):
    """エージェント情報。"""

    id: str = Field(description="エージェントの一意識別子（UUID）")
    name: str = Field(description="表示名（一意性は保証しない）")
    model: str = Field(default="unknown", description="使用モデル")
    command: str = Field(default="", description="現在取り組んでいるタスクの説明")
    tags: CsvList = Field(default_factory=list, description="タグ")
    capabilities: CsvList = Field(default_factory=list, description="ケイパビリティ")
    role: AgentRole = Field(default=AgentRole.WORKER, description="エージェントの役割")
    state: AgentState = Field(
        default=AgentState.ACTIVE, description="ライフサイクル（active または completed）"
    )
    last_heartbeat: datetime = Field(description="最終ハートビート日時")
    created_at: datetime = Field(description="登録日時")
    completed_at: datetime | None = Field(default=None, description="登録解除日時")

    @field_validator("state", mode="before")
    @classmethod
    def normalize_state(cls, value: object) -> object:
        """導出状態（idle）が保存されていても active として扱う。"""
        if value == AgentState.IDLE or value == AgentState.IDLE.value:
            return AgentState.ACTIVE
        return value

    @property
    def is_completed(self) -> bool:
        """登録解除済みかどうか。"""
        return self.state == AgentState.COMPLETED

    @property
    def short_id(self) -> str:
        """一覧表示用の短縮 ID。"""
        return self.id[:8]

    def effective_state(self, now: datetime, liveness_window_seconds: float) -> AgentState:
        """ハートビートの鮮度から現在の状態を導出する。

        Args:
            now: 判定基準時刻
            liveness_window_seconds: active と判定する最大経過秒数

        Returns:
            completed は常に completed、それ以外は active / idle
        """
        if self.is_completed:
            return AgentState.COMPLETED
        if now - self.last_heartbeat < timedelta(seconds=liveness_window_seconds):
            return AgentState.ACTIVE
        return AgentState.IDLE

    def has_tag(self, tag: str) -> bool:
        return contains_ci(self.tags, tag)

    def has_capability(self, capability: str) -> bool:
        return contains_ci(self.capabilities, capability)
