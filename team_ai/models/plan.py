"""プラン承認モデル。"""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field


class PlanStatus(str, Enum):
    """プランのステータス。approved / rejected は終端。"""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class PlanAction(str, Enum):
    """レビューアクション。"""

    APPROVE = "approve"
    REJECT = "reject"

    @property
    def resulting_status(self) -> PlanStatus:
        """アクション適用後のステータス。"""
        if self is PlanAction.APPROVE:
            return PlanStatus.APPROVED
        return PlanStatus.REJECTED


class Plan(BaseModel):
    """提出者とレビュアーの二者間で承認されるプラン。"""

    id: str = Field(..., description="プランID")
    title: str = Field(..., description="タイトル")
    body: str = Field(..., description="プラン本文（Markdown）")
    submitter: str | None = Field(None, description="提出エージェントID")
    reviewer: str = Field(..., description="レビュアーのエージェントID")
    team: str | None = Field(None, description="関連チームID")
    status: PlanStatus = Field(default=PlanStatus.PENDING, description="ステータス")
    feedback: str | None = Field(None, description="レビューコメント")
    created_at: datetime = Field(default_factory=datetime.now, description="提出日時")
    reviewed_at: datetime | None = Field(None, description="レビュー日時")

    @property
    def short_id(self) -> str:
        return self.id[:8]

    @property
    def is_reviewed(self) -> bool:
        return self.status != PlanStatus.PENDING
