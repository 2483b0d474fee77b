"""チームモデル。"""

from datetime import datetime

from pydantic import BaseModel, Field

from team_ai.models.common import StrList


class Team(BaseModel):
    """リードを持つエージェントのグループ。リードは常にメンバーに含まれる。"""

    id: str = Field(..., description="チームID")
    name: str = Field(..., description="チーム名")
    lead: str = Field(..., description="リードのエージェントID")
    description: str = Field(default="", description="チームの説明")
    members: StrList = Field(default_factory=list, description="メンバーのエージェントID")
    created_at: datetime = Field(default_factory=datetime.now, description="作成日時")

    @property
    def short_id(self) -> str:
        return self.id[:8]

    def is_member(self, agent_id: str) -> bool:
        return agent_id in self.members
