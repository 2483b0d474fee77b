"""エージェント間メッセージモデル。"""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field

from team_ai.models.common import Priority


class MessageType(str, Enum):
    """メッセージの種類。"""

    REQUEST = "request"  # 依頼
    INFO = "info"  # 情報共有
    QUERY = "query"  # 問い合わせ


class MessageStatus(str, Enum):
    """メッセージの既読状態。"""

    UNREAD = "unread"
    READ = "read"


class Message(BaseModel):
    """エージェント間メッセージ。

    受信者の inbox が所有する。送信後に送信者が変更することはなく、
    受信者による既読化のみが唯一の更新。
    """

    id: str = Field(..., description="メッセージID")
    sender_id: str | None = Field(None, description="送信元エージェントID（匿名送信は None）")
    receiver_id: str = Field(..., description="宛先エージェントID")
    message_type: MessageType = Field(
        default=MessageType.REQUEST, description="メッセージ種類"
    )
    priority: Priority = Field(default=Priority.NORMAL, description="優先度")
    subject: str = Field(default="", description="件名")
    content: str = Field(..., description="メッセージ本文")
    artifact_path: str | None = Field(None, description="添付成果物のパス")
    created_at: datetime = Field(
        default_factory=datetime.now, description="作成日時"
    )
    read_at: datetime | None = Field(None, description="既読日時")

    @property
    def status(self) -> MessageStatus:
        """既読状態。"""
        return MessageStatus.READ if self.read_at is not None else MessageStatus.UNREAD

    @property
    def is_read(self) -> bool:
        """既読かどうか。"""
        return self.read_at is not None
