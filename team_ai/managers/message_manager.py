"""メッセージバス管理モジュール。

受信者ごとの inbox に個別ファイルとしてメッセージを保存する store-and-forward 方式。

保存先: {home_dir}/agents/{agent_id}/inbox/
形式: YAML Front Matter + Markdown（各メッセージは個別の .md ファイル）
"""

import logging
import re
import uuid
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

import yaml

from team_ai.managers.identity_manager import IdentityManager
from team_ai.managers.query import resolve_broadcast_targets
from team_ai.managers.store import FileStore, RecordKind, atomic_write_text
from team_ai.models.common import Priority, parse_enum
from team_ai.models.errors import CoordinationError, UnavailableError
from team_ai.models.message import Message, MessageType

logger = logging.getLogger(__name__)


def _sanitize_filename(value: str) -> str:
    """ファイル名として安全な形式に変換する。"""
    safe = re.sub(r'[<>:"/\\|?*]', '_', value)
    safe = safe.strip(' .')
    return safe or 'message'


@dataclass
class DeliveryResult:
    """ブロードキャストの宛先ごとの配送結果。"""

    agent_id: str
    agent_name: str
    delivered: bool
    message_id: str | None = None
    error: str | None = None


class MessageManager:
    """エージェント間のメッセージ送受信を管理するクラス。"""

    def __init__(self, store: FileStore, identity: IdentityManager) -> None:
        """MessageManager を初期化する。

        Args:
            store: 共有ファイルストア
            identity: 宛先解決に使う IdentityManager
        """
        self.store = store
        self.identity = identity

    def _get_message_path(self, agent_id: str, message_id: str, created_at: datetime) -> Path:
        """メッセージのファイルパスを取得する。"""
        inbox_dir = self.store.inbox_dir(agent_id)
        timestamp = created_at.strftime("%Y%m%d_%H%M%S_%f")
        filename = f"{timestamp}_{_sanitize_filename(message_id)[:8]}.md"
        return inbox_dir / filename

    def _parse_message_file(self, file_path: Path) -> Message | None:
        """Markdown ファイルからメッセージを読み込む。"""
        try:
            content = file_path.read_text(encoding="utf-8")

            if not content.startswith("---\n"):
                return None

            # 区切り行は行頭の "---" のみ（YAML 値の継続行はインデントされる）
            end = content.find("\n---\n", 3)
            if end < 0:
                return None

            front_matter = yaml.safe_load(content[4:end])
            if not front_matter or "id" not in front_matter:
                return None
            body = content[end + len("\n---\n"):]

            return Message(
                id=front_matter["id"],
                sender_id=front_matter.get("sender_id"),
                receiver_id=front_matter["receiver_id"],
                message_type=MessageType(front_matter.get("message_type", "request")),
                priority=Priority(front_matter.get("priority", "normal")),
                subject=front_matter.get("subject", ""),
                content=body.removeprefix("\n").removesuffix("\n"),
                artifact_path=front_matter.get("artifact_path"),
                created_at=datetime.fromisoformat(front_matter["created_at"]),
                read_at=datetime.fromisoformat(
                    front_matter["read_at"]
                ) if front_matter.get("read_at") else None,
            )
        except (OSError, yaml.YAMLError, KeyError, ValueError) as e:
            logger.warning(f"メッセージの読み込みに失敗 ({file_path}): {e}")
            return None

    def _build_message_content(self, message: Message) -> str:
        """メッセージの Markdown コンテンツを組み立てる。"""
        front_matter = {
            "id": message.id,
            "sender_id": message.sender_id,
            "receiver_id": message.receiver_id,
            "message_type": message.message_type.value,
            "priority": message.priority.value,
            "status": message.status.value,
            "subject": message.subject,
            "artifact_path": message.artifact_path,
            "created_at": message.created_at.isoformat(),
            "read_at": message.read_at.isoformat() if message.read_at else None,
        }

        yaml_str = yaml.dump(
            front_matter, allow_unicode=True,
            default_flow_style=False, sort_keys=False,
        )
        return f"---\n{yaml_str}---\n\n{message.content}\n"

    def _write_message_file(self, file_path: Path, message: Message) -> None:
        """メッセージをアトミックに保存する。"""
        try:
            atomic_write_text(file_path, self._build_message_content(message))
        except OSError as e:
            raise UnavailableError("store_unavailable", f"メッセージの保存に失敗しました: {e}") from e

    def _load_inbox(self, agent_id: str) -> list[tuple[Path, Message]]:
        """inbox の全メッセージを時系列順に読み込む。"""
        inbox_dir = self.store.inbox_dir(agent_id)
        if not inbox_dir.exists():
            return []

        messages: list[tuple[Path, Message]] = []
        for file_path in inbox_dir.glob("*.md"):
            message = self._parse_message_file(file_path)
            if message:
                messages.append((file_path, message))

        # 時系列順にソート
        messages.sort(key=lambda x: (x[1].created_at, x[0].name))
        return messages

    def send(
        self,
        sender_id: str | None,
        target: str,
        subject: str,
        content: str,
        message_type: MessageType | str = MessageType.REQUEST,
        priority: Priority | str = Priority.NORMAL,
        artifact_path: str | None = None,
    ) -> Message:
        """メッセージを送信する。

        宛先の inbox にファイルを書き込んでから返るため、戻り値を受け取った時点で
        配送は永続化済み。

        Args:
            sender_id: 送信元エージェントID
            target: 宛先（エージェントID・一意なプレフィックス・名前）
            subject: 件名
            content: 本文
            message_type: メッセージ種類
            priority: 優先度
            artifact_path: 添付成果物のパス

        Returns:
            送信された Message

        Raises:
            NotFoundError: 宛先が未知（unknown_recipient）
        """
        msg_type = parse_enum(MessageType, message_type, "メッセージタイプ")
        msg_priority = parse_enum(Priority, priority, "優先度")
        recipient = self.identity.resolve_recipient(target)

        message = Message(
            id=str(uuid.uuid4()),
            sender_id=sender_id,
            receiver_id=recipient.id,
            message_type=msg_type,
            priority=msg_priority,
            subject=subject,
            content=content,
            artifact_path=artifact_path or None,
            created_at=datetime.now(),
        )
        file_path = self._get_message_path(recipient.id, message.id, message.created_at)
        self._write_message_file(file_path, message)

        logger.info(f"メッセージを送信: {sender_id or '-'} -> {recipient.id} ({message.id})")
        return message

    def check(self, agent_id: str, include_read: bool = False) -> list[Message]:
        """inbox のメッセージを古い順に返す。既読化は行わない。

        Args:
            agent_id: エージェントID（一意なプレフィックス可）
            include_read: 既読メッセージも含めるか

        Returns:
            メッセージのリスト（時系列順）
        """
        agent = self.identity.get(agent_id)
        messages = [m for _, m in self._load_inbox(agent.id)]
        if not include_read:
            messages = [m for m in messages if not m.is_read]
        return messages

    def mark_read(self, agent_id: str, message_ids: list[str] | None = None) -> int:
        """メッセージを既読にする。

        Args:
            agent_id: 受信者のエージェントID
            message_ids: 対象メッセージID（プレフィックス可）。None なら全未読

        Returns:
            既読にした件数
        """
        agent = self.identity.get(agent_id)
        targets = [m.strip() for m in message_ids or [] if m and m.strip()]

        marked = 0
        with self.store.lock(f"inbox-{agent.id}"):
            now = datetime.now()
            for file_path, message in self._load_inbox(agent.id):
                if message.is_read:
                    continue
                if targets and not any(message.id.startswith(t) for t in targets):
                    continue
                message.read_at = now
                self._write_message_file(file_path, message)
                marked += 1

        if marked:
            logger.info(f"{agent.id} の {marked} 件のメッセージを既読にしました")
        return marked

    def unread_count(self, agent_id: str) -> int:
        """未読メッセージ数を取得する。"""
        agent = self.identity.get(agent_id)
        return len([m for _, m in self._load_inbox(agent.id) if not m.is_read])

    def broadcast(
        self,
        subject: str,
        content: str,
        message_type: MessageType | str = MessageType.INFO,
        priority: Priority | str = Priority.NORMAL,
        filter_tag: str | None = None,
        filter_capability: str | None = None,
        exclude_self: bool = True,
        self_id: str | None = None,
    ) -> list[DeliveryResult]:
        """条件に一致するエージェント全員にメッセージを送信する。

        宛先ごとに独立した send を行い、一部の失敗で残りの送信を中断しない。

        Args:
            subject: 件名
            content: 本文
            message_type: メッセージ種類
            priority: 優先度
            filter_tag: 宛先をこのタグを持つエージェントに限定
            filter_capability: 宛先をこのケイパビリティを持つエージェントに限定
            exclude_self: 自分自身を除外するか
            self_id: 送信者自身のエージェントID（送信元としても記録される）

        Returns:
            宛先ごとの配送結果
        """
        msg_type = parse_enum(MessageType, message_type, "メッセージタイプ")
        msg_priority = parse_enum(Priority, priority, "優先度")
        if self_id:
            self_id = self.store.resolve_id(RecordKind.AGENT, self_id)
        targets = resolve_broadcast_targets(
            self.store,
            filter_tag=filter_tag,
            filter_capability=filter_capability,
            exclude_self=exclude_self,
            self_id=self_id,
        )

        results: list[DeliveryResult] = []
        for agent in targets:
            try:
                message = self.send(
                    sender_id=self_id,
                    target=agent.id,
                    subject=subject,
                    content=content,
                    message_type=msg_type,
                    priority=msg_priority,
                )
                results.append(
                    DeliveryResult(
                        agent_id=agent.id,
                        agent_name=agent.name,
                        delivered=True,
                        message_id=message.id,
                    )
                )
            except (CoordinationError, OSError) as e:
                logger.warning(f"ブロードキャスト送信に失敗 ({agent.id}): {e}")
                results.append(
                    DeliveryResult(
                        agent_id=agent.id,
                        agent_name=agent.name,
                        delivered=False,
                        error=str(e),
                    )
                )

        delivered = len([r for r in results if r.delivered])
        logger.info(f"ブロードキャストを送信: {delivered}/{len(results)} 件")
        return results
