"""チーム管理モジュール。"""

import logging
import uuid
from datetime import datetime

from team_ai.managers.identity_manager import IdentityManager
from team_ai.managers.store import FileStore, RecordKind
from team_ai.models.errors import InvalidInputError, InvalidStateError, NotFoundError
from team_ai.models.team import Team

logger = logging.getLogger(__name__)


class TeamManager:
    """エージェントのチーム（リード + メンバー）を管理するクラス。

    リードは作成時に自動でメンバーになり、チームを離脱できない。
    """

    def __init__(self, store: FileStore, identity: IdentityManager) -> None:
        self.store = store
        self.identity = identity

    def _load_team(self, team_id: str) -> Team:
        team = self.store.load(RecordKind.TEAM, team_id, Team)
        if team is None:
            raise NotFoundError("unknown_team", f"team が見つかりません: {team_id}")
        return team

    def create(self, name: str, lead: str, description: str = "") -> Team:
        """チームを作成する。リードは自動でメンバーに追加される。

        Args:
            name: チーム名
            lead: リードのエージェントID
            description: チームの説明

        Returns:
            作成された Team
        """
        if not name or not name.strip():
            raise InvalidInputError("invalid_value", "チーム名が指定されていません")
        lead_agent = self.identity.get(lead)

        team = Team(
            id=str(uuid.uuid4()),
            name=name.strip(),
            lead=lead_agent.id,
            description=description or "",
            members=[lead_agent.id],
            created_at=datetime.now(),
        )
        with self.store.entity_lock(RecordKind.TEAM, team.id):
            self.store.save(RecordKind.TEAM, team)

        logger.info(f"チームを作成しました: {team.name} ({team.id}) lead={lead_agent.id}")
        return team

    def get(self, team_id: str) -> Team:
        """チームを取得する。"""
        return self._load_team(self.store.resolve_id(RecordKind.TEAM, team_id))

    def list_teams(self, agent_id: str | None = None) -> list[Team]:
        """チーム一覧を返す。

        Args:
            agent_id: 指定時はこのエージェントが所属するチームのみ

        Returns:
            作成順の Team リスト
        """
        teams = self.store.load_all(RecordKind.TEAM, Team)
        if agent_id:
            member_id = self.identity.get(agent_id).id
            teams = [t for t in teams if t.is_member(member_id)]
        teams.sort(key=lambda t: t.created_at)
        return teams

    def join(self, team_id: str, agent_id: str) -> tuple[Team, bool]:
        """チームに参加する（冪等）。

        Returns:
            (更新後の Team, 今回新たに参加したか)
        """
        resolved_id = self.store.resolve_id(RecordKind.TEAM, team_id)
        agent = self.identity.get(agent_id)

        with self.store.entity_lock(RecordKind.TEAM, resolved_id):
            team = self._load_team(resolved_id)
            if team.is_member(agent.id):
                return team, False
            team.members = [*team.members, agent.id]
            self.store.save(RecordKind.TEAM, team)

        logger.info(f"チームに参加しました: {agent.id} -> {team.id}")
        return team, True

    def leave(self, team_id: str, agent_id: str) -> tuple[Team, bool]:
        """チームから離脱する。

        メンバーでない場合は何もしない。リードは離脱できない。

        Returns:
            (更新後の Team, 今回離脱したか)

        Raises:
            InvalidStateError: リードが離脱しようとした（lead_cannot_leave）
        """
        resolved_id = self.store.resolve_id(RecordKind.TEAM, team_id)
        agent = self.identity.get(agent_id)

        with self.store.entity_lock(RecordKind.TEAM, resolved_id):
            team = self._load_team(resolved_id)
            if agent.id == team.lead:
                raise InvalidStateError(
                    "lead_cannot_leave",
                    f"リードはチームを離脱できません: {team.short_id}",
                )
            if not team.is_member(agent.id):
                return team, False
            team.members = [m for m in team.members if m != agent.id]
            self.store.save(RecordKind.TEAM, team)

        logger.info(f"チームから離脱しました: {agent.id} <- {team.id}")
        return team, True
