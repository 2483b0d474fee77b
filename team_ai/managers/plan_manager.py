"""プラン承認ワークフロー管理モジュール。

pending -> approved / rejected の一度きりの遷移を持つ。
"""

import logging
import uuid
from datetime import datetime

from team_ai.managers.identity_manager import IdentityManager
from team_ai.managers.query import list_plans
from team_ai.managers.store import FileStore, RecordKind
from team_ai.models.common import parse_enum
from team_ai.models.errors import InvalidInputError, InvalidStateError, NotFoundError
from team_ai.models.plan import Plan, PlanAction, PlanStatus

logger = logging.getLogger(__name__)


class PlanManager:
    """プランの提出とレビューを管理するクラス。"""

    def __init__(self, store: FileStore, identity: IdentityManager) -> None:
        self.store = store
        self.identity = identity

    def _load_plan(self, plan_id: str) -> Plan:
        plan = self.store.load(RecordKind.PLAN, plan_id, Plan)
        if plan is None:
            raise NotFoundError("unknown_plan", f"plan が見つかりません: {plan_id}")
        return plan

    def submit(
        self,
        title: str,
        body: str,
        reviewer: str,
        submitter: str | None = None,
        team: str | None = None,
    ) -> Plan:
        """プランを提出する（常に pending で作成）。

        Args:
            title: タイトル
            body: 本文（Markdown）
            reviewer: レビュアーのエージェントID
            submitter: 提出エージェントID
            team: 関連チームID

        Returns:
            作成された Plan
        """
        if not title or not title.strip():
            raise InvalidInputError("invalid_value", "プランのタイトルが指定されていません")
        reviewer_id = self.identity.get(reviewer).id
        submitter_id = self.identity.get(submitter).id if submitter else None
        team_id = self.store.resolve_id(RecordKind.TEAM, team) if team else None

        plan = Plan(
            id=str(uuid.uuid4()),
            title=title.strip(),
            body=body or "",
            submitter=submitter_id,
            reviewer=reviewer_id,
            team=team_id,
            status=PlanStatus.PENDING,
            created_at=datetime.now(),
        )
        with self.store.entity_lock(RecordKind.PLAN, plan.id):
            self.store.save(RecordKind.PLAN, plan)

        logger.info(f"プランを提出しました: {plan.id} reviewer={reviewer_id}")
        return plan

    def review(
        self,
        plan_id: str,
        action: PlanAction | str,
        feedback: str | None = None,
    ) -> Plan:
        """プランをレビューする。

        Args:
            plan_id: プランID
            action: approve または reject
            feedback: レビューコメント

        Returns:
            レビュー後の Plan

        Raises:
            InvalidStateError: レビュー済み（already_reviewed）
        """
        review_action = parse_enum(PlanAction, action, "アクション")
        resolved_id = self.store.resolve_id(RecordKind.PLAN, plan_id)

        with self.store.entity_lock(RecordKind.PLAN, resolved_id):
            plan = self._load_plan(resolved_id)
            if plan.is_reviewed:
                raise InvalidStateError(
                    "already_reviewed",
                    f"プランは既にレビュー済みです（{plan.status.value}）: {plan.short_id}",
                )
            plan.status = review_action.resulting_status
            plan.feedback = feedback
            plan.reviewed_at = datetime.now()
            self.store.save(RecordKind.PLAN, plan)

        logger.info(f"プランをレビューしました: {plan.id} -> {plan.status.value}")
        return plan

    def get(self, plan_id: str) -> Plan:
        """プランを取得する。"""
        return self._load_plan(self.store.resolve_id(RecordKind.PLAN, plan_id))

    def list_plans(
        self,
        status: PlanStatus | str | None = None,
        reviewer: str | None = None,
    ) -> list[Plan]:
        """プランを絞り込んで返す。reviewer は一意なプレフィックスでも指定できる。"""
        reviewer_id = self.identity.get(reviewer).id if reviewer else None
        return list_plans(self.store, status=status, reviewer=reviewer_id)
