"""読み取り専用の検索・フィルタ層。

ストアのディレクトリを直接走査し、状態を持たない純粋な関数として提供する。
外部プロセスが同じ走査を行っても同じ結果になることを前提とする。
"""

import logging
from datetime import datetime

from team_ai.managers.store import FileStore, RecordKind
from team_ai.models.agent import Agent, AgentState
from team_ai.models.common import parse_enum
from team_ai.models.plan import Plan, PlanStatus

logger = logging.getLogger(__name__)


def find_agents_by_capability(
    store: FileStore,
    capability: str,
    liveness_window_seconds: float | None = None,
) -> list[Agent]:
    """ケイパビリティを持つエージェントを検索する（大文字小文字を区別しない完全一致）。

    Args:
        store: 共有ファイルストア
        capability: 検索するケイパビリティ
        liveness_window_seconds: 指定時は状態を active / idle に導出して返す

    Returns:
        一致した Agent のリスト（登録順）
    """
    needle = capability.strip()
    if not needle:
        return []

    now = datetime.now()
    matches: list[Agent] = []
    for agent in store.load_all(RecordKind.AGENT, Agent):
        if not agent.has_capability(needle):
            continue
        if liveness_window_seconds is not None:
            agent = agent.model_copy(
                update={"state": agent.effective_state(now, liveness_window_seconds)}
            )
        matches.append(agent)
    matches.sort(key=lambda a: a.created_at)
    return matches


def resolve_broadcast_targets(
    store: FileStore,
    filter_tag: str | None = None,
    filter_capability: str | None = None,
    exclude_self: bool = True,
    self_id: str | None = None,
) -> list[Agent]:
    """ブロードキャストの宛先を解決する。

    登録解除されていない全エージェントから開始し、タグ・ケイパビリティで絞り込み、
    exclude_self の場合は self_id を除外する。

    Args:
        store: 共有ファイルストア
        filter_tag: 指定時はこのタグを持つエージェントのみ
        filter_capability: 指定時はこのケイパビリティを持つエージェントのみ
        exclude_self: self_id を除外するか
        self_id: 送信者自身のエージェントID

    Returns:
        宛先 Agent のリスト（登録順）
    """
    if exclude_self and self_id:
        self_id = store.resolve_id(RecordKind.AGENT, self_id)

    targets: list[Agent] = []
    for agent in store.load_all(RecordKind.AGENT, Agent):
        if agent.state == AgentState.COMPLETED:
            continue
        if exclude_self and self_id and agent.id == self_id:
            continue
        if filter_tag and not agent.has_tag(filter_tag):
            continue
        if filter_capability and not agent.has_capability(filter_capability):
            continue
        targets.append(agent)
    targets.sort(key=lambda a: a.created_at)
    logger.debug(
        "broadcast targets resolved: tag=%s capability=%s count=%d",
        filter_tag,
        filter_capability,
        len(targets),
    )
    return targets


def list_plans(
    store: FileStore,
    status: PlanStatus | str | None = None,
    reviewer: str | None = None,
) -> list[Plan]:
    """プランを絞り込んで返す（全件走査、ページングなし）。

    Args:
        store: 共有ファイルストア
        status: ステータスで絞り込み
        reviewer: レビュアーのエージェントID で絞り込み

    Returns:
        提出順の Plan リスト
    """
    status_filter = parse_enum(PlanStatus, status, "ステータス") if status else None
    plans = [
        plan
        for plan in store.load_all(RecordKind.PLAN, Plan)
        if (status_filter is None or plan.status == status_filter)
        and (not reviewer or plan.reviewer == reviewer)
    ]
    plans.sort(key=lambda p: p.created_at)
    return plans
