"""inbox 監視の常駐ループ。

セッションのエージェントの未読件数を一定間隔でポーリングし、
新着メッセージをログに残す。既読化は行わない。
"""

import asyncio
import logging

from team_ai.models.errors import CoordinationError

logger = logging.getLogger(__name__)

# 連続失敗でループを止める閾値
_CONSECUTIVE_FAILURE_STOP_THRESHOLD = 5


def is_message_watch_running(app_ctx) -> bool:
    """inbox 監視が稼働中かどうか。"""
    task = app_ctx.message_watch_task
    return task is not None and not task.done()


async def _run_message_watch_loop(app_ctx, agent_id: str, interval_seconds: float) -> None:
    """inbox 監視の常駐ループ本体。"""
    consecutive_failures = 0
    try:
        while True:
            stop_event = app_ctx.message_watch_stop_event
            if stop_event is None or stop_event.is_set():
                break

            try:
                unread = app_ctx.message_manager.unread_count(agent_id)
            except (CoordinationError, OSError) as e:
                consecutive_failures += 1
                logger.warning(
                    "未読件数の取得に失敗 (agent=%s, consecutive=%d): %s",
                    agent_id,
                    consecutive_failures,
                    e,
                )
                if consecutive_failures >= _CONSECUTIVE_FAILURE_STOP_THRESHOLD:
                    logger.error("inbox 監視を停止: 連続 %d 回失敗", consecutive_failures)
                    break
            else:
                consecutive_failures = 0
                if unread > app_ctx.message_watch_unread:
                    logger.info(
                        "新着メッセージ %d 件 (agent=%s, unread=%d)",
                        unread - app_ctx.message_watch_unread,
                        agent_id,
                        unread,
                    )
                app_ctx.message_watch_unread = unread

            try:
                await asyncio.wait_for(stop_event.wait(), timeout=interval_seconds)
            except asyncio.TimeoutError:
                pass
    finally:
        app_ctx.message_watch_task = None
        app_ctx.message_watch_stop_event = None


async def start_message_watch(app_ctx, agent_id: str, interval_seconds: float = 5) -> bool:
    """inbox 監視を開始する。既に稼働中なら何もしない。"""
    if app_ctx.message_watch_lock is None:
        app_ctx.message_watch_lock = asyncio.Lock()

    async with app_ctx.message_watch_lock:
        if is_message_watch_running(app_ctx):
            return False

        app_ctx.message_watch_unread = 0
        app_ctx.message_watch_stop_event = asyncio.Event()
        app_ctx.message_watch_task = asyncio.create_task(
            _run_message_watch_loop(app_ctx, agent_id, interval_seconds),
            name="team-ai-message-watch",
        )
        logger.info("inbox 監視を開始 (agent=%s, interval=%ss)", agent_id, interval_seconds)
        return True


async def stop_message_watch(app_ctx, timeout_seconds: float = 5.0) -> bool:
    """inbox 監視を停止する。停止時のエラーはログに残して握りつぶす。"""
    if app_ctx.message_watch_lock is None:
        app_ctx.message_watch_lock = asyncio.Lock()

    async with app_ctx.message_watch_lock:
        task = app_ctx.message_watch_task
        if task is None:
            app_ctx.message_watch_stop_event = None
            return False

        stop_event = app_ctx.message_watch_stop_event
        if stop_event is not None:
            stop_event.set()

        try:
            await asyncio.wait_for(task, timeout=timeout_seconds)
        except asyncio.TimeoutError:
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
        except Exception as e:
            logger.warning("inbox 監視停止時のエラーを無視します: %s", e)

        app_ctx.message_watch_task = None
        app_ctx.message_watch_stop_event = None
        logger.info("inbox 監視を停止しました")
        return True
