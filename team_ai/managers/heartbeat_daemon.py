"""ハートビート常駐ループ。

サーバーが登録したエージェントの最終ハートビートを定期的に更新する。
liveness は表示上の目安であり、停止してもタスクの claim が取り消されることはない。
"""

import asyncio
import logging

logger = logging.getLogger(__name__)

# 連続失敗でループを止める閾値
_CONSECUTIVE_FAILURE_STOP_THRESHOLD = 5


def is_heartbeat_daemon_running(app_ctx) -> bool:
    """heartbeat daemon が稼働中かどうか。"""
    task = app_ctx.heartbeat_daemon_task
    return task is not None and not task.done()


async def _run_heartbeat_loop(app_ctx, agent_id: str) -> None:
    """heartbeat の常駐ループ本体。"""
    consecutive_failures = 0
    try:
        while True:
            stop_event = app_ctx.heartbeat_daemon_stop_event
            if stop_event is None or stop_event.is_set():
                break

            if app_ctx.identity_manager.heartbeat(agent_id):
                consecutive_failures = 0
            else:
                consecutive_failures += 1
                logger.warning(
                    "heartbeat 更新に失敗 (agent=%s, consecutive=%d)",
                    agent_id,
                    consecutive_failures,
                )
                if consecutive_failures >= _CONSECUTIVE_FAILURE_STOP_THRESHOLD:
                    logger.error(
                        "heartbeat daemon を停止: 連続 %d 回失敗", consecutive_failures
                    )
                    break

            wait_seconds = max(1, int(app_ctx.settings.heartbeat_interval_seconds))
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=wait_seconds)
            except asyncio.TimeoutError:
                pass
    finally:
        app_ctx.heartbeat_daemon_task = None
        app_ctx.heartbeat_daemon_stop_event = None


async def start_heartbeat_daemon(app_ctx, agent_id: str) -> bool:
    """heartbeat daemon を開始する。既に稼働中なら何もしない。"""
    if app_ctx.heartbeat_daemon_lock is None:
        app_ctx.heartbeat_daemon_lock = asyncio.Lock()

    async with app_ctx.heartbeat_daemon_lock:
        if is_heartbeat_daemon_running(app_ctx):
            return False

        app_ctx.heartbeat_daemon_stop_event = asyncio.Event()
        app_ctx.heartbeat_daemon_task = asyncio.create_task(
            _run_heartbeat_loop(app_ctx, agent_id),
            name="team-ai-heartbeat-daemon",
        )
        logger.info(
            "heartbeat daemon started (agent=%s, interval=%ss)",
            agent_id,
            app_ctx.settings.heartbeat_interval_seconds,
        )
        return True


async def stop_heartbeat_daemon(app_ctx, timeout_seconds: float = 5.0) -> bool:
    """heartbeat daemon を停止する。

    シャットダウン経路から呼ばれるため、停止時のエラーはログに残して握りつぶす。
    """
    if app_ctx.heartbeat_daemon_lock is None:
        app_ctx.heartbeat_daemon_lock = asyncio.Lock()

    async with app_ctx.heartbeat_daemon_lock:
        task = app_ctx.heartbeat_daemon_task
        if task is None:
            app_ctx.heartbeat_daemon_stop_event = None
            return False

        stop_event = app_ctx.heartbeat_daemon_stop_event
        if stop_event is not None:
            stop_event.set()

        try:
            await asyncio.wait_for(task, timeout=timeout_seconds)
        except asyncio.TimeoutError:
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
        except Exception as e:
            logger.warning("heartbeat daemon 停止時のエラーを無視します: %s", e)

        app_ctx.heartbeat_daemon_task = None
        app_ctx.heartbeat_daemon_stop_event = None
        logger.info("heartbeat daemon stopped")
        return True
