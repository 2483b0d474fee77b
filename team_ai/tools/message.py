"""メッセージバス（inbox / ブロードキャスト）ツール。"""

from typing import Any

from mcp.server.fastmcp import Context, FastMCP

from team_ai.managers.message_watch_daemon import start_message_watch, stop_message_watch
from team_ai.models.common import split_csv
from team_ai.models.errors import CoordinationError, InvalidInputError
from team_ai.tools.helpers import (
    error_response,
    format_message_block,
    get_app_ctx,
    missing_argument_response,
    resolve_caller,
)


def register_tools(mcp: FastMCP) -> None:
    """メッセージ関連ツールを登録する。"""

    @mcp.tool()
    async def message_send(
        to: str,
        subject: str,
        content: str,
        sender_id: str | None = None,
        message_type: str = "request",
        priority: str = "normal",
        artifact_path: str | None = None,
        ctx: Context = None,
    ) -> dict[str, Any]:
        """エージェントにメッセージを送信する。

        宛先の inbox への書き込みが完了してから返る。

        Args:
            to: 宛先（エージェントID・一意なプレフィックス・エージェント名）
            subject: 件名
            content: 本文
            sender_id: 送信元エージェントID（省略時はこのサーバーの登録エージェント）
            message_type: メッセージ種類（request/info/query）
            priority: 優先度（low/normal/high）
            artifact_path: 添付する成果物のパス

        Returns:
            送信結果（success, message_id, message）
        """
        app_ctx = get_app_ctx(ctx)
        try:
            sent = app_ctx.message_manager.send(
                sender_id=resolve_caller(app_ctx, sender_id),
                target=to,
                subject=subject,
                content=content,
                message_type=message_type,
                priority=priority,
                artifact_path=artifact_path,
            )
        except (CoordinationError, OSError) as e:
            return error_response(e)

        return {
            "success": True,
            "message_id": sent.id,
            "receiver_id": sent.receiver_id,
            "message": f"Message sent to {sent.receiver_id[:8]} ({sent.id})",
        }

    @mcp.tool()
    async def message_check(
        agent_id: str | None = None,
        include_read: bool = False,
        ctx: Context = None,
    ) -> dict[str, Any]:
        """inbox のメッセージを古い順に取得する。既読化は行わない。

        Args:
            agent_id: 受信者のエージェントID（省略時はこのサーバーの登録エージェント）
            include_read: 既読メッセージも含めるか

        Returns:
            メッセージ一覧（success, messages, count, text）
        """
        app_ctx = get_app_ctx(ctx)
        receiver = resolve_caller(app_ctx, agent_id)
        if not receiver:
            return missing_argument_response("agent_id")
        try:
            messages = app_ctx.message_manager.check(receiver, include_read=include_read)
        except (CoordinationError, OSError) as e:
            return error_response(e)

        text = (
            "\n\n".join(format_message_block(m) for m in messages)
            if messages
            else "No messages"
        )
        return {
            "success": True,
            "messages": [m.model_dump(mode="json") for m in messages],
            "count": len(messages),
            "text": text,
        }

    @mcp.tool()
    async def message_mark_read(
        agent_id: str | None = None,
        message_ids: str | None = None,
        ctx: Context = None,
    ) -> dict[str, Any]:
        """メッセージを既読にする。

        Args:
            agent_id: 受信者のエージェントID（省略時はこのサーバーの登録エージェント）
            message_ids: 対象メッセージID（カンマ区切り、プレフィックス可）。省略時は全未読

        Returns:
            既読化結果（success, marked, message）
        """
        app_ctx = get_app_ctx(ctx)
        receiver = resolve_caller(app_ctx, agent_id)
        if not receiver:
            return missing_argument_response("agent_id")
        try:
            marked = app_ctx.message_manager.mark_read(
                receiver, message_ids=split_csv(message_ids) or None
            )
        except (CoordinationError, OSError) as e:
            return error_response(e)

        return {
            "success": True,
            "marked": marked,
            "message": f"Marked {marked} message(s) as read",
        }

    @mcp.tool()
    async def message_broadcast(
        subject: str,
        content: str,
        message_type: str = "info",
        priority: str = "normal",
        filter_tag: str | None = None,
        filter_capability: str | None = None,
        exclude_self: bool = True,
        self_id: str | None = None,
        ctx: Context = None,
    ) -> dict[str, Any]:
        """条件に一致する全エージェントにメッセージを送信する。

        一部の宛先への送信失敗は残りの送信を中断しない。

        Args:
            subject: 件名
            content: 本文
            message_type: メッセージ種類（request/info/query）
            priority: 優先度（low/normal/high）
            filter_tag: このタグを持つエージェントに限定
            filter_capability: このケイパビリティを持つエージェントに限定
            exclude_self: 自分自身を除外するか
            self_id: 送信者のエージェントID（省略時はこのサーバーの登録エージェント）

        Returns:
            宛先ごとの配送結果（success, results, delivered, total, message）
        """
        app_ctx = get_app_ctx(ctx)
        try:
            results = app_ctx.message_manager.broadcast(
                subject=subject,
                content=content,
                message_type=message_type,
                priority=priority,
                filter_tag=filter_tag,
                filter_capability=filter_capability,
                exclude_self=exclude_self,
                self_id=resolve_caller(app_ctx, self_id),
            )
        except (CoordinationError, OSError) as e:
            return error_response(e)

        if not results:
            return {
                "success": True,
                "results": [],
                "delivered": 0,
                "total": 0,
                "message": "No matching agents found",
            }

        delivered = len([r for r in results if r.delivered])
        lines = [f"Broadcast sent to {delivered}/{len(results)} agents"]
        for result in results:
            mark = "ok" if result.delivered else f"failed: {result.error}"
            lines.append(f"- {result.agent_name} ({result.agent_id[:8]}): {mark}")
        return {
            "success": True,
            "results": [
                {
                    "agent_id": r.agent_id,
                    "agent_name": r.agent_name,
                    "delivered": r.delivered,
                    "message_id": r.message_id,
                    "error": r.error,
                }
                for r in results
            ],
            "delivered": delivered,
            "total": len(results),
            "message": "\n".join(lines),
        }

    @mcp.tool()
    async def message_watch_start(
        interval: float = 5,
        agent_id: str | None = None,
        ctx: Context = None,
    ) -> dict[str, Any]:
        """inbox の監視をバックグラウンドで開始する。すぐに返る。

        新着メッセージはサーバーログに記録される。既読化は行わない。

        Args:
            interval: ポーリング間隔（秒）
            agent_id: 監視するエージェントID（省略時はこのサーバーの登録エージェント）

        Returns:
            開始結果（success, started, agent_id, message）
        """
        app_ctx = get_app_ctx(ctx)
        receiver = resolve_caller(app_ctx, agent_id)
        if not receiver:
            return missing_argument_response("agent_id")
        if interval <= 0:
            return error_response(
                InvalidInputError(
                    "invalid_value", f"interval は正の数で指定してください: {interval}"
                )
            )
        try:
            agent = app_ctx.identity_manager.get(receiver)
        except (CoordinationError, OSError) as e:
            return error_response(e)

        started = await start_message_watch(app_ctx, agent.id, interval_seconds=interval)
        message = (
            f"Started watching for messages (agent: {agent.id})"
            if started
            else "Message watch is already running"
        )
        return {
            "success": True,
            "started": started,
            "agent_id": agent.id,
            "message": message,
        }

    @mcp.tool()
    async def message_watch_stop(
        ctx: Context = None,
    ) -> dict[str, Any]:
        """inbox の監視を停止する（未起動なら何もしない）。

        Returns:
            停止結果（success, stopped, message）
        """
        app_ctx = get_app_ctx(ctx)
        stopped = await stop_message_watch(app_ctx)
        message = "Stopped watching for messages" if stopped else "Message watch is not running"
        return {"success": True, "stopped": stopped, "message": message}
