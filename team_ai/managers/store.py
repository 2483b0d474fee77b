"""共有ファイルストア。

全エージェントプロセスが同じディレクトリを読み書きする前提の永続化層。

保存先:
    {home_dir}/agents/{agent_id}/metadata.json
    {home_dir}/agents/{agent_id}/inbox/*.md
    {home_dir}/tasks/{task_id}.json
    {home_dir}/teams/{team_id}.json
    {home_dir}/plans/{plan_id}.json
    {home_dir}/locks/*.lock

書き込みは全て tmpfile + os.replace によるアトミック置換で行うため、
ロックを取らない読み取り側が書きかけのファイルを見ることはない。
排他は fcntl.flock によるエンティティ単位のロックで行う。プロセスが異常終了しても
ロックは OS により解放されるため、他エージェントの状態を巻き込まない。
"""

import fcntl
import json
import logging
import os
import tempfile
import time
from collections.abc import Iterator
from contextlib import contextmanager
from enum import Enum
from pathlib import Path
from typing import Any, TypeVar

from pydantic import BaseModel, ValidationError

from team_ai.models.errors import InvalidInputError, NotFoundError, UnavailableError

logger = logging.getLogger(__name__)

_Record = TypeVar("_Record", bound=BaseModel)

# 依存グラフ全体を直列化するロックの名前
GRAPH_LOCK_NAME = "task-graph"


class RecordKind(str, Enum):
    """ストアが管理するエンティティ種別。"""

    AGENT = "agent"
    TASK = "task"
    TEAM = "team"
    PLAN = "plan"

    @property
    def directory(self) -> str:
        """保存先ディレクトリ名。"""
        return f"{self.value}s"


def atomic_write_text(file_path: Path, content: str) -> None:
    """アトミック書き込み（tmpfile + os.replace）でファイルを安全に保存する。"""
    file_path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(dir=str(file_path.parent), suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(content)
        os.replace(tmp_path, str(file_path))
    except BaseException:
        # 書き込み失敗時に一時ファイルを削除
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise


class FileStore:
    """エンティティ単位のロックとアトミック書き込みを提供するストア。"""

    def __init__(self, home_dir: str | Path, lock_timeout_seconds: float = 5.0) -> None:
        """FileStore を初期化する。

        Args:
            home_dir: ストアのルートディレクトリ
            lock_timeout_seconds: ロック取得の最大待機時間（秒）
        """
        self.home_dir = Path(home_dir).expanduser()
        self.lock_timeout_seconds = lock_timeout_seconds

    @property
    def locks_dir(self) -> Path:
        return self.home_dir / "locks"

    def initialize(self) -> None:
        """ストアのディレクトリ構成を作成する。"""
        for kind in RecordKind:
            self.kind_dir(kind).mkdir(parents=True, exist_ok=True)
        self.locks_dir.mkdir(parents=True, exist_ok=True)
        logger.info(f"ストアを初期化しました: {self.home_dir}")

    # ========== パス解決 ==========

    def kind_dir(self, kind: RecordKind) -> Path:
        return self.home_dir / kind.directory

    def agent_dir(self, agent_id: str) -> Path:
        return self.kind_dir(RecordKind.AGENT) / agent_id

    def inbox_dir(self, agent_id: str) -> Path:
        return self.agent_dir(agent_id) / "inbox"

    def record_path(self, kind: RecordKind, entity_id: str) -> Path:
        """エンティティのレコードファイルパスを返す。"""
        if "/" in entity_id or "\\" in entity_id or entity_id in {"", ".", ".."}:
            raise InvalidInputError("invalid_value", f"不正な ID です: {entity_id!r}")
        if kind == RecordKind.AGENT:
            return self.agent_dir(entity_id) / "metadata.json"
        return self.kind_dir(kind) / f"{entity_id}.json"

    # ========== ロック ==========

    @contextmanager
    def lock(self, name: str) -> Iterator[None]:
        """名前付きの排他ロックを取得する。

        タイムアウト内に取得できない場合は UnavailableError を送出する。

        Args:
            name: ロック名（例: "task-<id>"）
        """
        lock_path = self.locks_dir / f"{name}.lock"
        try:
            lock_path.parent.mkdir(parents=True, exist_ok=True)
            lock_file = open(lock_path, "a+", encoding="utf-8")
        except OSError as e:
            raise UnavailableError("store_unavailable", f"ロックファイルを開けません: {e}") from e

        started_at = time.monotonic()
        waited = False
        with lock_file:
            while True:
                try:
                    fcntl.flock(lock_file.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
                    break
                except BlockingIOError as e:
                    elapsed = time.monotonic() - started_at
                    if not waited:
                        logger.debug(f"ロック待機中: {name}")
                        waited = True
                    if elapsed >= self.lock_timeout_seconds:
                        raise UnavailableError(
                            "lock_timeout",
                            f"ロック取得がタイムアウトしました"
                            f"（{self.lock_timeout_seconds:.2f}s）: {name}",
                        ) from e
                    time.sleep(0.01)
            try:
                yield
            finally:
                fcntl.flock(lock_file.fileno(), fcntl.LOCK_UN)

    @contextmanager
    def entity_lock(self, kind: RecordKind, entity_id: str) -> Iterator[None]:
        """エンティティ単位の排他ロックを取得する。"""
        with self.lock(f"{kind.value}-{entity_id}"):
            yield

    # ========== 読み書き ==========

    def read_json(self, file_path: Path) -> dict[str, Any] | None:
        """JSON ファイルを読み込む。存在しない・破損している場合は None。"""
        try:
            with open(file_path, encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            return None
        except json.JSONDecodeError as e:
            logger.warning(f"レコードの読み込みに失敗 ({file_path}): {e}")
            return None
        except OSError as e:
            raise UnavailableError("store_unavailable", f"読み込みに失敗しました: {e}") from e
        if not isinstance(data, dict):
            logger.warning(f"レコード形式が不正です: {file_path}")
            return None
        return data

    def write_json(self, file_path: Path, payload: dict[str, Any]) -> None:
        """JSON payload をアトミックに書き込む。"""
        content = json.dumps(payload, ensure_ascii=False, indent=2, default=str)
        try:
            atomic_write_text(file_path, content)
        except OSError as e:
            raise UnavailableError("store_unavailable", f"書き込みに失敗しました: {e}") from e

    def load(
        self, kind: RecordKind, entity_id: str, model_cls: type[_Record]
    ) -> _Record | None:
        """レコードをモデルとして読み込む。"""
        data = self.read_json(self.record_path(kind, entity_id))
        if data is None:
            return None
        try:
            return model_cls.model_validate(data)
        except ValidationError as e:
            logger.warning(f"{kind.value} {entity_id} のパースに失敗: {e}")
            return None

    def save(self, kind: RecordKind, record: BaseModel) -> None:
        """レコードを保存する（record.id をキーとする）。"""
        entity_id = getattr(record, "id")
        self.write_json(self.record_path(kind, entity_id), record.model_dump(mode="json"))

    def list_ids(self, kind: RecordKind) -> list[str]:
        """保存済みのエンティティID一覧を返す。"""
        base = self.kind_dir(kind)
        if not base.exists():
            return []
        try:
            if kind == RecordKind.AGENT:
                return sorted(
                    p.name for p in base.iterdir() if (p / "metadata.json").exists()
                )
            return sorted(p.stem for p in base.glob("*.json"))
        except OSError as e:
            raise UnavailableError("store_unavailable", f"一覧取得に失敗しました: {e}") from e

    def load_all(self, kind: RecordKind, model_cls: type[_Record]) -> list[_Record]:
        """全レコードを読み込む。読めないレコードはスキップする。"""
        records: list[_Record] = []
        for entity_id in self.list_ids(kind):
            record = self.load(kind, entity_id, model_cls)
            if record is not None:
                records.append(record)
        return records

    def resolve_id(self, kind: RecordKind, reference: str) -> str:
        """完全一致または一意なプレフィックスで ID を解決する。

        Args:
            kind: エンティティ種別
            reference: 完全な ID または一意なプレフィックス

        Returns:
            解決された ID

        Raises:
            NotFoundError: 該当なし
            InvalidInputError: プレフィックスが複数に一致
        """
        ref = (reference or "").strip()
        if not ref:
            raise InvalidInputError("invalid_value", f"{kind.value} ID が指定されていません")
        if self.record_path(kind, ref).exists():
            return ref

        matches = [entity_id for entity_id in self.list_ids(kind) if entity_id.startswith(ref)]
        if len(matches) == 1:
            return matches[0]
        if len(matches) > 1:
            raise InvalidInputError(
                "ambiguous_reference",
                f"{kind.value} ID '{ref}' が複数に一致します: "
                + ", ".join(m[:8] for m in matches),
            )
        raise NotFoundError(f"unknown_{kind.value}", f"{kind.value} が見つかりません: {ref}")
