"""コーディネーションエンジンのエラー定義。

全ての失敗は種別（ErrorKind）と機械判定用コード、人間向けの詳細メッセージを持つ。
マネージャーはこれらの例外を送出し、ツール層が構造化レスポンスへ変換する。
"""

from enum import Enum


class ErrorKind(str, Enum):
    """エラーの種別。"""

    NOT_FOUND = "not_found"
    """未知の agent / task / team / plan ID"""

    INVALID_STATE = "invalid_state"
    """現在の状態では許可されない操作"""

    CONFLICT = "conflict"
    """競合に敗れた（例: 他エージェントが先に claim した）"""

    VALIDATION_ERROR = "validation_error"
    """入力値の不正（未知の依存、循環依存など）"""

    UNAVAILABLE = "unavailable"
    """ストアへの一時的なアクセス失敗（リトライ可能）"""


# リトライで解消し得る種別
RETRYABLE_KINDS = frozenset({ErrorKind.CONFLICT, ErrorKind.UNAVAILABLE})


class CoordinationError(Exception):
    """コーディネーション操作の失敗を表す基底例外。"""

    kind: ErrorKind = ErrorKind.VALIDATION_ERROR

    def __init__(self, code: str, detail: str) -> None:
        super().__init__(f"{code}: {detail}")
        self.code = code
        self.detail = detail

    @property
    def retryable(self) -> bool:
        """呼び出し側がリトライしてよいかどうか。"""
        return self.kind in RETRYABLE_KINDS

    def to_dict(self) -> dict:
        """ツールレスポンス用の辞書に変換する。"""
        return {
            "success": False,
            "error": f"{self.code}: {self.detail}",
            "error_kind": self.kind.value,
            "error_code": self.code,
            "retryable": self.retryable,
        }


class NotFoundError(CoordinationError):
    kind = ErrorKind.NOT_FOUND


class InvalidStateError(CoordinationError):
    kind = ErrorKind.INVALID_STATE


class ConflictError(CoordinationError):
    kind = ErrorKind.CONFLICT


class InvalidInputError(CoordinationError):
    kind = ErrorKind.VALIDATION_ERROR


class UnavailableError(CoordinationError):
    kind = ErrorKind.UNAVAILABLE
