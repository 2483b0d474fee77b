"""モデル間で共有する型とヘルパー。"""

from collections.abc import Iterable
from enum import Enum
from typing import Annotated, TypeVar

from pydantic import BeforeValidator, PlainSerializer

from team_ai.models.errors import InvalidInputError


class Priority(str, Enum):
    """メッセージ・タスク共通の優先度。"""

    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"


def split_csv(value: str | Iterable[str] | None) -> list[str]:
    """カンマ区切り文字列（またはリスト）を正規化したリストに変換する。

    前後の空白を除去し、空要素と大文字小文字違いの重複を取り除く。
    最初に現れた表記を保持する。

    Args:
        value: "a, b,c" 形式の文字列、文字列のリスト、または None

    Returns:
        正規化済みのリスト
    """
    if value is None:
        return []
    items = value.split(",") if isinstance(value, str) else list(value)

    result: list[str] = []
    seen: set[str] = set()
    for item in items:
        text = str(item).strip()
        if not text or text.lower() in seen:
            continue
        seen.add(text.lower())
        result.append(text)
    return result


def join_csv(values: list[str]) -> str:
    """リストをカンマ区切り文字列に変換する。"""
    return ",".join(values)


def contains_ci(values: Iterable[str], needle: str) -> bool:
    """大文字小文字を区別せずに完全一致する要素があるか判定する。"""
    target = needle.strip().lower()
    return any(v.lower() == target for v in values)


StrList = Annotated[list[str], BeforeValidator(split_csv)]
"""カンマ区切り文字列も受け付けるリスト（JSON にはリストとして保存）"""

CsvList = Annotated[
    list[str],
    BeforeValidator(split_csv),
    PlainSerializer(join_csv, return_type=str, when_used="json"),
]
"""JSON にはカンマ区切り文字列として保存するリスト（外部スキャナ互換）"""


_EnumT = TypeVar("_EnumT", bound=Enum)


def parse_enum(enum_cls: type[_EnumT], value: "_EnumT | str", label: str) -> _EnumT:
    """文字列を列挙値に変換する。不正な値は InvalidInputError とする。

    Args:
        enum_cls: 変換先の列挙型
        value: 列挙値または文字列
        label: エラーメッセージ用の項目名

    Returns:
        変換された列挙値
    """
    try:
        return enum_cls(value)
    except ValueError as e:
        raise InvalidInputError(
            "invalid_value",
            f"無効な{label}です: {value}（有効: {[m.value for m in enum_cls]}）",
        ) from e
