"""設定管理モジュール。"""

import os
from pathlib import Path

from pydantic import ConfigDict, Field, field_validator, model_validator
from pydantic_settings import BaseSettings

DEFAULT_HOME_DIR = "~/.team-ai"


def resolve_home_dir(home_dir: str | os.PathLike[str] | None = None) -> Path:
    """ストアのルートディレクトリを解決する。

    優先順位:
    1. 引数 home_dir
    2. 環境変数 TEAM_AI_HOME_DIR
    3. デフォルト値（~/.team-ai）

    Args:
        home_dir: 明示的に指定されたルートディレクトリ

    Returns:
        展開済みのルートディレクトリ
    """
    value = home_dir or os.getenv("TEAM_AI_HOME_DIR") or DEFAULT_HOME_DIR
    return Path(value).expanduser()


def resolve_env_file(home_dir: str | os.PathLike[str] | None = None) -> str | None:
    """ルートディレクトリ直下の .env ファイルを解決する。

    Args:
        home_dir: ストアのルートディレクトリ

    Returns:
        .env ファイルのパス（存在する場合）、または None
    """
    env_file = resolve_home_dir(home_dir) / ".env"
    if env_file.exists():
        return str(env_file)
    return None


class Settings(BaseSettings):
    """コーディネーションエンジンの設定。

    環境変数で上書き可能。プレフィックスは TEAM_AI_。
    例: TEAM_AI_LIVENESS_WINDOW_SECONDS=600

    優先順位:
    1. 環境変数（最優先）
    2. {home_dir}/.env
    3. デフォルト値
    """

    model_config = ConfigDict(
        env_prefix="TEAM_AI_",
        env_file=resolve_env_file(),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    home_dir: str = DEFAULT_HOME_DIR
    """ストアのルートディレクトリ（全エージェントが共有する）"""

    # ハートビート設定
    heartbeat_interval_seconds: int = Field(
        default=300,
        description="ハートビート送信間隔（秒）",
    )
    """クライアントが想定するハートビート間隔（デフォルト: 5分）"""

    liveness_window_seconds: int = Field(
        default=900,
        description="active と判定する最終ハートビートからの経過時間（秒）",
    )
    """この時間を超えて無通信のエージェントは idle と表示する（デフォルト: 間隔の3倍）"""

    # ロック設定
    lock_timeout_seconds: float = Field(
        default=5.0,
        description="エンティティロック取得の最大待機時間（秒）",
    )

    # 自動登録設定
    auto_register: bool = Field(
        default=False,
        description="サーバー起動時にセッションをエージェントとして登録するか",
    )
    client_name: str = Field(
        default="mcp",
        description="自動登録時のエージェント名プレフィックス",
    )
    model_name: str = Field(
        default="unknown",
        description="自動登録時に記録するモデル名",
    )

    @field_validator("home_dir")
    @classmethod
    def validate_home_dir(cls, value: str) -> str:
        """空のルートディレクトリを拒否する。"""
        candidate = value.strip()
        if not candidate:
            raise ValueError("TEAM_AI_HOME_DIR に空文字は指定できません")
        return candidate

    @field_validator(
        "heartbeat_interval_seconds",
        "liveness_window_seconds",
        "lock_timeout_seconds",
    )
    @classmethod
    def validate_positive(cls, value: float) -> float:
        """時間系の設定値は正の値に限る。"""
        if value <= 0:
            raise ValueError(f"正の値を指定してください: {value}")
        return value

    @model_validator(mode="after")
    def validate_liveness_window(self) -> "Settings":
        """liveness window はハートビート間隔以上でなければならない。"""
        if self.liveness_window_seconds < self.heartbeat_interval_seconds:
            raise ValueError(
                "liveness_window_seconds は heartbeat_interval_seconds 以上にしてください"
                f"（{self.liveness_window_seconds} < {self.heartbeat_interval_seconds}）"
            )
        return self

    @property
    def home_path(self) -> Path:
        """展開済みのルートディレクトリ。"""
        return Path(self.home_dir).expanduser()


def load_settings(home_dir: str | os.PathLike[str] | None = None) -> Settings:
    """指定ルートディレクトリの .env を優先して Settings を生成する。

    Args:
        home_dir: ストアのルートディレクトリ（None の場合は環境変数/デフォルト）

    Returns:
        読み込み済み Settings インスタンス
    """
    env_file = resolve_env_file(home_dir)
    overrides: dict[str, str] = {}
    if home_dir is not None:
        overrides["home_dir"] = str(home_dir)
    if env_file:
        return Settings(_env_file=env_file, **overrides)
    # model_config 側の env_file を使わず、環境変数 + デフォルトのみで構築
    return Settings(_env_file=None, **overrides)
