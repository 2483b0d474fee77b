"""設定モジュール。"""

from .settings import DEFAULT_HOME_DIR, Settings, load_settings, resolve_home_dir

__all__ = [
    "DEFAULT_HOME_DIR",
    "Settings",
    "load_settings",
    "resolve_home_dir",
]
