"""マネージャーモジュール。"""

from .identity_manager import IdentityManager
from .message_manager import DeliveryResult, MessageManager
from .plan_manager import PlanManager
from .store import FileStore, RecordKind
from .task_manager import TaskManager
from .team_manager import TeamManager

__all__ = [
    "DeliveryResult",
    "FileStore",
    "IdentityManager",
    "MessageManager",
    "PlanManager",
    "RecordKind",
    "TaskManager",
    "TeamManager",
]
