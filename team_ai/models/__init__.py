"""データモデルモジュール。"""

from .agent import Agent, AgentRole, AgentState
from .common import Priority
from .errors import (
    ConflictError,
    CoordinationError,
    ErrorKind,
    InvalidInputError,
    InvalidStateError,
    NotFoundError,
    UnavailableError,
)
from .message import Message, MessageStatus, MessageType
from .plan import Plan, PlanAction, PlanStatus
from .task import Task, TaskStatus
from .team import Team

__all__ = [
    "Agent",
    "AgentRole",
    "AgentState",
    "ConflictError",
    "CoordinationError",
    "ErrorKind",
    "InvalidInputError",
    "InvalidStateError",
    "Message",
    "MessageStatus",
    "MessageType",
    "NotFoundError",
    "Plan",
    "PlanAction",
    "PlanStatus",
    "Priority",
    "Task",
    "TaskStatus",
    "Team",
    "UnavailableError",
]
