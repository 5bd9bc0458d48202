"""Database models for the approval flow engine.

This module imports all models to ensure they are registered
with SQLAlchemy's declarative base.
"""

from db.models.department import Department
from db.models.user import User
from db.models.role import Role, user_roles
from db.models.flow_category import FlowCategory
from db.models.flow_definition import FlowDefinition, NodeConfig
from db.models.flow_instance import FlowInstance, ParallelBranchState
from db.models.task import Task
from db.models.flow_log import FlowLog
from db.models.copy_record import CopyRecord
from db.models.flow_event import FlowEvent

__all__ = [
    "Department",
    "User",
    "Role",
    "user_roles",
    "FlowCategory",
    "FlowDefinition",
    "NodeConfig",
    "FlowInstance",
    "ParallelBranchState",
    "Task",
    "FlowLog",
    "CopyRecord",
    "FlowEvent",
]
