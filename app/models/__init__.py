# Database models package

from app.models.ai import AIProvider, AISettings, ChatHistory
from app.models.approval import Approval, ApprovalStatus
from app.models.base import AuditMixin, BaseModel, TimestampMixin, UUIDMixin
from app.models.comment import Comment
from app.models.contract import (
    CONTRACT_TRANSITIONS,
    Contract,
    ContractHistory,
    ContractStatus,
)
from app.models.department import Department
from app.models.notification import Notification, NotificationType
from app.models.reference import Reference, ReferenceType
from app.models.user import Role, RoleCode, User
from app.models.workflow import (
    DECISION_STEP_TYPES,
    DelegationRule,
    WorkflowDefinition,
    WorkflowRule,
    WorkflowStatus,
    WorkflowStep,
    WorkflowStepType,
    workflow_step_roles,
)

__all__ = [
    "BaseModel",
    "TimestampMixin",
    "UUIDMixin",
    "AuditMixin",
    "User",
    "Role",
    "RoleCode",
    "Department",
    "Reference",
    "ReferenceType",
    "Contract",
    "ContractHistory",
    "Comment",
    "ContractStatus",
    "CONTRACT_TRANSITIONS",
    "WorkflowDefinition",
    "WorkflowStep",
    "WorkflowStatus",
    "WorkflowStepType",
    "DECISION_STEP_TYPES",
    "WorkflowRule",
    "DelegationRule",
    "workflow_step_roles",
    "Approval",
    "ApprovalStatus",
    "Notification",
    "NotificationType",
    "AIProvider",
    "AISettings",
    "ChatHistory",
]
