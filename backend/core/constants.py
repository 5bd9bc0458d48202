"""Constants and enums for the approval flow engine."""

from enum import Enum


class FlowStatus(str, Enum):
    """Flow definition status."""

    DRAFT = "DRAFT"
    PUBLISHED = "PUBLISHED"
    DISABLED = "DISABLED"


class CategoryStatus(str, Enum):
    """Flow category status."""

    ENABLED = "ENABLED"
    DISABLED = "DISABLED"


class InstanceStatus(str, Enum):
    """Flow instance status."""

    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    REJECTED = "REJECTED"
    CANCELLED = "CANCELLED"
    TERMINATED = "TERMINATED"

    @property
    def is_terminal(self) -> bool:
        return self is not InstanceStatus.RUNNING


class TaskStatus(str, Enum):
    """Approval task status."""

    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    TRANSFERRED = "TRANSFERRED"
    COUNTERSIGNED = "COUNTERSIGNED"


class TaskResult(str, Enum):
    """Outcome recorded on a resolved task."""

    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    TRANSFERRED = "TRANSFERRED"
    COUNTERSIGNED = "COUNTERSIGNED"


class FlowLogAction(str, Enum):
    """Audit action written to the flow log."""

    START = "START"
    APPROVE = "APPROVE"
    REJECT = "REJECT"
    TRANSFER = "TRANSFER"
    COUNTERSIGN = "COUNTERSIGN"
    CANCEL = "CANCEL"
    TERMINATE = "TERMINATE"
    AUTO = "AUTO"
    URGE = "URGE"


class NodeKind(str, Enum):
    """Kind of a vertex in a flow graph."""

    START = "START"
    END = "END"
    APPROVAL = "APPROVAL"
    CONDITION = "CONDITION"
    PARALLEL = "PARALLEL"
    JOIN = "JOIN"


class ApprovalMode(str, Enum):
    """Multi-assignee semantics of an approval node."""

    OR_SIGN = "OR_SIGN"
    AND_SIGN = "AND_SIGN"


class AssigneeType(str, Enum):
    """Approver-selection strategy."""

    ROLE = "ROLE"
    DEPT_LEADER = "DEPT_LEADER"
    SPECIFIC_USER = "SPECIFIC_USER"
    INITIATOR_LEADER = "INITIATOR_LEADER"
    FORM_FIELD = "FORM_FIELD"


class EmptyAssigneeAction(str, Enum):
    """What to do when no approver resolves for a node."""

    SKIP = "SKIP"
    TO_ADMIN = "TO_ADMIN"
    ERROR = "ERROR"


class TimeoutAction(str, Enum):
    """Escalation applied to an overdue task."""

    AUTO_PASS = "AUTO_PASS"
    AUTO_REJECT = "AUTO_REJECT"
    REMIND = "REMIND"


class FlowEventType(str, Enum):
    """Lifecycle events recorded for the outbound business callback."""

    FLOW_STARTED = "flow_started"
    FLOW_COMPLETED = "flow_completed"
    FLOW_REJECTED = "flow_rejected"
    FLOW_CANCELLED = "flow_cancelled"
    FLOW_TERMINATED = "flow_terminated"
    TASK_APPROVED = "task_approved"
    TASK_REJECTED = "task_rejected"
    TASK_TRANSFERRED = "task_transferred"
    TASK_URGED = "task_urged"


# Task states that no longer need a due time
RESOLVED_TASK_STATUSES = (
    TaskStatus.COMPLETED,
    TaskStatus.CANCELLED,
    TaskStatus.TRANSFERRED,
    TaskStatus.COUNTERSIGNED,
)


class NodeProgress(str, Enum):
    """Status of a node in an instance's progress view."""

    PENDING = "PENDING"
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
