"""Flow log and lifecycle event writers.

Both are added to the caller's session so they commit or roll back
together with the state change they describe.
"""

from typing import Any, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from core.constants import FlowEventType, FlowLogAction
from db.models.flow_event import FlowEvent
from db.models.flow_log import FlowLog
from workflow.actor import Actor


def _value(status: Any) -> Optional[str]:
    return getattr(status, "value", status)


async def write_flow_log(
    db: AsyncSession,
    instance_id: str,
    action: FlowLogAction,
    actor: Optional[Actor] = None,
    task_id: Optional[str] = None,
    node_id: Optional[str] = None,
    node_name: Optional[str] = None,
    from_status: Any = None,
    to_status: Any = None,
    comment: Optional[str] = None,
) -> FlowLog:
    result = await db.execute(
        select(func.coalesce(func.max(FlowLog.seq), 0)).where(FlowLog.flow_instance_id == instance_id)
    )
    entry = FlowLog(
        flow_instance_id=instance_id,
        task_id=task_id,
        node_id=node_id,
        node_name=node_name,
        action=action.value,
        from_status=_value(from_status),
        to_status=_value(to_status),
        operator_id=actor.id if actor else None,
        operator_name=actor.name if actor else None,
        comment=comment,
        seq=result.scalar() + 1,
    )
    db.add(entry)
    await db.flush()
    return entry


async def record_event(
    db: AsyncSession,
    event_type: FlowEventType,
    instance_id: str,
    task_id: Optional[str] = None,
    **payload: Any,
) -> FlowEvent:
    event = FlowEvent(
        event_type=event_type.value,
        flow_instance_id=instance_id,
        task_id=task_id,
        payload={key: _value(value) for key, value in payload.items()},
    )
    db.add(event)
    await db.flush()
    return event
