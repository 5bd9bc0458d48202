"""Builders for flow graphs and node configs used across the tests."""

from typing import Optional


def node(node_id: str, kind: str, label: Optional[str] = None) -> dict:
    return {"id": node_id, "type": kind, "data": {"label": label or node_id, "nodeType": kind}}


def edge(source: str, target: str, condition: Optional[dict] = None) -> dict:
    data = {"condition": condition} if condition else {}
    return {"id": f"{source}->{target}", "source": source, "target": target, "data": data}


def linear_graph(*approval_ids: str) -> dict:
    """start -> approval_1 -> ... -> approval_n -> end"""
    ids = ["start", *approval_ids, "end"]
    nodes = [node("start", "START")]
    nodes += [node(a, "APPROVAL") for a in approval_ids]
    nodes.append(node("end", "END"))
    edges = [edge(a, b) for a, b in zip(ids, ids[1:])]
    return {"nodes": nodes, "edges": edges}


def approval_config(node_id: str, assignee_type: str = "SPECIFIC_USER", **overrides) -> dict:
    config = {
        "node_id": node_id,
        "node_kind": "APPROVAL",
        "node_name": node_id.title(),
        "approval_mode": "OR_SIGN",
        "assignee_type": assignee_type,
        "assignee_config": {},
        "empty_assignee_action": "ERROR",
    }
    config.update(overrides)
    return config


def users_config(node_id: str, *user_ids: str, **overrides) -> dict:
    return approval_config(
        node_id, "SPECIFIC_USER", assignee_config={"user_ids": list(user_ids)}, **overrides
    )


def role_config(node_id: str, *role_refs: str, **overrides) -> dict:
    return approval_config(
        node_id, "ROLE", assignee_config={"role_ids": list(role_refs)}, **overrides
    )


# ─── Query helpers ────────────────────────────────────────


async def tasks_of(db, instance_id: str, status: Optional[str] = None, node_id: Optional[str] = None) -> list:
    from sqlalchemy import select

    from db.models.task import Task

    query = select(Task).where(Task.flow_instance_id == instance_id)
    if status is not None:
        query = query.where(Task.status == status)
    if node_id is not None:
        query = query.where(Task.node_id == node_id)
    result = await db.execute(query.order_by(Task.created_at.asc()))
    return list(result.scalars().all())


async def log_actions(db, instance_id: str) -> list[str]:
    from sqlalchemy import select

    from db.models.flow_log import FlowLog

    result = await db.execute(
        select(FlowLog.action).where(FlowLog.flow_instance_id == instance_id)
    )
    return list(result.scalars().all())


async def event_types(db, instance_id: str) -> list[str]:
    from sqlalchemy import select

    from db.models.flow_event import FlowEvent

    result = await db.execute(
        select(FlowEvent.event_type).where(FlowEvent.flow_instance_id == instance_id)
    )
    return list(result.scalars().all())
