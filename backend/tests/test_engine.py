"""Tests for the flow engine: graph walking, branching and approval modes."""

import pytest
from sqlalchemy import select

from core.constants import InstanceStatus, TaskResult, TaskStatus
from core.exceptions import PreconditionError
from db.models.flow_instance import ParallelBranchState
from services.flow_instance_service import FlowInstanceService
from tests.factories import (
    edge,
    event_types,
    linear_graph,
    log_actions,
    node,
    role_config,
    tasks_of,
    users_config,
)
from workflow.actor import Actor
from workflow.engine import FlowEngine
from workflow.task_manager import TaskManager


def actor_for(user) -> Actor:
    return Actor(id=user.id, name=user.name)


async def start(db, definition, initiator, form_data=None):
    svc = FlowInstanceService(db)
    return await svc.start(definition.id, actor_for(initiator), form_data=form_data or {})


def condition_graph() -> dict:
    """start -> cond -> (amount > 1000) director | default manager -> end"""
    return {
        "nodes": [
            node("start", "START"),
            node("cond", "CONDITION"),
            node("director", "APPROVAL"),
            node("manager", "APPROVAL"),
            node("end", "END"),
        ],
        "edges": [
            edge("start", "cond"),
            edge("cond", "director", {"field": "amount", "operator": "gt", "value": 1000}),
            edge("cond", "manager"),
            edge("director", "end"),
            edge("manager", "end"),
        ],
    }


@pytest.mark.integration
class TestLinearFlow:

    async def test_start_creates_first_task(self, db_session, directory, make_definition):
        definition = await make_definition(linear_graph("mgr"), [users_config("mgr", directory.bob.id)])

        instance = await start(db_session, definition, directory.alice)

        assert instance.status == InstanceStatus.RUNNING.value
        assert instance.current_node_ids == ["mgr"]
        assert instance.instance_no.startswith("WF")
        tasks = await tasks_of(db_session, instance.id)
        assert len(tasks) == 1
        assert tasks[0].assignee_id == directory.bob.id
        assert tasks[0].node_name == "Mgr"
        assert tasks[0].status == TaskStatus.PENDING.value
        assert tasks[0].task_no.startswith("TK")
        assert "START" in await log_actions(db_session, instance.id)
        assert "flow_started" in await event_types(db_session, instance.id)

    async def test_approvals_walk_to_end(self, db_session, directory, make_definition):
        definition = await make_definition(
            linear_graph("mgr", "boss"),
            [users_config("mgr", directory.bob.id), users_config("boss", directory.dave.id)],
        )
        instance = await start(db_session, definition, directory.alice)
        manager = TaskManager(db_session)

        (first,) = await tasks_of(db_session, instance.id)
        await manager.approve(first.id, actor_for(directory.bob), comment="ok")
        assert instance.current_node_ids == ["boss"]

        (second,) = await tasks_of(db_session, instance.id, status=TaskStatus.PENDING.value)
        assert second.assignee_id == directory.dave.id
        await manager.approve(second.id, actor_for(directory.dave))

        assert instance.status == InstanceStatus.COMPLETED.value
        assert instance.current_node_ids == []
        assert instance.ended_at is not None
        assert instance.duration_seconds is not None
        assert "flow_completed" in await event_types(db_session, instance.id)
        assert (await log_actions(db_session, instance.id)).count("APPROVE") == 2

    async def test_form_data_is_kept_on_instance(self, db_session, directory, make_definition):
        definition = await make_definition(linear_graph("mgr"), [users_config("mgr", directory.bob.id)])
        instance = await start(db_session, definition, directory.alice, {"amount": 12})
        assert instance.form_data == {"amount": 12}
        assert instance.initiator_dept_id == directory.engineering.id


@pytest.mark.integration
class TestApprovalModes:

    async def test_or_sign_first_approval_advances(self, db_session, directory, make_definition):
        definition = await make_definition(linear_graph("mgr"), [role_config("mgr", "manager")])
        instance = await start(db_session, definition, directory.alice)

        tasks = await tasks_of(db_session, instance.id)
        # frank holds the role but is inactive
        assert {t.assignee_id for t in tasks} == {directory.bob.id, directory.carol.id}

        bob_task = next(t for t in tasks if t.assignee_id == directory.bob.id)
        carol_task = next(t for t in tasks if t.assignee_id == directory.carol.id)
        manager = TaskManager(db_session)
        await manager.approve(bob_task.id, actor_for(directory.bob))

        assert instance.status == InstanceStatus.COMPLETED.value
        # the sibling is left as it was
        assert carol_task.status == TaskStatus.PENDING.value
        with pytest.raises(PreconditionError):
            await manager.approve(carol_task.id, actor_for(directory.carol))

    async def test_or_sign_sibling_refused_after_node_passed(self, db_session, directory, make_definition):
        definition = await make_definition(
            linear_graph("mgr", "fin"),
            [role_config("mgr", "manager"), users_config("fin", directory.erin.id)],
        )
        instance = await start(db_session, definition, directory.alice)
        tasks = await tasks_of(db_session, instance.id, node_id="mgr")
        bob_task = next(t for t in tasks if t.assignee_id == directory.bob.id)
        carol_task = next(t for t in tasks if t.assignee_id == directory.carol.id)
        manager = TaskManager(db_session)

        await manager.approve(bob_task.id, actor_for(directory.bob))
        assert instance.current_node_ids == ["fin"]

        with pytest.raises(PreconditionError):
            await manager.approve(carol_task.id, actor_for(directory.carol))
        assert carol_task.status == TaskStatus.PENDING.value
        assert len(await tasks_of(db_session, instance.id, node_id="fin")) == 1

    async def test_and_sign_waits_for_every_assignee(self, db_session, directory, make_definition):
        definition = await make_definition(
            linear_graph("mgr"), [role_config("mgr", "manager", approval_mode="AND_SIGN")]
        )
        instance = await start(db_session, definition, directory.alice)
        tasks = await tasks_of(db_session, instance.id)
        manager = TaskManager(db_session)

        await manager.approve(tasks[0].id, Actor(tasks[0].assignee_id, tasks[0].assignee_name))
        assert instance.status == InstanceStatus.RUNNING.value
        assert instance.current_node_ids == ["mgr"]

        await manager.approve(tasks[1].id, Actor(tasks[1].assignee_id, tasks[1].assignee_name))
        assert instance.status == InstanceStatus.COMPLETED.value

    async def test_time_limit_sets_due_at(self, db_session, directory, make_definition):
        definition = await make_definition(
            linear_graph("mgr"), [users_config("mgr", directory.bob.id, time_limit_hours=24)]
        )
        instance = await start(db_session, definition, directory.alice)
        (task,) = await tasks_of(db_session, instance.id)
        assert task.due_at is not None
        assert 23.9 < (task.due_at - task.created_at).total_seconds() / 3600 <= 24.01


@pytest.mark.integration
class TestConditionRouting:

    async def test_matching_branch_is_taken(self, db_session, directory, make_definition):
        definition = await make_definition(
            condition_graph(),
            [users_config("director", directory.dave.id), users_config("manager", directory.bob.id)],
        )
        instance = await start(db_session, definition, directory.alice, {"amount": 5000})
        (task,) = await tasks_of(db_session, instance.id)
        assert task.node_id == "director"
        assert instance.current_node_ids == ["director"]

    async def test_default_branch_when_nothing_matches(self, db_session, directory, make_definition):
        definition = await make_definition(
            condition_graph(),
            [users_config("director", directory.dave.id), users_config("manager", directory.bob.id)],
        )
        instance = await start(db_session, definition, directory.alice, {"amount": 10})
        (task,) = await tasks_of(db_session, instance.id)
        assert task.node_id == "manager"

    async def test_condition_from_target_node_config(self, db_session, directory, make_definition):
        graph = condition_graph()
        graph["edges"][1]["data"] = {}
        graph["edges"][2]["data"] = {}
        definition = await make_definition(
            graph,
            [
                users_config("director", directory.dave.id,
                             condition_expr={"field": "urgent", "operator": "eq", "value": True}),
                users_config("manager", directory.bob.id),
            ],
        )
        instance = await start(db_session, definition, directory.alice, {"urgent": True})
        (task,) = await tasks_of(db_session, instance.id)
        assert task.node_id == "director"

    async def test_no_match_and_no_default_stalls(self, db_session, directory, make_definition):
        graph = condition_graph()
        graph["edges"][2]["data"] = {"condition": {"field": "amount", "operator": "lt", "value": 0}}
        definition = await make_definition(
            graph,
            [users_config("director", directory.dave.id), users_config("manager", directory.bob.id)],
        )
        instance = await start(db_session, definition, directory.alice, {"amount": 10})

        assert instance.status == InstanceStatus.RUNNING.value
        assert instance.current_node_ids == ["cond"]
        assert await tasks_of(db_session, instance.id) == []


@pytest.mark.integration
class TestParallel:

    @staticmethod
    def parallel_graph() -> dict:
        return {
            "nodes": [
                node("start", "START"),
                node("split", "PARALLEL"),
                node("legal", "APPROVAL"),
                node("finance", "APPROVAL"),
                node("join", "JOIN"),
                node("end", "END"),
            ],
            "edges": [
                edge("start", "split"),
                edge("split", "legal"),
                edge("split", "finance"),
                edge("legal", "join"),
                edge("finance", "join"),
                edge("join", "end"),
            ],
        }

    async def test_all_branches_activate(self, db_session, directory, make_definition):
        definition = await make_definition(
            self.parallel_graph(),
            [users_config("legal", directory.bob.id), users_config("finance", directory.erin.id)],
        )
        instance = await start(db_session, definition, directory.alice)

        assert instance.current_node_ids == ["legal", "finance"]
        assert {t.node_id for t in await tasks_of(db_session, instance.id)} == {"legal", "finance"}

        result = await db_session.execute(
            select(ParallelBranchState).where(ParallelBranchState.instance_id == instance.id)
        )
        state = result.scalar_one()
        assert (state.node_id, state.total, state.completed) == ("split", 2, 0)

    async def test_join_advances_on_first_branch(self, db_session, directory, make_definition):
        definition = await make_definition(
            self.parallel_graph(),
            [users_config("legal", directory.bob.id), users_config("finance", directory.erin.id)],
        )
        instance = await start(db_session, definition, directory.alice)
        (legal,) = await tasks_of(db_session, instance.id, node_id="legal")

        await TaskManager(db_session).approve(legal.id, actor_for(directory.bob))

        assert instance.status == InstanceStatus.COMPLETED.value


@pytest.mark.integration
class TestAdvanceFlow:

    async def test_rejected_result_is_a_no_op(self, db_session, directory, make_definition):
        definition = await make_definition(linear_graph("mgr"), [users_config("mgr", directory.bob.id)])
        instance = await start(db_session, definition, directory.alice)

        engine = FlowEngine(db_session)
        assert await engine.advance_flow(instance.id, "mgr", TaskResult.REJECTED, actor_for(directory.bob)) is None
        assert instance.current_node_ids == ["mgr"]

    async def test_finished_instance_is_not_advanced(self, db_session, directory, make_definition):
        definition = await make_definition(linear_graph("mgr"), [users_config("mgr", directory.bob.id)])
        instance = await start(db_session, definition, directory.alice)
        instance.status = InstanceStatus.CANCELLED.value
        await db_session.flush()

        engine = FlowEngine(db_session)
        await engine.advance_flow(instance.id, "mgr", TaskResult.APPROVED, actor_for(directory.bob))

        assert instance.status == InstanceStatus.CANCELLED.value
        assert instance.current_node_ids == ["mgr"]

    async def test_inactive_node_is_not_advanced(self, db_session, directory, make_definition):
        definition = await make_definition(
            linear_graph("mgr", "fin"),
            [users_config("mgr", directory.bob.id), users_config("fin", directory.erin.id)],
        )
        instance = await start(db_session, definition, directory.alice)

        engine = FlowEngine(db_session)
        await engine.advance_flow(instance.id, "fin", TaskResult.APPROVED, actor_for(directory.erin))

        assert instance.current_node_ids == ["mgr"]
        assert await tasks_of(db_session, instance.id, node_id="fin") == []
