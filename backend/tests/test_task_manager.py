"""Tests for task lifecycle operations: approve, reject, transfer, countersign, urge."""

import pytest

from core.constants import InstanceStatus, TaskResult, TaskStatus
from core.exceptions import (
    AuthorizationError,
    NotFoundError,
    PreconditionError,
    ValidationError,
)
from services.flow_instance_service import FlowInstanceService
from tests.factories import event_types, linear_graph, log_actions, role_config, tasks_of, users_config
from workflow.actor import Actor
from workflow.task_manager import TaskManager


def actor_for(user) -> Actor:
    return Actor(id=user.id, name=user.name)


@pytest.fixture
def started(db_session, directory, make_definition):
    """Start a flow with a single approval node assigned to bob (24h limit) and return (instance, task)."""

    async def _started(configs=None, graph=None):
        definition = await make_definition(
            graph or linear_graph("mgr"),
            configs or [users_config("mgr", directory.bob.id, time_limit_hours=24)],
        )
        instance = await FlowInstanceService(db_session).start(definition.id, actor_for(directory.alice))
        tasks = await tasks_of(db_session, instance.id)
        return instance, tasks[0]

    return _started


@pytest.mark.integration
class TestApprove:

    async def test_only_assignee_may_approve(self, db_session, directory, started):
        instance, task = await started()
        with pytest.raises(AuthorizationError):
            await TaskManager(db_session).approve(task.id, actor_for(directory.carol))

    async def test_unknown_task(self, db_session, directory):
        with pytest.raises(NotFoundError):
            await TaskManager(db_session).approve("missing", actor_for(directory.bob))

    async def test_approve_records_result(self, db_session, directory, started):
        instance, task = await started()
        await TaskManager(db_session).approve(
            task.id, actor_for(directory.bob), comment="fine", form_data={"note": "x"}
        )

        assert task.status == TaskStatus.COMPLETED.value
        assert task.result == TaskResult.APPROVED.value
        assert task.comment == "fine"
        assert task.form_data == {"note": "x"}
        assert task.completed_at is not None
        assert task.duration_seconds is not None
        assert "task_approved" in await event_types(db_session, instance.id)

    async def test_second_approval_of_same_task_fails(self, db_session, directory, started):
        instance, task = await started()
        manager = TaskManager(db_session)
        await manager.approve(task.id, actor_for(directory.bob))
        with pytest.raises(PreconditionError):
            await manager.approve(task.id, actor_for(directory.bob))


@pytest.mark.integration
class TestReject:

    async def test_reject_ends_flow(self, db_session, directory, started):
        instance, task = await started()
        await TaskManager(db_session).reject(task.id, actor_for(directory.bob), comment="too expensive")

        assert task.result == TaskResult.REJECTED.value
        assert instance.status == InstanceStatus.REJECTED.value
        assert instance.result_remark == "too expensive"
        assert instance.current_node_ids == []
        assert instance.ended_at is not None
        assert "REJECT" in await log_actions(db_session, instance.id)
        events = await event_types(db_session, instance.id)
        assert "task_rejected" in events
        assert "flow_rejected" in events

    async def test_reject_cancels_siblings(self, db_session, directory, started):
        instance, _ = await started(configs=[role_config("mgr", "manager")])
        tasks = await tasks_of(db_session, instance.id)
        bob_task = next(t for t in tasks if t.assignee_id == directory.bob.id)
        carol_task = next(t for t in tasks if t.assignee_id == directory.carol.id)

        await TaskManager(db_session).reject(bob_task.id, actor_for(directory.bob))

        assert carol_task.status == TaskStatus.CANCELLED.value
        assert instance.result_remark == "Rejected"


@pytest.mark.integration
class TestTransfer:

    async def test_transfer_creates_linked_task(self, db_session, directory, started):
        instance, task = await started()
        new_task = await TaskManager(db_session).transfer(
            task.id, actor_for(directory.bob), directory.carol.id, comment="on leave"
        )

        assert task.status == TaskStatus.TRANSFERRED.value
        assert task.result == TaskResult.TRANSFERRED.value
        assert new_task.status == TaskStatus.PENDING.value
        assert new_task.assignee_id == directory.carol.id
        assert new_task.source_task_id == task.id
        assert new_task.due_at == task.due_at
        assert new_task.node_id == task.node_id
        assert "TRANSFER" in await log_actions(db_session, instance.id)
        assert "task_transferred" in await event_types(db_session, instance.id)

    async def test_transferred_task_can_be_approved_by_target(self, db_session, directory, started):
        instance, task = await started()
        manager = TaskManager(db_session)
        new_task = await manager.transfer(task.id, actor_for(directory.bob), directory.carol.id)
        await manager.approve(new_task.id, actor_for(directory.carol))
        assert instance.status == InstanceStatus.COMPLETED.value

    async def test_transfer_to_self_rejected(self, db_session, directory, started):
        _, task = await started()
        with pytest.raises(ValidationError):
            await TaskManager(db_session).transfer(task.id, actor_for(directory.bob), directory.bob.id)

    async def test_transfer_to_inactive_user(self, db_session, directory, started):
        _, task = await started()
        with pytest.raises(NotFoundError):
            await TaskManager(db_session).transfer(task.id, actor_for(directory.bob), directory.frank.id)
        assert task.status == TaskStatus.PENDING.value


@pytest.mark.integration
class TestCountersign:

    async def test_countersign_adds_approvers(self, db_session, directory, started):
        instance, task = await started()
        new_tasks = await TaskManager(db_session).countersign(
            task.id, actor_for(directory.bob), [directory.carol.id, directory.erin.id, directory.carol.id]
        )

        assert task.status == TaskStatus.COUNTERSIGNED.value
        assert [t.assignee_id for t in new_tasks] == [directory.carol.id, directory.erin.id]
        assert all(t.source_task_id == task.id for t in new_tasks)
        assert "COUNTERSIGN" in await log_actions(db_session, instance.id)

    async def test_countersign_requires_users(self, db_session, directory, started):
        _, task = await started()
        with pytest.raises(ValidationError):
            await TaskManager(db_session).countersign(task.id, actor_for(directory.bob), [])

    async def test_countersign_with_unknown_user(self, db_session, directory, started):
        _, task = await started()
        with pytest.raises(ValidationError, match="ghost"):
            await TaskManager(db_session).countersign(task.id, actor_for(directory.bob), ["ghost"])


@pytest.mark.integration
class TestUrge:

    async def test_initiator_can_urge(self, db_session, directory, started):
        instance, task = await started()
        await TaskManager(db_session).urge(task.id, actor_for(directory.alice), comment="please")
        assert "URGE" in await log_actions(db_session, instance.id)
        assert "task_urged" in await event_types(db_session, instance.id)
        assert task.status == TaskStatus.PENDING.value

    async def test_others_cannot_urge(self, db_session, directory, started):
        _, task = await started()
        with pytest.raises(AuthorizationError):
            await TaskManager(db_session).urge(task.id, actor_for(directory.carol))


@pytest.mark.integration
class TestSystemPaths:

    async def test_auto_approve_advances_as_system(self, db_session, directory, started):
        instance, task = await started()
        await TaskManager(db_session).auto_approve(task.id)

        assert task.result == TaskResult.APPROVED.value
        assert instance.status == InstanceStatus.COMPLETED.value
        actions = await log_actions(db_session, instance.id)
        assert "APPROVE" in actions and "AUTO" in actions

    async def test_auto_reject_leaves_instance_running(self, db_session, directory, started):
        instance, task = await started()
        await TaskManager(db_session).auto_reject(task.id)

        assert task.result == TaskResult.REJECTED.value
        assert task.status == TaskStatus.COMPLETED.value
        assert instance.status == InstanceStatus.RUNNING.value

    async def test_remind_only_logs(self, db_session, directory, started):
        instance, task = await started()
        await TaskManager(db_session).remind(task.id)
        assert task.status == TaskStatus.PENDING.value
        assert (await log_actions(db_session, instance.id)).count("URGE") == 1
