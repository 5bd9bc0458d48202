"""Tests for CC fan-out on approval nodes and the copy inbox."""

import pytest

from core.exceptions import AuthorizationError, NotFoundError
from services.copy_record_service import CopyRecordService
from services.flow_instance_service import FlowInstanceService
from tests.factories import linear_graph, tasks_of, users_config
from workflow.actor import Actor


@pytest.fixture
def cc_flow(db_session, directory, make_definition):
    """Start a flow whose approval node copies the finance role."""

    async def _start():
        definition = await make_definition(
            linear_graph("mgr"),
            [
                users_config(
                    "mgr",
                    directory.bob.id,
                    cc_config={"enable": True, "type": "ROLE", "role_ids": ["finance"]},
                )
            ],
        )
        return await FlowInstanceService(db_session).start(definition.id, Actor(directory.alice.id, "Alice"))

    return _start


@pytest.mark.integration
class TestCopyFanOut:

    async def test_records_created_for_recipients(self, db_session, directory, cc_flow):
        instance = await cc_flow()
        (task,) = await tasks_of(db_session, instance.id)

        records, total = await CopyRecordService(db_session).list_for_user(directory.erin.id)

        assert total == 1
        assert records[0].flow_instance_id == instance.id
        assert records[0].task_id == task.id
        assert records[0].node_id == "mgr"
        assert records[0].user_name == "Erin"
        assert records[0].is_read is False

    async def test_disabled_cc_creates_nothing(self, db_session, directory, make_definition):
        definition = await make_definition(
            linear_graph("mgr"),
            [users_config("mgr", directory.bob.id, cc_config={"enable": False, "role_ids": ["finance"]})],
        )
        await FlowInstanceService(db_session).start(definition.id, Actor(directory.alice.id, "Alice"))
        assert await CopyRecordService(db_session).unread_count(directory.erin.id) == 0


@pytest.mark.integration
class TestCopyInbox:

    async def test_mark_read_is_idempotent(self, db_session, directory, cc_flow):
        await cc_flow()
        svc = CopyRecordService(db_session)
        (record,), _ = await svc.list_for_user(directory.erin.id)

        first = await svc.mark_read(record.id, directory.erin.id)
        read_at = first.read_at
        second = await svc.mark_read(record.id, directory.erin.id)

        assert second.is_read is True
        assert second.read_at == read_at
        assert await svc.unread_count(directory.erin.id) == 0

    async def test_cannot_read_someone_elses_copy(self, db_session, directory, cc_flow):
        await cc_flow()
        svc = CopyRecordService(db_session)
        (record,), _ = await svc.list_for_user(directory.erin.id)
        with pytest.raises(AuthorizationError):
            await svc.mark_read(record.id, directory.bob.id)

    async def test_unknown_record(self, db_session, directory):
        with pytest.raises(NotFoundError):
            await CopyRecordService(db_session).mark_read("missing", directory.erin.id)

    async def test_mark_all_read_and_filter(self, db_session, directory, cc_flow):
        await cc_flow()
        await cc_flow()
        svc = CopyRecordService(db_session)
        assert await svc.unread_count(directory.erin.id) == 2

        assert await svc.mark_all_read(directory.erin.id) == 2
        assert await svc.unread_count(directory.erin.id) == 0
        _, unread = await svc.list_for_user(directory.erin.id, is_read=False)
        _, read = await svc.list_for_user(directory.erin.id, is_read=True)
        assert (unread, read) == (0, 2)
