"""Tests for flow definition lifecycle and versioning."""

import pytest

from core.constants import FlowStatus, InstanceStatus
from core.exceptions import NotFoundError, PreconditionError, ValidationError
from services.flow_definition_service import FlowDefinitionService
from services.flow_instance_service import FlowInstanceService
from tests.factories import edge, linear_graph, node, tasks_of, users_config
from workflow.actor import Actor
from workflow.task_manager import TaskManager


@pytest.mark.integration
class TestCreateAndEdit:

    async def test_create_draft(self, db_session):
        svc = FlowDefinitionService(db_session)
        definition = await svc.create_definition(code="leave", name="Leave request", graph=linear_graph("mgr"))

        assert definition.version == 1
        assert definition.status == FlowStatus.DRAFT.value
        assert definition.is_main is True

    async def test_duplicate_code_rejected(self, db_session):
        svc = FlowDefinitionService(db_session)
        await svc.create_definition(code="leave", name="Leave request")
        with pytest.raises(ValidationError, match="already exists"):
            await svc.create_definition(code="leave", name="Another")

    async def test_update_draft(self, db_session):
        svc = FlowDefinitionService(db_session)
        definition = await svc.create_definition(code="leave", name="Leave")
        updated = await svc.update_definition(definition.id, name="Leave v2", graph=linear_graph("a"))
        assert updated.name == "Leave v2"
        assert updated.graph["nodes"][1]["id"] == "a"

    async def test_published_is_frozen(self, db_session, make_definition):
        definition = await make_definition(linear_graph("mgr"))
        svc = FlowDefinitionService(db_session)
        with pytest.raises(PreconditionError):
            await svc.update_definition(definition.id, name="changed")
        with pytest.raises(PreconditionError):
            await svc.save_node_configs(definition.id, [users_config("mgr", "u1")])

    async def test_save_node_configs_replaces_all(self, db_session, make_definition):
        definition = await make_definition(linear_graph("a", "b"), publish=False)
        svc = FlowDefinitionService(db_session)
        await svc.save_node_configs(definition.id, [users_config("a", "u1"), users_config("b", "u2")])
        configs = await svc.save_node_configs(definition.id, [users_config("a", "u3", time_limit_hours=2)])

        assert len(configs) == 1
        assert configs[0].assignee_config == {"user_ids": ["u3"]}
        assert configs[0].time_limit_hours == 2

    async def test_save_node_configs_validates(self, db_session, make_definition):
        definition = await make_definition(linear_graph("a"), publish=False)
        svc = FlowDefinitionService(db_session)
        with pytest.raises(ValidationError, match="Duplicate"):
            await svc.save_node_configs(definition.id, [users_config("a", "u1"), users_config("a", "u2")])
        with pytest.raises(ValidationError):
            await svc.save_node_configs(definition.id, [{"node_name": "no id"}])

    async def test_empty_assignee_action_defaults_to_error(self, db_session, make_definition):
        definition = await make_definition(linear_graph("a"), publish=False)
        configs = await FlowDefinitionService(db_session).save_node_configs(
            definition.id, [{"node_id": "a", "assignee_type": "ROLE"}]
        )
        assert configs[0].empty_assignee_action == "ERROR"
        assert configs[0].node_kind == "APPROVAL"


@pytest.mark.integration
class TestPublishLifecycle:

    async def test_publish_and_disable(self, db_session, make_definition):
        definition = await make_definition(linear_graph("mgr"), publish=False)
        svc = FlowDefinitionService(db_session)

        published = await svc.publish(definition.id)
        assert published.status == FlowStatus.PUBLISHED.value
        with pytest.raises(PreconditionError):
            await svc.publish(definition.id)

        disabled = await svc.disable(definition.id)
        assert disabled.status == FlowStatus.DISABLED.value
        with pytest.raises(PreconditionError):
            await svc.disable(definition.id)

    async def test_publish_validates_graph(self, db_session, make_definition):
        svc = FlowDefinitionService(db_session)
        empty = await svc.create_definition(code="empty", name="Empty")
        with pytest.raises(ValidationError):
            await svc.publish(empty.id)

        dangling = await make_definition(
            {"nodes": [node("start", "START"), node("end", "END")], "edges": []}, publish=False
        )
        with pytest.raises(ValidationError, match="outgoing edge"):
            await svc.publish(dangling.id)

    async def test_disabled_definition_cannot_start(self, db_session, directory, make_definition):
        definition = await make_definition(linear_graph("mgr"), [users_config("mgr", directory.bob.id)])
        await FlowDefinitionService(db_session).disable(definition.id)
        with pytest.raises(PreconditionError):
            await FlowInstanceService(db_session).start(definition.id, Actor(directory.alice.id, "Alice"))


    async def test_disabled_definition_is_frozen_for_running_instances(self, db_session, directory, make_definition):
        definition = await make_definition(
            linear_graph("mgr", "fin"),
            [users_config("mgr", directory.bob.id), users_config("fin", directory.erin.id)],
        )
        svc = FlowDefinitionService(db_session)
        instance = await FlowInstanceService(db_session).start(definition.id, Actor(directory.alice.id, "Alice"))
        await svc.disable(definition.id)

        with pytest.raises(PreconditionError):
            await svc.update_definition(definition.id, graph=linear_graph("mgr"))
        with pytest.raises(PreconditionError):
            await svc.save_node_configs(definition.id, [users_config("mgr", directory.carol.id)])

        task = (await tasks_of(db_session, instance.id, node_id="mgr"))[0]
        await TaskManager(db_session).approve(task.id, Actor(directory.bob.id, "Bob"))
        assert instance.status == InstanceStatus.RUNNING.value
        assert instance.current_node_ids == ["fin"]
        assert len(await tasks_of(db_session, instance.id, node_id="fin")) == 1

@pytest.mark.integration
class TestVersions:

    async def test_new_version_copies_configs(self, db_session, make_definition):
        definition = await make_definition(linear_graph("mgr"), [users_config("mgr", "u1")], code="trip")
        svc = FlowDefinitionService(db_session)

        v2 = await svc.create_new_version(definition.id)
        await db_session.refresh(definition)

        assert v2.version == 2
        assert v2.status == FlowStatus.DRAFT.value
        assert v2.is_main is True
        assert definition.is_main is False
        assert [c.node_id for c in v2.node_configs] == ["mgr"]
        assert v2.node_configs[0].assignee_config == {"user_ids": ["u1"]}

    async def test_draft_cannot_be_versioned(self, db_session, make_definition):
        definition = await make_definition(linear_graph("mgr"), publish=False)
        with pytest.raises(PreconditionError):
            await FlowDefinitionService(db_session).create_new_version(definition.id)

    async def test_list_available_returns_latest_published(self, db_session, make_definition):
        svc = FlowDefinitionService(db_session)
        v1 = await make_definition(linear_graph("mgr"), code="trip")
        v2 = await svc.create_new_version(v1.id)
        await svc.publish(v2.id)
        await make_definition(linear_graph("mgr"), code="draft-only", publish=False)

        available = await svc.list_available()
        assert [(d.code, d.version) for d in available] == [("trip", 2)]


@pytest.mark.integration
class TestRemove:

    async def test_remove_draft(self, db_session, make_definition):
        definition = await make_definition(linear_graph("mgr"), publish=False)
        svc = FlowDefinitionService(db_session)
        await svc.remove(definition.id)
        with pytest.raises(NotFoundError):
            await svc.get_or_404(definition.id)

    async def test_published_cannot_be_removed(self, db_session, make_definition):
        definition = await make_definition(linear_graph("mgr"))
        with pytest.raises(PreconditionError):
            await FlowDefinitionService(db_session).remove(definition.id)

    async def test_definition_with_running_instances_cannot_be_removed(self, db_session, directory, make_definition):
        definition = await make_definition(linear_graph("mgr"), [users_config("mgr", directory.bob.id)])
        instance = await FlowInstanceService(db_session).start(definition.id, Actor(directory.alice.id, "Alice"))
        assert instance.status == InstanceStatus.RUNNING.value

        svc = FlowDefinitionService(db_session)
        await svc.disable(definition.id)
        with pytest.raises(PreconditionError, match="running"):
            await svc.remove(definition.id)

    async def test_removed_code_can_be_reused(self, db_session):
        svc = FlowDefinitionService(db_session)
        first = await svc.create_definition(code="reuse", name="One")
        await svc.remove(first.id)
        second = await svc.create_definition(code="reuse", name="Two")
        assert second.id != first.id
