"""Tests for the owner-facing automation tools."""

import httpx
import pytest

from tripwire.actions.scheduler import ActionScheduler
from tripwire.api.server import create_api_app
from tripwire.config.loader import create_test_config
from tripwire.events.bus import EventBus
from tripwire.events.registry import EventRegistry
from tripwire.execution.types import InstructionTrigger, TemplateTrigger
from tripwire.listeners.manager import ListenerManager
from tripwire.owners.directory import OwnerDirectory
from tripwire.storage.models import CronSchedule, DelaySchedule
from tripwire.tools.automation import AutomationTools


@pytest.fixture
def bus():
    return EventBus()


@pytest.fixture
async def tools(storage, bus, bridge, clock):
    registry = EventRegistry(
        storage.events, storage.listeners, public_host="hooks.test", clock=clock
    )
    listeners = ListenerManager(storage.listeners, registry, bus, bridge, clock=clock)
    actions = ActionScheduler(storage.actions, bridge, timezone="UTC", clock=clock)
    yield AutomationTools(registry, listeners, actions)
    await actions.stop()


@pytest.fixture
async def door(tools):
    result = await tools.create_event(
        "alice", {"event_id": "door", "description": "Front door"}
    )
    assert "error" not in result
    return result


def listener_params(**overrides):
    params = {"event_id": "door", "description": "Watch", "template": "Door {{state}}"}
    params.update(overrides)
    return params


def action_params(**overrides):
    params = {
        "action_id": "morning",
        "description": "Morning summary",
        "instruction": "summarize my day",
        "schedule": {"type": "cron", "expression": "0 8 * * *"},
    }
    params.update(overrides)
    return params


class TestToolRegistry:
    def test_tool_names(self, tools) -> None:
        assert tools.tool_names() == [
            "create_action",
            "create_event",
            "create_listener",
            "delete_event",
            "list_actions",
            "list_events",
            "list_listeners",
            "mark_event_setup_done",
            "remove_action",
            "remove_listener",
            "update_action",
            "update_event_description",
            "update_listener",
        ]


class TestEventTools:
    """Event management tools."""

    async def test_create_event_returns_webhook_url(self, door) -> None:
        assert door["event_id"] == "door"
        assert door["owner_id"] == "alice"
        assert door["setup_done"] is False
        assert door["webhook_url"] == "https://hooks.test/events/door"
        assert "token" in door["message"]

    async def test_create_duplicate_event(self, tools, door) -> None:
        result = await tools.create_event(
            "bob", {"event_id": "door", "description": "Mine"}
        )
        assert "already exists" in result["error"]

    @pytest.mark.parametrize("event_id", ["has space", "slash/es", "caf\u00e9", ""])
    async def test_invalid_event_ids(self, tools, event_id) -> None:
        result = await tools.create_event(
            "alice", {"event_id": event_id, "description": "x"}
        )
        assert result["error"].startswith("event_id")

    async def test_ping_listener_answers_health_check(self, tools, bus, tmp_path):
        """Listeners bound to "ping" run on the unauthenticated health check."""
        created = await tools.create_event(
            "alice", {"event_id": "ping", "description": "Health check"}
        )
        await tools.create_listener(
            "alice",
            listener_params(
                event_id="ping",
                template="pong {{x}}",
                auto_stop_after_single_event=False,
            ),
        )
        app = create_api_app(
            bus, OwnerDirectory([]), create_test_config(data_dir=str(tmp_path))
        )
        transport = httpx.ASGITransport(app=app)
        async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
            response = await c.get("/events/ping", params={"wait": "true", "x": "1"})

        assert created["event_id"] == "ping"
        assert response.json() == {"response": "pong", "listeners": ["pong 1"]}

    async def test_unknown_parameter_rejected(self, tools) -> None:
        result = await tools.create_event(
            "alice", {"event_id": "door", "description": "x", "colour": "red"}
        )
        assert "colour" in result["error"]

    async def test_list_events_is_owner_scoped(self, tools, door) -> None:
        await tools.create_listener("alice", listener_params())

        mine = await tools.list_events("alice")
        theirs = await tools.list_events("bob")

        assert [e["event_id"] for e in mine["events"]] == ["door"]
        assert mine["events"][0]["listener_count"] == 1
        assert mine["events"][0]["webhook_url"].endswith("/events/door")
        assert theirs == {"events": []}

    async def test_update_description_and_setup(self, tools, door) -> None:
        updated = await tools.update_event_description(
            "alice", {"event_id": "door", "description": "Back door"}
        )
        done = await tools.mark_event_setup_done("alice", {"event_id": "door"})

        assert updated["description"] == "Back door"
        assert done["setup_done"] is True

    async def test_other_owner_cannot_update(self, tools, door) -> None:
        result = await tools.update_event_description(
            "bob", {"event_id": "door", "description": "Hijacked"}
        )
        assert "permission" in result["error"]

    async def test_missing_event(self, tools) -> None:
        result = await tools.mark_event_setup_done("alice", {"event_id": "nope"})
        assert "does not exist" in result["error"]

    async def test_delete_event_refused_while_listeners_bound(
        self, tools, door
    ) -> None:
        created = await tools.create_listener("alice", listener_params())

        refused = await tools.delete_event("alice", {"event_id": "door"})
        await tools.remove_listener("alice", {"listener_id": created["listener_id"]})
        deleted = await tools.delete_event("alice", {"event_id": "door"})

        assert "remove them first" in refused["error"]
        assert deleted["event_id"] == "door"
        assert await tools.list_events("alice") == {"events": []}


class TestListenerTools:
    """Listener management tools."""

    async def test_create_defaults_to_single_shot(self, tools, door, bus) -> None:
        result = await tools.create_listener("alice", listener_params())

        assert result["options"]["auto_stop_after_single_event"] is True
        assert result["template"] == "Door {{state}}"
        assert bus.subscriber_count("door") == 1

    async def test_delay_disables_single_shot_default(self, tools, door) -> None:
        result = await tools.create_listener(
            "alice", listener_params(auto_stop_after_delay_seconds=600)
        )

        assert result["options"] == {
            "auto_stop_after_single_event": False,
            "auto_stop_after_delay_seconds": 600,
        }
        assert result["expires_in_seconds"] == 600

    async def test_conflicting_auto_stop_options(self, tools, door) -> None:
        result = await tools.create_listener(
            "alice",
            listener_params(
                auto_stop_after_single_event=True, auto_stop_after_delay_seconds=60
            ),
        )
        assert "not both" in result["error"]

    @pytest.mark.parametrize(
        "overrides",
        [
            {"template": None},
            {"instruction": "do something"},
        ],
    )
    async def test_exactly_one_trigger(self, tools, door, overrides) -> None:
        result = await tools.create_listener("alice", listener_params(**overrides))
        assert "'instruction' or 'template'" in result["error"]

    async def test_instruction_listener(self, tools, door) -> None:
        result = await tools.create_listener(
            "alice",
            listener_params(
                template=None, instruction="check cameras", tool_names=["camera"]
            ),
        )
        listener = tools.listeners.get_listener(result["listener_id"])

        assert listener.trigger == InstructionTrigger(
            instruction="check cameras", tool_names=["camera"]
        )

    async def test_create_for_missing_event(self, tools) -> None:
        result = await tools.create_listener("alice", listener_params())
        assert "does not exist" in result["error"]

    async def test_update_listener(self, tools, door) -> None:
        created = await tools.create_listener("alice", listener_params())

        updated = await tools.update_listener(
            "alice",
            listener_params(
                listener_id=created["listener_id"],
                template="Changed",
                auto_stop_after_single_event=False,
            ),
        )

        assert updated["listener_id"] == created["listener_id"]
        assert updated["created_at"] == created["created_at"]
        listener = tools.listeners.get_listener(created["listener_id"])
        assert listener.trigger == TemplateTrigger(template="Changed")
        assert listener.options.auto_stop_after_single_event is False

    async def test_update_by_other_owner(self, tools, door) -> None:
        created = await tools.create_listener("alice", listener_params())

        result = await tools.update_listener(
            "bob", listener_params(listener_id=created["listener_id"])
        )

        assert "permission" in result["error"]

    async def test_remove_listener_is_idempotent(self, tools, door) -> None:
        created = await tools.create_listener("alice", listener_params())
        ref = {"listener_id": created["listener_id"]}

        first = await tools.remove_listener("alice", ref)
        second = await tools.remove_listener("alice", ref)

        assert first["removed"] is True
        assert second["removed"] is False
        assert second["message"] == "Listener not found."

    async def test_remove_other_owners_listener(self, tools, door) -> None:
        created = await tools.create_listener("alice", listener_params())

        result = await tools.remove_listener(
            "bob", {"listener_id": created["listener_id"]}
        )

        assert "permission" in result["error"]
        assert tools.listeners.get_listener(created["listener_id"]) is not None

    async def test_list_listeners_is_owner_scoped(self, tools, door) -> None:
        await tools.create_listener("alice", listener_params())

        assert len((await tools.list_listeners("alice"))["listeners"]) == 1
        assert (await tools.list_listeners("bob"))["listeners"] == []


class TestActionTools:
    """Action management tools."""

    async def test_create_cron_action(self, tools) -> None:
        result = await tools.create_action("alice", action_params())

        assert result["schedule"] == {"type": "cron", "expression": "0 8 * * *"}
        assert tools.actions.get_action("morning").schedule == CronSchedule(
            expression="0 8 * * *"
        )
        assert tools.actions.scheduled_job_count("morning") == 1

    async def test_schedule_accepts_time_alias(self, tools) -> None:
        result = await tools.create_action(
            "alice",
            action_params(action_id="soon", schedule={"type": "delay", "time": 90}),
        )

        assert result["schedule"] == {"type": "delay", "seconds": 90}
        assert tools.actions.get_action("soon").schedule == DelaySchedule(seconds=90)

    @pytest.mark.parametrize(
        "schedule",
        [
            {"type": "weekly", "expression": "monday"},
            {"type": "delay", "seconds": 0},
            {"type": "cron"},
        ],
    )
    async def test_invalid_schedule_params(self, tools, schedule) -> None:
        result = await tools.create_action("alice", action_params(schedule=schedule))
        assert result["error"].startswith("schedule")

    async def test_invalid_cron_expression(self, tools) -> None:
        result = await tools.create_action(
            "alice",
            action_params(schedule={"type": "cron", "expression": "every monday"}),
        )
        assert "Invalid cron expression" in result["error"]

    async def test_duplicate_action(self, tools) -> None:
        await tools.create_action("alice", action_params())
        result = await tools.create_action("alice", action_params())
        assert "already exists" in result["error"]

    async def test_update_action(self, tools) -> None:
        await tools.create_action("alice", action_params())

        result = await tools.update_action(
            "alice",
            action_params(
                instruction=None,
                template="Good morning",
                schedule={"type": "cron", "expression": "30 7 * * *"},
            ),
        )

        assert result["template"] == "Good morning"
        assert tools.actions.scheduled_job_count("morning") == 1

    async def test_update_missing_action(self, tools) -> None:
        result = await tools.update_action("alice", action_params())
        assert "not found" in result["error"]

    async def test_remove_action(self, tools) -> None:
        await tools.create_action("alice", action_params())

        denied = await tools.remove_action("bob", {"action_id": "morning"})
        removed = await tools.remove_action("alice", {"action_id": "morning"})
        again = await tools.remove_action("alice", {"action_id": "morning"})

        assert "permission" in denied["error"]
        assert removed["removed"] is True
        assert again["removed"] is False
        assert tools.actions.scheduled_job_count() == 0

    async def test_list_actions_is_owner_scoped(self, tools) -> None:
        await tools.create_action("alice", action_params())

        mine = await tools.list_actions("alice")
        assert [a["action_id"] for a in mine["actions"]] == ["morning"]
        assert (await tools.list_actions("bob"))["actions"] == []

    async def test_missing_params(self, tools) -> None:
        result = await tools.create_action("alice")
        assert "Field required" in result["error"]
