"""Tests for callback_id-driven interaction listeners."""

import pytest

from hookwire.exceptions import MissingCorrelationKeyError, UnimplementedError
from hookwire.listeners import InteractionListener, InteractionListenerGroup, state
from hookwire.message import Message


class ChooseJob(InteractionListener):
    """Two-step flow: initiate, then the user's job selection."""

    def __init__(self):
        super().__init__()
        self.calls = []

    async def initiate(self, unit, **kwargs):
        self.calls.append(("initiate", unit))
        return "initiated"

    @state("jobSelection")
    def job_selection(self, unit):
        self.calls.append(("jobSelection", unit))
        return "selected"

    def confirm(self, unit):
        return "confirmed"

    def _helper(self, unit):
        return "private"

    label = "not a step"


class DismissSteps:
    """Reusable step shared by several flows."""

    def deleteMessage(self, unit):
        return "deleted"


class DismissableFlow(DismissSteps, InteractionListener):

    def confirm(self, unit):
        return "confirmed"


def _unit(callback_id=None, **extra):
    payload = dict(extra)
    if callback_id is not None:
        payload["callback_id"] = callback_id
    return Message(payload)


class TestStates:

    def test_declared_states(self):
        assert set(ChooseJob.states()) == {"initiate", "jobSelection", "confirm"}

    def test_decorated_method_is_not_reachable_by_its_python_name(self):
        assert "job_selection" not in ChooseJob.states()

    def test_base_has_no_states(self):
        assert InteractionListener.states() == []

    def test_invalid_state_name(self):
        with pytest.raises(TypeError):
            state("")

    def test_subclass_inherits_and_extends(self):
        class Extended(ChooseJob):
            def cancel(self, unit):
                return "cancelled"

        assert set(Extended.states()) == {"initiate", "jobSelection", "confirm", "cancel"}

    def test_mixin_methods_are_states(self):
        assert set(DismissableFlow.states()) == {"deleteMessage", "confirm"}

    @pytest.mark.asyncio
    async def test_mixin_state_dispatches(self):
        flow = DismissableFlow()
        unit = _unit("deleteMessage")
        assert flow.match(unit) is True
        assert await flow.process(unit) == "deleted"

    def test_data_override_removes_state(self):
        class NoConfirm(ChooseJob):
            confirm = None

        assert "confirm" not in NoConfirm.states()

    def test_redecorated_override_renames_state(self):
        class Renamed(ChooseJob):
            @state("pickJob")
            def job_selection(self, unit):
                return "picked"

        states = Renamed.states()
        assert "pickJob" in states
        assert "jobSelection" not in states


class TestMatch:

    @pytest.mark.parametrize("callback_id", ["initiate", "jobSelection", "confirm"])
    def test_known_states_match(self, callback_id):
        assert ChooseJob().match(_unit(callback_id)) is True

    @pytest.mark.parametrize("callback_id", [
        "toString",
        "__str__",
        "__init__",
        "_helper",
        "match",
        "process",
        "states",
        "log",
        "context",
        "registry",
        "label",
        "job_selection",
        "unknown",
        "",
    ])
    def test_non_states_do_not_match(self, callback_id):
        assert ChooseJob().match(_unit(callback_id)) is False

    def test_missing_callback_id_does_not_match(self):
        assert ChooseJob().match(_unit()) is False

    def test_non_string_callback_id_does_not_match(self):
        assert ChooseJob().match(Message({"callback_id": 7})) is False

    def test_instance_attribute_shadows_state(self):
        listener = ChooseJob()
        listener.confirm = "shadowed"
        assert listener.match(_unit("confirm")) is False


class TestProcess:

    @pytest.mark.asyncio
    async def test_dispatches_to_decorated_step(self):
        listener = ChooseJob()
        unit = _unit("jobSelection")
        assert await listener.process(unit) == "selected"
        assert listener.calls == [("jobSelection", unit)]

    @pytest.mark.asyncio
    async def test_dispatches_to_async_step(self):
        listener = ChooseJob()
        assert await listener.process(_unit("initiate")) == "initiated"

    @pytest.mark.asyncio
    async def test_missing_key_raises(self):
        with pytest.raises(MissingCorrelationKeyError):
            await ChooseJob().process(_unit())

    @pytest.mark.asyncio
    async def test_missing_key_is_a_key_error(self):
        with pytest.raises(KeyError):
            await ChooseJob().process(_unit(text="hi"))

    @pytest.mark.asyncio
    async def test_unknown_step_raises(self):
        with pytest.raises(UnimplementedError, match="toString"):
            await ChooseJob().process(_unit("toString"))

    def test_base_initiate_is_unimplemented(self):
        class NoEntry(InteractionListener):
            def step(self, unit):
                return None

        with pytest.raises(UnimplementedError, match="initiate"):
            NoEntry().initiate(_unit())


class TestInGroup:

    @pytest.mark.asyncio
    async def test_group_routes_by_callback_id(self, registry):
        group = InteractionListenerGroup(registry=registry)
        registry.context("bot").set(group)

        class Other(InteractionListener):
            def unrelated(self, unit):
                return "other"

        chooser = ChooseJob()
        group.add([Other, chooser])

        assert await group.process(_unit("jobSelection")) == "selected"
        assert await group.process(_unit("unrelated")) == "other"
        assert await group.process(_unit("match")) is None

    @pytest.mark.asyncio
    async def test_listener_can_reach_siblings_through_context(self, registry):
        group = InteractionListenerGroup(registry=registry)
        registry.context("bot").set(group)

        class Starter(InteractionListener):
            async def begin(self, unit):
                return await self.context.get("ChooseJob").initiate(unit)

        group.add([ChooseJob, Starter])
        assert await group.process(_unit("begin")) == "initiated"
