"""End-to-end tests for the consume loop: filter, decode, dispatch, inspect."""

from __future__ import annotations

import io

import pytest
from dbus_next import introspection as intr

from atspi_watch.core.constants import ACCESSIBLE_INTERFACE
from atspi_watch.core.errors import TransportError
from atspi_watch.listener.dispatcher import EventDispatcher
from tests.mocks import (
    APP_NAME,
    APP_PATH,
    FakeBus,
    add_accessible_message,
    legacy_add_accessible_message,
    method_call_message,
    object_event_message,
    reachable_app,
    remove_accessible_message,
    stream_of,
    unrelated_signal,
)

ADD_SIGNATURE_LINE = "AddAccessible DBus body signature: ((so)(so)(so)iiassusau)"
ROOT_LINE = f"Root object of Cache event bus_name: {APP_NAME}, obj_path: {APP_PATH}"
REMOVE_LINE = "RemoveAccessible: DBus body signature: (so)"


async def _run(bus: FakeBus, items, **kwargs) -> list[str]:
    out = io.StringIO()
    dispatcher = EventDispatcher(bus, out=out, **kwargs)
    await dispatcher.run(stream_of(items))
    return out.getvalue().splitlines()


class TestAddAccessible:
    @pytest.mark.asyncio
    async def test_add_with_reachable_remote_objects(self):
        lines = await _run(reachable_app(FakeBus()), [add_accessible_message()])

        assert lines == [
            ADD_SIGNATURE_LINE,
            ROOT_LINE,
            "toolkit: Gtk",
            "name: MainWindow",
            "description: ",
            "role: Frame",
        ]

    @pytest.mark.asyncio
    async def test_add_when_accessible_handle_cannot_be_built(self):
        bus = reachable_app(FakeBus())
        bus.fail_interface(APP_NAME, APP_PATH, ACCESSIBLE_INTERFACE)

        lines = await _run(bus, [add_accessible_message()])

        assert lines == [ADD_SIGNATURE_LINE, ROOT_LINE, "toolkit: Gtk"]

    @pytest.mark.asyncio
    async def test_add_queries_the_application_from_the_payload(self):
        bus = reachable_app(FakeBus())

        await _run(bus, [add_accessible_message()])

        assert ("introspect", APP_NAME, APP_PATH) in bus.calls

    @pytest.mark.asyncio
    async def test_same_add_twice_gives_identical_output(self):
        bus = reachable_app(FakeBus())

        first = await _run(bus, [add_accessible_message()])
        second = await _run(bus, [add_accessible_message()])

        assert first == second

    @pytest.mark.asyncio
    async def test_event_details_when_enabled(self):
        lines = await _run(FakeBus(), [add_accessible_message()], show_event_details=True)

        assert lines[0] == ADD_SIGNATURE_LINE
        assert lines[1].startswith("event: AddAccessibleEvent(")
        assert lines[2] == ROOT_LINE


class TestOtherEvents:
    @pytest.mark.asyncio
    async def test_remove_prints_signature_only(self):
        bus = reachable_app(FakeBus())

        lines = await _run(bus, [remove_accessible_message()])

        assert lines == [REMOVE_LINE]
        assert bus.calls == []

    @pytest.mark.asyncio
    async def test_legacy_add_prints_signature_only(self):
        bus = reachable_app(FakeBus())

        lines = await _run(bus, [legacy_add_accessible_message()])

        assert lines == ["LegacyAddAccessible: DBus body signature: ((so)(so)(so)a(so)assusau)"]
        assert bus.calls == []

    @pytest.mark.asyncio
    async def test_other_decoded_events_are_ignored(self):
        lines = await _run(FakeBus(), [object_event_message()])

        assert lines == []

    @pytest.mark.asyncio
    async def test_undecodable_signals_are_dropped_silently(self):
        lines = await _run(FakeBus(), [unrelated_signal(), method_call_message()])

        assert lines == []


class TestTransportErrors:
    @pytest.mark.asyncio
    async def test_read_failure_between_signals_does_not_stop_the_loop(self):
        err = TransportError("reset", original_error=OSError("connection reset"))

        lines = await _run(FakeBus(), [remove_accessible_message(), err, remove_accessible_message()])

        assert lines == [REMOVE_LINE, "Error: OSError('connection reset')", REMOVE_LINE]

    @pytest.mark.asyncio
    async def test_read_failure_without_cause(self):
        lines = await _run(FakeBus(), [TransportError("bad message")])

        assert lines == ["Error: TransportError('bad message')"]


class TestEmit:
    def test_defaults_to_stdout(self, capsys):
        dispatcher = EventDispatcher(FakeBus())

        dispatcher.emit("hello")

        assert capsys.readouterr().out == "hello\n"


class MalformedIntrospectionBus(FakeBus):
    """Application whose introspection XML dbus_next cannot parse."""

    def __init__(self, xml: str) -> None:
        super().__init__()
        self._xml = xml

    async def introspect(self, bus_name: str, path: str) -> object:
        self.calls.append(("introspect", bus_name, path))
        return intr.Node.parse(self._xml)


class TestMisbehavingApplication:
    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "xml",
        [
            '<node><interface name="org.a11y.atspi.Accessible"><method name="Get-Role"/></interface></node>',
            '<node><interface name="org.a11y.atspi.Accessible"><property name="Name" type="q(" access="read"/>'
            "</interface></node>",
            '<node><interface name="not an interface"/></node>',
            "<node><interface",
        ],
        ids=["bad-member", "bad-signature", "bad-interface", "truncated-xml"],
    )
    async def test_bad_introspection_does_not_stop_the_loop(self, xml):
        lines = await _run(MalformedIntrospectionBus(xml), [add_accessible_message(), remove_accessible_message()])

        assert lines == [ADD_SIGNATURE_LINE, ROOT_LINE, REMOVE_LINE]
