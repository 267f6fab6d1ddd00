"""Event dispatcher and the single consume loop (signals -> decode -> dispatch)."""

from __future__ import annotations

import sys
from collections.abc import AsyncIterable
from typing import TextIO

from dbus_next import Message
from dbus_next.aio import MessageBus
from loguru import logger

from atspi_watch.core.errors import TransportError
from atspi_watch.events import (
    AddAccessibleEvent,
    Event,
    LegacyAddAccessibleEvent,
    RemoveAccessibleEvent,
    decode_event,
)
from atspi_watch.listener.inspector import RemoteObjectInspector
from atspi_watch.listener.signals import signals


class EventDispatcher:
    """Per-kind reaction to decoded events. Holds no state between events."""

    def __init__(
        self,
        bus: MessageBus,
        *,
        out: TextIO | None = None,
        show_event_details: bool = False,
    ) -> None:
        self._out = out
        self._show_event_details = show_event_details
        self._inspector = RemoteObjectInspector(bus, self.emit)

    def emit(self, line: str) -> None:
        """Write one product line to stdout (or the configured stream)."""
        print(line, file=self._out or sys.stdout, flush=True)

    def report_error(self, err: TransportError) -> None:
        """Diagnostic line for a failed read; the loop carries on."""
        logger.warning("Failed to read message from bus: {}", err)
        self.emit(f"Error: {err.original_error or err!r}")

    def _emit_details(self, evt: Event) -> None:
        if self._show_event_details:
            self.emit(f"event: {evt!r}")

    async def dispatch(self, msg: Message, evt: Event) -> None:
        """React to one decoded event. Variants outside the cache set are ignored."""
        if isinstance(evt, AddAccessibleEvent):
            self.emit(f"AddAccessible DBus body signature: {msg.signature}")
            self._emit_details(evt)
            app = evt.node_added.app
            self.emit(f"Root object of Cache event bus_name: {app.name}, obj_path: {app.path}")
            await self._inspector.inspect(app)
        elif isinstance(evt, RemoveAccessibleEvent):
            self.emit(f"RemoveAccessible: DBus body signature: {msg.signature}")
            self._emit_details(evt)
        elif isinstance(evt, LegacyAddAccessibleEvent):
            self.emit(f"LegacyAddAccessible: DBus body signature: {msg.signature}")
            self._emit_details(evt)
        else:
            logger.trace("Ignoring {}", type(evt).__name__)

    async def run(self, stream: AsyncIterable[Message | TransportError]) -> None:
        """Consume ``stream`` until it ends. Undecodable signals are dropped silently."""
        async for msg in signals(stream, on_error=self.report_error):
            evt = decode_event(msg)
            if evt is None:
                continue
            await self.dispatch(msg, evt)
        logger.info("Accessibility bus message stream ended")
