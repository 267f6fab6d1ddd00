"""Accessibility bus connection: open, register for cache events, stream raw messages."""

from __future__ import annotations

import asyncio
import os

from dbus_next import Message
from dbus_next.aio import MessageBus
from dbus_next.constants import BusType, MessageType
from dbus_next.errors import DBusError, InvalidAddressError
from loguru import logger

from atspi_watch.core.constants import (
    A11Y_BUS_INTERFACE,
    A11Y_BUS_NAME,
    A11Y_BUS_PATH,
    BUS_ADDRESS_ENV,
    DBUS_INTERFACE,
    DBUS_NAME,
    DBUS_PATH,
    REGISTRY_INTERFACE,
    REGISTRY_NAME,
    REGISTRY_PATH,
)
from atspi_watch.core.errors import ConnectionSetupError, TransportError
from atspi_watch.events import CACHE_EVENT_KINDS, CacheEvent, match_rule

# Errors a bus request can end in; anything else is a bug and propagates
BUS_ERRORS = (DBusError, InvalidAddressError, OSError, EOFError)


def _raise_for_reply(reply: Message) -> Message:
    """Turn an ERROR reply into a DBusError."""
    if reply.message_type == MessageType.ERROR:
        text = reply.body[0] if reply.body else ""
        raise DBusError(reply.error_name or "org.freedesktop.DBus.Error.Failed", str(text), reply)
    return reply


class MessageStream:
    """Lazy, unbounded, non-restartable stream of inbound messages or read errors.

    Fed by the bus connection; ends once the connection closes.
    """

    def __init__(self) -> None:
        self._queue: asyncio.Queue[Message | TransportError | None] = asyncio.Queue()
        self._closed = False

    def feed(self, msg: Message) -> None:
        if not self._closed:
            self._queue.put_nowait(msg)

    def feed_error(self, exc: BaseException) -> None:
        if not self._closed:
            self._queue.put_nowait(TransportError(str(exc) or exc.__class__.__name__, original_error=exc))

    def close(self) -> None:
        if not self._closed:
            self._closed = True
            self._queue.put_nowait(None)

    def __aiter__(self) -> MessageStream:
        return self

    async def __anext__(self) -> Message | TransportError:
        item = await self._queue.get()
        if item is None:
            # Keep the end marker so later reads also stop
            self._queue.put_nowait(None)
            raise StopAsyncIteration
        return item


async def lookup_bus_address() -> str:
    """Ask the session bus for the accessibility bus address."""
    session = await MessageBus(bus_type=BusType.SESSION).connect()
    try:
        reply = await session.call(
            Message(
                destination=A11Y_BUS_NAME,
                path=A11Y_BUS_PATH,
                interface=A11Y_BUS_INTERFACE,
                member="GetAddress",
            )
        )
        _raise_for_reply(reply)
        if not reply.body or not reply.body[0]:
            raise DBusError("org.freedesktop.DBus.Error.InvalidArgs", "org.a11y.Bus returned no address")
        return str(reply.body[0])
    finally:
        session.disconnect()


class AccessibilityConnection:
    """Open session on the accessibility bus. One per process, never recreated."""

    def __init__(self, bus: MessageBus) -> None:
        self._bus = bus
        self._stream = MessageStream()
        self._bus.add_message_handler(self._on_message)
        self._watcher: asyncio.Task | None = None

    @classmethod
    async def open(cls, address: str | None = None) -> AccessibilityConnection:
        """Connect to the accessibility bus.

        Address precedence: AT_SPI_BUS_ADDRESS env, then ``address``, then org.a11y.Bus lookup.
        """
        try:
            address = os.environ.get(BUS_ADDRESS_ENV) or address or await lookup_bus_address()
            logger.debug("Connecting to accessibility bus at {}", address)
            bus = await MessageBus(bus_address=address).connect()
        except BUS_ERRORS as exc:
            raise ConnectionSetupError(
                f"Could not connect to the accessibility bus: {exc}",
                code="connect_failed",
                original_error=exc,
            ) from exc
        conn = cls(bus)
        conn._watcher = asyncio.ensure_future(conn._watch_disconnect())
        return conn

    @property
    def bus(self) -> MessageBus:
        """Underlying transport handle, used to build remote object handles."""
        return self._bus

    def messages(self) -> MessageStream:
        """Raw inbound message stream (signals, calls, returns, errors)."""
        return self._stream

    def _on_message(self, msg: Message) -> None:
        # Returning None leaves normal bus processing untouched
        self._stream.feed(msg)

    async def _watch_disconnect(self) -> None:
        try:
            await self._bus.wait_for_disconnect()
        except Exception as exc:
            logger.debug("Accessibility bus connection lost: {}", exc)
            self._stream.feed_error(exc)
        finally:
            self._stream.close()

    async def _call(self, destination: str, path: str, interface: str, member: str, arg: str) -> Message:
        reply = await self._bus.call(
            Message(
                destination=destination,
                path=path,
                interface=interface,
                member=member,
                signature="s",
                body=[arg],
            )
        )
        return _raise_for_reply(reply)

    async def register_event(self, kind: type[CacheEvent]) -> None:
        """Add the bus match rule for ``kind`` and tell the registry we listen for it."""
        rule = match_rule(kind)
        await self._call(DBUS_NAME, DBUS_PATH, DBUS_INTERFACE, "AddMatch", rule)
        await self._call(REGISTRY_NAME, REGISTRY_PATH, REGISTRY_INTERFACE, "RegisterEvent", kind.REGISTRY_EVENT)
        logger.debug("Registered {} ({})", kind.__name__, rule)

    def close(self) -> None:
        self._bus.disconnect()


async def setup_connection(address: str | None = None) -> AccessibilityConnection:
    """Open the bus and register Add, LegacyAdd and Remove. All or nothing."""
    conn = await AccessibilityConnection.open(address)

    failures: dict[str, object] = {}
    for kind in CACHE_EVENT_KINDS:
        try:
            await conn.register_event(kind)
        except BUS_ERRORS as exc:
            logger.debug("Registering {} failed: {}", kind.__name__, exc)
            failures[kind.__name__] = str(exc)

    if failures:
        conn.close()
        raise ConnectionSetupError(
            "Could not register for accessibility events: " + ", ".join(failures),
            code="register_failed",
            details=failures,
        )
    return conn
