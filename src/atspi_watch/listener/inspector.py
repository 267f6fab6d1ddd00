"""Remote object inspector: read identification properties of a new application root."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import TypeVar

from dbus_next.aio import MessageBus
from dbus_next.errors import DBusError
from loguru import logger

from atspi_watch.core.constants import (
    DESCRIPTION_PLACEHOLDER,
    NAME_PLACEHOLDER,
    TOOLKIT_PLACEHOLDER,
    Role,
)
from atspi_watch.core.errors import RemoteObjectError
from atspi_watch.events import ObjectRef
from atspi_watch.listener.proxies import AccessibleHandle, ApplicationHandle

T = TypeVar("T")

# A remote object may exit mid-query; these end one fetch, never the event
FETCH_ERRORS = (DBusError, asyncio.TimeoutError, OSError, EOFError)


async def or_default(call: Awaitable[T], default: T, what: str) -> T:
    """Await a remote property fetch, substituting ``default`` if it fails."""
    try:
        return await call
    except FETCH_ERRORS as exc:
        logger.debug("Could not read {}: {}", what, exc)
        return default


class RemoteObjectInspector:
    """Builds fresh handles per Add event; nothing is cached between events."""

    def __init__(self, bus: MessageBus, emit: Callable[[str], None]) -> None:
        self._bus = bus
        self._emit = emit

    async def inspect(self, app: ObjectRef) -> None:
        """Run the application and accessible sequences independently."""
        await self._application_sequence(app)
        await self._accessible_sequence(app)

    async def _application_sequence(self, app: ObjectRef) -> None:
        try:
            handle = await ApplicationHandle.build(self._bus, app.name, app.path)
        except RemoteObjectError as exc:
            logger.debug("Skipping application properties: {}", exc)
            return

        toolkit = await or_default(handle.toolkit_name(), TOOLKIT_PLACEHOLDER, "toolkit name")
        self._emit(f"toolkit: {toolkit}")

    async def _accessible_sequence(self, app: ObjectRef) -> None:
        try:
            handle = await AccessibleHandle.build(self._bus, app.name, app.path)
        except RemoteObjectError as exc:
            logger.debug("Skipping accessible properties: {}", exc)
            return

        name = await or_default(handle.name(), NAME_PLACEHOLDER, "name")
        self._emit(f"name: {name}")
        description = await or_default(handle.description(), DESCRIPTION_PLACEHOLDER, "description")
        self._emit(f"description: {description}")
        role = await or_default(handle.get_role(), Role.UNKNOWN, "role")
        self._emit(f"role: {role}")
