"""Short-lived handles on remote Application and Accessible objects."""

from __future__ import annotations

import asyncio
from typing import Any, TypeVar
from xml.etree.ElementTree import ParseError

from dbus_next.aio import MessageBus
from dbus_next.errors import (
    DBusError,
    InterfaceNotFoundError,
    InvalidBusNameError,
    InvalidInterfaceNameError,
    InvalidIntrospectionError,
    InvalidMemberNameError,
    InvalidObjectPathError,
    InvalidSignatureError,
)

from atspi_watch.core.constants import ACCESSIBLE_INTERFACE, APPLICATION_INTERFACE, Role
from atspi_watch.core.errors import RemoteObjectError

# Introspection XML comes from the remote app; malformed XML or names fail the build only
_BUILD_ERRORS = (
    DBusError,
    InterfaceNotFoundError,
    InvalidBusNameError,
    InvalidInterfaceNameError,
    InvalidIntrospectionError,
    InvalidMemberNameError,
    InvalidObjectPathError,
    InvalidSignatureError,
    ParseError,
    asyncio.TimeoutError,
    OSError,
    EOFError,
)

HandleT = TypeVar("HandleT", bound="RemoteObjectHandle")


class RemoteObjectHandle:
    """Proxy bound to one (interface, object path, bus name) triple."""

    INTERFACE: str = ""

    def __init__(self, interface: Any, bus_name: str, path: str) -> None:
        self._iface = interface
        self.bus_name = bus_name
        self.path = path

    @classmethod
    async def build(cls: type[HandleT], bus: MessageBus, bus_name: str, path: str) -> HandleT:
        """Introspect the remote object and bind to ``INTERFACE``. Raises RemoteObjectError."""
        try:
            introspection = await bus.introspect(bus_name, path)
            proxy = bus.get_proxy_object(bus_name, path, introspection)
            return cls(proxy.get_interface(cls.INTERFACE), bus_name, path)
        except _BUILD_ERRORS as exc:
            raise RemoteObjectError(
                f"Could not build {cls.__name__} for {bus_name} {path}: {exc}",
                code="build_failed",
                details={"interface": cls.INTERFACE, "bus_name": bus_name, "path": path},
                original_error=exc,
            ) from exc

    async def _invoke(self, member: str) -> Any:
        """Call a generated proxy member. Members missing from the introspection fail like a bus error."""
        method = getattr(self._iface, member, None)
        if method is None:
            raise DBusError("org.freedesktop.DBus.Error.UnknownMethod", f"{self.INTERFACE} has no {member}")
        return await method()

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.bus_name!r}, {self.path!r})"


class ApplicationHandle(RemoteObjectHandle):
    INTERFACE = APPLICATION_INTERFACE

    async def toolkit_name(self) -> str:
        return await self._invoke("get_toolkit_name")


class AccessibleHandle(RemoteObjectHandle):
    INTERFACE = ACCESSIBLE_INTERFACE

    async def name(self) -> str:
        return await self._invoke("get_name")

    async def description(self) -> str:
        return await self._invoke("get_description")

    async def get_role(self) -> Role:
        return Role.from_value(await self._invoke("call_get_role"))
