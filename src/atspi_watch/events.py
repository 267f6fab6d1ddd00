"""Event types and decoder for AT-SPI signals on the accessibility bus."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, ClassVar, Union

from dbus_next import Message
from dbus_next.constants import MessageType

from atspi_watch.core.constants import CACHE_INTERFACE, EVENT_INTERFACE_PREFIX, Role


@dataclass(frozen=True)
class ObjectRef:
    """(bus name, object path) pair addressing a remote accessible object.

    The referenced object may vanish at any time; a reference only addresses it.
    """

    name: str
    path: str

    @classmethod
    def from_body(cls, value: Any) -> ObjectRef:
        name, path = value
        return cls(name=str(name), path=str(path))


@dataclass
class CacheItem:
    """Node announced by AddAccessible, signature ((so)(so)(so)iiassusau)."""

    object: ObjectRef
    app: ObjectRef  # Root application of the node
    parent: ObjectRef
    index: int  # Index in parent
    children: int  # Child count
    ifaces: list[str] = field(default_factory=list)
    short_name: str = ""
    role: Role = Role.UNKNOWN
    name: str = ""
    states: list[int] = field(default_factory=list)

    SIGNATURE: ClassVar[str] = "((so)(so)(so)iiassusau)"

    @classmethod
    def from_body(cls, value: Any) -> CacheItem:
        obj, app, parent, index, children, ifaces, short_name, role, name, states = value
        return cls(
            object=ObjectRef.from_body(obj),
            app=ObjectRef.from_body(app),
            parent=ObjectRef.from_body(parent),
            index=int(index),
            children=int(children),
            ifaces=list(ifaces),
            short_name=short_name,
            role=Role.from_value(role),
            name=name,
            states=list(states),
        )


@dataclass
class LegacyCacheItem:
    """Node announced by older registries, signature ((so)(so)(so)a(so)assusau)."""

    object: ObjectRef
    app: ObjectRef
    parent: ObjectRef
    children: list[ObjectRef] = field(default_factory=list)
    ifaces: list[str] = field(default_factory=list)
    short_name: str = ""
    role: Role = Role.UNKNOWN
    name: str = ""
    states: list[int] = field(default_factory=list)

    SIGNATURE: ClassVar[str] = "((so)(so)(so)a(so)assusau)"

    @classmethod
    def from_body(cls, value: Any) -> LegacyCacheItem:
        obj, app, parent, children, ifaces, short_name, role, name, states = value
        return cls(
            object=ObjectRef.from_body(obj),
            app=ObjectRef.from_body(app),
            parent=ObjectRef.from_body(parent),
            children=[ObjectRef.from_body(child) for child in children],
            ifaces=list(ifaces),
            short_name=short_name,
            role=Role.from_value(role),
            name=name,
            states=list(states),
        )


@dataclass
class AddAccessibleEvent:
    """Cache::Add: an accessible object joined the bus-wide cache."""

    sender: str
    path: str
    node_added: CacheItem

    MEMBER: ClassVar[str] = "AddAccessible"
    SIGNATURE: ClassVar[str] = CacheItem.SIGNATURE
    REGISTRY_EVENT: ClassVar[str] = "Cache:Add"

    @classmethod
    def from_message(cls, msg: Message) -> AddAccessibleEvent:
        return cls(sender=msg.sender or "", path=msg.path or "", node_added=CacheItem.from_body(msg.body[0]))


@dataclass
class LegacyAddAccessibleEvent:
    """Cache::LegacyAdd: AddAccessible in its older wire form."""

    sender: str
    path: str
    node_added: LegacyCacheItem

    MEMBER: ClassVar[str] = "AddAccessible"
    SIGNATURE: ClassVar[str] = LegacyCacheItem.SIGNATURE
    REGISTRY_EVENT: ClassVar[str] = "Cache:Add"

    @classmethod
    def from_message(cls, msg: Message) -> LegacyAddAccessibleEvent:
        return cls(
            sender=msg.sender or "",
            path=msg.path or "",
            node_added=LegacyCacheItem.from_body(msg.body[0]),
        )


@dataclass
class RemoveAccessibleEvent:
    """Cache::Remove: an accessible object left the cache."""

    sender: str
    path: str
    node_removed: ObjectRef

    MEMBER: ClassVar[str] = "RemoveAccessible"
    SIGNATURE: ClassVar[str] = "(so)"
    REGISTRY_EVENT: ClassVar[str] = "Cache:Remove"

    @classmethod
    def from_message(cls, msg: Message) -> RemoveAccessibleEvent:
        return cls(sender=msg.sender or "", path=msg.path or "", node_removed=ObjectRef.from_body(msg.body[0]))


@dataclass
class ObjectEvent:
    """Any org.a11y.atspi.Event.* signal. Decoded so it can be told apart from noise, never acted on."""

    interface: str
    member: str
    sender: str
    path: str
    kind: str
    detail1: int
    detail2: int
    any_data: Any = None
    properties: dict[str, Any] = field(default_factory=dict)

    SIGNATURE: ClassVar[str] = "siiva{sv}"

    @classmethod
    def from_message(cls, msg: Message) -> ObjectEvent:
        kind, detail1, detail2, any_data, properties = msg.body
        return cls(
            interface=msg.interface or "",
            member=msg.member or "",
            sender=msg.sender or "",
            path=msg.path or "",
            kind=kind,
            detail1=int(detail1),
            detail2=int(detail2),
            any_data=any_data,
            properties=dict(properties),
        )


CacheEvent = Union[AddAccessibleEvent, LegacyAddAccessibleEvent, RemoveAccessibleEvent]
Event = Union[AddAccessibleEvent, LegacyAddAccessibleEvent, RemoveAccessibleEvent, ObjectEvent]

CACHE_EVENT_KINDS: tuple[type[CacheEvent], ...] = (
    AddAccessibleEvent,
    LegacyAddAccessibleEvent,
    RemoveAccessibleEvent,
)


def match_rule(kind: type[CacheEvent]) -> str:
    """Bus match rule that subscribes to signals of the given cache event kind."""
    return f"type='signal',interface='{CACHE_INTERFACE}',member='{kind.MEMBER}'"


def decode_event(msg: Message) -> Event | None:
    """Classify a signal as a known event, or return None for everything else."""
    if msg.message_type != MessageType.SIGNAL:
        return None
    try:
        if msg.interface == CACHE_INTERFACE:
            for kind in CACHE_EVENT_KINDS:
                if msg.member == kind.MEMBER and msg.signature == kind.SIGNATURE:
                    return kind.from_message(msg)
            return None
        if (msg.interface or "").startswith(EVENT_INTERFACE_PREFIX) and msg.signature == ObjectEvent.SIGNATURE:
            return ObjectEvent.from_message(msg)
    except (IndexError, TypeError, ValueError):
        return None
    return None
