"""Signal filter over the raw message stream."""

from __future__ import annotations

from collections.abc import AsyncIterable, AsyncIterator, Callable

from dbus_next import Message
from dbus_next.constants import MessageType

from atspi_watch.core.errors import TransportError


async def signals(
    stream: AsyncIterable[Message | TransportError],
    on_error: Callable[[TransportError], None] | None = None,
) -> AsyncIterator[Message]:
    """Yield only successfully read signal messages, in arrival order.

    Failed reads never pass through; they are handed to ``on_error`` when given.
    """
    async for item in stream:
        if isinstance(item, TransportError):
            if on_error is not None:
                on_error(item)
            continue
        if item.message_type == MessageType.SIGNAL:
            yield item
