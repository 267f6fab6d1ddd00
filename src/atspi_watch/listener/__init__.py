"""Consume loop: signal filter, event dispatcher, remote object inspector."""

from atspi_watch.listener.dispatcher import EventDispatcher
from atspi_watch.listener.inspector import RemoteObjectInspector
from atspi_watch.listener.signals import signals

__all__ = ["EventDispatcher", "RemoteObjectInspector", "signals"]
