"""Run event streaming."""

from .sink import EventSink, open_event_sink

__all__ = ["EventSink", "open_event_sink"]
