"""Ramus event system."""

from ramus.events.bus import EventBus, Handler, RamusEvent

__all__ = ["EventBus", "Handler", "RamusEvent"]
