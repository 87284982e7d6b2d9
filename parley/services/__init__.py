"""Message service components."""

from .events import destination_event_hub, notifier

__all__ = ["destination_event_hub", "notifier"]
