from stepflow.api.client import ApiClient
from stepflow.api.events import EventSender, normalize_events

__all__ = ["ApiClient", "EventSender", "normalize_events"]
