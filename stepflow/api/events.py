"""Sends events to the orchestrator's event API."""

from typing import Any, Dict, List, Union

import aiohttp
import structlog

from stepflow.errors import ApiError
from stepflow.utils import to_jsonable

logger = structlog.get_logger(__name__)

EventPayload = Dict[str, Any]


def normalize_events(payload: Union[EventPayload, List[EventPayload]]) -> List[EventPayload]:
    """Accept one event or a list; every event needs a ``name`` and gets ``data``."""
    events = payload if isinstance(payload, list) else [payload]

    normalized = []
    for event in events:
        if not isinstance(event, dict) or not event.get("name"):
            raise ValueError(f"Events must be objects with a name, got {event!r}")
        normalized.append({**event, "data": event.get("data") or {}})
    return normalized


class EventSender:
    def __init__(self, base_url: str, event_key: str, timeout: float = 30.0):
        self.base_url = base_url.rstrip("/")
        self.event_key = event_key
        self._timeout = aiohttp.ClientTimeout(total=timeout)

    async def send(self, payloads: List[EventPayload]) -> Dict[str, Any]:
        """POST events; returns ``{"ids": [...]}`` in payload order."""
        if not payloads:
            return {"ids": []}

        url = f"{self.base_url}/e/{self.event_key}"
        try:
            async with aiohttp.ClientSession(timeout=self._timeout) as session:
                async with session.post(url, json=to_jsonable(payloads)) as response:
                    try:
                        body = await response.json(content_type=None)
                    except ValueError:
                        body = None
                    status = response.status
        except aiohttp.ClientError as e:
            logger.error("event_send_failed", error=str(e), events=len(payloads))
            raise ApiError(f"Failed to send events: {e}", status=500) from e

        if status >= 400:
            message = body.get("error") if isinstance(body, dict) else None
            raise ApiError(message or f"Failed to send events: HTTP {status}", status=status)

        ids = body.get("ids", []) if isinstance(body, dict) else []
        logger.info("events_sent", count=len(payloads), ids=ids)
        return {"ids": ids}
