"""
Step tools handed to functions as ``ctx.step``.

Each tool describes an operation and passes it to the execution's step
handler, which decides whether to replay a memoized outcome or suspend.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, Optional, Union

from stepflow.types import StepOpCode
from stepflow.utils import DurationLike, parse_datetime, run_as_awaitable, time_str, to_iso


@dataclass
class StepOptions:
    """A step id plus an optional human-readable name shown in dashboards."""
    id: str
    name: Optional[str] = None

    @property
    def display_name(self) -> str:
        return self.name or self.id


StepIdLike = Union[str, StepOptions, Dict[str, Any]]

# (options, op, name, opts, fn) -> awaited step outcome
StepHandler = Callable[..., Awaitable[Any]]


def get_step_options(value: StepIdLike) -> StepOptions:
    if isinstance(value, StepOptions):
        options = value
    elif isinstance(value, str):
        options = StepOptions(id=value)
    elif isinstance(value, dict) and isinstance(value.get("id"), str):
        options = StepOptions(id=value["id"], name=value.get("name"))
    else:
        raise ValueError(f"A step needs a string id or StepOptions, got {value!r}")

    if not options.id:
        raise ValueError("Step ids must be non-empty")
    return options


class StepTools:
    def __init__(self, handler: StepHandler, client: Any = None):
        self._handler = handler
        self._client = client

    async def run(self, step_id: StepIdLike, fn: Callable[..., Any], *args: Any) -> Any:
        """Run ``fn(*args)`` once as a retriable step and memoize its result."""
        options = get_step_options(step_id)
        return await self._handler(
            options,
            op=StepOpCode.STEP_PLANNED,
            name=options.id,
            fn=lambda: run_as_awaitable(fn, *args),
        )

    async def sleep(self, step_id: StepIdLike, duration: DurationLike) -> None:
        """Pause the run for ``duration`` (seconds, ``timedelta`` or ``"1h30m"``)."""
        options = get_step_options(step_id)
        return await self._handler(options, op=StepOpCode.SLEEP, name=time_str(duration))

    async def sleep_until(self, step_id: StepIdLike, when: Union[datetime, str]) -> None:
        options = get_step_options(step_id)
        return await self._handler(options, op=StepOpCode.SLEEP, name=to_iso(parse_datetime(when)))

    async def wait_for_event(
        self,
        step_id: StepIdLike,
        event: str,
        timeout: DurationLike,
        match: Optional[str] = None,
        if_expr: Optional[str] = None,
    ) -> Optional[Dict[str, Any]]:
        """
        Wait for ``event``; resolves to the event or ``None`` on timeout.

        ``match="data.id"`` only accepts events whose ``data.id`` equals the
        triggering event's.  ``if_expr`` is a raw expression over ``event``
        and ``async``.  Only one of the two may be given.
        """
        if match is not None and if_expr is not None:
            raise ValueError("wait_for_event accepts either match or if_expr, not both")

        options = get_step_options(step_id)
        opts: Dict[str, Any] = {"timeout": time_str(timeout)}
        if match is not None:
            opts["if"] = f"event.{match} == async.{match}"
        elif if_expr is not None:
            opts["if"] = if_expr

        return await self._handler(options, op=StepOpCode.WAIT_FOR_EVENT, name=event, opts=opts)

    async def invoke(
        self,
        step_id: StepIdLike,
        function: Any,
        data: Any = None,
        user: Any = None,
        v: Optional[str] = None,
        timeout: Optional[DurationLike] = None,
    ) -> Any:
        """Call another function and resolve to its return value."""
        if isinstance(function, str) and function:
            function_id = function
        elif callable(getattr(function, "full_id", None)):
            function_id = function.full_id(self._client)
        else:
            raise ValueError(f"invoke needs a StepFunction or a function id, got {function!r}")

        payload: Dict[str, Any] = {"data": data if data is not None else {}}
        if user is not None:
            payload["user"] = user
        if v is not None:
            payload["v"] = v

        opts: Dict[str, Any] = {"payload": payload, "function_id": function_id}
        if timeout is not None:
            opts["timeout"] = time_str(timeout)

        options = get_step_options(step_id)
        return await self._handler(options, op=StepOpCode.INVOKE_FUNCTION, name=options.id, opts=opts)

    async def send_event(self, step_id: StepIdLike, payload: Any) -> Dict[str, Any]:
        """Send one or more events as a step; resolves to ``{"ids": [...]}``."""
        if self._client is None:
            raise ValueError("send_event needs a client to send through")

        options = get_step_options(step_id)
        client = self._client
        return await self._handler(
            options,
            op=StepOpCode.STEP_PLANNED,
            name="sendEvent",
            fn=lambda: client.send(payload),
        )
