"""Shared types: step operations, the inbound payload and request/response shapes."""

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional

from pydantic import BaseModel, Field, model_validator

from stepflow.errors import deserialize_error


class StepOpCode(str, Enum):
    """Operation codes reported to the orchestrator."""
    STEP_PLANNED = "StepPlanned"
    STEP_RUN = "StepRun"
    STEP_ERROR = "StepError"
    SLEEP = "Sleep"
    WAIT_FOR_EVENT = "WaitForEvent"
    INVOKE_FUNCTION = "InvokeFunction"
    STEP_NOT_FOUND = "StepNotFound"


@dataclass
class OutgoingOp:
    """A step operation as sent back to the orchestrator. ``id`` is always hashed."""
    id: str
    op: StepOpCode
    name: Optional[str] = None
    display_name: Optional[str] = None
    opts: Optional[Dict[str, Any]] = None
    data: Any = None
    error: Any = None

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"id": self.id, "op": self.op.value}
        if self.name is not None:
            out["name"] = self.name
        if self.display_name is not None:
            out["displayName"] = self.display_name
        if self.opts is not None:
            out["opts"] = self.opts
        if self.op == StepOpCode.STEP_RUN or self.data is not None:
            out["data"] = self.data
        if self.error is not None:
            out["error"] = self.error
        return out


@dataclass
class FoundStep:
    """
    A step reached by the handler during the current pass.

    ``future`` is what the handler is awaiting; resolving it replays a
    memoized outcome, leaving it pending suspends the handler.
    """
    id: str
    raw_id: str
    op: StepOpCode
    name: str
    display_name: str
    future: asyncio.Future
    opts: Optional[Dict[str, Any]] = None
    fn: Optional[Callable[[], Awaitable[Any]]] = None
    fulfilled: bool = False
    handled: bool = False
    has_step_state: bool = False
    data: Any = None
    error: Any = None

    def handle(self) -> bool:
        """Resolve the awaiting handler with the memoized outcome, once."""
        if self.handled or not self.has_step_state:
            return False
        self.handled = True
        if self.future.done():
            return True

        if self.error is not None:
            self.future.set_exception(deserialize_error(self.error, step_id=self.raw_id))
        else:
            self.future.set_result(self.data)
        return True

    def to_op(self) -> OutgoingOp:
        return OutgoingOp(
            id=self.id,
            op=self.op,
            name=self.name,
            display_name=self.display_name,
            opts=self.opts,
        )


# ----------------------------------------------------------------- payload --

class InvocationStack(BaseModel):
    """Order in which the orchestrator saw steps complete."""
    stack: List[str] = Field(default_factory=list)
    current: int = 0


class InvocationCtx(BaseModel):
    run_id: str = ""
    attempt: int = 0
    disable_immediate_execution: bool = False
    use_api: bool = False
    stack: InvocationStack = Field(default_factory=InvocationStack)


class InvocationPayload(BaseModel):
    """Body of an orchestrator call to run a function."""
    event: Dict[str, Any] = Field(default_factory=dict)
    events: List[Dict[str, Any]] = Field(default_factory=list)
    steps: Dict[str, Any] = Field(default_factory=dict)
    ctx: InvocationCtx = Field(default_factory=InvocationCtx)
    version: int = 1

    @model_validator(mode="after")
    def _default_events(self) -> "InvocationPayload":
        if not self.events and self.event:
            self.events = [self.event]
        return self


# ------------------------------------------------------------ request/resp --

@dataclass
class IncomingRequest:
    """A framework-independent view of an HTTP request."""
    method: str
    body: Any = None
    query: Dict[str, str] = field(default_factory=dict)
    headers: Dict[str, str] = field(default_factory=dict)
    url: str = "/"


@dataclass
class ActionResponse:
    status: int
    body: str
    headers: Dict[str, str] = field(default_factory=dict)
    version: Optional[int] = 1
