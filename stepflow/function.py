"""Step function definitions."""

import re
from typing import Any, Callable, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from stepflow.middleware import Middleware
from stepflow.utils import time_str

FAILURE_SUFFIX = "-failure"

Trigger = Union[str, Dict[str, str]]


def slugify(value: str) -> str:
    """Lower-case, hyphen-separated form used in full function ids."""
    slug = re.sub(r"[^a-z0-9]+", "-", value.lower())
    return slug.strip("-")


def _normalize_trigger(trigger: Trigger) -> Dict[str, str]:
    if isinstance(trigger, str) and trigger:
        return {"event": trigger}
    if isinstance(trigger, dict) and (trigger.get("event") or trigger.get("cron")):
        return dict(trigger)
    raise ValueError(f"A trigger needs an event name or a cron expression, got {trigger!r}")


def _render_duration(value: Any) -> Optional[str]:
    return None if value is None else time_str(value)


# ----------------------------------------------------------------- options --

class _FunctionOption(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)


class CancelOn(_FunctionOption):
    """Cancel a run when ``event`` arrives, optionally matched against the trigger."""
    event: str
    timeout: Optional[str] = None
    match: Optional[str] = None
    if_: Optional[str] = Field(default=None, alias="if")

    @field_validator("timeout", mode="before")
    @classmethod
    def _timeout(cls, value: Any) -> Optional[str]:
        return _render_duration(value)

    @model_validator(mode="after")
    def _match_or_if(self) -> "CancelOn":
        if self.match is not None and self.if_ is not None:
            raise ValueError("cancel_on accepts either match or if, not both")
        return self

    def to_config(self) -> Dict[str, Any]:
        config: Dict[str, Any] = {"event": self.event}
        if self.timeout:
            config["timeout"] = self.timeout
        if self.match:
            config["if"] = f"event.{self.match} == async.{self.match}"
        elif self.if_:
            config["if"] = self.if_
        return config


class RateLimit(_FunctionOption):
    limit: int = Field(gt=0)
    period: str
    key: Optional[str] = None

    @field_validator("period", mode="before")
    @classmethod
    def _period(cls, value: Any) -> Optional[str]:
        return _render_duration(value)


class Throttle(RateLimit):
    burst: Optional[int] = Field(default=None, gt=0)


class Debounce(_FunctionOption):
    period: str
    key: Optional[str] = None
    timeout: Optional[str] = None

    @field_validator("period", "timeout", mode="before")
    @classmethod
    def _durations(cls, value: Any) -> Optional[str]:
        return _render_duration(value)


class BatchEvents(_FunctionOption):
    """Run once per batch of up to ``max_size`` events, or when ``timeout`` passes."""
    max_size: int = Field(gt=0)
    timeout: str

    @field_validator("timeout", mode="before")
    @classmethod
    def _timeout(cls, value: Any) -> Optional[str]:
        return _render_duration(value)


class FunctionOptions(_FunctionOption):
    """Flow-control options the orchestrator applies to a function's runs."""
    retries: Optional[int] = Field(default=None, ge=0, le=20)
    concurrency: Optional[Union[int, Dict[str, Any], List[Dict[str, Any]]]] = None
    cancel_on: Optional[List[CancelOn]] = None
    rate_limit: Optional[RateLimit] = None
    throttle: Optional[Throttle] = None
    debounce: Optional[Debounce] = None
    batch_events: Optional[BatchEvents] = None
    idempotency: Optional[str] = None
    priority: Optional[Dict[str, Any]] = None

    def to_config(self) -> Dict[str, Any]:
        config: Dict[str, Any] = {}
        if self.retries is not None:
            config["retries"] = {"attempts": self.retries}
        for name in ("concurrency", "idempotency", "priority"):
            value = getattr(self, name)
            if value is not None:
                config[name] = value
        for name in ("rate_limit", "throttle", "debounce", "batch_events"):
            option = getattr(self, name)
            if option is not None:
                config[name] = option.model_dump(exclude_none=True)
        if self.cancel_on:
            config["cancel"] = [cancel.to_config() for cancel in self.cancel_on]
        return config


# ---------------------------------------------------------------- function --

class StepFunction:
    """A handler registered on a client, with its trigger, options and middleware."""

    def __init__(
        self,
        client: Any,
        fn_id: str,
        handler: Callable[..., Any],
        trigger: Trigger,
        name: Optional[str] = None,
        middleware: Optional[List[Middleware]] = None,
        on_failure: Optional[Callable[..., Any]] = None,
        **options: Any,
    ):
        if not fn_id:
            raise ValueError("Functions need a non-empty id")

        self.client = client
        self.id = fn_id
        self.name = name or fn_id
        self.handler = handler
        self.trigger = _normalize_trigger(trigger)
        self.middleware = list(middleware or [])
        self.on_failure = on_failure
        self.options = FunctionOptions.model_validate(options)

    def full_id(self, client: Any = None) -> str:
        """``<app-id>-<fn-id>``, the id the orchestrator knows this function by."""
        app_id = getattr(client or self.client, "app_id", None)
        slug = slugify(self.id)
        return f"{slugify(app_id)}-{slug}" if app_id else slug

    def failure_id(self, client: Any = None) -> str:
        return f"{self.full_id(client)}{FAILURE_SUFFIX}"

    def to_config(self) -> Dict[str, Any]:
        return {
            "id": self.full_id(),
            "name": self.name,
            "triggers": [self.trigger],
            "has_failure_handler": self.on_failure is not None,
            **self.options.to_config(),
        }

    def __repr__(self) -> str:
        return f"<StepFunction {self.id}>"
