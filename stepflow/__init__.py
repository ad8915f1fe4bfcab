"""stepflow - durable step functions driven by an external orchestrator."""

from stepflow.client import Stepflow
from stepflow.config import Settings, get_settings
from stepflow.errors import (
    ApiError,
    NonRetriableError,
    RetryAfterError,
    StepError,
    StepflowError,
)
from stepflow.execution import Context, StepOptions
from stepflow.function import FunctionOptions, StepFunction
from stepflow.handler import CommHandler
from stepflow.middleware import Middleware, RunHooks, SendEventHooks
from stepflow.types import ActionResponse, IncomingRequest

__version__ = "1.0.0"

__all__ = [
    "ActionResponse",
    "ApiError",
    "CommHandler",
    "Context",
    "FunctionOptions",
    "IncomingRequest",
    "Middleware",
    "NonRetriableError",
    "RetryAfterError",
    "RunHooks",
    "SendEventHooks",
    "Settings",
    "StepError",
    "StepFunction",
    "StepOptions",
    "Stepflow",
    "StepflowError",
    "get_settings",
]
