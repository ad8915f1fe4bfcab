"""Maps execution results onto orchestrator responses."""

from typing import Any, Dict, Optional, Union

import structlog

from stepflow.execution.result import (
    ExecutionResult,
    FunctionRejected,
    FunctionResolved,
    StepNotFound,
    StepRan,
    StepsFound,
)
from stepflow.types import ActionResponse
from stepflow.utils import stringify

logger = structlog.get_logger(__name__)

HEADER_NO_RETRY = "X-Stepflow-No-Retry"
HEADER_RETRY_AFTER = "Retry-After"
EXECUTION_VERSION = 1


def retry_headers(retriable: Optional[Union[bool, str]]) -> Dict[str, str]:
    """``X-Stepflow-No-Retry`` plus ``Retry-After`` when a delay was requested."""
    if retriable is None:
        return {}

    headers = {HEADER_NO_RETRY: "false" if retriable is not False else "true"}
    if isinstance(retriable, str):
        headers[HEADER_RETRY_AFTER] = retriable
    return headers


def serialize_result(result: ExecutionResult, version: int = EXECUTION_VERSION) -> ActionResponse:
    if isinstance(result, FunctionResolved):
        return ActionResponse(status=200, body=stringify(result.data), version=version)

    if isinstance(result, FunctionRejected):
        return ActionResponse(
            status=500 if result.retriable is not False else 400,
            body=stringify(result.error),
            headers=retry_headers(result.retriable),
            version=version,
        )

    if isinstance(result, StepsFound):
        return ActionResponse(
            status=206,
            body=stringify([op.to_dict() for op in result.steps]),
            version=version,
        )

    if isinstance(result, StepRan):
        headers = retry_headers(result.retriable) if result.step.error is not None else {}
        return ActionResponse(
            status=206,
            body=stringify([result.step.to_dict()]),
            headers=headers,
            version=version,
        )

    if isinstance(result, StepNotFound):
        return ActionResponse(
            status=500,
            body=stringify({"error": f"Could not find step {result.step.id!r} to run; timed out"}),
            headers={HEADER_NO_RETRY: "false"},
            version=version,
        )

    logger.error("unknown_execution_result", result=repr(result))
    raise TypeError(f"Unknown execution result: {result!r}")


def error_response(
    error: Any, status: int = 500, retriable: Optional[Union[bool, str]] = True
) -> ActionResponse:
    """A response for failures that happen outside of a pass."""
    return ActionResponse(
        status=status,
        body=stringify(error),
        headers=retry_headers(retriable),
        version=None,
    )
