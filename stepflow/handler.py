"""Turns orchestrator requests into execution passes."""

import asyncio
import json
from typing import Any, Dict, Iterable, Optional, Tuple

import structlog
from pydantic import ValidationError

from stepflow.errors import (
    FunctionNotFoundError,
    PayloadParseError,
    retriable_for,
    serialize_error,
)
from stepflow.execution import Execution, ExecutionOptions, StepStateStore, serialize_result
from stepflow.execution.serializer import error_response
from stepflow.function import FAILURE_SUFFIX, StepFunction
from stepflow.types import ActionResponse, IncomingRequest, InvocationPayload

logger = structlog.get_logger(__name__)

QUERY_FUNCTION_ID = "fnId"
QUERY_STEP_ID = "stepId"

# Placeholder step id meaning "no specific step requested".
_ANY_STEP = "step"

SUPPORTED_VERSIONS = (1,)


def parse_payload(body: Any) -> InvocationPayload:
    """Validate a raw request body (bytes, str or dict) as an invocation payload."""
    if isinstance(body, (bytes, bytearray)):
        body = body.decode("utf-8")
    if isinstance(body, str):
        try:
            body = json.loads(body) if body.strip() else {}
        except ValueError as e:
            raise PayloadParseError(f"Request body is not valid JSON: {e}") from e
    if body is None:
        body = {}

    try:
        payload = InvocationPayload.model_validate(body)
    except ValidationError as e:
        raise PayloadParseError(f"Invalid invocation payload: {e}") from e

    if payload.version not in SUPPORTED_VERSIONS:
        raise PayloadParseError(f"Unsupported execution version: {payload.version}")
    return payload


class CommHandler:
    """Serves function invocations for one client."""

    def __init__(self, client: Any, functions: Optional[Iterable[StepFunction]] = None):
        self.client = client
        registered = functions if functions is not None else client.functions.values()

        self._functions: Dict[str, StepFunction] = {}
        for fn in registered:
            self._functions[fn.id] = fn
            self._functions[fn.full_id(client)] = fn

    def resolve_function(self, fn_id: Optional[str]) -> Tuple[StepFunction, bool]:
        """Return the function for ``fn_id`` and whether its failure handler was asked for."""
        if not fn_id:
            raise FunctionNotFoundError(f"Missing {QUERY_FUNCTION_ID} query parameter")

        fn = self._functions.get(fn_id)
        if fn is not None:
            return fn, False

        if fn_id.endswith(FAILURE_SUFFIX):
            fn = self._functions.get(fn_id[: -len(FAILURE_SUFFIX)])
            if fn is not None and fn.on_failure is not None:
                return fn, True

        raise FunctionNotFoundError(f"Could not find function with ID {fn_id!r}")

    async def handle(self, request: IncomingRequest) -> ActionResponse:
        if request.method.upper() != "POST":
            return error_response(
                {"error": f"Method {request.method} not allowed"}, status=405, retriable=None
            )

        fn_id = request.query.get(QUERY_FUNCTION_ID)
        try:
            fn, is_failure_handler = self.resolve_function(fn_id)
        except FunctionNotFoundError as e:
            logger.warning("function_not_found", function_id=fn_id)
            return error_response({"error": str(e)}, status=404, retriable=None)

        try:
            options = await self._build_options(fn, is_failure_handler, request)
            result = await Execution(options).start()
            return serialize_result(result)
        except Exception as e:
            logger.error("request_failed", function_id=fn.id, error=str(e), error_type=type(e).__name__)
            retriable = retriable_for(e)
            return error_response(
                serialize_error(e),
                status=500 if retriable is not False else 400,
                retriable=retriable,
            )

    async def _build_options(
        self, fn: StepFunction, is_failure_handler: bool, request: IncomingRequest
    ) -> ExecutionOptions:
        payload = parse_payload(request.body)
        ctx = payload.ctx

        steps, events = payload.steps, payload.events
        if ctx.use_api:
            steps, events = await asyncio.gather(
                self.client.api.get_run_steps(ctx.run_id, payload.version),
                self.client.api.get_run_batch(ctx.run_id),
            )

        event = payload.event or (events[0] if events else {})
        step_id = request.query.get(QUERY_STEP_ID)

        logger.debug(
            "invocation_received",
            function_id=fn.id,
            run_id=ctx.run_id,
            attempt=ctx.attempt,
            steps=len(steps),
            use_api=ctx.use_api,
        )

        return ExecutionOptions(
            client=self.client,
            fn=fn,
            run_id=ctx.run_id,
            data={"event": event, "events": events},
            step_state=StepStateStore(steps, ctx.stack.stack),
            attempt=ctx.attempt,
            requested_run_step=None if step_id in (None, "", _ANY_STEP) else step_id,
            disable_immediate_execution=ctx.disable_immediate_execution,
            is_failure_handler=is_failure_handler,
            step_not_found_timeout=self.client.settings.step_not_found_timeout,
        )
