"""
Execution engine for a single pass of a step function.

A pass runs the handler from the top, replaying memoized step outcomes in
the order the orchestrator saw them complete.  When the handler reaches a
step with no outcome, the pass either runs that step's callback right away
or reports the new steps and stops.  Either way one result leaves the pass.
"""

import asyncio
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, List, Optional

import structlog

from stepflow.errors import (
    ErrCode,
    FunctionNotFoundError,
    deserialize_error,
    retriable_for,
    serialize_error,
)
from stepflow.execution.context import Context
from stepflow.execution.result import (
    ExecutionResult,
    FunctionRejected,
    FunctionResolved,
    StepNotFound,
    StepRan,
    StepsFound,
)
from stepflow.execution.state import StepStateStore
from stepflow.execution.tools import StepOptions, StepTools
from stepflow.hashing import hash_id, next_free_id
from stepflow.log import ProxyLogger
from stepflow.middleware import HookStack
from stepflow.types import FoundStep, OutgoingOp, StepOpCode
from stepflow.utils import resolve_after_pending, run_as_awaitable, to_jsonable

logger = structlog.get_logger(__name__)

_UNSET = object()

# Seconds to wait for cancelled tasks to unwind during finalization.
_CANCEL_GRACE = 1.0


class ExecutionStatus(Enum):
    INITIALIZING = "initializing"
    MEMOIZING = "memoizing"
    EXECUTING = "executing"
    REPORTING = "reporting"
    FINALIZING = "finalizing"


@dataclass
class ExecutionOptions:
    """Everything a pass needs; built by the request handler or the CLI."""
    client: Any
    fn: Any
    run_id: str
    data: Dict[str, Any]
    step_state: StepStateStore = field(default_factory=StepStateStore)
    attempt: int = 0
    requested_run_step: Optional[str] = None
    disable_immediate_execution: bool = False
    is_failure_handler: bool = False
    step_not_found_timeout: float = 10.0


@dataclass
class Checkpoint:
    type: str
    data: Any = None
    error: Any = None
    steps: List[FoundStep] = field(default_factory=list)


class Execution:
    """One pass of a function. ``start()`` may be awaited any number of times."""

    def __init__(self, options: ExecutionOptions):
        self.options = options
        self.state = options.step_state
        self.status = ExecutionStatus.INITIALIZING
        self.hooks = HookStack()
        self.ctx: Optional[Context] = None
        self.logger = ProxyLogger(self._bind_function_logger())

        self._steps: Dict[str, FoundStep] = {}
        self._tick: List[FoundStep] = []
        self._checkpoints: Optional[asyncio.Queue] = None
        self._executing: Optional[FoundStep] = None
        self._warned_indexing = False
        self._transform_attempted = False

        self._start_task: Optional[asyncio.Task] = None
        self._handler_task: Optional[asyncio.Task] = None
        self._report_task: Optional[asyncio.Task] = None
        self._memo_end_task: Optional[asyncio.Task] = None
        self._timer: Optional[asyncio.TimerHandle] = None

    def _bind_function_logger(self) -> Any:
        base = getattr(self.options.client, "logger", None) or structlog.get_logger("stepflow.function")
        bind = getattr(base, "bind", None)
        if not callable(bind):
            return base
        event = self.options.data.get("event") or {}
        return bind(
            run_id=self.options.run_id,
            function_id=getattr(self.options.fn, "id", None),
            event_name=event.get("name"),
        )

    async def start(self) -> ExecutionResult:
        if self._start_task is None:
            self._start_task = asyncio.ensure_future(self._start())
        return await self._start_task

    async def _start(self) -> ExecutionResult:
        logger.debug(
            "execution_started",
            run_id=self.options.run_id,
            function_id=getattr(self.options.fn, "id", None),
            memoized_steps=len(self.state),
            requested_step=self.options.requested_run_step,
        )
        self._checkpoints = asyncio.Queue()
        try:
            result = await self._run()
        finally:
            await self._finalize()

        logger.info(
            "execution_finished",
            run_id=self.options.run_id,
            function_id=getattr(self.options.fn, "id", None),
            result=result.type,
        )
        return result

    async def _run(self) -> ExecutionResult:
        try:
            await self._initialize()
            self.status = ExecutionStatus.MEMOIZING
            self._handler_task = asyncio.get_running_loop().create_task(self._run_handler())
            self._start_timer()

            while True:
                checkpoint = await self._checkpoints.get()
                result = await self._handle_checkpoint(checkpoint)
                if result is not None:
                    return result
        except Exception as e:
            logger.error("execution_failed", run_id=self.options.run_id, error=str(e))
            return await self._reject(e)

    # ------------------------------------------------------------ lifecycle --

    async def _initialize(self) -> None:
        fn = self.options.fn
        event = self.options.data.get("event") or {}
        events = self.options.data.get("events") or ([event] if event else [])

        error = None
        if self.options.is_failure_handler:
            error = deserialize_error((event.get("data") or {}).get("error"))

        self.ctx = Context(
            event=event,
            events=events,
            run_id=self.options.run_id,
            attempt=self.options.attempt,
            step=StepTools(self._step_handler, client=self.options.client),
            logger=self.logger,
            error=error,
        )

        middleware = list(getattr(self.options.client, "middleware", []) or [])
        middleware += list(getattr(fn, "middleware", []) or [])
        steps = [{"id": step_id, **outcome} for step_id, outcome in self.state.ops().items()]

        self.hooks = await HookStack.for_run(middleware, self.ctx.to_dict(), fn, steps)

        transformed = await self.hooks.run(
            "transform_input", {"ctx": self.ctx.to_dict(), "steps": steps, "fn": fn}
        )
        self.ctx.apply(transformed.get("ctx") or {})
        new_steps = transformed.get("steps")
        if new_steps is not None and new_steps != steps:
            self.state.replace(
                {s["id"]: {k: v for k, v in s.items() if k != "id"} for s in new_steps}
            )

        await self.hooks.run("before_memoization")

        if not len(self.state):
            await self._end_memoization()

    def _end_memoization_task(self) -> asyncio.Task:
        if self._memo_end_task is None:
            self._memo_end_task = asyncio.ensure_future(self._run_memoization_end_hooks())
        return self._memo_end_task

    async def _end_memoization(self) -> None:
        await self._end_memoization_task()

    async def _run_memoization_end_hooks(self) -> None:
        await self.hooks.run("after_memoization")
        self.logger.enable()
        await self.hooks.run("before_execution")

    async def _finalize(self) -> None:
        self.status = ExecutionStatus.FINALIZING
        self._clear_timer()

        pending = [
            task
            for task in (self._handler_task, self._report_task, self._memo_end_task)
            if task is not None and not task.done()
        ]
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.wait(pending, timeout=_CANCEL_GRACE)

        try:
            await self.hooks.run("before_response")
        finally:
            self.logger.flush()

    # -------------------------------------------------------------- handler --

    async def _run_handler(self) -> None:
        fn = self.options.fn
        handler = getattr(fn, "on_failure", None) if self.options.is_failure_handler else fn.handler

        try:
            if handler is None:
                raise FunctionNotFoundError(f"Function {fn.id!r} has no failure handler")
            data = await run_as_awaitable(handler, self.ctx)
        except Exception as e:
            checkpoint = Checkpoint("function-rejected", error=e)
        else:
            checkpoint = Checkpoint("function-resolved", data=data)

        try:
            await self._end_memoization()
            await self.hooks.run("after_execution")
        except Exception as e:
            checkpoint = Checkpoint("function-rejected", error=e)

        self._checkpoints.put_nowait(checkpoint)

    async def _step_handler(
        self,
        options: StepOptions,
        op: StepOpCode,
        name: str,
        opts: Optional[Dict[str, Any]] = None,
        fn: Any = None,
    ) -> Any:
        if self._memo_end_task is not None:
            await self._memo_end_task

        if self._executing is not None:
            logger.warning(
                "nested_step_tooling",
                code=ErrCode.NESTING_STEPS.value,
                step_id=options.id,
                executing_step=self._executing.raw_id,
                consequences="Nesting step tooling is not supported.",
            )

        raw_id = options.id
        if raw_id in self._steps:
            self._maybe_warn_parallel_indexing(raw_id)
            raw_id = next_free_id(options.id, self._steps)
            logger.debug("step_id_indexed", step_id=options.id, indexed_id=raw_id)

        hashed = hash_id(raw_id)
        memo = self.state.get(hashed)
        if memo is not None:
            self.state.mark_seen(hashed)

        step = FoundStep(
            id=hashed,
            raw_id=raw_id,
            op=op,
            name=name,
            display_name=options.display_name,
            future=asyncio.get_running_loop().create_future(),
            opts=opts,
            fn=fn,
            fulfilled=memo is not None,
            has_step_state=memo is not None,
            data=memo.data if memo is not None else None,
            error=memo.error if memo is not None else None,
        )
        self._steps[raw_id] = step
        self._tick.append(step)
        self._schedule_report()

        if self._memo_end_task is None and self.state.all_state_used():
            await self._end_memoization()

        return await step.future

    def _maybe_warn_parallel_indexing(self, collision_id: str) -> None:
        if self._warned_indexing:
            return

        found_this_tick = any(step.raw_id == collision_id for step in self._tick)
        if collision_id in self._steps and not found_this_tick:
            self._warned_indexing = True
            logger.warning(
                "automatic_parallel_indexing",
                code=ErrCode.AUTOMATIC_PARALLEL_INDEXING.value,
                step_id=collision_id,
                why="Multiple steps share this id across different chains of parallel work.",
                to_fix="Use a unique id for each step, especially those running in parallel.",
            )

    # ------------------------------------------------------------ reporting --

    def _schedule_report(self) -> None:
        if self._report_task is not None:
            return
        self._report_task = asyncio.get_running_loop().create_task(self._report())

    async def _report(self) -> None:
        try:
            await resolve_after_pending()
            if self._memo_end_task is not None:
                await self._memo_end_task
            self._report_task = None

            by_id = {step.id: step for step in self._tick}
            for hashed in self.state.completion_order:
                step = by_id.get(hashed)
                if step is not None and step.handle():
                    logger.debug("step_memoized", step_id=step.raw_id, error=step.error is not None)
                    self._schedule_report()
                    return

            steps, self._tick = self._tick, []
            if steps:
                self._checkpoints.put_nowait(Checkpoint("steps-found", steps=steps))
        except Exception as e:
            self._report_task = None
            self._checkpoints.put_nowait(Checkpoint("error", error=e))

    # ----------------------------------------------------------- checkpoints --

    async def _handle_checkpoint(self, checkpoint: Checkpoint) -> Optional[ExecutionResult]:
        if checkpoint.type == "error":
            raise checkpoint.error

        if checkpoint.type == "function-resolved":
            return await self._transform_output(data=checkpoint.data)

        if checkpoint.type == "function-rejected":
            return await self._transform_output(error=checkpoint.error)

        if checkpoint.type == "step-not-found":
            await self._run_closing_hooks()
            logger.warning(
                "step_not_found",
                code=ErrCode.STEP_NOT_FOUND.value,
                run_id=self.options.run_id,
                step_id=self.options.requested_run_step,
            )
            return StepNotFound(
                step=OutgoingOp(id=self.options.requested_run_step, op=StepOpCode.STEP_NOT_FOUND)
            )

        if checkpoint.type == "steps-found":
            return await self._on_steps_found(checkpoint.steps)

        raise ValueError(f"Unknown checkpoint type: {checkpoint.type}")

    async def _on_steps_found(self, steps: List[FoundStep]) -> Optional[ExecutionResult]:
        step = self._step_to_run(steps)
        if step is not None:
            return await self._execute_step(step)

        if self.options.requested_run_step:
            self._reset_timer()
            return None

        new_steps = [s for s in steps if not s.fulfilled]
        if not new_steps:
            return None

        if not self.state.all_state_used():
            logger.warning(
                "nondeterministic_steps",
                code=ErrCode.NONDETERMINISTIC_STEPS.value,
                run_id=self.options.run_id,
                new_steps=[s.raw_id for s in new_steps],
                consequences="New steps were found before all memoized state was used.",
            )

        await self._run_closing_hooks()
        self.status = ExecutionStatus.REPORTING
        logger.debug("steps_found", run_id=self.options.run_id, steps=[s.raw_id for s in new_steps])
        return StepsFound(steps=[s.to_op() for s in new_steps])

    def _step_to_run(self, steps: List[FoundStep]) -> Optional[FoundStep]:
        target = self.options.requested_run_step
        if not target:
            if self.options.disable_immediate_execution:
                return None
            unfulfilled = [s for s in steps if not s.fulfilled]
            if len(unfulfilled) != 1:
                return None
            candidate = unfulfilled[0]
            if candidate.op != StepOpCode.STEP_PLANNED or candidate.fn is None:
                return None
            target = candidate.id

        return next((s for s in steps if s.id == target and s.fn is not None), None)

    async def _execute_step(self, step: FoundStep) -> ExecutionResult:
        self.status = ExecutionStatus.EXECUTING
        self._clear_timer()
        await self._end_memoization()

        op = step.to_op()
        logger.debug("step_executing", run_id=self.options.run_id, step_id=step.raw_id)
        self._executing = step
        error: Any = _UNSET
        try:
            data = await step.fn()
        except Exception as e:
            error = e
        finally:
            self._executing = None

        # Hook failures reject the pass rather than the step.
        await self.hooks.run("after_execution")

        if error is not _UNSET:
            logger.info("step_failed", run_id=self.options.run_id, step_id=step.raw_id, error=str(error))
            return await self._transform_output(error=error, step=op)

        logger.info("step_executed", run_id=self.options.run_id, step_id=step.raw_id)
        return await self._transform_output(data=data, step=op)

    # --------------------------------------------------------------- output --

    async def _transform_output(
        self, data: Any = _UNSET, error: Any = _UNSET, step: Optional[OutgoingOp] = None
    ) -> ExecutionResult:
        self._transform_attempted = True
        output = {"error": error} if error is not _UNSET else {"data": data}
        transformed = await self.hooks.run("transform_output", {"result": dict(output), "step": step})
        result = {**output, **((transformed or {}).get("result") or {})}

        if "error" in result:
            error = result["error"]
            retriable = retriable_for(error)
            serialized = serialize_error(error)
            if step is None or retriable is False:
                return FunctionRejected(error=serialized, retriable=retriable)
            return StepRan(
                step=replace(step, op=StepOpCode.STEP_ERROR, error=serialized),
                retriable=retriable,
            )

        data = to_jsonable(result.get("data"))
        if step is None:
            return FunctionResolved(data=data)
        return StepRan(step=replace(step, op=StepOpCode.STEP_RUN, data=data))

    async def _reject(self, error: Exception) -> ExecutionResult:
        if not self._transform_attempted:
            try:
                return await self._transform_output(error=error)
            except Exception as e:
                error = e
        return FunctionRejected(error=serialize_error(error), retriable=retriable_for(error))

    async def _run_closing_hooks(self) -> None:
        """Hooks that must have run before a pass reports or gives up on a step."""
        await self._end_memoization()
        await self.hooks.run("after_execution")

    # ---------------------------------------------------------------- timer --

    def _start_timer(self) -> None:
        if not self.options.requested_run_step:
            return
        self._timer = asyncio.get_running_loop().call_later(
            self.options.step_not_found_timeout, self._on_step_not_found
        )

    def _on_step_not_found(self) -> None:
        self._timer = None
        self._checkpoints.put_nowait(Checkpoint("step-not-found"))

    def _clear_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _reset_timer(self) -> None:
        self._clear_timer()
        self._start_timer()
