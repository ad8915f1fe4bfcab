from stepflow.execution.context import Context
from stepflow.execution.engine import Execution, ExecutionOptions, ExecutionStatus
from stepflow.execution.result import (
    ExecutionResult,
    FunctionRejected,
    FunctionResolved,
    StepNotFound,
    StepRan,
    StepsFound,
)
from stepflow.execution.serializer import serialize_result
from stepflow.execution.state import MemoizedOp, StepStateStore
from stepflow.execution.tools import StepOptions, StepTools

__all__ = [
    "Context",
    "Execution",
    "ExecutionOptions",
    "ExecutionResult",
    "ExecutionStatus",
    "FunctionRejected",
    "FunctionResolved",
    "MemoizedOp",
    "StepNotFound",
    "StepOptions",
    "StepRan",
    "StepStateStore",
    "StepTools",
    "StepsFound",
    "serialize_result",
]
