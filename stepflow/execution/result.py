"""Outcomes of a single execution pass."""

from dataclasses import dataclass, field
from typing import Any, List, Optional, Union

from stepflow.types import OutgoingOp


@dataclass
class FunctionResolved:
    data: Any = None
    type: str = field(default="function-resolved", init=False)


@dataclass
class FunctionRejected:
    error: Any
    retriable: Union[bool, str] = True
    type: str = field(default="function-rejected", init=False)


@dataclass
class StepsFound:
    steps: List[OutgoingOp]
    type: str = field(default="steps-found", init=False)


@dataclass
class StepRan:
    step: OutgoingOp
    retriable: Optional[Union[bool, str]] = None
    type: str = field(default="step-ran", init=False)


@dataclass
class StepNotFound:
    step: OutgoingOp
    type: str = field(default="step-not-found", init=False)


ExecutionResult = Union[FunctionResolved, FunctionRejected, StepsFound, StepRan, StepNotFound]
