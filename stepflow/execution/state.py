"""Memoized step outcomes supplied by the orchestrator for a single pass."""

from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence

import structlog

from stepflow.errors import StateContractError

logger = structlog.get_logger(__name__)


@dataclass
class MemoizedOp:
    """Outcome of a previously completed step, keyed by hashed id."""
    id: str
    data: Any = None
    error: Any = None
    has_data: bool = False
    seen: bool = False

    @property
    def is_error(self) -> bool:
        return self.error is not None


def _parse_outcome(step_id: str, raw: Any) -> MemoizedOp:
    if not isinstance(raw, Mapping):
        raise StateContractError(f"Step state for {step_id!r} must be an object, got {type(raw).__name__}")

    kind = raw.get("type")
    if kind == "data" or (kind is None and "data" in raw):
        return MemoizedOp(id=step_id, data=raw.get("data"), has_data=True)

    if kind == "error" or (kind is None and "error" in raw):
        error = raw.get("error")
        if error is None:
            raise StateContractError(f"Step state for {step_id!r} has an empty error")
        return MemoizedOp(id=step_id, error=error)

    raise StateContractError(f"Step state for {step_id!r} has neither data nor error")


class StepStateStore:
    """
    Read-only view of the orchestrator's step state with per-pass bookkeeping.

    ``completion_order`` is the order the orchestrator saw steps complete; it
    decides which of several concurrently found steps is replayed first.
    """

    def __init__(
        self,
        step_state: Optional[Mapping[str, Any]] = None,
        completion_order: Optional[Sequence[str]] = None,
    ):
        self._ops: Dict[str, MemoizedOp] = {
            step_id: _parse_outcome(step_id, raw) for step_id, raw in (step_state or {}).items()
        }
        self._order = self._validate_order(list(completion_order or []))
        self._seen_count = 0

    def _validate_order(self, order: List[str]) -> List[str]:
        missing = [step_id for step_id in order if step_id not in self._ops]
        if missing:
            raise StateContractError(
                f"Completion order references steps with no state: {', '.join(missing)}"
            )

        in_order = set(order)
        extra = [step_id for step_id in self._ops if step_id not in in_order]
        if extra:
            logger.debug("step_state_not_in_completion_order", steps=extra)
        return order + extra

    @property
    def completion_order(self) -> List[str]:
        return list(self._order)

    def get(self, step_id: str) -> Optional[MemoizedOp]:
        return self._ops.get(step_id)

    def has_been_seen(self, step_id: str) -> bool:
        op = self._ops.get(step_id)
        return op is not None and op.seen

    def mark_seen(self, step_id: str) -> None:
        op = self._ops.get(step_id)
        if op is not None and not op.seen:
            op.seen = True
            self._seen_count += 1

    def all_state_used(self) -> bool:
        return self._seen_count >= len(self._ops)

    def ops(self) -> Dict[str, Dict[str, Any]]:
        """The state in the wire shape, suitable for ``transform_input`` hooks."""
        out = {}
        for step_id, op in self._ops.items():
            out[step_id] = {"error": op.error} if op.is_error else {"data": op.data}
        return out

    def replace(self, step_state: Mapping[str, Any]) -> None:
        """Swap in new outcomes; only valid before memoization starts."""
        if self._seen_count:
            raise StateContractError("Step state cannot be replaced once memoization has started")
        self._ops = {step_id: _parse_outcome(step_id, raw) for step_id, raw in step_state.items()}
        order = [step_id for step_id in self._order if step_id in self._ops]
        self._order = self._validate_order(order)

    def __len__(self) -> int:
        return len(self._ops)

    def __contains__(self, step_id: object) -> bool:
        return step_id in self._ops

    def __iter__(self) -> Iterator[str]:
        return iter(self._order)
