"""
Exceptions raised by the SDK and the lossless error encoding used on the wire.

Errors cross the process boundary twice: a failing step or handler is
serialized into the response, and the orchestrator later hands the same
object back as a memoized step outcome.  ``serialize_error`` and
``deserialize_error`` are inverses for every registered exception type.
"""

import builtins
import json
import traceback
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Type, Union

from stepflow.utils import duration_to_ms, parse_datetime, to_iso, to_jsonable

SERIALIZED_KEY = "__serialized"

# Keys owned by the encoding itself; everything else is a custom field.
_RESERVED_KEYS = {"name", "message", "stack", "cause", SERIALIZED_KEY}

_MAX_CAUSE_DEPTH = 5


class ErrCode(str, Enum):
    """Codes attached to warnings surfaced while running a function."""
    NESTING_STEPS = "NESTING_STEPS"
    AUTOMATIC_PARALLEL_INDEXING = "AUTOMATIC_PARALLEL_INDEXING"
    NONDETERMINISTIC_STEPS = "NONDETERMINISTIC_STEPS"
    STEP_NOT_FOUND = "STEP_NOT_FOUND"


class StepflowError(Exception):
    """Base class for SDK errors."""

    def __init__(self, message: str = "", cause: Optional[BaseException] = None):
        super().__init__(message)
        self.message = message
        if cause is not None:
            self.__cause__ = cause


class NonRetriableError(StepflowError):
    """Raise to fail a step or function permanently, skipping further retries."""
    pass


class RetryAfterError(StepflowError):
    """
    Raise to ask the orchestrator to retry no earlier than ``retry_after``.

    ``retry_after`` may be a number of seconds, a duration string such as
    ``"30s"``, a ``timedelta`` or a ``datetime``.  It is stored as either a
    whole number of seconds or an ISO-8601 instant.
    """

    def __init__(
        self,
        message: str,
        retry_after: Union[int, float, str, timedelta, datetime],
        cause: Optional[BaseException] = None,
    ):
        super().__init__(message, cause=cause)
        self.retry_after = _render_retry_after(retry_after)


class StepError(StepflowError):
    """
    A memoized step error whose original exception type is not known locally.

    Carries the original ``name`` and ``stack`` so the failure can still be
    inspected, or re-raised and serialized without loss.
    """

    def __init__(
        self,
        message: str,
        name: str = "Error",
        stack: str = "",
        step_id: Optional[str] = None,
    ):
        super().__init__(message)
        self.name = name
        self.stack = stack
        self.step_id = step_id


class StateContractError(NonRetriableError):
    """The orchestrator's step state broke an invariant the engine relies on."""
    pass


class PayloadParseError(StepflowError):
    """The inbound invocation payload could not be parsed."""
    pass


class FunctionNotFoundError(StepflowError):
    """No registered function matches the requested function id."""
    pass


class ApiError(StepflowError):
    """A call to the orchestrator API failed."""

    def __init__(self, message: str, status: int = 500):
        super().__init__(message)
        self.status = status


def _render_retry_after(value: Union[int, float, str, timedelta, datetime]) -> str:
    if isinstance(value, datetime):
        return to_iso(value)

    if isinstance(value, str):
        try:
            ms = duration_to_ms(value)
        except ValueError:
            try:
                return to_iso(parse_datetime(value))
            except ValueError:
                raise ValueError(
                    "retry_after must be a number of seconds, a duration string, "
                    "a timedelta or a datetime"
                ) from None
    else:
        ms = duration_to_ms(value)

    return str(int(-(-ms // 1000)))


# -------------------------------------------------------------- registry --

_ERROR_TYPES: Dict[str, Type[BaseException]] = {
    name: obj
    for name, obj in vars(builtins).items()
    if isinstance(obj, type) and issubclass(obj, Exception)
}
_ERROR_TYPES["Error"] = Exception


def register_error_type(cls: Type[BaseException]) -> Type[BaseException]:
    """Allow ``cls`` to be rebuilt by name when deserializing. Usable as a decorator."""
    _ERROR_TYPES[cls.__name__] = cls
    return cls


for _cls in (StepflowError, NonRetriableError, RetryAfterError, StepError):
    register_error_type(_cls)


# --------------------------------------------------------- serialization --

def is_serialized_error(value: Any) -> Optional[Dict[str, Any]]:
    """Return ``value`` as a dict if it is (or is JSON for) a serialized error."""
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except ValueError:
            return None

    if isinstance(value, Mapping) and value.get(SERIALIZED_KEY) is True:
        return dict(value)

    return None


def _error_name(exc: BaseException) -> str:
    if isinstance(exc, StepError):
        return exc.name
    return type(exc).__name__


def _error_message(exc: BaseException) -> str:
    if isinstance(exc, StepflowError):
        return exc.message
    if len(exc.args) == 1 and isinstance(exc.args[0], str):
        return exc.args[0]
    return str(exc)


def _error_stack(exc: BaseException) -> str:
    stack = getattr(exc, "stack", None)
    if isinstance(stack, str) and stack:
        return stack
    return "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))


def _custom_fields(exc: BaseException) -> Dict[str, Any]:
    fields = {}
    for key, value in vars(exc).items():
        if key.startswith("_") or key in _RESERVED_KEYS:
            continue
        try:
            fields[key] = to_jsonable(value)
        except Exception:
            continue
    return fields


def serialize_error(subject: Any, allow_unknown: bool = False, _depth: int = 0) -> Any:
    """
    Encode ``subject`` as ``{name, message, stack, __serialized, ...}``.

    Already-serialized errors are returned unchanged.  Non-exception subjects
    are wrapped as a generic ``Error`` unless ``allow_unknown`` is set, in
    which case they are returned as-is.
    """
    existing = is_serialized_error(subject)
    if existing is not None:
        return existing

    if isinstance(subject, BaseException):
        data: Dict[str, Any] = {
            "name": _error_name(subject),
            "message": _error_message(subject),
            "stack": _error_stack(subject),
        }
        data.update(_custom_fields(subject))
        if isinstance(subject, StepError):
            data.pop("step_id", None)

        cause = subject.__cause__
        if cause is not None and _depth < _MAX_CAUSE_DEPTH:
            data["cause"] = serialize_error(cause, allow_unknown=True, _depth=_depth + 1)

        data[SERIALIZED_KEY] = True
        return data

    if allow_unknown:
        return subject

    if isinstance(subject, Mapping) and isinstance(subject.get("message"), str):
        data = {key: to_jsonable(value) for key, value in subject.items()}
        data.setdefault("name", "Error")
        data.setdefault("stack", "")
        data[SERIALIZED_KEY] = True
        return data

    if isinstance(subject, str):
        message = subject
    else:
        try:
            message = json.dumps(to_jsonable(subject))
        except (TypeError, ValueError):
            message = "Unknown error; error serialization could not find a message."

    return {"name": "Error", "message": message, "stack": "", SERIALIZED_KEY: True}


def deserialize_error(
    subject: Any, allow_unknown: bool = False, step_id: Optional[str] = None
) -> Any:
    """Rebuild an exception from ``serialize_error`` output."""
    if not (
        isinstance(subject, Mapping)
        and isinstance(subject.get("name"), str)
        and "message" in subject
    ):
        if allow_unknown:
            return subject
        return StepError("Unknown error; could not deserialize", step_id=step_id)

    name = subject["name"]
    message = str(subject["message"])
    stack = subject.get("stack") or ""

    cls = _ERROR_TYPES.get(name)
    err: BaseException
    try:
        if cls is None:
            raise LookupError(name)
        if cls is StepError:
            err = StepError(message, name=subject.get("name", "Error"), stack=stack, step_id=step_id)
        elif issubclass(cls, RetryAfterError):
            err = cls(message, subject.get("retry_after") or 0)
        else:
            err = cls(message)
    except Exception:
        err = StepError(message, name=name, stack=stack, step_id=step_id)

    err.stack = stack
    for key, value in subject.items():
        if key in _RESERVED_KEYS:
            continue
        try:
            setattr(err, key, value)
        except AttributeError:
            continue

    cause = subject.get("cause")
    if cause is not None:
        restored = deserialize_error(cause, allow_unknown=True)
        if isinstance(restored, BaseException):
            err.__cause__ = restored
        else:
            err.cause = restored

    return err


# ----------------------------------------------------------- retriability --

def is_non_retriable(error: Any) -> bool:
    if isinstance(error, NonRetriableError):
        return True
    serialized = is_serialized_error(error)
    return serialized is not None and serialized.get("name") == "NonRetriableError"


def retriable_for(error: Any) -> Union[bool, str]:
    """
    ``False`` for non-retriable errors, the retry-after string for
    ``RetryAfterError`` and ``True`` for everything else.
    """
    if is_non_retriable(error):
        return False

    if isinstance(error, RetryAfterError):
        return error.retry_after

    serialized = is_serialized_error(error)
    if serialized is not None and serialized.get("name") == "RetryAfterError":
        retry_after = serialized.get("retry_after")
        if isinstance(retry_after, str) and retry_after:
            return retry_after

    return True
