"""Runs middleware hooks in registration order."""

from typing import Any, Dict, List, Optional, Sequence

import structlog

from stepflow.middleware.middleware import Middleware
from stepflow.utils import maybe_await

logger = structlog.get_logger(__name__)

_NO_ARG = object()

# Keys of transform payloads whose dict values are merged rather than replaced.
_NESTED_KEYS = ("ctx", "result")


def merge_transform(current: Dict[str, Any], output: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    if not output:
        return current

    merged = dict(current)
    for key, value in output.items():
        if key in _NESTED_KEYS and isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = {**merged[key], **value}
        else:
            merged[key] = value
    return merged


class HookStack:
    """
    An ordered set of hook objects for one run or one send.

    ``run(name, arg)`` calls every hook called ``name`` in order, each seeing
    the merged output of the ones before it.  Each name runs at most once;
    later calls return the first result.  An exception from a hook stops the
    chain and propagates to the caller.
    """

    def __init__(self, hooks: Optional[Sequence[Any]] = None):
        self._hooks: List[Any] = [h for h in (hooks or []) if h is not None]
        self._results: Dict[str, Any] = {}

    @classmethod
    async def for_run(
        cls,
        middleware: Sequence[Middleware],
        ctx: Dict[str, Any],
        fn: Any,
        steps: List[Dict[str, Any]],
    ) -> "HookStack":
        hooks = []
        for mw in middleware:
            hooks.append(await maybe_await(mw.on_function_run(ctx, fn, steps)))
            logger.debug("middleware_initialized", middleware=mw.name, hook="on_function_run")
        return cls(hooks)

    @classmethod
    async def for_send_event(cls, middleware: Sequence[Middleware]) -> "HookStack":
        hooks = []
        for mw in middleware:
            hooks.append(await maybe_await(mw.on_send_event()))
        return cls(hooks)

    async def run(self, name: str, arg: Any = _NO_ARG) -> Any:
        if name in self._results:
            return self._results[name]

        current = arg
        for hooks in self._hooks:
            method = getattr(hooks, name, None)
            if not callable(method):
                continue

            if arg is _NO_ARG:
                await maybe_await(method())
            else:
                output = await maybe_await(method(current))
                if isinstance(current, dict):
                    current = merge_transform(current, output)
                elif output is not None:
                    current = output

        result = None if arg is _NO_ARG else current
        self._results[name] = result
        return result

    def __len__(self) -> int:
        return len(self._hooks)
