"""Middleware definitions and the hooks they return."""

from typing import Any, Dict, List, Optional


class RunHooks:
    """
    Hooks for a single function run. Override the ones you need.

    Every method may be sync or async. Transform hooks may return a partial
    dict that is merged into their input; returning ``None`` leaves it as is.
    """

    def transform_input(self, args: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """``args`` holds ``ctx``, ``steps`` and ``fn``."""
        return None

    def before_memoization(self) -> None:
        return None

    def after_memoization(self) -> None:
        return None

    def before_execution(self) -> None:
        return None

    def after_execution(self) -> None:
        return None

    def transform_output(self, args: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """``args`` holds ``result`` (``{"data"}`` or ``{"error"}``) and ``step``."""
        return None

    def before_response(self) -> None:
        return None


class SendEventHooks:
    """Hooks wrapped around a single event send."""

    def transform_input(self, args: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """``args`` holds ``payloads``."""
        return None

    def transform_output(self, args: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """``args`` holds ``result`` and ``payloads``."""
        return None


class Middleware:
    """
    Base class for middleware registered on a client or a function.

    Subclasses return hook objects from ``on_function_run`` and
    ``on_send_event``; either may return ``None`` to opt out.

    Example:
        class Timing(Middleware):
            def on_function_run(self, ctx, fn, steps):
                return TimingHooks()
    """

    def __init__(self, name: Optional[str] = None):
        self.name = name or type(self).__name__

    def on_function_run(
        self, ctx: Dict[str, Any], fn: Any, steps: List[Dict[str, Any]]
    ) -> Optional[RunHooks]:
        return None

    def on_send_event(self) -> Optional[SendEventHooks]:
        return None

    def __repr__(self) -> str:
        return f"<Middleware {self.name}>"
