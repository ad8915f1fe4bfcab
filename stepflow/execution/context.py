from typing import Any, Dict, List, Optional


class Context:
    """
    The single argument passed to a function handler.

    Holds the triggering ``event`` and ``events``, ``run_id``, ``attempt``,
    the ``step`` tools and the run's ``logger``.  Failure handlers also get
    ``error``.  Extra keys added by middleware are readable as attributes.
    """

    _FIELDS = ("event", "events", "run_id", "attempt")

    def __init__(
        self,
        event: Dict[str, Any],
        events: List[Dict[str, Any]],
        run_id: str,
        attempt: int = 0,
        step: Any = None,
        logger: Any = None,
        error: Optional[BaseException] = None,
        **extras: Any,
    ):
        self.event = event
        self.events = events
        self.run_id = run_id
        self.attempt = attempt
        self.step = step
        self.logger = logger
        self.error = error
        self.extras: Dict[str, Any] = dict(extras)

    def __getattr__(self, name: str) -> Any:
        extras = self.__dict__.get("extras", {})
        if name in extras:
            return extras[name]
        raise AttributeError(f"Context has no attribute {name!r}")

    def to_dict(self) -> Dict[str, Any]:
        """Plain fields only, as handed to middleware."""
        out = {name: getattr(self, name) for name in self._FIELDS}
        out.update(self.extras)
        return out

    def apply(self, values: Dict[str, Any]) -> None:
        """Update from a middleware-transformed dict."""
        for key, value in values.items():
            if key in self._FIELDS:
                setattr(self, key, value)
            elif key not in ("step", "logger", "error"):
                self.extras[key] = value
