"""The application-facing client."""

from typing import Any, Callable, Dict, List, Optional, Union

import structlog

from stepflow.api import ApiClient, EventSender, normalize_events
from stepflow.config import Settings, get_settings
from stepflow.errors import StepflowError
from stepflow.function import StepFunction, Trigger
from stepflow.middleware import HookStack, Middleware

logger = structlog.get_logger(__name__)

DEV_EVENT_KEY = "NO_EVENT_KEY_SET"


class Stepflow:
    """
    Registers step functions and sends events for one application.

    Example:
        client = Stepflow("shop")

        @client.create_function("send-receipt", trigger="shop/order.paid")
        async def send_receipt(ctx):
            order = await ctx.step.run("load-order", load_order, ctx.event["data"]["id"])
            await ctx.step.sleep("cool-off", "10m")
            return await ctx.step.run("email", email_receipt, order)
    """

    def __init__(
        self,
        app_id: Optional[str] = None,
        middleware: Optional[List[Middleware]] = None,
        logger: Any = None,
        settings: Optional[Settings] = None,
        api: Optional[ApiClient] = None,
        event_sender: Optional[EventSender] = None,
    ):
        self.settings = settings or get_settings()
        self.app_id = app_id or self.settings.app_id
        if not self.app_id:
            raise ValueError("Stepflow needs an app id; pass one or set STEPFLOW_APP_ID")

        self.middleware = list(middleware or [])
        self.logger = logger or structlog.get_logger("stepflow.function").bind(app_id=self.app_id)
        self.api = api or ApiClient.from_settings(self.settings)
        self._event_sender = event_sender
        self.functions: Dict[str, StepFunction] = {}

    def create_function(
        self,
        fn_id: str,
        trigger: Trigger,
        name: Optional[str] = None,
        middleware: Optional[List[Middleware]] = None,
        on_failure: Optional[Callable[..., Any]] = None,
        **options: Any,
    ) -> Callable[[Callable[..., Any]], StepFunction]:
        """
        Decorator registering ``handler(ctx)`` as a step function.

        ``options`` are flow-control settings such as ``retries``,
        ``concurrency``, ``cancel_on``, ``rate_limit``, ``throttle``,
        ``debounce``, ``batch_events``, ``idempotency`` and ``priority``.
        """

        def decorator(handler: Callable[..., Any]) -> StepFunction:
            if fn_id in self.functions:
                raise ValueError(f"Function {fn_id!r} is already registered")
            fn = StepFunction(
                self,
                fn_id,
                handler,
                trigger,
                name=name,
                middleware=middleware,
                on_failure=on_failure,
                **options,
            )
            self.functions[fn_id] = fn
            logger.debug("function_registered", app_id=self.app_id, function_id=fn_id)
            return fn

        return decorator

    @property
    def event_sender(self) -> EventSender:
        if self._event_sender is None:
            event_key = self.settings.event_key
            if not event_key:
                if not self.settings.is_dev:
                    raise StepflowError("Sending events needs an event key; set STEPFLOW_EVENT_KEY")
                event_key = DEV_EVENT_KEY
            self._event_sender = EventSender(
                self.settings.event_api_base_url,
                event_key,
                timeout=self.settings.request_timeout,
            )
        return self._event_sender

    async def send(self, payload: Union[Dict[str, Any], List[Dict[str, Any]]]) -> Dict[str, Any]:
        """Send one or more events through send-event middleware; returns ``{"ids": [...]}``."""
        payloads = normalize_events(payload)
        hooks = await HookStack.for_send_event(self.middleware)

        transformed = await hooks.run("transform_input", {"payloads": payloads})
        payloads = transformed.get("payloads", payloads)

        result = await self.event_sender.send(payloads)

        output = await hooks.run("transform_output", {"result": result, "payloads": payloads})
        return output.get("result", result)
