from stepflow.middleware.manager import HookStack, merge_transform
from stepflow.middleware.middleware import Middleware, RunHooks, SendEventHooks

__all__ = ["HookStack", "Middleware", "RunHooks", "SendEventHooks", "merge_transform"]
