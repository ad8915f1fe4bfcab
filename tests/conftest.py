"""
Pytest configuration and fixtures for the stepflow project.
"""

import sys
from pathlib import Path

# Add the project root to Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

import pytest
import structlog
from unittest.mock import AsyncMock

from stepflow.client import Stepflow
from stepflow.config import Settings
from stepflow.execution import Execution, ExecutionOptions, StepStateStore
from stepflow.hashing import hash_id


# ============================================================================
# FIXTURES
# ============================================================================

@pytest.fixture(autouse=True)
def reset_structlog():
    """Keep logging configuration from leaking between tests."""
    structlog.reset_defaults()
    yield
    structlog.reset_defaults()


@pytest.fixture
def settings():
    """Settings that never depend on the environment running the tests."""
    return Settings(
        app_id="test-app",
        environment="development",
        api_base_url="http://api.invalid",
        event_api_base_url="http://events.invalid",
        event_key="test-key",
        step_not_found_timeout=0.2,
        _env_file=None,
    )


@pytest.fixture
def event_sender():
    sender = AsyncMock()
    sender.send.return_value = {"ids": ["evt-1"]}
    return sender


@pytest.fixture
def client(settings, event_sender):
    """A client whose HTTP collaborators are mocked out."""
    return Stepflow("test-app", settings=settings, api=AsyncMock(), event_sender=event_sender)


@pytest.fixture
def trigger_event():
    return {"name": "test/triggered", "data": {"n": 2}}


@pytest.fixture
def run_pass(client, trigger_event):
    """
    Run a single pass of ``fn`` with memoized ``steps`` given by unhashed id.

    Outcomes are keyed by unhashed id for readability and hashed here; the
    completion order defaults to the order the outcomes were given in.
    """
    async def _run(fn, steps=None, order=None, **options):
        hashed = {hash_id(step_id): outcome for step_id, outcome in (steps or {}).items()}
        completion = [hash_id(step_id) for step_id in (order if order is not None else (steps or {}))]
        execution = Execution(ExecutionOptions(
            client=fn.client,
            fn=fn,
            run_id="run-1",
            data={"event": trigger_event, "events": [trigger_event]},
            step_state=StepStateStore(hashed, completion),
            **options,
        ))
        return await execution.start()

    return _run
