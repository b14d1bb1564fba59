import os

import pytest

# Keep package import from reconfiguring the root logger under pytest
os.environ.setdefault('DARWIN_SETUP_LOGGING', 'false')

from darwin_sdk.agent.views import TaskConfig  # noqa: E402
from darwin_sdk.sessions.registry import SessionRegistry  # noqa: E402
from fakes import FakeCapabilityFactory, two_step_script  # noqa: E402


@pytest.fixture
def events():
    """Collects (kind, payload) pairs sent to on_event."""
    return []


@pytest.fixture
def task_config(events):
    return TaskConfig(
        website='https://shop.example.com',
        task='Find the pricing page',
        max_steps=5,
        on_event=lambda kind, payload: events.append((kind, payload)),
    )


@pytest.fixture
def factory():
    return FakeCapabilityFactory(two_step_script())


@pytest.fixture
def registry():
    return SessionRegistry(retention_seconds=3600)
