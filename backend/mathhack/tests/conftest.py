import random

import pytest

from mathhack.logic.settings import ContestSettings
from mathhack.messaging.router import MessageRouter
from mathhack.session.manager import SessionManager
from mathhack.tests.mocks import MockConnection


@pytest.fixture
def rng():
    return random.Random(1234)


@pytest.fixture
def contest_settings():
    # No artificial delay for slowed players unless a test asks for one.
    return ContestSettings(slow_answer_delay_seconds=0)


@pytest.fixture
async def manager(contest_settings, rng):
    session_manager = SessionManager(contest_settings, rng=rng)
    yield session_manager
    await session_manager.shutdown()


@pytest.fixture
def message_router(manager):
    return MessageRouter(manager)


@pytest.fixture
def mock_connection():
    return MockConnection()
