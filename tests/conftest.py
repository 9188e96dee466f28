import os

# Credential fields have no defaults (services must fail without secrets).
# Provide test values so Settings() can be constructed in tests.
os.environ.setdefault("PAYMENT_KEY_ID", "rzp_test_key")
os.environ.setdefault("PAYMENT_KEY_SECRET", "test-secret")

from unittest.mock import Mock

import pytest
import simpy

from core.clock import SimulationClock
from db.database import init_database
from lifecycle import LifecycleStateMachine
from notifications import LoggingNotificationProvider, NotificationDispatch
from payments import PaymentReconciler
from progression import ProgressionScheduler
from resale import ResaleMarketplace
from settings import ProgressionSettings
from tests.factories import START_TIME, TEST_SECRET


@pytest.fixture
def temp_sqlite_db(tmp_path):
    """Temporary SQLite database for persistence tests."""
    return tmp_path / "test_lifecycle.db"


@pytest.fixture
def session_factory(temp_sqlite_db):
    return init_database(str(temp_sqlite_db))


@pytest.fixture
def env():
    return simpy.Environment()


@pytest.fixture
def clock(env):
    """Clock driven by the SimPy environment, starting at a fixed instant."""
    return SimulationClock(env, START_TIME)


@pytest.fixture
def notification_provider():
    return LoggingNotificationProvider()


@pytest.fixture
def device_tokens():
    return {"rider1": "token-rider1", "cust1": "token-cust1", "buyer1": "token-buyer1"}


@pytest.fixture
def state_machine(session_factory, clock, notification_provider, device_tokens):
    dispatch = NotificationDispatch(notification_provider, device_tokens.get)
    return LifecycleStateMachine(session_factory, clock=clock, notifications=dispatch)


@pytest.fixture
def progression_settings():
    return ProgressionSettings(instance_id="test-instance")


@pytest.fixture
def scheduler(env, state_machine, session_factory, clock, progression_settings):
    """Scheduler attached to the state machine, as wired in production."""
    scheduler = ProgressionScheduler(
        env, state_machine, session_factory, settings=progression_settings, clock=clock
    )
    state_machine.scheduler = scheduler
    return scheduler


@pytest.fixture
def mock_gateway():
    """Payment gateway returning a fixed order id."""
    gateway = Mock()
    gateway.create_order.return_value = "order_test123"
    return gateway


@pytest.fixture
def reconciler(state_machine, mock_gateway):
    return PaymentReconciler(state_machine, mock_gateway, key_secret=TEST_SECRET)


@pytest.fixture
def marketplace(state_machine, reconciler, clock):
    return ResaleMarketplace(state_machine, reconciler, clock=clock)
