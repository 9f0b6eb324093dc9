"""Pytest configuration and shared fixtures."""

import pytest

from modelrelay.config import BrokerSettings, WorkerSettings
from modelrelay.logger import configure_logging
from modelrelay.ws.retry_config import RetryConfig


pytest_plugins = ["tests.broker.fixtures.broker_fixtures"]


@pytest.fixture(autouse=True, scope="session")
def _quiet_logging():
    """Keep test output readable."""
    configure_logging("WARNING")


@pytest.fixture
def broker_settings() -> BrokerSettings:
    """Broker settings with a short request timeout."""
    return BrokerSettings(
        host="127.0.0.1",
        port=0,
        api_port=0,
        request_timeout=0.3,
        default_model="qwen-coder",
        reaper_interval=60.0,
        idle_timeout=300.0,
    )


@pytest.fixture
def worker_settings() -> WorkerSettings:
    """Worker settings that retry quickly."""
    return WorkerSettings(
        broker_url="ws://127.0.0.1:1",
        worker_id="test-worker",
        default_model="qwen3:latest",
        heartbeat_interval=30.0,
        retry=RetryConfig(
            max_attempts=2,
            initial_delay_ms=10,
            max_delay_ms=20,
            backoff_multiplier=2.0,
            jitter_factor=0.0,
        ),
    )
