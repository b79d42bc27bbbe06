"""
Shared fixtures: an in-memory transport and fast settings.
"""
import pytest
from blaze_feed.config import Settings
from tests.helpers import FakeTransport, Recorder


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def fast_settings() -> Settings:
    return Settings(
        BLAZE_PING_INTERVAL=0.05,
        BLAZE_PING_TIMEOUT=0.05,
        BLAZE_RECONNECT_DELAY=0.01,
        BLAZE_RECONNECT_DELAY_MAX=0.05,
        DISPATCH_WORKERS=4,
        DISPATCH_CALLBACK_TIMEOUT=1.0,
        DEDUP_ENABLED=True,
    )


@pytest.fixture
def recorder() -> Recorder:
    return Recorder()
