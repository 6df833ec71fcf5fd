"""Pytest configuration and shared fixtures."""

import sys
import asyncio
import inspect
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

# Ensure src directory is in Python path for all tests
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from dashsync.auth.models import OAuthConnection, OAuthProvider, OAuthTokens
from dashsync.auth.token_store import TokenStore
from dashsync.storage import MemoryKeyValueStore


@pytest.hookimpl(tryfirst=True)
def pytest_pyfunc_call(pyfuncitem):
    """Execute async tests without external plugins."""
    testfunction = pyfuncitem.obj
    if inspect.iscoroutinefunction(testfunction):
        loop = asyncio.new_event_loop()
        try:
            asyncio.set_event_loop(loop)
            sig = inspect.signature(testfunction)
            call_kwargs = {name: pyfuncitem.funcargs[name] for name in sig.parameters}
            loop.run_until_complete(testfunction(**call_kwargs))
        finally:
            asyncio.set_event_loop(None)
            loop.close()
        return True
    return None


class FakeClock:
    """Controllable clock returning aware UTC datetimes."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def clock():
    return FakeClock(datetime(2024, 3, 15, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def kv_store():
    return MemoryKeyValueStore()


@pytest.fixture
def token_store(kv_store, clock):
    return TokenStore(kv_store, clock=clock)


@pytest.fixture
def google_connection(clock):
    """A Google connection whose access token is valid for another hour."""
    return OAuthConnection(
        provider=OAuthProvider.GOOGLE,
        tokens=OAuthTokens(
            access_token="access-1",
            refresh_token="refresh-1",
            expires_at=clock() + timedelta(hours=1),
        ),
        connected_at=clock() - timedelta(days=1),
    )
