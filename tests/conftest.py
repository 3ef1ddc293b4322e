"""Shared fixtures for the mail-dispatch test suite."""

import pytest

from mail_dispatch.audit import NullAuditSink
from mail_dispatch.core.config import Settings
from mail_dispatch.engine import DispatchEngine
from tests.support import ScriptedProvider, SleepRecorder


@pytest.fixture
def fast_settings() -> Settings:
    """Settings tuned for quick tests: short ticks, no audit file."""
    return Settings(
        QUEUE_TICK_SECONDS=0.01,
        DISPATCH_BACKOFF_BASE_SECONDS=0.001,
        PROVIDER_TIMEOUT_SECONDS=None,
        AUDIT_LOG_PATH="",
    )


@pytest.fixture
def sleep_recorder() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def healthy_provider() -> ScriptedProvider:
    return ScriptedProvider("ProviderA")


@pytest.fixture
def engine(fast_settings, healthy_provider, sleep_recorder) -> DispatchEngine:
    """Engine with one always-succeeding provider; drain loop not started."""
    return DispatchEngine(
        fast_settings,
        providers=[healthy_provider, ScriptedProvider("ProviderB")],
        audit_sink=NullAuditSink(),
        sleep=sleep_recorder,
    )
