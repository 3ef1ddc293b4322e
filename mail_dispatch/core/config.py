"""Settings: centralized configuration for the mail-dispatch service.

All settings are loaded from environment variables with the MAIL_DISPATCH_
prefix.  Durations are expressed in seconds.
"""

from __future__ import annotations

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Mail dispatch configuration.

    All fields can be overridden by environment variables prefixed with
    ``MAIL_DISPATCH_``.  For example, ``MAIL_DISPATCH_RATE_LIMIT=50`` raises
    the per-window admission limit.
    """

    # ── Service identity ────────────────────────────────────────────
    SERVICE_NAME: str = "mail-dispatch"
    SERVICE_VERSION: str = "0.1.0"
    LOG_LEVEL: str = "INFO"

    # ── Drain loop ──────────────────────────────────────────────────
    QUEUE_TICK_SECONDS: float = 0.1  # Period between drain ticks

    # ── Rate limiting ───────────────────────────────────────────────
    RATE_LIMIT: int = 10  # Tasks admitted per window
    RATE_WINDOW_SECONDS: float = 60.0

    # ── Resilience ──────────────────────────────────────────────────
    CIRCUIT_BREAKER_THRESHOLD: int = 3  # Consecutive failures before OPEN
    CIRCUIT_BREAKER_COOLDOWN_SECONDS: float = 30.0  # Quiet period before lazy reset
    DISPATCH_MAX_ATTEMPTS: int = 3
    DISPATCH_BACKOFF_BASE_SECONDS: float = 1.0  # Delay after attempt n is base * 2**n
    PROVIDER_TIMEOUT_SECONDS: float | None = 30.0  # None disables the per-call deadline

    # ── Providers ───────────────────────────────────────────────────
    PROVIDERS_CONFIG_PATH: str = "config/providers.yaml"

    # ── Audit ───────────────────────────────────────────────────────
    AUDIT_LOG_PATH: str = "logs/email.log"  # Empty string disables the file sink

    model_config = {
        "env_prefix": "MAIL_DISPATCH_",
    }
