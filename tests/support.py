"""Test doubles shared across the unit suite."""

from __future__ import annotations

import asyncio
import time
from typing import Any

from mail_dispatch.core.errors import DeliveryError


class ScriptedProvider:
    """Provider whose outcomes follow a script of ``"ok"`` / ``"fail"`` steps.

    Once the script runs out every call fails if *fail* is set, otherwise
    succeeds.  Calls and their monotonic timestamps are recorded.
    """

    def __init__(self, name: str, script: list[str] | None = None, *, fail: bool = False, delay: float = 0.0) -> None:
        self.name = name
        self._script = list(script or [])
        self.fail = fail
        self.delay = delay
        self.messages: list[Any] = []
        self.call_times: list[float] = []

    @property
    def calls(self) -> int:
        return len(self.messages)

    async def send(self, message: Any) -> str:
        self.messages.append(message)
        self.call_times.append(time.monotonic())
        if self.delay:
            await asyncio.sleep(self.delay)
        step = self._script.pop(0) if self._script else ("fail" if self.fail else "ok")
        if step == "fail":
            raise DeliveryError(self.name, f"{self.name} failed")
        return f"Email sent by {self.name}"


class SleepRecorder:
    """Drop-in for ``asyncio.sleep`` that records delays without waiting."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
