"""Delivery providers and the failover registry.

A provider is anything with a ``name`` and an ``async send(message)`` that
returns a receipt string or raises ``DeliveryError``.  The registry keeps
the providers in order plus one shared "active" index that the retry
engine rotates round-robin after every failed attempt, whichever task
the failure belonged to.

Mock providers can be declared in a YAML file::

    providers:
      - name: ProviderA
        failure_rate: 0.3
      - name: ProviderB
        failure_rate: 0.8
"""

from __future__ import annotations

import random
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

import yaml

from mail_dispatch.core.errors import DeliveryError


@runtime_checkable
class Provider(Protocol):
    """Capability: attempt delivery of one message."""

    name: str

    async def send(self, message: Any) -> str: ...


class MockProvider:
    """Provider that fails with probability *failure_rate*.

    Args:
        name:          Provider name reported on successful deliveries.
        failure_rate:  Probability in ``[0, 1]`` that a call raises.
        rng:           Optional ``random.Random`` for deterministic runs.
    """

    def __init__(self, name: str, failure_rate: float = 0.0, rng: random.Random | None = None) -> None:
        if not 0.0 <= failure_rate <= 1.0:
            raise ValueError(f"failure_rate must be within [0, 1], got {failure_rate}")
        self.name = name
        self.failure_rate = failure_rate
        self._rng = rng or random.Random()
        self.calls = 0

    async def send(self, message: Any) -> str:
        self.calls += 1
        if self._rng.random() < self.failure_rate:
            raise DeliveryError(self.name, f"{self.name} failed")
        return f"Email sent by {self.name} {_subject_of(message)}"

    def __repr__(self) -> str:
        return f"MockProvider(name={self.name!r}, failure_rate={self.failure_rate})"


def _subject_of(message: Any) -> str:
    if isinstance(message, dict):
        return str(message.get("subject", ""))
    return str(getattr(message, "subject", ""))


def default_providers() -> list[MockProvider]:
    """The two stock mock backends: one mostly healthy, one mostly failing."""
    return [
        MockProvider("ProviderA", failure_rate=0.3),
        MockProvider("ProviderB", failure_rate=0.8),
    ]


class ProviderRegistry:
    """Ordered, interchangeable providers with a rotating active pointer.

    Raises:
        ValueError: If *providers* is empty or names are duplicated.
    """

    def __init__(self, providers: list[Provider]) -> None:
        if not providers:
            raise ValueError("At least one provider is required")
        names = [p.name for p in providers]
        duplicates = {n for n in names if names.count(n) > 1}
        if duplicates:
            raise ValueError(f"Duplicate provider names: {sorted(duplicates)}")
        self._providers: list[Provider] = list(providers)
        self._active_index = 0

    # ── Loading ─────────────────────────────────────────────────────

    @classmethod
    def from_yaml(cls, config_path: str | Path) -> ProviderRegistry:
        """Build a registry of ``MockProvider``s from a YAML config file.

        Raises:
            FileNotFoundError: If the YAML file does not exist.
            ValueError: If the YAML is invalid or an entry is malformed.
        """
        path = Path(config_path)
        if not path.exists():
            raise FileNotFoundError(f"Provider config not found: {path}")

        try:
            data: Any = yaml.safe_load(path.read_text(encoding="utf-8"))
        except yaml.YAMLError as exc:
            raise ValueError(f"Invalid YAML in {path}: {exc}") from exc

        if not isinstance(data, dict) or not data.get("providers"):
            raise ValueError(f"YAML must contain a non-empty top-level 'providers' list in {path}")

        providers: list[Provider] = []
        for item in data["providers"]:
            name = item.get("name") if isinstance(item, dict) else None
            if not name:
                raise ValueError(f"Provider entry missing 'name' in {path}")
            try:
                failure_rate = float(item.get("failure_rate", 0.0))
            except (TypeError, ValueError) as exc:
                raise ValueError(f"Provider '{name}' has a non-numeric failure_rate in {path}") from exc
            providers.append(MockProvider(name, failure_rate=failure_rate))
        return cls(providers)

    # ── Failover ────────────────────────────────────────────────────

    @property
    def active(self) -> Provider:
        return self._providers[self._active_index]

    @property
    def active_index(self) -> int:
        return self._active_index

    def rotate(self) -> Provider:
        """Advance the active pointer to the next provider and return it."""
        self._active_index = (self._active_index + 1) % len(self._providers)
        return self.active

    # ── Access ──────────────────────────────────────────────────────

    def names(self) -> list[str]:
        return [p.name for p in self._providers]

    def __len__(self) -> int:
        return len(self._providers)
