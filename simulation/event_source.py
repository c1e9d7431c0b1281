"""Event source interface and registry.

Every event source produces ``Observation`` batches tick by tick so the
runner can drive them interchangeably. Concrete sources register under a
mode name; the mode is chosen once at run start.

Usage::

    from simulation.event_source import create_event_source

    source = create_event_source("synthetic", config)
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Type

from models.config import SimulationConfig
from models.observation import Observation
from simulation.clock import Tick


class EventSource(ABC):
    """Common interface for observation producers.

    Lifecycle:
        1. ``__init__``: receive the run config.
        2. ``next``: called once per tick, in strictly increasing tick
           order. Returns a fully materialized list sorted by token id.
    """

    def __init__(self, config: SimulationConfig) -> None:
        self.config = config
        self._last_tick: int | None = None

    @abstractmethod
    def _observe(self, tick: Tick) -> list[Observation]:
        """Produce the observations for *tick*."""

    def next(self, tick: Tick) -> list[Observation]:
        """Return the observations for *tick*, ordered by ascending token id.

        Raises ``ValueError`` if *tick* does not come after the previous one.
        """
        if self._last_tick is not None and tick.index <= self._last_tick:
            raise ValueError(
                f"Ticks must be strictly increasing: got {tick.index} after {self._last_tick}."
            )
        self._last_tick = tick.index
        return sorted(self._observe(tick), key=lambda obs: obs.token_id)

    def fetch(self, tick: Tick) -> list[Observation]:
        """Alias for ``next``."""
        return self.next(tick)


# ---------------------------------------------------------------------------
# Registry mapping
# ---------------------------------------------------------------------------
_REGISTRY: dict[str, Type[EventSource]] = {}


def register(name: str):
    """Decorator to register an ``EventSource`` subclass under *name*."""

    def _decorator(cls: Type[EventSource]) -> Type[EventSource]:
        if name in _REGISTRY:
            raise ValueError(f"Event source '{name}' is already registered.")
        _REGISTRY[name] = cls
        return cls

    return _decorator


def available_modes() -> list[str]:
    _ensure_builtins_loaded()
    return sorted(_REGISTRY)


def create_event_source(mode: str, config: SimulationConfig, **kwargs: Any) -> EventSource:
    """Instantiate the event source registered as *mode*.

    Extra keyword arguments go to the source constructor (e.g. ``fetcher``
    for the external source).

    Raises ``KeyError`` if *mode* is not registered.
    """
    _ensure_builtins_loaded()

    if mode not in _REGISTRY:
        available = ", ".join(sorted(_REGISTRY)) or "(none)"
        raise KeyError(f"Unknown event source '{mode}'. Available: {available}.")
    return _REGISTRY[mode](config, **kwargs)


def _ensure_builtins_loaded() -> None:
    """Import built-in source modules so their ``@register`` calls execute."""
    import simulation.external_source  # noqa: F401
    import simulation.synthetic_source  # noqa: F401
