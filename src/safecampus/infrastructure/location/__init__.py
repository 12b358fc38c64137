"""Realtime location store port and adapters."""

from safecampus.infrastructure.location.memory_store import InMemoryLocationStore
from safecampus.infrastructure.location.store import LocationStore, LocationSubscription

__all__ = ["LocationStore", "LocationSubscription", "InMemoryLocationStore"]
