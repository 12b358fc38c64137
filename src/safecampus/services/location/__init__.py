"""Live location services package."""

from safecampus.services.location.location_service import LocationService

__all__ = ["LocationService"]
