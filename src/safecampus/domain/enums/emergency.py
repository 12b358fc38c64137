"""
Emergency Classification Enumerations

Emergency categories and the ways an SOS can be raised on a device.
"""

from enum import StrEnum


class EmergencyType(StrEnum):
    """
    Category of an emergency.

    The trigger path defaults to OTHER so the alert is raised
    without waiting for the user to categorise it; the category is
    refined afterwards through a detail update.
    """

    MEDICAL = "medical"
    HARASSMENT = "harassment"
    GENERAL = "general"
    OTHER = "other"


class TriggerMethod(StrEnum):
    """How the SOS was raised on the device."""

    MANUAL_GESTURE = "manual_gesture"
    """Press-and-hold or swipe gesture on the SOS control."""

    SHAKE = "shake"
    """Device shake detection."""

    VOICE = "voice"
    """Voice keyword detection."""

    BUTTON = "button"
    """Plain button press (also used by safe walk escalation)."""
