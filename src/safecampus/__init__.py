"""
SafeCampus - Campus Safety Backend

This package provides the backend services for the SafeCampus platform:
emergency SOS alerting, live location tracking, safe walk monitoring and
notification fan-out to campus security and hostel wardens.

IMPORTANT: This is a safety-critical system. An SOS record that exists
in the document store is the source of truth; every delivery mechanism
(push, native tracking) is secondary and best-effort.
"""

__version__ = "0.1.0"
__author__ = "SafeCampus Engineering Team"
