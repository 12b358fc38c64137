"""SafeCampus HTTP API package."""
