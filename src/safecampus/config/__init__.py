"""
SafeCampus Configuration Module

Provides centralized configuration management with:
- Environment-based settings loading
- Backend selection for stores and push delivery
- Secure handling of secrets
"""

from safecampus.config.settings import Settings, get_settings

__all__ = ["Settings", "get_settings"]
