"""
SafeCampus services layer.

Business operations over the infrastructure ports. Import concrete
services from their subpackages; ``create_container`` wires them all.
"""

from safecampus.services.container import ServiceContainer, create_container

__all__ = ["ServiceContainer", "create_container"]
