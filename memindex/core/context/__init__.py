"""context"""

from .registry_factory import R, Registry, RegistryFactory

__all__ = [
    "R",
    "Registry",
    "RegistryFactory",
]
