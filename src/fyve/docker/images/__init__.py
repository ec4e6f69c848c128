from fyve.docker.images.reference import ImageReference
from fyve.docker.images.registry import RegistryAuthenticator

__all__ = ["ImageReference", "RegistryAuthenticator"]
