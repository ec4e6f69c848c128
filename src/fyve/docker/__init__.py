from fyve.docker.compensation import CompensationStack
from fyve.docker.container import (
    ContainerService,
    ContainerSnapshot,
    NetworkAttachment,
    ReplacementResult,
    ReplacementState,
)

__all__ = [
    "CompensationStack",
    "ContainerService",
    "ContainerSnapshot",
    "NetworkAttachment",
    "ReplacementResult",
    "ReplacementState",
]
