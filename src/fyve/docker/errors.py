"""Exceptions raised while updating a container in place."""
from typing import List, Optional


class FyveError(Exception):
    """Base class for all fyve errors"""
    pass


class InvalidReference(FyveError):
    """Image name, tag or digest does not follow the image reference grammar"""
    pass


class AuthError(FyveError):
    """Registry credentials could not be obtained or decoded"""
    pass


class NotFound(FyveError):
    """The container to update does not exist"""
    pass


class EngineError(FyveError):
    """A container engine call failed.

    Attributes:
        state: Last replacement state reached before the failure
        rolled_back: True when the old container was restored successfully
    """

    def __init__(self, message: str, state: Optional[str] = None, rolled_back: bool = False):
        super().__init__(message)
        self.state = state
        self.rolled_back = rolled_back

    def __str__(self) -> str:
        message = super().__str__()
        if self.rolled_back:
            return f"{message} (old container restored)"
        return message


class DeadlineExceeded(EngineError):
    """The operation ran past its deadline before committing"""
    pass


class PostCommitError(EngineError):
    """The new container is live but could not be inspected afterwards"""

    def __init__(self, message: str, container_id: str, state: Optional[str] = None):
        super().__init__(message, state=state)
        self.container_id = container_id


class RollbackError(FyveError):
    """Restoring the old container failed.

    The container is left in neither the old nor the new state and needs
    operator attention.

    Attributes:
        cause: The error that triggered the rollback, if any
        failures: One message per compensation step that failed
    """

    def __init__(self, failures: List[str], cause: Optional[BaseException] = None):
        self.failures = list(failures)
        self.cause = cause
        details = "; ".join(self.failures)
        if cause is not None:
            message = f"rollback after '{cause}' failed: {details}"
        else:
            message = f"rollback failed: {details}"
        super().__init__(message)
