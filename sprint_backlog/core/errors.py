from typing import Optional
from uuid import UUID


class BacklogServiceError(Exception):
    def __init__(self, message: str, entity_id: Optional[UUID] = None) -> None:
        super().__init__(message)
        self.message = message
        self.entity_id = entity_id


class NotFoundError(BacklogServiceError):
    """A referenced project, sprint or story does not exist."""

    def __init__(self, entity: str, entity_id: UUID) -> None:
        super().__init__(f"{entity} {entity_id} not found", entity_id)
        self.entity = entity


class InvalidRequestError(BacklogServiceError):
    pass


class InvalidStatusTransitionError(InvalidRequestError):
    def __init__(self, current: str, new: str) -> None:
        super().__init__(f"Invalid transition from {current} to {new}")


class TransientStoreFailure(BacklogServiceError):
    """The backing store could not be reached. Not retried here."""
    pass
