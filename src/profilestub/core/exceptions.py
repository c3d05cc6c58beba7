"""Exceptions raised by ProfileStub."""


class ProfileStubError(Exception):
    """Base class for all ProfileStub errors."""
    pass


class StructureError(ProfileStubError):
    """Raised when a structure description cannot be normalized.

    The message is part of the contract: test suites assert on it.
    """
    pass


class NotFoundError(ProfileStubError):
    """Raised when a record operation refers to an unknown entity."""
    def __init__(self, entity: str, entity_id: int | str):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} {entity_id} does not exist.")
