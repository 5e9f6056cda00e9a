class ClubGateError(Exception):
    """Base class for errors raised by the authorization engine."""


class Unauthenticated(ClubGateError):
    """No valid principal accompanies the request."""


class NotFoundError(ClubGateError):
    def __init__(self, entity_type: str, entity_id):
        super().__init__(f"{entity_type} {entity_id} not found")
        self.entity_type = entity_type
        self.entity_id = entity_id


class StorageConflict(ClubGateError):
    """A compare-and-swap update lost the race against a concurrent writer."""

    def __init__(self, entity_type: str, entity_id, expected: str):
        super().__init__(
            f"{entity_type} {entity_id} is no longer in state {expected!r}"
        )
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.expected = expected


class DuplicateEntityError(ClubGateError):
    """An insert violated a uniqueness constraint."""
