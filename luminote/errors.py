from __future__ import annotations


class StoreError(Exception):
    """Base class for failures reported by an entry or user backend."""


class NetworkFailure(StoreError):
    pass


class NotFound(StoreError):
    def __init__(self, entity: str, entity_id: str):
        super().__init__(f"{entity} not found: {entity_id}")
        self.entity = entity
        self.entity_id = entity_id


class ValidationError(StoreError):
    pass
