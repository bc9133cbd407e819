from __future__ import annotations


class AuthorizationError(Exception):
    """Base error for the security package."""


class RecordNotVisibleError(AuthorizationError):
    """The record is missing or hidden from the principal; callers report both the same way."""

    def __init__(self, entity_type: str, entity_id: str) -> None:
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(f"{entity_type} not found")
