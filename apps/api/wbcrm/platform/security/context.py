from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum


class Role(StrEnum):
    ADMIN = "admin"
    SDR = "sdr"
    CLOSER = "closer"


class AuthSource(StrEnum):
    SESSION = "session"
    INTERNAL_TRUSTED = "internal_trusted"


def normalize_role(value: str | None, default: Role = Role.SDR) -> Role:
    if not value:
        return default
    try:
        return Role(str(value).strip().lower())
    except ValueError:
        return default


@dataclass(frozen=True, slots=True)
class Principal:
    """Acting identity for one request, resolved once and never mutated."""

    id: str
    role: Role
    auth_source: AuthSource = AuthSource.SESSION

    @property
    def is_internal(self) -> bool:
        return self.auth_source == AuthSource.INTERNAL_TRUSTED

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN

    @property
    def is_privileged(self) -> bool:
        """Admins and internal callers see every owner's rows."""
        return self.is_admin or self.is_internal
