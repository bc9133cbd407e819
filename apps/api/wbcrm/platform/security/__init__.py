from wbcrm.platform.security.access import can_access, ensure_privileged, has_share_grant
from wbcrm.platform.security.context import AuthSource, Principal, Role, normalize_role
from wbcrm.platform.security.errors import AuthorizationError, RecordNotVisibleError
from wbcrm.platform.security.identity import (
    InternalSignal,
    detect_internal_signal,
    get_principal,
    is_trusted_address,
    resolve_principal,
)
from wbcrm.platform.security.repository import OwnedRepository
from wbcrm.platform.security.visibility import (
    UNRESTRICTED,
    EntityType,
    VisibilityFilter,
    owner_only_filter,
    owner_or_shared_filter,
    shared_entity_ids,
)

__all__ = [
    "AuthSource",
    "AuthorizationError",
    "EntityType",
    "InternalSignal",
    "OwnedRepository",
    "Principal",
    "Role",
    "UNRESTRICTED",
    "RecordNotVisibleError",
    "VisibilityFilter",
    "can_access",
    "detect_internal_signal",
    "ensure_privileged",
    "get_principal",
    "has_share_grant",
    "is_trusted_address",
    "normalize_role",
    "owner_only_filter",
    "owner_or_shared_filter",
    "resolve_principal",
    "shared_entity_ids",
]
