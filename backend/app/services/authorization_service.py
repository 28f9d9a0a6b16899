"""Role hierarchy and property-scoped authorization.

All privilege comparisons go through ROLE_RANK. The decision functions
are pure: they take explicit user, property and grant snapshots and
return a bool. AuthorizationService only fetches those snapshots from
the storage gateway and feeds them in.

Resolution order for property access:
    1. SUPER_ADMIN role short-circuits to True
    2. ownership always grants full access
    3. an explicit AccessGrant is compared against the required level

A missing property or user is a denial, never an error, so callers
cannot tell "absent" from "forbidden".
"""
import logging
from typing import Dict, List, Optional, Union

from app.entities import AccessGrant, AccessLevel, Property, Role, User
from app.services.storage import StorageGateway

logger = logging.getLogger(__name__)

# Single authoritative ordering. Access levels share the names and
# ranks of the first three roles.
ROLE_RANK: Dict[str, int] = {
    "VIEWER": 1,
    "OWNER": 2,
    "ADMIN": 3,
    "SUPER_ADMIN": 4,
}

RoleLike = Union[Role, AccessLevel, str]


def rank_of(role: RoleLike) -> int:
    """Rank of a role or access level; unknown values rank 0."""
    key = role.value if isinstance(role, (Role, AccessLevel)) else str(role)
    return ROLE_RANK.get(key, 0)


def require_role(principal: Optional[User], minimum_role: RoleLike) -> bool:
    """True iff the principal's role ranks at least as high as `minimum_role`."""
    if principal is None:
        return False
    return rank_of(principal.role) >= rank_of(minimum_role)


def is_super_admin(principal: Optional[User]) -> bool:
    return principal is not None and principal.role == Role.SUPER_ADMIN


def is_admin(principal: Optional[User]) -> bool:
    return require_role(principal, Role.ADMIN)


def is_owner(principal: Optional[User]) -> bool:
    return require_role(principal, Role.OWNER)


def has_property_access(
    user: Optional[User],
    prop: Optional[Property],
    grant: Optional[AccessGrant],
    required_level: AccessLevel = AccessLevel.VIEWER,
) -> bool:
    """Decide access from snapshots. See module docstring for the order."""
    if user is None or prop is None:
        return False
    if user.role == Role.SUPER_ADMIN:
        return True
    if prop.owner_id == user.id:
        return True
    if grant is None or grant.user_id != user.id or grant.property_id != prop.id:
        return False
    return rank_of(grant.level) >= rank_of(required_level)


def can_view(user: Optional[User], prop: Optional[Property], grant: Optional[AccessGrant]) -> bool:
    return has_property_access(user, prop, grant, AccessLevel.VIEWER)


def can_manage(user: Optional[User], prop: Optional[Property], grant: Optional[AccessGrant]) -> bool:
    return has_property_access(user, prop, grant, AccessLevel.ADMIN)


class AuthorizationService:
    """Read-only authorization queries over a storage gateway."""

    def __init__(self, storage: StorageGateway):
        self.storage = storage

    async def _check(self, user_id: str, property_id: str, required_level: AccessLevel) -> bool:
        user = await self.storage.find_user_by_id(user_id)
        if user is None:
            return False
        if user.role == Role.SUPER_ADMIN:
            return await self.storage.find_property_by_id(property_id) is not None

        prop = await self.storage.find_property_by_id(property_id)
        if prop is None:
            return False
        grant = None
        if prop.owner_id != user.id:
            grant = await self.storage.find_access_grant(user_id, property_id)

        allowed = has_property_access(user, prop, grant, required_level)
        if not allowed:
            logger.warning(
                "Access denied: user=%s property=%s required=%s",
                user_id, property_id, required_level.value,
            )
        return allowed

    async def can_view(self, user_id: str, property_id: str) -> bool:
        return await self._check(user_id, property_id, AccessLevel.VIEWER)

    async def can_manage(self, user_id: str, property_id: str) -> bool:
        return await self._check(user_id, property_id, AccessLevel.ADMIN)

    async def list_visible_properties(self, user_id: str) -> List[Property]:
        """
        Properties the user may see, each with competitor/room type counts.

        SUPER_ADMIN sees every property; everyone else sees the
        de-duplicated union of owned and granted properties.
        """
        user = await self.storage.find_user_by_id(user_id)
        if user is None:
            return []
        if user.role == Role.SUPER_ADMIN:
            return await self.storage.list_all_properties()

        owned = await self.storage.list_owned_properties(user_id)
        owned_ids = {prop.id for prop in owned}
        granted_ids = {
            grant.property_id
            for grant in await self.storage.list_access_grants(user_id)
            if grant.property_id not in owned_ids
        }
        granted = await self.storage.list_properties_by_ids(sorted(granted_ids))

        visible = {prop.id: prop for prop in owned}
        for prop in granted:
            visible.setdefault(prop.id, prop)
        return sorted(visible.values(), key=lambda p: (p.name.lower(), p.id))
