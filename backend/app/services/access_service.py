"""Management of explicit per-property access grants."""
import logging

from app.entities import AccessGrant, AccessLevel, User
from app.errors import Forbidden, NotFound, ValidationError
from app.services.audit_service import AuditService
from app.services.authorization_service import can_manage, can_view
from app.services.storage import StorageGateway

logger = logging.getLogger(__name__)


class AccessService:

    def __init__(self, storage: StorageGateway):
        self.storage = storage
        self.audit = AuditService(storage)

    async def _require_manage(self, principal: User, property_id: str) -> None:
        """404 when the property is not visible to the principal, 403 when visible but not manageable."""
        prop = await self.storage.find_property_by_id(property_id)
        grant = await self.storage.find_access_grant(principal.id, property_id) if prop else None
        if not can_view(principal, prop, grant):
            raise NotFound("Property not found")
        if not can_manage(principal, prop, grant):
            raise Forbidden()

    async def grant(self, principal: User, property_id: str, user_id: str, level: AccessLevel) -> AccessGrant:
        """Create or replace the user's grant on the property."""
        await self._require_manage(principal, property_id)
        if await self.storage.find_user_by_id(user_id) is None:
            raise ValidationError("Invalid request", errors={"userId": "User not found"})

        grant = await self.storage.upsert_access_grant(AccessGrant(
            user_id=user_id,
            property_id=property_id,
            level=level,
            granted_by=principal.id,
        ))
        await self.audit.record(
            user_id=principal.id,
            action="PROPERTY_ACCESS_GRANT",
            target_type="Property",
            target_id=property_id,
            metadata={"userId": user_id, "level": level.value},
        )
        return grant

    async def revoke(self, principal: User, property_id: str, user_id: str) -> None:
        await self._require_manage(principal, property_id)
        if not await self.storage.delete_access_grant(user_id, property_id):
            raise NotFound("Access grant not found")
        await self.audit.record(
            user_id=principal.id,
            action="PROPERTY_ACCESS_REVOKE",
            target_type="Property",
            target_id=property_id,
            metadata={"userId": user_id},
        )
