"""Bulk deletion of stored price history."""
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from app.entities import Role, User
from app.errors import Forbidden, NotFound, ValidationError
from app.services.audit_service import AuditService
from app.services.authorization_service import require_role
from app.services.storage import StorageGateway

logger = logging.getLogger(__name__)


class PriceHistoryService:

    def __init__(self, storage: StorageGateway):
        self.storage = storage
        self.audit = AuditService(storage)

    async def delete_history(
        self,
        principal: User,
        property_id: str,
        competitor_id: Optional[str] = None,
        room_type_id: Optional[str] = None,
        older_than_days: int = 0,
        now: Optional[datetime] = None,
    ) -> int:
        """
        Delete a property's price records, optionally narrowed by
        competitor, room type and age (fetched more than N days ago).

        Only ADMIN and SUPER_ADMIN may delete. Writes one
        PRICE_HISTORY_DELETE audit entry with the deleted count.

        Returns:
            Number of records removed
        """
        if not require_role(principal, Role.ADMIN):
            raise Forbidden()
        if older_than_days is None or older_than_days < 0:
            raise ValidationError(
                "Invalid request",
                errors={"olderThanDays": "olderThanDays must be zero or positive"},
            )
        if await self.storage.find_property_by_id(property_id) is None:
            raise NotFound("Property not found")

        fetched_before = None
        if older_than_days > 0:
            fetched_before = (now or datetime.now(timezone.utc)) - timedelta(days=older_than_days)

        deleted = await self.storage.delete_price_records(
            property_id,
            competitor_id=competitor_id or None,
            room_type_id=room_type_id or None,
            fetched_before=fetched_before,
        )
        logger.info(f"User {principal.id} deleted {deleted} price records for property {property_id}")

        await self.audit.record(
            user_id=principal.id,
            action="PRICE_HISTORY_DELETE",
            target_type="PriceHistory",
            target_id=property_id,
            metadata={
                "deletedCount": deleted,
                "filters": {
                    "competitorId": competitor_id,
                    "roomTypeId": room_type_id,
                    "olderThanDays": older_than_days,
                    "fetchedBefore": fetched_before.isoformat() if fetched_before else None,
                },
            },
        )
        return deleted
