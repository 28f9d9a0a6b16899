"""Best-effort writers for the audit trail and the scrape event log."""
import logging
from typing import Any, Dict, Optional

from app.entities import AuditEntry, ScrapeEvent, ScrapeStatus
from app.services.storage import StorageGateway

logger = logging.getLogger(__name__)


class AuditService:

    def __init__(self, storage: StorageGateway):
        self.storage = storage

    async def record(
        self,
        user_id: str,
        action: str,
        target_type: str,
        target_id: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> bool:
        """Append an audit log entry. Never raises; returns False on failure."""
        try:
            await self.storage.insert_audit_log(AuditEntry(
                user_id=user_id,
                action=action,
                target_type=target_type,
                target_id=target_id,
                metadata=metadata or {},
            ))
            return True
        except Exception as e:
            logger.warning(f"Failed to write audit log {action} for {target_type}/{target_id}: {e}")
            return False

    async def scrape_event(
        self,
        property_id: str,
        status: ScrapeStatus,
        message: str,
        competitor_id: Optional[str] = None,
        payload: Optional[Dict[str, Any]] = None,
        source: Optional[str] = None,
    ) -> Optional[str]:
        """Append a scrape event. Never raises; returns the event id or None."""
        try:
            return await self.storage.insert_scrape_event(ScrapeEvent(
                property_id=property_id,
                competitor_id=competitor_id,
                status=status,
                message=message,
                payload=payload or {},
                source=source,
            ))
        except Exception as e:
            logger.warning(f"Failed to write {status.value} scrape event for property {property_id}: {e}")
            return None
