"""
Ingestion of price batches and run reports pushed by the scraping workflow.

The caller has already checked the workflow's API key. Each batch is
summarised only from its own records, so concurrent batches for the
same property/competitor need no coordination.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional

from app.config import DEFAULT_INGEST_SOURCE, PRICE_DECIMAL_PLACES, PRICE_MAX_DIGITS
from app.entities import Competitor, PriceRecord, Property, RoomType, ScrapeStatus
from app.errors import InternalError, ReferenceNotFound, ValidationError
from app.services.audit_service import AuditService
from app.services.storage import StorageGateway

logger = logging.getLogger(__name__)

# Property id used for workflow-level events that name no property
SYSTEM_PROPERTY_ID = "system"


def _price_problem(price: Decimal) -> Optional[str]:
    """Why a price cannot be stored as Numeric(12, 2), or None if it can."""
    if not price.is_finite():
        return "Price must be a finite number"
    if price < 0:
        return "Price must be non-negative"
    if price.normalize().as_tuple().exponent < -PRICE_DECIMAL_PLACES:
        return f"Price must have at most {PRICE_DECIMAL_PLACES} decimal places"
    if price >= Decimal(10) ** (PRICE_MAX_DIGITS - PRICE_DECIMAL_PLACES):
        return f"Price must have at most {PRICE_MAX_DIGITS - PRICE_DECIMAL_PLACES} integer digits"
    return None


@dataclass
class IncomingPrice:
    """One price observation as sent by the workflow engine."""
    target_date: datetime
    price: Decimal
    currency: str = "EUR"
    available: bool = True


@dataclass
class IngestResult:
    prices_received: int
    prices_saved: int
    duplicates_skipped: int
    property: Property
    competitor: Competitor
    room_type: RoomType


@dataclass
class RunError:
    error: str
    timestamp: datetime
    property_id: Optional[str] = None
    competitor_id: Optional[str] = None


@dataclass
class ExecutionLog:
    """Summary of one workflow run."""
    workflow_id: str
    workflow_name: str
    execution_id: str
    status: ScrapeStatus
    start_time: datetime
    end_time: datetime
    duration: float
    properties_processed: int = 0
    competitors_processed: int = 0
    prices_scraped: int = 0
    prices_saved: int = 0
    errors_count: int = 0
    alerts_triggered: int = 0
    processed_properties: List[str] = field(default_factory=list)
    errors: List[RunError] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)
    source: str = "n8n-workflow"


@dataclass
class ExecutionLogResult:
    log_id: Optional[str]
    statistics: Dict[str, Any]


def success_rate(prices_scraped: int, prices_saved: int) -> float:
    """Saved / scraped as a percentage rounded to 2 decimals; 0 when nothing was scraped."""
    if prices_scraped <= 0:
        return 0.0
    return round(prices_saved / prices_scraped * 100, 2)


class IngestionService:

    def __init__(self, storage: StorageGateway):
        self.storage = storage
        self.audit = AuditService(storage)

    async def _resolve_references(self, property_id: str, competitor_id: str, room_type_id: str):
        prop = await self.storage.find_property_by_id(property_id)
        competitor = await self.storage.find_competitor_by_id(competitor_id)
        room_type = await self.storage.find_room_type_by_id(room_type_id)

        found = {
            "propertyFound": prop is not None,
            "competitorFound": competitor is not None and competitor.property_id == property_id,
            "roomTypeFound": room_type is not None and room_type.property_id == property_id,
        }
        if not all(found.values()):
            logger.warning(
                f"Rejecting price batch: property={property_id} competitor={competitor_id} "
                f"room_type={room_type_id} found={found}"
            )
            raise ReferenceNotFound(errors=found)
        return prop, competitor, room_type

    @staticmethod
    def _default_payload(
        property_id: str,
        competitor_id: str,
        room_type_id: str,
        prices: List[IncomingPrice],
        source: str,
        metadata: Dict[str, Any],
    ) -> Dict[str, Any]:
        return {
            "propertyId": property_id,
            "competitorId": competitor_id,
            "roomTypeId": room_type_id,
            "prices": [
                {
                    "targetDate": p.target_date.isoformat(),
                    "price": str(p.price),
                    "currency": p.currency,
                    "available": p.available,
                }
                for p in prices
            ],
            "source": source,
            "metadata": metadata,
        }

    async def ingest_price_batch(
        self,
        property_id: str,
        competitor_id: str,
        room_type_id: str,
        prices: List[IncomingPrice],
        source: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
        payload: Optional[Dict[str, Any]] = None,
    ) -> IngestResult:
        """
        Validate references and persist a batch of prices.

        Duplicates of an already stored (property, competitor, room type,
        target date, source) are skipped and counted, not errors.

        Raises:
            ValidationError: a price is negative or does not fit 2 decimal places.
            ReferenceNotFound: property, competitor or room type missing,
                or not belonging to the property. Nothing is written.
            InternalError: persistence failed. An ERROR scrape event
                carrying the payload is logged first.
        """
        source = source or DEFAULT_INGEST_SOURCE
        metadata = metadata or {}

        problems = {}
        for i, p in enumerate(prices):
            problem = _price_problem(p.price)
            if problem:
                problems[f"prices.{i}.price"] = problem
        if problems:
            raise ValidationError("Invalid webhook data", errors=problems)

        prop, competitor, room_type = await self._resolve_references(property_id, competitor_id, room_type_id)

        if payload is None:
            payload = self._default_payload(property_id, competitor_id, room_type_id, prices, source, metadata)

        fetched_at = datetime.now(timezone.utc)
        records = [
            PriceRecord(
                property_id=property_id,
                competitor_id=competitor_id,
                room_type_id=room_type_id,
                target_date=p.target_date,
                price=p.price,
                currency=p.currency,
                available=p.available,
                fetched_at=fetched_at,
                source=source,
                metadata=metadata,
            )
            for p in prices
        ]

        try:
            saved = await self.storage.insert_price_records(records)
        except Exception as e:
            logger.exception(f"Failed to save price batch for property {property_id}: {e}")
            await self.audit.scrape_event(
                property_id=property_id,
                competitor_id=competitor_id,
                status=ScrapeStatus.ERROR,
                message=str(e) or type(e).__name__,
                payload=payload,
                source=source,
            )
            try:
                await self.storage.commit()
            except Exception as commit_error:
                logger.warning(f"Failed to persist error event for property {property_id}: {commit_error}")
            raise InternalError() from e

        received = len(records)
        skipped = received - saved
        logger.info(
            f"Saved {saved}/{received} prices for property {property_id}, "
            f"competitor {competitor_id} ({skipped} duplicates skipped)"
        )

        await self.audit.scrape_event(
            property_id=property_id,
            competitor_id=competitor_id,
            status=ScrapeStatus.SUCCESS,
            message=f"Saved {saved} prices via webhook ({skipped} duplicates skipped)",
            payload=payload,
            source=source,
        )

        return IngestResult(
            prices_received=received,
            prices_saved=saved,
            duplicates_skipped=skipped,
            property=prop,
            competitor=competitor,
            room_type=room_type,
        )

    async def record_execution_log(self, log: ExecutionLog) -> ExecutionLogResult:
        """
        Store a workflow run summary, plus one ERROR event per reported
        error that names a property.
        """
        statistics = {
            "propertiesProcessed": log.properties_processed,
            "competitorsProcessed": log.competitors_processed,
            "pricesScraped": log.prices_scraped,
            "pricesSaved": log.prices_saved,
            "errorsCount": log.errors_count,
            "alertsTriggered": log.alerts_triggered,
        }
        payload = {
            "workflowId": log.workflow_id,
            "workflowName": log.workflow_name,
            "executionId": log.execution_id,
            "startTime": log.start_time.isoformat(),
            "endTime": log.end_time.isoformat(),
            "duration": log.duration,
            "statistics": statistics,
            "processedProperties": log.processed_properties,
            "errors": [
                {
                    "propertyId": err.property_id,
                    "competitorId": err.competitor_id,
                    "error": err.error,
                    "timestamp": err.timestamp.isoformat(),
                }
                for err in log.errors
            ],
            "metadata": log.metadata,
        }

        property_id = log.processed_properties[0] if log.processed_properties else SYSTEM_PROPERTY_ID
        log_id = await self.audit.scrape_event(
            property_id=property_id,
            status=log.status,
            message=f"Workflow {log.workflow_name} completed with status: {log.status.value}",
            payload=payload,
            source=f"{log.source}-{log.workflow_id}",
        )

        for err in log.errors:
            if not err.property_id:
                continue
            await self.audit.scrape_event(
                property_id=err.property_id,
                competitor_id=err.competitor_id,
                status=ScrapeStatus.ERROR,
                message=err.error,
                payload={
                    "executionId": log.execution_id,
                    "workflowId": log.workflow_id,
                    "timestamp": err.timestamp.isoformat(),
                },
                source=f"{log.source}-error",
            )

        logger.info(
            f"Workflow {log.workflow_name} ({log.execution_id}) finished {log.status.value}: "
            f"{log.prices_saved}/{log.prices_scraped} prices saved, {log.errors_count} errors"
        )

        return ExecutionLogResult(
            log_id=log_id,
            statistics={**statistics, "successRate": success_rate(log.prices_scraped, log.prices_saved)},
        )
