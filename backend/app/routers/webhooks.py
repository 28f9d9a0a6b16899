"""Webhook endpoints for the external scraping workflow engine."""
import logging
from datetime import datetime, timezone
from typing import Any, Dict

from fastapi import APIRouter, Depends

from app import config
from app.auth import verify_ingest_request
from app.dependencies import StorageDep
from app.errors import AppError, InternalError
from app.schemas import ExecutionLogRequest, WebhookPriceBatch
from app.serializers import ingest_result_to_dict
from app.services.ingestion_service import (
    ExecutionLog,
    IncomingPrice,
    IngestionService,
    RunError,
)

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/webhook",
    tags=["webhooks"],
    dependencies=[Depends(verify_ingest_request)],
)


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


@router.post("/price-ingest")
async def ingest_prices(body: WebhookPriceBatch, storage: StorageDep) -> Dict[str, Any]:
    """
    Receive a batch of scraped prices for one property/competitor/room type.

    Returns:
        Dict with success flag and statistics
        {pricesReceived, pricesSaved, duplicatesSkipped}
    """
    service = IngestionService(storage)
    try:
        result = await service.ingest_price_batch(
            property_id=body.property_id,
            competitor_id=body.competitor_id,
            room_type_id=body.room_type_id,
            prices=[
                IncomingPrice(
                    target_date=p.target_date,
                    price=p.price,
                    currency=p.currency,
                    available=p.available,
                )
                for p in body.prices
            ],
            source=body.source,
            metadata=body.metadata,
            payload=body.model_dump(mode="json", by_alias=True),
        )
    except AppError:
        raise
    except Exception as e:
        logger.exception(f"Price ingest webhook error: {e}")
        raise InternalError()

    return {
        "success": True,
        "message": "Price data saved successfully",
        "statistics": ingest_result_to_dict(result),
        "property": {"id": result.property.id, "name": result.property.name},
        "competitor": {"id": result.competitor.id, "name": result.competitor.name},
        "roomType": {"id": result.room_type.id, "name": result.room_type.name},
        "timestamp": _timestamp(),
    }


@router.post("/execution-log")
async def log_execution(body: ExecutionLogRequest, storage: StorageDep) -> Dict[str, Any]:
    """Record the summary of a completed workflow run."""
    log = ExecutionLog(
        workflow_id=body.workflow_id,
        workflow_name=body.workflow_name,
        execution_id=body.execution_id,
        status=body.status,
        start_time=body.start_time,
        end_time=body.end_time,
        duration=body.duration,
        properties_processed=body.properties_processed,
        competitors_processed=body.competitors_processed,
        prices_scraped=body.prices_scraped,
        prices_saved=body.prices_saved,
        errors_count=body.errors_count,
        alerts_triggered=body.alerts_triggered,
        processed_properties=body.processed_properties or [],
        errors=[
            RunError(
                error=err.error,
                timestamp=err.timestamp,
                property_id=err.property_id,
                competitor_id=err.competitor_id,
            )
            for err in body.errors or []
        ],
        metadata=body.metadata or {},
        source=body.source,
    )
    result = await IngestionService(storage).record_execution_log(log)
    return {
        "success": True,
        "message": "Execution log saved successfully",
        "logId": result.log_id,
        "statistics": result.statistics,
        "timestamp": _timestamp(),
    }


@router.get("/active-properties")
async def list_active_properties(storage: StorageDep) -> Dict[str, Any]:
    """Properties the workflow engine should scrape, with their active room types and competitors."""
    targets = await storage.list_scraping_targets()
    properties = []
    for prop, room_types, competitors in targets:
        properties.append({
            "id": prop.id,
            "name": prop.name,
            "city": prop.city,
            "country": prop.country,
            "propertyType": prop.property_type,
            "timezone": prop.timezone or config.DEFAULT_TIMEZONE,
            "frequencyCron": prop.frequency_cron or config.DEFAULT_FREQUENCY_CRON,
            "lookaheadDays": prop.lookahead_days or config.DEFAULT_LOOKAHEAD_DAYS,
            "owner": {"id": prop.owner_id, "email": prop.owner_email, "name": prop.owner_name},
            "roomTypes": [
                {"id": rt.id, "name": rt.name, "code": rt.code, "capacity": rt.capacity}
                for rt in room_types
            ],
            "competitors": [
                {
                    "id": c.id,
                    "name": c.name,
                    "baseUrl": c.base_url,
                    "frequencyCron": c.frequency_cron,
                    "timezone": c.timezone,
                    "active": c.active,
                }
                for c in competitors
            ],
            "competitorCount": prop.competitor_count,
            "roomTypeCount": prop.room_type_count,
            "scrapingEnabled": len(competitors) > 0,
        })
    return {
        "success": True,
        "count": len(properties),
        "properties": properties,
        "timestamp": _timestamp(),
    }
