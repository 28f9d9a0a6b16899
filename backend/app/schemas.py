from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from app.config import PRICE_DECIMAL_PLACES, PRICE_MAX_DIGITS
from app.entities import AccessLevel, ScrapeStatus


class CamelModel(BaseModel):
    """Request bodies use camelCase keys on the wire."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class WebhookPrice(CamelModel):
    """One scraped price inside a webhook batch"""
    target_date: datetime = Field(..., description="Stay date being priced (ISO 8601)")
    price: Decimal = Field(
        ...,
        ge=0,
        max_digits=PRICE_MAX_DIGITS,
        decimal_places=PRICE_DECIMAL_PLACES,
        description="Price for the stay date, at most 2 decimal places",
    )
    currency: str = Field("EUR", min_length=3, max_length=3)
    available: bool = True


class WebhookPriceBatch(CamelModel):
    """Request model for the price ingestion webhook"""
    property_id: str = Field(..., min_length=1)
    competitor_id: str = Field(..., min_length=1)
    room_type_id: str = Field(..., min_length=1)
    prices: List[WebhookPrice]
    source: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        json_schema_extra={
            "example": {
                "propertyId": "prop-001",
                "competitorId": "comp-001",
                "roomTypeId": "rt-001",
                "prices": [
                    {"targetDate": "2024-06-01T00:00:00Z", "price": 120.50, "currency": "EUR", "available": True}
                ],
                "source": "n8n-webhook",
                "metadata": {"workflowId": "wf-1"}
            }
        },
    )


class RunErrorItem(CamelModel):
    property_id: Optional[str] = None
    competitor_id: Optional[str] = None
    error: str
    timestamp: datetime


class ExecutionLogRequest(CamelModel):
    """Request model for a workflow run report"""
    workflow_id: str = Field(..., min_length=1)
    workflow_name: str = Field(..., min_length=1)
    execution_id: str = Field(..., min_length=1)
    status: ScrapeStatus
    start_time: datetime
    end_time: datetime
    duration: float = Field(..., ge=0)

    properties_processed: int = Field(0, ge=0)
    competitors_processed: int = Field(0, ge=0)
    prices_scraped: int = Field(0, ge=0)
    prices_saved: int = Field(0, ge=0)
    errors_count: int = Field(0, ge=0)
    alerts_triggered: int = Field(0, ge=0)

    processed_properties: Optional[List[str]] = None
    errors: Optional[List[RunErrorItem]] = None
    metadata: Optional[Dict[str, Any]] = None
    source: str = "n8n-workflow"


class AccessGrantRequest(CamelModel):
    """Request model for granting a user access to a property"""
    user_id: str = Field(..., min_length=1)
    level: AccessLevel = AccessLevel.VIEWER


class HealthResponse(BaseModel):
    """Response model for health check endpoint"""
    status: str
    timestamp: str
    authenticated: bool
    database: Optional[Dict[str, Any]] = None
    statistics: Optional[Dict[str, int]] = None
