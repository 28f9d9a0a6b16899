"""
Price comparison and price history endpoints for a property.
"""
import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query

from app.auth import get_current_principal
from app.dependencies import StorageDep
from app.entities import User
from app.errors import AppError, InternalError, NotFound
from app.serializers import comparison_to_dict
from app.services.authorization_service import AuthorizationService
from app.services.price_aggregation_service import ComparisonFilters, PriceAggregationService
from app.services.price_history_service import PriceHistoryService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/properties", tags=["Prices"])


@router.get("/{property_id}/prices")
async def get_property_prices(
    property_id: str,
    storage: StorageDep,
    days: int = Query(7, description="Look-back window in days (1-90), ignored when dates are given"),
    room_type_id: Optional[str] = Query(None, alias="roomTypeId", description="Room type id or 'all'"),
    competitor_ids: Optional[str] = Query(None, alias="competitorIds", description="Comma-separated competitor ids"),
    start_date: Optional[str] = Query(None, alias="startDate"),
    end_date: Optional[str] = Query(None, alias="endDate"),
    principal: User = Depends(get_current_principal),
) -> Dict[str, Any]:
    """
    Compare competitor prices for a property over a window of stay dates.

    Returns:
        Dict with prices, global stats, per-competitor stats (with trend),
        last update per competitor, and chart rows

    Raises:
        404 if the property does not exist or is not visible to the caller
        400 for an invalid window
    """
    authz = AuthorizationService(storage)
    if not await authz.can_view(principal.id, property_id):
        raise NotFound("Property not found or access denied")

    filters = ComparisonFilters(
        start_date=start_date,
        end_date=end_date,
        last_n_days=days,
        room_type_id=room_type_id,
        competitor_ids=[cid.strip() for cid in competitor_ids.split(",")] if competitor_ids else None,
    )

    try:
        result = await PriceAggregationService(storage).compute_comparison(property_id, filters)
    except AppError:
        raise
    except Exception as e:
        logger.exception(f"Error computing price comparison for property {property_id}: {e}")
        raise InternalError()

    return comparison_to_dict(result)


@router.delete("/{property_id}/prices")
async def delete_property_prices(
    property_id: str,
    storage: StorageDep,
    competitor_id: Optional[str] = Query(None, alias="competitorId"),
    room_type_id: Optional[str] = Query(None, alias="roomTypeId"),
    older_than_days: int = Query(0, alias="olderThanDays", description="Only delete prices fetched more than N days ago"),
    principal: User = Depends(get_current_principal),
) -> Dict[str, Any]:
    """Delete stored price history. ADMIN and SUPER_ADMIN only."""
    try:
        deleted = await PriceHistoryService(storage).delete_history(
            principal,
            property_id,
            competitor_id=competitor_id,
            room_type_id=room_type_id,
            older_than_days=older_than_days,
        )
    except AppError:
        raise
    except Exception as e:
        logger.exception(f"Error deleting price history for property {property_id}: {e}")
        raise InternalError()

    return {
        "message": "Price history deleted",
        "deletedCount": deleted,
    }
