"""
Conversion of engine results to JSON-ready dicts for API responses.
Prices leave as floats; everything internal stays Decimal.
"""
from decimal import Decimal
from typing import Any, Dict

from app.entities import PriceRecord, Property
from app.services.ingestion_service import IngestResult
from app.services.price_aggregation_service import ComparisonResult


def _num(value: Decimal) -> float:
    return float(value)


def property_to_dict(prop: Property) -> Dict[str, Any]:
    return {
        "id": prop.id,
        "name": prop.name,
        "city": prop.city,
        "country": prop.country,
        "propertyType": prop.property_type,
        "ownerId": prop.owner_id,
        "owner": {
            "id": prop.owner_id,
            "email": prop.owner_email,
            "name": prop.owner_name,
        },
        "timezone": prop.timezone,
        "competitorCount": prop.competitor_count,
        "roomTypeCount": prop.room_type_count,
    }


def price_record_to_dict(record: PriceRecord) -> Dict[str, Any]:
    return {
        "id": record.id,
        "targetDate": record.target_date.isoformat(),
        "price": _num(record.price),
        "currency": record.currency,
        "available": record.available,
        "fetchedAt": record.fetched_at.isoformat() if record.fetched_at else None,
        "competitor": {"id": record.competitor_id, "name": record.competitor_name},
        "roomType": {"id": record.room_type_id, "name": record.room_type_name, "code": record.room_type_code},
        "metadata": record.metadata,
        "source": record.source,
    }


def comparison_to_dict(result: ComparisonResult) -> Dict[str, Any]:
    window = result.window
    return {
        "prices": [price_record_to_dict(r) for r in result.records],
        "stats": {
            "totalRecords": result.stats.count,
            "averagePrice": _num(result.stats.average),
            "minPrice": _num(result.stats.minimum),
            "maxPrice": _num(result.stats.maximum),
            "dateRange": {
                "from": window.from_date.isoformat(),
                "to": window.to_date.isoformat(),
                "days": window.days,
            },
        },
        "competitorStats": [
            {
                "competitorId": s.competitor_id,
                "competitor": {"id": s.competitor_id, "name": s.competitor_name},
                "totalRecords": s.count,
                "averagePrice": _num(s.average),
                "minPrice": _num(s.minimum),
                "maxPrice": _num(s.maximum),
                "trend": s.trend,
            }
            for s in result.competitor_stats
        ],
        "lastUpdates": [
            {
                "competitorId": u.competitor_id,
                "competitor": {"id": u.competitor_id, "name": u.competitor_name},
                "lastFetch": u.last_fetch.isoformat(),
            }
            for u in result.last_updates
        ],
        "chart": [
            {key: (_num(value) if isinstance(value, Decimal) else value) for key, value in row.items()}
            for row in result.chart
        ],
    }


def ingest_result_to_dict(result: IngestResult) -> Dict[str, Any]:
    return {
        "pricesReceived": result.prices_received,
        "pricesSaved": result.prices_saved,
        "duplicatesSkipped": result.duplicates_skipped,
    }
