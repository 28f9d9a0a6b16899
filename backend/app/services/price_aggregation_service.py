"""Comparative price statistics over a property's scraped price history.

Given a property and a window of stay dates, pulls the matching price
records from storage and computes:
  - global count / average / min / max
  - per-competitor count / average / min / max and a trend percentage
  - the most recent fetch time per competitor
  - chart rows: one per stay date, competitor label -> mean price

Read-only. Authorization is the caller's job.
"""
import logging
from collections import Counter, OrderedDict
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, List, Optional, Union
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from app.config import DEFAULT_LOOKBACK_DAYS, DEFAULT_TIMEZONE, MAX_LOOKBACK_DAYS, MIN_LOOKBACK_DAYS
from app.entities import DateRange, PriceRecord
from app.errors import NotFound, ValidationError
from app.services.storage import StorageGateway

logger = logging.getLogger(__name__)

ZERO = Decimal("0")
CENT = Decimal("0.01")
TENTH = Decimal("0.1")

DateInput = Union[str, date, datetime, None]


@dataclass
class ComparisonFilters:
    """Explicit start/end dates win over last_n_days when both are given."""
    start_date: DateInput = None
    end_date: DateInput = None
    last_n_days: Optional[int] = None
    room_type_id: Optional[str] = None  # None or "all" means every room type
    competitor_ids: Optional[List[str]] = None


@dataclass
class ResolvedWindow:
    from_date: date
    to_date: date
    days: int
    date_range: DateRange


@dataclass
class PriceStats:
    count: int = 0
    average: Decimal = ZERO
    minimum: Decimal = ZERO
    maximum: Decimal = ZERO


@dataclass
class CompetitorStats:
    competitor_id: str
    competitor_name: Optional[str]
    count: int
    average: Decimal
    minimum: Decimal
    maximum: Decimal
    trend: float


@dataclass
class LastUpdate:
    competitor_id: str
    competitor_name: Optional[str]
    last_fetch: datetime


@dataclass
class ComparisonResult:
    window: ResolvedWindow
    records: List[PriceRecord] = field(default_factory=list)
    stats: PriceStats = field(default_factory=PriceStats)
    competitor_stats: List[CompetitorStats] = field(default_factory=list)
    last_updates: List[LastUpdate] = field(default_factory=list)
    chart: List[Dict[str, Any]] = field(default_factory=list)


def _zone(name: Optional[str]) -> ZoneInfo:
    try:
        return ZoneInfo(name or DEFAULT_TIMEZONE)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning(f"Unknown timezone {name!r}, falling back to {DEFAULT_TIMEZONE}")
        return ZoneInfo(DEFAULT_TIMEZONE)


def _mean(prices: List[Decimal]) -> Decimal:
    return sum(prices, ZERO) / len(prices)


def _round_price(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def _stay_date(record: PriceRecord) -> date:
    """Calendar day a record prices. Stay dates are sent as UTC midnights."""
    target = record.target_date
    if target.tzinfo is not None:
        target = target.astimezone(timezone.utc)
    return target.date()


class PriceAggregationService:
    """Computes price comparisons for a property."""

    def __init__(self, storage: StorageGateway):
        self.storage = storage

    @staticmethod
    def _parse_day(value: DateInput, field_name: str, tz: ZoneInfo) -> date:
        """Reduce a date/datetime/ISO string to a calendar day in the property's timezone."""
        if isinstance(value, datetime):
            parsed = value
        elif isinstance(value, date):
            return value
        else:
            text = str(value).strip()
            try:
                if len(text) == 10:
                    return date.fromisoformat(text)
                parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
            except ValueError:
                raise ValidationError(
                    "Invalid date range",
                    errors={field_name: f"Invalid date: {value!r}"},
                )
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=tz)
        return parsed.astimezone(tz).date()

    @staticmethod
    def resolve_window(
        filters: ComparisonFilters,
        timezone_name: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> ResolvedWindow:
        """
        Turn filters into a window of stay dates.

        Both ends are whole calendar days in the property's timezone and
        both are inclusive. The returned DateRange is the matching
        half-open UTC interval [from 00:00, to + 1 day 00:00).

        Raises:
            ValidationError: bad dates, only one bound given, from after
                to, or last_n_days outside 1..90.
        """
        tz = _zone(timezone_name)
        has_start = filters.start_date not in (None, "")
        has_end = filters.end_date not in (None, "")

        if has_start or has_end:
            if not (has_start and has_end):
                missing = "endDate" if has_start else "startDate"
                raise ValidationError(
                    "Invalid date range",
                    errors={missing: "startDate and endDate must be given together"},
                )
            from_date = PriceAggregationService._parse_day(filters.start_date, "startDate", tz)
            to_date = PriceAggregationService._parse_day(filters.end_date, "endDate", tz)
            if from_date > to_date:
                raise ValidationError(
                    "Invalid date range",
                    errors={"startDate": "startDate must not be after endDate"},
                )
            days = (to_date - from_date).days
        else:
            days = DEFAULT_LOOKBACK_DAYS if filters.last_n_days is None else filters.last_n_days
            if not isinstance(days, int) or isinstance(days, bool) or not (
                MIN_LOOKBACK_DAYS <= days <= MAX_LOOKBACK_DAYS
            ):
                raise ValidationError(
                    "Invalid date range",
                    errors={"days": f"days must be between {MIN_LOOKBACK_DAYS} and {MAX_LOOKBACK_DAYS}"},
                )
            current = now or datetime.now(timezone.utc)
            if current.tzinfo is None:
                current = current.replace(tzinfo=timezone.utc)
            to_date = current.astimezone(tz).date()
            from_date = to_date - timedelta(days=days)

        date_range = DateRange(
            start=datetime.combine(from_date, time.min, tzinfo=timezone.utc),
            end=datetime.combine(to_date + timedelta(days=1), time.min, tzinfo=timezone.utc),
        )
        return ResolvedWindow(from_date=from_date, to_date=to_date, days=days, date_range=date_range)

    @staticmethod
    def compute_stats(records: List[PriceRecord]) -> PriceStats:
        """Global statistics; all zeros for an empty set."""
        if not records:
            return PriceStats()
        prices = [record.price for record in records]
        return PriceStats(
            count=len(prices),
            average=_round_price(_mean(prices)),
            minimum=min(prices),
            maximum=max(prices),
        )

    @staticmethod
    def compute_trend(records: List[PriceRecord]) -> float:
        """
        Percentage change from the earliest third to the latest third.

        Records are ordered by stay date and each third holds
        ceil(n / 3) records. Returns 0.0 when there is nothing to compare
        or the earliest third averages to zero.
        """
        if not records:
            return 0.0
        ordered = sorted(records, key=lambda r: r.target_date)
        size = -(-len(ordered) // 3)
        first_avg = _mean([r.price for r in ordered[:size]])
        last_avg = _mean([r.price for r in ordered[-size:]])
        if first_avg == ZERO:
            return 0.0
        trend = (last_avg - first_avg) / first_avg * 100
        return float(trend.quantize(TENTH, rounding=ROUND_HALF_UP))

    @staticmethod
    def _by_competitor(records: List[PriceRecord]) -> "OrderedDict[str, List[PriceRecord]]":
        grouped: "OrderedDict[str, List[PriceRecord]]" = OrderedDict()
        for record in records:
            grouped.setdefault(record.competitor_id, []).append(record)
        return grouped

    @staticmethod
    def compute_competitor_stats(records: List[PriceRecord]) -> List[CompetitorStats]:
        """One entry per competitor present in `records`, ordered by name."""
        results = []
        for competitor_id, rows in PriceAggregationService._by_competitor(records).items():
            stats = PriceAggregationService.compute_stats(rows)
            results.append(CompetitorStats(
                competitor_id=competitor_id,
                competitor_name=rows[0].competitor_name,
                count=stats.count,
                average=stats.average,
                minimum=stats.minimum,
                maximum=stats.maximum,
                trend=PriceAggregationService.compute_trend(rows),
            ))
        results.sort(key=lambda s: ((s.competitor_name or "").lower(), s.competitor_id))
        return results

    @staticmethod
    def compute_last_updates(records: List[PriceRecord]) -> List[LastUpdate]:
        """Latest fetched_at per competitor, most recent first."""
        latest: Dict[str, PriceRecord] = {}
        for record in records:
            if record.fetched_at is None:
                continue
            current = latest.get(record.competitor_id)
            if current is None or record.fetched_at > current.fetched_at:
                latest[record.competitor_id] = record
        updates = [
            LastUpdate(
                competitor_id=record.competitor_id,
                competitor_name=record.competitor_name,
                last_fetch=record.fetched_at,
            )
            for record in latest.values()
        ]
        updates.sort(key=lambda u: u.last_fetch, reverse=True)
        return updates

    @staticmethod
    def _chart_labels(records: List[PriceRecord]) -> Dict[str, str]:
        """Column label per competitor id, unique across the whole chart."""
        names: "OrderedDict[str, str]" = OrderedDict()
        for record in records:
            names.setdefault(record.competitor_id, record.competitor_name or record.competitor_id)

        taken = Counter(names.values())
        labels = {}
        for competitor_id, name in names.items():
            if taken[name] > 1 or name == "date":
                name = f"{name} ({competitor_id})"
            labels[competitor_id] = name
        return labels

    @staticmethod
    def build_chart(records: List[PriceRecord]) -> List[Dict[str, Any]]:
        """
        Reshape records into date-ordered rows for the price chart.

        Each row is {"date": "YYYY-MM-DD", <competitor label>: mean price}.
        Several room types or re-scrapes for one competitor on one day
        collapse into their mean. The label is the competitor name, with
        the id appended when two competitors share a name or the name is
        "date".
        """
        labels = PriceAggregationService._chart_labels(records)
        by_day: Dict[date, "OrderedDict[str, List[Decimal]]"] = {}
        for record in records:
            by_day.setdefault(_stay_date(record), OrderedDict()).setdefault(
                record.competitor_id, []
            ).append(record.price)

        rows = []
        for day in sorted(by_day):
            row: Dict[str, Any] = {"date": day.isoformat()}
            for competitor_id, prices in by_day[day].items():
                row[labels[competitor_id]] = _round_price(_mean(prices))
            rows.append(row)
        return rows

    async def compute_comparison(
        self,
        property_id: str,
        filters: ComparisonFilters,
        now: Optional[datetime] = None,
    ) -> ComparisonResult:
        """
        Retrieve and aggregate the property's prices for the requested window.

        An empty window is a valid result with zeroed stats.

        Raises:
            NotFound: the property does not exist.
            ValidationError: the window could not be resolved.
        """
        prop = await self.storage.find_property_by_id(property_id)
        if prop is None:
            raise NotFound("Property not found")

        window = self.resolve_window(filters, prop.timezone, now=now)

        room_type_id = filters.room_type_id
        if room_type_id == "all":
            room_type_id = None
        competitor_ids = [cid for cid in (filters.competitor_ids or []) if cid] or None

        records = await self.storage.query_price_records(
            property_id,
            window.date_range,
            room_type_id=room_type_id,
            competitor_ids=competitor_ids,
        )
        logger.info(
            f"Aggregating {len(records)} price records for property {property_id} "
            f"({window.from_date} to {window.to_date})"
        )

        return ComparisonResult(
            window=window,
            records=records,
            stats=self.compute_stats(records),
            competitor_stats=self.compute_competitor_stats(records),
            last_updates=self.compute_last_updates(records),
            chart=self.build_chart(records),
        )
