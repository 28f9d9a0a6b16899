"""
Storage gateway: the data-access contract the engines depend on, and
its SQLAlchemy implementation.

Engines receive a `StorageGateway` and never touch sessions directly,
so they can be driven by any implementation in tests.
"""
import logging
import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Tuple

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.entities import (
    AccessGrant,
    AuditEntry,
    Competitor,
    DateRange,
    PriceRecord,
    Property,
    RoomType,
    ScrapeEvent,
    User,
)
from app.models import (
    AccessGrantModel,
    AuditLogModel,
    CompetitorModel,
    PriceRecordModel,
    PropertyModel,
    RoomTypeModel,
    ScrapeEventModel,
    UserModel,
)
from app.models.price_record import PRICE_RECORD_DEDUP_KEY

logger = logging.getLogger(__name__)

INSERT_CHUNK_SIZE = 500

# Property, its active room types, its active competitors
ScrapingTarget = Tuple[Property, List[RoomType], List[Competitor]]


class StorageGateway(ABC):
    """Persistence operations required by authorization, aggregation and ingestion."""

    # Lookups

    @abstractmethod
    async def find_user_by_id(self, user_id: str) -> Optional[User]: ...

    @abstractmethod
    async def find_property_by_id(self, property_id: str) -> Optional[Property]: ...

    @abstractmethod
    async def find_room_type_by_id(self, room_type_id: str) -> Optional[RoomType]: ...

    @abstractmethod
    async def find_competitor_by_id(self, competitor_id: str) -> Optional[Competitor]: ...

    @abstractmethod
    async def find_access_grant(self, user_id: str, property_id: str) -> Optional[AccessGrant]: ...

    # Property listings

    @abstractmethod
    async def list_owned_properties(self, user_id: str) -> List[Property]: ...

    @abstractmethod
    async def list_access_grants(self, user_id: str) -> List[AccessGrant]: ...

    @abstractmethod
    async def list_properties_by_ids(self, property_ids: Iterable[str]) -> List[Property]: ...

    @abstractmethod
    async def list_all_properties(self) -> List[Property]: ...

    @abstractmethod
    async def list_scraping_targets(self) -> List[ScrapingTarget]:
        """Properties with at least one active competitor."""

    # Prices

    @abstractmethod
    async def query_price_records(
        self,
        property_id: str,
        date_range: DateRange,
        room_type_id: Optional[str] = None,
        competitor_ids: Optional[List[str]] = None,
    ) -> List[PriceRecord]:
        """Records with target_date in [start, end), ordered by date, competitor and room type name."""

    @abstractmethod
    async def insert_price_records(self, records: List[PriceRecord]) -> int:
        """Insert records, skipping duplicates of the dedup key. Returns the inserted count."""

    @abstractmethod
    async def delete_price_records(
        self,
        property_id: str,
        competitor_id: Optional[str] = None,
        room_type_id: Optional[str] = None,
        fetched_before: Optional[datetime] = None,
    ) -> int: ...

    # Grants

    @abstractmethod
    async def upsert_access_grant(self, grant: AccessGrant) -> AccessGrant: ...

    @abstractmethod
    async def delete_access_grant(self, user_id: str, property_id: str) -> bool: ...

    # Append-only logs

    @abstractmethod
    async def insert_scrape_event(self, event: ScrapeEvent) -> str: ...

    @abstractmethod
    async def insert_audit_log(self, entry: AuditEntry) -> None: ...

    # Health

    @abstractmethod
    async def count_overview(self, since: datetime) -> Dict[str, int]: ...

    @abstractmethod
    async def commit(self) -> None:
        """Make everything written so far durable, even if the request later fails."""


def _to_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class SqlStorage(StorageGateway):
    """StorageGateway backed by an async SQLAlchemy session."""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _property_query(self):
        competitor_count = (
            select(func.count(CompetitorModel.id))
            .where(CompetitorModel.property_id == PropertyModel.id)
            .correlate(PropertyModel)
            .scalar_subquery()
        )
        room_type_count = (
            select(func.count(RoomTypeModel.id))
            .where(RoomTypeModel.property_id == PropertyModel.id)
            .correlate(PropertyModel)
            .scalar_subquery()
        )
        return (
            select(
                PropertyModel,
                competitor_count.label("competitor_count"),
                room_type_count.label("room_type_count"),
                UserModel.email,
                UserModel.display_name,
            )
            .outerjoin(UserModel, UserModel.id == PropertyModel.owner_id)
        )

    @staticmethod
    def _property_rows(result) -> List[Property]:
        properties = []
        for model, competitor_count, room_type_count, owner_email, owner_name in result.all():
            prop = model.to_entity(
                competitor_count=competitor_count or 0,
                room_type_count=room_type_count or 0,
            )
            prop.owner_email = owner_email
            prop.owner_name = owner_name
            properties.append(prop)
        return properties

    async def find_user_by_id(self, user_id: str) -> Optional[User]:
        model = await self.session.get(UserModel, user_id)
        return model.to_entity() if model else None

    async def find_property_by_id(self, property_id: str) -> Optional[Property]:
        stmt = self._property_query().where(PropertyModel.id == property_id)
        rows = self._property_rows(await self.session.execute(stmt))
        return rows[0] if rows else None

    async def find_room_type_by_id(self, room_type_id: str) -> Optional[RoomType]:
        model = await self.session.get(RoomTypeModel, room_type_id)
        return model.to_entity() if model else None

    async def find_competitor_by_id(self, competitor_id: str) -> Optional[Competitor]:
        model = await self.session.get(CompetitorModel, competitor_id)
        return model.to_entity() if model else None

    async def find_access_grant(self, user_id: str, property_id: str) -> Optional[AccessGrant]:
        model = await self.session.get(AccessGrantModel, (user_id, property_id))
        return model.to_entity() if model else None

    async def list_owned_properties(self, user_id: str) -> List[Property]:
        stmt = (
            self._property_query()
            .where(PropertyModel.owner_id == user_id)
            .order_by(PropertyModel.name)
        )
        return self._property_rows(await self.session.execute(stmt))

    async def list_access_grants(self, user_id: str) -> List[AccessGrant]:
        stmt = select(AccessGrantModel).where(AccessGrantModel.user_id == user_id)
        result = await self.session.execute(stmt)
        return [grant.to_entity() for grant in result.scalars()]

    async def list_properties_by_ids(self, property_ids: Iterable[str]) -> List[Property]:
        ids = list(property_ids)
        if not ids:
            return []
        stmt = (
            self._property_query()
            .where(PropertyModel.id.in_(ids))
            .order_by(PropertyModel.name)
        )
        return self._property_rows(await self.session.execute(stmt))

    async def list_all_properties(self) -> List[Property]:
        stmt = self._property_query().order_by(PropertyModel.name)
        return self._property_rows(await self.session.execute(stmt))

    async def list_scraping_targets(self) -> List[ScrapingTarget]:
        active_competitor = (
            select(CompetitorModel.id)
            .where(
                CompetitorModel.property_id == PropertyModel.id,
                CompetitorModel.active.is_(True),
            )
            .correlate(PropertyModel)
            .exists()
        )
        stmt = (
            self._property_query()
            .where(active_competitor)
            .order_by(PropertyModel.updated_at.desc())
        )
        properties = self._property_rows(await self.session.execute(stmt))
        if not properties:
            return []

        ids = [prop.id for prop in properties]
        room_types: Dict[str, List[RoomType]] = {pid: [] for pid in ids}
        competitors: Dict[str, List[Competitor]] = {pid: [] for pid in ids}

        rt_result = await self.session.execute(
            select(RoomTypeModel)
            .where(RoomTypeModel.property_id.in_(ids), RoomTypeModel.active.is_(True))
            .order_by(RoomTypeModel.name)
        )
        for model in rt_result.scalars():
            room_types[model.property_id].append(model.to_entity())

        comp_result = await self.session.execute(
            select(CompetitorModel)
            .where(CompetitorModel.property_id.in_(ids), CompetitorModel.active.is_(True))
            .order_by(CompetitorModel.name)
        )
        for model in comp_result.scalars():
            competitors[model.property_id].append(model.to_entity())

        return [(prop, room_types[prop.id], competitors[prop.id]) for prop in properties]

    async def query_price_records(
        self,
        property_id: str,
        date_range: DateRange,
        room_type_id: Optional[str] = None,
        competitor_ids: Optional[List[str]] = None,
    ) -> List[PriceRecord]:
        conditions = [
            PriceRecordModel.property_id == property_id,
            PriceRecordModel.target_date >= _to_utc(date_range.start),
            PriceRecordModel.target_date < _to_utc(date_range.end),
        ]
        if room_type_id:
            conditions.append(PriceRecordModel.room_type_id == room_type_id)
        if competitor_ids:
            conditions.append(PriceRecordModel.competitor_id.in_(competitor_ids))

        stmt = (
            select(
                PriceRecordModel,
                CompetitorModel.name,
                RoomTypeModel.name,
                RoomTypeModel.code,
            )
            .join(CompetitorModel, CompetitorModel.id == PriceRecordModel.competitor_id)
            .join(RoomTypeModel, RoomTypeModel.id == PriceRecordModel.room_type_id)
            .where(*conditions)
            .order_by(PriceRecordModel.target_date, CompetitorModel.name, RoomTypeModel.name)
        )
        result = await self.session.execute(stmt)

        records = []
        for model, competitor_name, room_type_name, room_type_code in result.all():
            record = model.to_entity()
            record.competitor_name = competitor_name
            record.room_type_name = room_type_name
            record.room_type_code = room_type_code
            records.append(record)
        return records

    def _insert_construct(self):
        if self.session.bind.dialect.name == "postgresql":
            from sqlalchemy.dialects.postgresql import insert
        else:
            from sqlalchemy.dialects.sqlite import insert
        return insert

    async def insert_price_records(self, records: List[PriceRecord]) -> int:
        if not records:
            return 0

        now = datetime.now(timezone.utc)
        rows: List[Dict[str, Any]] = [
            {
                "id": record.id or str(uuid.uuid4()),
                "property_id": record.property_id,
                "competitor_id": record.competitor_id,
                "room_type_id": record.room_type_id,
                "target_date": _to_utc(record.target_date),
                "price": record.price,
                "currency": record.currency,
                "available": record.available,
                "fetched_at": _to_utc(record.fetched_at) if record.fetched_at else now,
                "source": record.source,
                "metadata": record.metadata or {},
            }
            for record in records
        ]

        insert = self._insert_construct()
        table = PriceRecordModel.__table__
        inserted = 0
        # Savepoint: a failed batch must leave the session usable for the error event
        async with self.session.begin_nested():
            for offset in range(0, len(rows), INSERT_CHUNK_SIZE):
                chunk = rows[offset:offset + INSERT_CHUNK_SIZE]
                stmt = (
                    insert(table)
                    .values(chunk)
                    .on_conflict_do_nothing(index_elements=list(PRICE_RECORD_DEDUP_KEY))
                    .returning(table.c.id)
                )
                result = await self.session.execute(stmt)
                inserted += len(result.all())
        return inserted

    async def delete_price_records(
        self,
        property_id: str,
        competitor_id: Optional[str] = None,
        room_type_id: Optional[str] = None,
        fetched_before: Optional[datetime] = None,
    ) -> int:
        stmt = delete(PriceRecordModel).where(PriceRecordModel.property_id == property_id)
        if competitor_id:
            stmt = stmt.where(PriceRecordModel.competitor_id == competitor_id)
        if room_type_id:
            stmt = stmt.where(PriceRecordModel.room_type_id == room_type_id)
        if fetched_before is not None:
            stmt = stmt.where(PriceRecordModel.fetched_at < _to_utc(fetched_before))
        result = await self.session.execute(stmt)
        return result.rowcount or 0

    async def upsert_access_grant(self, grant: AccessGrant) -> AccessGrant:
        model = await self.session.get(AccessGrantModel, (grant.user_id, grant.property_id))
        if model is None:
            model = AccessGrantModel(user_id=grant.user_id, property_id=grant.property_id)
            self.session.add(model)
        model.level = grant.level.value
        model.granted_by = grant.granted_by
        await self.session.flush()
        return model.to_entity()

    async def delete_access_grant(self, user_id: str, property_id: str) -> bool:
        stmt = delete(AccessGrantModel).where(
            AccessGrantModel.user_id == user_id,
            AccessGrantModel.property_id == property_id,
        )
        result = await self.session.execute(stmt)
        return bool(result.rowcount)

    async def insert_scrape_event(self, event: ScrapeEvent) -> str:
        model = ScrapeEventModel(
            id=event.id or str(uuid.uuid4()),
            property_id=event.property_id,
            competitor_id=event.competitor_id,
            status=event.status.value,
            message=event.message,
            payload=event.payload,
            source=event.source,
            received_at=_to_utc(event.received_at) if event.received_at else datetime.now(timezone.utc),
        )
        async with self.session.begin_nested():
            self.session.add(model)
        return model.id

    async def insert_audit_log(self, entry: AuditEntry) -> None:
        model = AuditLogModel(
            user_id=entry.user_id,
            action=entry.action,
            target_type=entry.target_type,
            target_id=entry.target_id,
            metadata_=entry.metadata,
            created_at=_to_utc(entry.timestamp) if entry.timestamp else datetime.now(timezone.utc),
        )
        async with self.session.begin_nested():
            self.session.add(model)

    async def count_overview(self, since: datetime) -> Dict[str, int]:
        since = _to_utc(since)
        counts = {
            "properties": select(func.count(PropertyModel.id)),
            "competitors": select(func.count(CompetitorModel.id)),
            "active_competitors": select(func.count(CompetitorModel.id)).where(CompetitorModel.active.is_(True)),
            "active_room_types": select(func.count(RoomTypeModel.id)).where(RoomTypeModel.active.is_(True)),
            "recent_price_records": select(func.count(PriceRecordModel.id)).where(PriceRecordModel.fetched_at >= since),
            "recent_scrape_events": select(func.count(ScrapeEventModel.id)).where(ScrapeEventModel.received_at >= since),
            "users": select(func.count(UserModel.id)),
        }
        overview = {}
        for key, stmt in counts.items():
            overview[key] = (await self.session.execute(stmt)).scalar() or 0
        return overview

    async def commit(self) -> None:
        await self.session.commit()
