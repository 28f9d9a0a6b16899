"""Pytest configuration for backend tests."""
import os
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Dict, Iterable, List, Optional

import pytest

# Disable rate limiting middleware during tests
os.environ["TESTING"] = "1"

from app.entities import (  # noqa: E402
    AccessGrant,
    AccessLevel,
    AuditEntry,
    Competitor,
    DateRange,
    PriceRecord,
    Property,
    Role,
    RoomType,
    ScrapeEvent,
    User,
)
from app.services.storage import StorageGateway  # noqa: E402


def _utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class InMemoryStorage(StorageGateway):
    """Dict-backed StorageGateway with seeding helpers for tests."""

    def __init__(self):
        self.users: Dict[str, User] = {}
        self.properties: Dict[str, Property] = {}
        self.room_types: Dict[str, RoomType] = {}
        self.competitors: Dict[str, Competitor] = {}
        self.grants: Dict[tuple, AccessGrant] = {}
        self.prices: List[PriceRecord] = []
        self.scrape_events: List[ScrapeEvent] = []
        self.audit_log: List[AuditEntry] = []
        self.commits = 0
        self.fail_inserts = False
        self.fail_log_writes = False

    # Seeding

    def add_user(self, user_id: str, role: Role = Role.VIEWER, email: Optional[str] = None) -> User:
        user = User(id=user_id, email=email or f"{user_id}@example.com", role=role)
        self.users[user_id] = user
        return user

    def add_property(self, property_id: str, owner_id: str, name: Optional[str] = None, **kwargs) -> Property:
        prop = Property(id=property_id, name=name or property_id, owner_id=owner_id, **kwargs)
        self.properties[property_id] = prop
        return prop

    def add_room_type(self, room_type_id: str, property_id: str, name: Optional[str] = None, **kwargs) -> RoomType:
        room_type = RoomType(id=room_type_id, property_id=property_id, name=name or room_type_id, **kwargs)
        self.room_types[room_type_id] = room_type
        return room_type

    def add_competitor(self, competitor_id: str, property_id: str, name: Optional[str] = None, **kwargs) -> Competitor:
        competitor = Competitor(id=competitor_id, property_id=property_id, name=name or competitor_id, **kwargs)
        self.competitors[competitor_id] = competitor
        return competitor

    def add_grant(self, user_id: str, property_id: str, level: AccessLevel) -> AccessGrant:
        grant = AccessGrant(user_id=user_id, property_id=property_id, level=level)
        self.grants[(user_id, property_id)] = grant
        return grant

    def add_price(
        self,
        property_id: str,
        competitor_id: str,
        room_type_id: str,
        target_date: datetime,
        price,
        fetched_at: Optional[datetime] = None,
        source: str = "test",
    ) -> PriceRecord:
        record = PriceRecord(
            id=str(uuid.uuid4()),
            property_id=property_id,
            competitor_id=competitor_id,
            room_type_id=room_type_id,
            target_date=_utc(target_date),
            price=Decimal(str(price)),
            fetched_at=_utc(fetched_at) if fetched_at else datetime.now(timezone.utc),
            source=source,
        )
        self.prices.append(record)
        return record

    # Gateway

    def _with_counts(self, prop: Property) -> Property:
        prop.competitor_count = sum(1 for c in self.competitors.values() if c.property_id == prop.id)
        prop.room_type_count = sum(1 for rt in self.room_types.values() if rt.property_id == prop.id)
        owner = self.users.get(prop.owner_id)
        if owner is not None:
            prop.owner_email = owner.email
            prop.owner_name = owner.display_name
        return prop

    async def find_user_by_id(self, user_id):
        return self.users.get(user_id)

    async def find_property_by_id(self, property_id):
        prop = self.properties.get(property_id)
        return self._with_counts(prop) if prop else None

    async def find_room_type_by_id(self, room_type_id):
        return self.room_types.get(room_type_id)

    async def find_competitor_by_id(self, competitor_id):
        return self.competitors.get(competitor_id)

    async def find_access_grant(self, user_id, property_id):
        return self.grants.get((user_id, property_id))

    async def list_owned_properties(self, user_id):
        owned = [p for p in self.properties.values() if p.owner_id == user_id]
        return [self._with_counts(p) for p in sorted(owned, key=lambda p: p.name)]

    async def list_access_grants(self, user_id):
        return [g for g in self.grants.values() if g.user_id == user_id]

    async def list_properties_by_ids(self, property_ids: Iterable[str]):
        ids = set(property_ids)
        found = [p for p in self.properties.values() if p.id in ids]
        return [self._with_counts(p) for p in sorted(found, key=lambda p: p.name)]

    async def list_all_properties(self):
        return [self._with_counts(p) for p in sorted(self.properties.values(), key=lambda p: p.name)]

    async def list_scraping_targets(self):
        targets = []
        for prop in self.properties.values():
            competitors = [c for c in self.competitors.values() if c.property_id == prop.id and c.active]
            if not competitors:
                continue
            room_types = [rt for rt in self.room_types.values() if rt.property_id == prop.id and rt.active]
            targets.append((self._with_counts(prop), room_types, competitors))
        return targets

    async def query_price_records(self, property_id, date_range: DateRange, room_type_id=None, competitor_ids=None):
        start, end = _utc(date_range.start), _utc(date_range.end)
        rows = []
        for record in self.prices:
            if record.property_id != property_id:
                continue
            if not (start <= record.target_date < end):
                continue
            if room_type_id and record.room_type_id != room_type_id:
                continue
            if competitor_ids and record.competitor_id not in competitor_ids:
                continue
            competitor = self.competitors.get(record.competitor_id)
            room_type = self.room_types.get(record.room_type_id)
            record.competitor_name = competitor.name if competitor else None
            record.room_type_name = room_type.name if room_type else None
            record.room_type_code = room_type.code if room_type else None
            rows.append(record)
        rows.sort(key=lambda r: (r.target_date, r.competitor_name or "", r.room_type_name or ""))
        return rows

    async def insert_price_records(self, records):
        if self.fail_inserts:
            raise RuntimeError("database unavailable")
        existing = {
            (r.property_id, r.competitor_id, r.room_type_id, r.target_date, r.source)
            for r in self.prices
        }
        inserted = 0
        for record in records:
            key = (record.property_id, record.competitor_id, record.room_type_id, _utc(record.target_date), record.source)
            if key in existing:
                continue
            existing.add(key)
            record.id = record.id or str(uuid.uuid4())
            record.target_date = _utc(record.target_date)
            self.prices.append(record)
            inserted += 1
        return inserted

    async def delete_price_records(self, property_id, competitor_id=None, room_type_id=None, fetched_before=None):
        def matches(record: PriceRecord) -> bool:
            if record.property_id != property_id:
                return False
            if competitor_id and record.competitor_id != competitor_id:
                return False
            if room_type_id and record.room_type_id != room_type_id:
                return False
            if fetched_before is not None and not record.fetched_at < _utc(fetched_before):
                return False
            return True

        kept = [r for r in self.prices if not matches(r)]
        deleted = len(self.prices) - len(kept)
        self.prices = kept
        return deleted

    async def upsert_access_grant(self, grant):
        self.grants[(grant.user_id, grant.property_id)] = grant
        return grant

    async def delete_access_grant(self, user_id, property_id):
        return self.grants.pop((user_id, property_id), None) is not None

    async def insert_scrape_event(self, event):
        if self.fail_log_writes:
            raise RuntimeError("scrape_events unavailable")
        event.id = event.id or str(uuid.uuid4())
        event.received_at = event.received_at or datetime.now(timezone.utc)
        self.scrape_events.append(event)
        return event.id

    async def insert_audit_log(self, entry):
        if self.fail_log_writes:
            raise RuntimeError("audit_logs unavailable")
        entry.timestamp = entry.timestamp or datetime.now(timezone.utc)
        self.audit_log.append(entry)

    async def count_overview(self, since):
        since = _utc(since)
        return {
            "properties": len(self.properties),
            "competitors": len(self.competitors),
            "active_competitors": sum(1 for c in self.competitors.values() if c.active),
            "active_room_types": sum(1 for rt in self.room_types.values() if rt.active),
            "recent_price_records": sum(1 for r in self.prices if r.fetched_at >= since),
            "recent_scrape_events": sum(1 for e in self.scrape_events if e.received_at >= since),
            "users": len(self.users),
        }

    async def commit(self):
        self.commits += 1


@pytest.fixture(scope="session")
def anyio_backend():
    """Specify the async backend for pytest-asyncio."""
    return "asyncio"


@pytest.fixture
def storage():
    return InMemoryStorage()


@pytest.fixture
def hotel(storage):
    """An owner with one property, two competitors and one room type."""
    storage.add_user("owner-1", Role.OWNER)
    prop = storage.add_property("prop-1", owner_id="owner-1", name="Hotel Aurora", timezone="Europe/Rome")
    storage.add_room_type("rt-1", "prop-1", name="Double", code="DBL")
    storage.add_competitor("comp-a", "prop-1", name="Alpha Inn")
    storage.add_competitor("comp-b", "prop-1", name="Beta Suites")
    return prop


@pytest.fixture
def login(storage):
    """Route requests through `storage` and authenticate as the given user id."""
    from app.auth import UserContext, get_current_user
    from app.dependencies import get_storage
    from app.main import app

    app.dependency_overrides[get_storage] = lambda: storage

    def _login(user_id: str):
        app.dependency_overrides[get_current_user] = lambda: UserContext(user_id=user_id, email=f"{user_id}@example.com")

    try:
        yield _login
    finally:
        app.dependency_overrides.pop(get_current_user, None)
        app.dependency_overrides.pop(get_storage, None)
