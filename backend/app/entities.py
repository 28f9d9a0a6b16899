"""
Plain data contracts shared by the storage gateway and the engines.

These are snapshots: the authorization and aggregation code only ever
sees these objects, never live ORM rows or sessions.
"""
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional


class Role(str, Enum):
    VIEWER = "VIEWER"
    OWNER = "OWNER"
    ADMIN = "ADMIN"
    SUPER_ADMIN = "SUPER_ADMIN"


class AccessLevel(str, Enum):
    VIEWER = "VIEWER"
    OWNER = "OWNER"
    ADMIN = "ADMIN"


class ScrapeStatus(str, Enum):
    SUCCESS = "SUCCESS"
    ERROR = "ERROR"
    PARTIAL = "PARTIAL"
    TIMEOUT = "TIMEOUT"


@dataclass
class User:
    id: str
    email: str
    role: Role
    display_name: Optional[str] = None


@dataclass
class Property:
    id: str
    name: str
    owner_id: str
    city: Optional[str] = None
    country: Optional[str] = None
    property_type: Optional[str] = None
    timezone: Optional[str] = None
    frequency_cron: Optional[str] = None
    lookahead_days: Optional[int] = None
    owner_email: Optional[str] = None
    owner_name: Optional[str] = None
    competitor_count: int = 0
    room_type_count: int = 0


@dataclass
class RoomType:
    id: str
    property_id: str
    name: str
    code: Optional[str] = None
    capacity: Optional[int] = None
    active: bool = True


@dataclass
class Competitor:
    id: str
    property_id: str
    name: str
    base_url: Optional[str] = None
    active: bool = True
    frequency_cron: Optional[str] = None
    timezone: Optional[str] = None


@dataclass
class AccessGrant:
    user_id: str
    property_id: str
    level: AccessLevel
    granted_by: Optional[str] = None


@dataclass
class PriceRecord:
    """One observed price for a property/competitor/room type/stay date."""
    property_id: str
    competitor_id: str
    room_type_id: str
    target_date: datetime
    price: Decimal
    currency: str = "EUR"
    available: bool = True
    fetched_at: Optional[datetime] = None
    source: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    id: Optional[str] = None
    # Display names, filled in by the gateway on reads
    competitor_name: Optional[str] = None
    room_type_name: Optional[str] = None
    room_type_code: Optional[str] = None


@dataclass
class ScrapeEvent:
    property_id: str
    status: ScrapeStatus
    message: str
    competitor_id: Optional[str] = None
    payload: Dict[str, Any] = field(default_factory=dict)
    source: Optional[str] = None
    received_at: Optional[datetime] = None
    id: Optional[str] = None


@dataclass
class AuditEntry:
    user_id: str
    action: str
    target_type: str
    target_id: str
    metadata: Dict[str, Any] = field(default_factory=dict)
    timestamp: Optional[datetime] = None


@dataclass
class DateRange:
    """Inclusive range of stay dates, expressed as UTC instants [start, end)."""
    start: datetime
    end: datetime
