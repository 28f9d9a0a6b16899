"""
SQLAlchemy ORM models for monitored properties and their room types,
competitors and per-room-type scrape configuration.
"""
import uuid

from sqlalchemy import Column, String, Integer, Boolean, DateTime, Text, ForeignKey, Index, UniqueConstraint
from sqlalchemy.sql import func

from app.database import Base
from app.entities import Competitor, Property, RoomType


def _uuid() -> str:
    return str(uuid.uuid4())


class PropertyModel(Base):
    """
    ORM model for a monitored venue (hotel, B&B, ...).

    Exactly one owner at all times; deleting a property cascades to its
    room types, competitors, price records and access grants.
    """
    __tablename__ = "properties"

    id = Column(String(50), primary_key=True, default=_uuid)
    name = Column(String(255), nullable=False)
    city = Column(String(100), nullable=True)
    country = Column(String(100), nullable=True)
    address = Column(String(500), nullable=True)
    property_type = Column(String(50), nullable=True)  # hotel, bnb, apartment

    owner_id = Column(String(50), ForeignKey("users.id"), nullable=False)

    # Scraping defaults handed to the workflow engine
    default_timezone = Column(String(64), nullable=True)
    default_frequency_cron = Column(String(100), nullable=True)
    default_lookahead_days = Column(Integer, nullable=True)

    # Branding
    branding_logo_url = Column(Text, nullable=True)
    branding_primary_color = Column(String(7), nullable=True)
    branding_accent_color = Column(String(7), nullable=True)
    theme = Column(String(10), nullable=True)  # light, dark, system

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        Index('idx_properties_owner', 'owner_id'),
    )

    def to_entity(self, competitor_count: int = 0, room_type_count: int = 0) -> Property:
        return Property(
            id=self.id,
            name=self.name,
            owner_id=self.owner_id,
            city=self.city,
            country=self.country,
            property_type=self.property_type,
            timezone=self.default_timezone,
            frequency_cron=self.default_frequency_cron,
            lookahead_days=self.default_lookahead_days,
            competitor_count=competitor_count,
            room_type_count=room_type_count,
        )

    def __repr__(self):
        return f"<Property {self.id}: {self.name}>"


class RoomTypeModel(Base):
    """ORM model for a category of room within a property."""
    __tablename__ = "room_types"

    id = Column(String(50), primary_key=True, default=_uuid)
    property_id = Column(String(50), ForeignKey("properties.id", ondelete="CASCADE"), nullable=False)
    name = Column(String(255), nullable=False)
    code = Column(String(50), nullable=True)
    capacity = Column(Integer, nullable=True)
    active = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        Index('idx_room_types_property', 'property_id'),
    )

    def to_entity(self) -> RoomType:
        return RoomType(
            id=self.id,
            property_id=self.property_id,
            name=self.name,
            code=self.code,
            capacity=self.capacity,
            active=bool(self.active),
        )

    def __repr__(self):
        return f"<RoomType {self.id}: {self.name}>"


class CompetitorModel(Base):
    """ORM model for an external venue whose prices are scraped."""
    __tablename__ = "competitors"

    id = Column(String(50), primary_key=True, default=_uuid)
    property_id = Column(String(50), ForeignKey("properties.id", ondelete="CASCADE"), nullable=False)
    name = Column(String(255), nullable=False)
    base_url = Column(Text, nullable=False)
    active = Column(Boolean, nullable=False, default=True)
    frequency_cron = Column(String(100), nullable=True)
    timezone = Column(String(64), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        Index('idx_competitors_property', 'property_id'),
        Index('idx_competitors_active', 'active'),
    )

    def to_entity(self) -> Competitor:
        return Competitor(
            id=self.id,
            property_id=self.property_id,
            name=self.name,
            base_url=self.base_url,
            active=bool(self.active),
            frequency_cron=self.frequency_cron,
            timezone=self.timezone,
        )

    def __repr__(self):
        return f"<Competitor {self.id}: {self.name}>"


class CompetitorConfigModel(Base):
    """
    Per-room-type scrape settings for a competitor. Selectors are opaque
    to this service and only forwarded to the workflow engine.
    """
    __tablename__ = "competitor_configs"

    id = Column(String(50), primary_key=True, default=_uuid)
    competitor_id = Column(String(50), ForeignKey("competitors.id", ondelete="CASCADE"), nullable=False)
    room_type_id = Column(String(50), ForeignKey("room_types.id", ondelete="CASCADE"), nullable=False)
    price_selector = Column(Text, nullable=True)
    date_selector = Column(Text, nullable=True)
    currency_selector = Column(Text, nullable=True)
    availability_selector = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)

    __table_args__ = (
        UniqueConstraint('competitor_id', 'room_type_id', name='uq_competitor_configs_competitor_room'),
    )

    def __repr__(self):
        return f"<CompetitorConfig {self.competitor_id}/{self.room_type_id}>"
