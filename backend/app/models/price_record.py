"""
SQLAlchemy ORM model for scraped competitor prices.
"""
import uuid
from datetime import timezone

from sqlalchemy import Column, String, Boolean, DateTime, Numeric, ForeignKey, Index, UniqueConstraint
from sqlalchemy.sql import func

from app.database import Base, JSONType
from app.entities import PriceRecord

# Columns that identify a re-scrape of the same fact
PRICE_RECORD_DEDUP_KEY = ("property_id", "competitor_id", "room_type_id", "target_date", "source")


def as_utc(value):
    """Attach UTC to naive datetimes coming back from backends without tz support."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class PriceRecordModel(Base):
    """
    ORM model for a single observed price.

    Rows are append-only: written by ingestion, removed only by bulk
    deletion. Re-scrapes of the same key are skipped on insert.
    """
    __tablename__ = "price_records"

    id = Column(String(50), primary_key=True, default=lambda: str(uuid.uuid4()))

    property_id = Column(String(50), ForeignKey("properties.id", ondelete="CASCADE"), nullable=False)
    competitor_id = Column(String(50), ForeignKey("competitors.id", ondelete="CASCADE"), nullable=False)
    room_type_id = Column(String(50), ForeignKey("room_types.id", ondelete="CASCADE"), nullable=False)

    target_date = Column(DateTime(timezone=True), nullable=False)  # Stay date being priced
    price = Column(Numeric(12, 2), nullable=False)
    currency = Column(String(3), nullable=False, default="EUR")
    available = Column(Boolean, nullable=False, default=True)

    fetched_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    source = Column(String(100), nullable=False)
    metadata_ = Column("metadata", JSONType, nullable=True)

    __table_args__ = (
        UniqueConstraint(*PRICE_RECORD_DEDUP_KEY, name='uq_price_records_dedup'),
        Index('idx_price_records_property_date', 'property_id', 'target_date'),
        Index('idx_price_records_competitor', 'competitor_id'),
        Index('idx_price_records_fetched_at', 'fetched_at'),
    )

    def to_entity(self) -> PriceRecord:
        return PriceRecord(
            id=self.id,
            property_id=self.property_id,
            competitor_id=self.competitor_id,
            room_type_id=self.room_type_id,
            target_date=as_utc(self.target_date),
            price=self.price,
            currency=self.currency,
            available=bool(self.available),
            fetched_at=as_utc(self.fetched_at),
            source=self.source,
            metadata=self.metadata_ or {},
        )

    def __repr__(self):
        return f"<PriceRecord {self.id}: {self.competitor_id} {self.target_date} {self.price} {self.currency}>"
