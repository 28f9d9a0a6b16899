"""
SQLAlchemy ORM model for scrape events reported by the workflow engine.
"""
import uuid

from sqlalchemy import Column, String, DateTime, Text, Index
from sqlalchemy.sql import func

from app.database import Base, JSONType
from app.entities import ScrapeEvent, ScrapeStatus
from app.models.price_record import as_utc


class ScrapeEventModel(Base):
    """
    Append-only log of ingestion outcomes and workflow runs.
    Used for health and observability, never updated.
    """
    __tablename__ = "scrape_events"

    id = Column(String(50), primary_key=True, default=lambda: str(uuid.uuid4()))

    # Not a foreign key: workflow-level events use "system"
    property_id = Column(String(50), nullable=False)
    competitor_id = Column(String(50), nullable=True)

    status = Column(String(20), nullable=False)  # SUCCESS, ERROR, PARTIAL, TIMEOUT
    message = Column(Text, nullable=True)
    payload = Column(JSONType, nullable=True)
    source = Column(String(150), nullable=True)

    received_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    __table_args__ = (
        Index('idx_scrape_events_property', 'property_id'),
        Index('idx_scrape_events_status', 'status'),
        Index('idx_scrape_events_received_at', 'received_at'),
    )

    def to_entity(self) -> ScrapeEvent:
        return ScrapeEvent(
            id=self.id,
            property_id=self.property_id,
            competitor_id=self.competitor_id,
            status=ScrapeStatus(self.status),
            message=self.message or "",
            payload=self.payload or {},
            source=self.source,
            received_at=as_utc(self.received_at),
        )

    def __repr__(self):
        return f"<ScrapeEvent {self.id}: {self.property_id} - {self.status}>"
