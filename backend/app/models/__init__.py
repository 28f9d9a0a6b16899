"""
ORM models for RateBoard database.
"""
from app.models.user import UserModel
from app.models.property import PropertyModel, RoomTypeModel, CompetitorModel, CompetitorConfigModel
from app.models.access_grant import AccessGrantModel
from app.models.price_record import PriceRecordModel
from app.models.scrape_event import ScrapeEventModel
from app.models.audit_log import AuditLogModel

__all__ = [
    "UserModel",
    "PropertyModel",
    "RoomTypeModel",
    "CompetitorModel",
    "CompetitorConfigModel",
    "AccessGrantModel",
    "PriceRecordModel",
    "ScrapeEventModel",
    "AuditLogModel",
]
