"""
Property listing and access grant endpoints.
"""
import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends

from app.auth import get_current_principal
from app.dependencies import StorageDep
from app.entities import User
from app.errors import NotFound
from app.schemas import AccessGrantRequest
from app.serializers import property_to_dict
from app.services.access_service import AccessService
from app.services.authorization_service import AuthorizationService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/properties", tags=["Properties"])


@router.get("")
async def list_properties(
    storage: StorageDep,
    principal: User = Depends(get_current_principal),
) -> Dict[str, Any]:
    """List the properties visible to the caller, with competitor and room type counts."""
    properties = await AuthorizationService(storage).list_visible_properties(principal.id)
    return {"properties": [property_to_dict(p) for p in properties]}


@router.get("/{property_id}")
async def get_property(
    property_id: str,
    storage: StorageDep,
    principal: User = Depends(get_current_principal),
) -> Dict[str, Any]:
    """Property detail; 404 when absent or not visible."""
    if not await AuthorizationService(storage).can_view(principal.id, property_id):
        raise NotFound("Property not found or access denied")
    prop = await storage.find_property_by_id(property_id)
    if prop is None:
        raise NotFound("Property not found or access denied")
    return {"property": property_to_dict(prop)}


@router.put("/{property_id}/access")
async def grant_property_access(
    property_id: str,
    body: AccessGrantRequest,
    storage: StorageDep,
    principal: User = Depends(get_current_principal),
) -> Dict[str, Any]:
    """Create or replace a user's access grant on the property."""
    grant = await AccessService(storage).grant(principal, property_id, body.user_id, body.level)
    return {
        "access": {
            "userId": grant.user_id,
            "propertyId": grant.property_id,
            "level": grant.level.value,
            "grantedBy": grant.granted_by,
        }
    }


@router.delete("/{property_id}/access/{user_id}")
async def revoke_property_access(
    property_id: str,
    user_id: str,
    storage: StorageDep,
    principal: User = Depends(get_current_principal),
) -> Dict[str, Any]:
    """Remove a user's access grant on the property."""
    await AccessService(storage).revoke(principal, property_id, user_id)
    return {"status": "deleted"}
