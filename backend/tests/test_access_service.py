"""Tests for granting and revoking property access."""
import pytest

from app.entities import AccessLevel, Role
from app.errors import Forbidden, NotFound, ValidationError
from app.services.access_service import AccessService


class TestGrant:
    @pytest.mark.asyncio
    async def test_owner_grants_viewer_access(self, storage, hotel):
        owner = storage.users["owner-1"]
        storage.add_user("guest")

        grant = await AccessService(storage).grant(owner, "prop-1", "guest", AccessLevel.VIEWER)

        assert grant.granted_by == "owner-1"
        assert storage.grants[("guest", "prop-1")].level == AccessLevel.VIEWER
        assert storage.audit_log[0].action == "PROPERTY_ACCESS_GRANT"
        assert storage.audit_log[0].metadata == {"userId": "guest", "level": "VIEWER"}

    @pytest.mark.asyncio
    async def test_regrant_replaces_level(self, storage, hotel):
        owner = storage.users["owner-1"]
        storage.add_user("guest")
        service = AccessService(storage)
        await service.grant(owner, "prop-1", "guest", AccessLevel.VIEWER)
        await service.grant(owner, "prop-1", "guest", AccessLevel.ADMIN)
        assert storage.grants[("guest", "prop-1")].level == AccessLevel.ADMIN

    @pytest.mark.asyncio
    async def test_viewer_grantee_is_forbidden(self, storage, hotel):
        viewer = storage.add_user("viewer")
        storage.add_grant("viewer", "prop-1", AccessLevel.VIEWER)
        storage.add_user("guest")
        with pytest.raises(Forbidden):
            await AccessService(storage).grant(viewer, "prop-1", "guest", AccessLevel.VIEWER)

    @pytest.mark.asyncio
    async def test_invisible_property_looks_missing(self, storage, hotel):
        stranger = storage.add_user("stranger", Role.ADMIN)
        with pytest.raises(NotFound):
            await AccessService(storage).grant(stranger, "prop-1", "stranger", AccessLevel.ADMIN)

    @pytest.mark.asyncio
    async def test_unknown_grantee(self, storage, hotel):
        with pytest.raises(ValidationError) as exc_info:
            await AccessService(storage).grant(storage.users["owner-1"], "prop-1", "ghost", AccessLevel.VIEWER)
        assert "userId" in exc_info.value.errors


class TestRevoke:
    @pytest.mark.asyncio
    async def test_revoke_removes_grant(self, storage, hotel):
        storage.add_user("guest")
        storage.add_grant("guest", "prop-1", AccessLevel.VIEWER)

        await AccessService(storage).revoke(storage.users["owner-1"], "prop-1", "guest")

        assert ("guest", "prop-1") not in storage.grants
        assert storage.audit_log[0].action == "PROPERTY_ACCESS_REVOKE"

    @pytest.mark.asyncio
    async def test_revoke_missing_grant(self, storage, hotel):
        with pytest.raises(NotFound):
            await AccessService(storage).revoke(storage.users["owner-1"], "prop-1", "guest")
