"""Tests for role ranking and property-scoped authorization."""
import pytest

from app.entities import AccessGrant, AccessLevel, Property, Role, User
from app.services.authorization_service import (
    ROLE_RANK,
    AuthorizationService,
    can_manage,
    can_view,
    is_admin,
    is_owner,
    is_super_admin,
    rank_of,
    require_role,
)


def _user(user_id="u1", role=Role.VIEWER):
    return User(id=user_id, email=f"{user_id}@example.com", role=role)


def _property(owner_id="owner"):
    return Property(id="p1", name="Hotel", owner_id=owner_id)


class TestRoleRank:
    def test_rank_order(self):
        assert ROLE_RANK["VIEWER"] < ROLE_RANK["OWNER"] < ROLE_RANK["ADMIN"] < ROLE_RANK["SUPER_ADMIN"]

    def test_unknown_role_ranks_zero(self):
        assert rank_of("GUEST") == 0

    def test_access_levels_share_role_ranks(self):
        assert rank_of(AccessLevel.ADMIN) == rank_of(Role.ADMIN) == 3

    @pytest.mark.parametrize("role,minimum,expected", [
        (Role.VIEWER, Role.VIEWER, True),
        (Role.VIEWER, Role.OWNER, False),
        (Role.OWNER, Role.VIEWER, True),
        (Role.ADMIN, Role.ADMIN, True),
        (Role.ADMIN, Role.SUPER_ADMIN, False),
        (Role.SUPER_ADMIN, Role.ADMIN, True),
    ])
    def test_require_role(self, role, minimum, expected):
        assert require_role(_user(role=role), minimum) is expected

    def test_require_role_without_principal(self):
        assert require_role(None, Role.VIEWER) is False

    def test_helpers(self):
        assert is_super_admin(_user(role=Role.SUPER_ADMIN))
        assert not is_super_admin(_user(role=Role.ADMIN))
        assert is_admin(_user(role=Role.SUPER_ADMIN))
        assert not is_admin(_user(role=Role.OWNER))
        assert is_owner(_user(role=Role.OWNER))
        assert not is_owner(_user(role=Role.VIEWER))


class TestDecisionFunctions:
    def test_owner_can_view_and_manage_without_grant(self):
        owner = _user("owner", Role.VIEWER)
        prop = _property(owner_id="owner")
        assert can_view(owner, prop, None)
        assert can_manage(owner, prop, None)

    def test_super_admin_ignores_grants(self):
        admin = _user("root", Role.SUPER_ADMIN)
        assert can_manage(admin, _property(), None)

    def test_admin_role_without_grant_is_denied(self):
        assert not can_view(_user("u1", Role.ADMIN), _property(), None)

    def test_viewer_grant_allows_view_not_manage(self):
        user = _user("u1")
        grant = AccessGrant(user_id="u1", property_id="p1", level=AccessLevel.VIEWER)
        assert can_view(user, _property(), grant)
        assert not can_manage(user, _property(), grant)

    def test_admin_grant_allows_manage(self):
        user = _user("u1")
        grant = AccessGrant(user_id="u1", property_id="p1", level=AccessLevel.ADMIN)
        assert can_manage(user, _property(), grant)

    def test_grant_for_other_property_is_ignored(self):
        user = _user("u1")
        grant = AccessGrant(user_id="u1", property_id="other", level=AccessLevel.ADMIN)
        assert not can_view(user, _property(), grant)

    def test_missing_property_is_denied(self):
        assert not can_view(_user(role=Role.SUPER_ADMIN), None, None)


class TestAuthorizationService:
    @pytest.mark.asyncio
    async def test_owner_always_views(self, storage, hotel):
        authz = AuthorizationService(storage)
        assert await authz.can_view("owner-1", "prop-1")
        assert await authz.can_manage("owner-1", "prop-1")

    @pytest.mark.asyncio
    async def test_stranger_is_denied(self, storage, hotel):
        storage.add_user("stranger")
        assert not await AuthorizationService(storage).can_view("stranger", "prop-1")

    @pytest.mark.asyncio
    async def test_unknown_user_is_denied(self, storage, hotel):
        assert not await AuthorizationService(storage).can_view("ghost", "prop-1")

    @pytest.mark.asyncio
    async def test_super_admin_on_missing_property_is_denied(self, storage):
        storage.add_user("root", Role.SUPER_ADMIN)
        assert not await AuthorizationService(storage).can_view("root", "nope")

    @pytest.mark.asyncio
    async def test_grant_levels(self, storage, hotel):
        storage.add_user("viewer")
        storage.add_user("manager")
        storage.add_grant("viewer", "prop-1", AccessLevel.VIEWER)
        storage.add_grant("manager", "prop-1", AccessLevel.ADMIN)
        authz = AuthorizationService(storage)

        assert await authz.can_view("viewer", "prop-1")
        assert not await authz.can_manage("viewer", "prop-1")
        assert await authz.can_manage("manager", "prop-1")

    @pytest.mark.asyncio
    async def test_list_visible_properties_dedupes_owned_and_granted(self, storage, hotel):
        storage.add_property("prop-2", owner_id="someone", name="Albergo Blu")
        storage.add_property("prop-3", owner_id="someone", name="Casa Verde")
        storage.add_grant("owner-1", "prop-1", AccessLevel.VIEWER)
        storage.add_grant("owner-1", "prop-2", AccessLevel.VIEWER)

        visible = await AuthorizationService(storage).list_visible_properties("owner-1")

        assert [p.id for p in visible] == ["prop-2", "prop-1"]
        aurora = visible[1]
        assert aurora.competitor_count == 2
        assert aurora.room_type_count == 1

    @pytest.mark.asyncio
    async def test_super_admin_lists_everything(self, storage, hotel):
        storage.add_property("prop-2", owner_id="someone", name="Albergo Blu")
        storage.add_user("root", Role.SUPER_ADMIN)
        visible = await AuthorizationService(storage).list_visible_properties("root")
        assert {p.id for p in visible} == {"prop-1", "prop-2"}

    @pytest.mark.asyncio
    async def test_unknown_user_lists_nothing(self, storage, hotel):
        assert await AuthorizationService(storage).list_visible_properties("ghost") == []
