"""
Role capabilities, actor context loading and branch scope.
"""

import pytest

from stockroom.models import Branch
from stockroom.permissions import (
    DEFAULT_ROLE_PERMISSIONS,
    Role,
    get_all_permission_codes,
    get_permission_definition,
    get_role_permissions,
    parse_role,
    validate_permission_code,
)
from stockroom.services import actor_service, permission_service


class TestRoleTable:
    def test_owner_holds_everything(self):
        assert get_role_permissions(Role.BUSINESS_OWNER) == frozenset(get_all_permission_codes())

    def test_every_granted_code_is_defined(self):
        for role, codes in DEFAULT_ROLE_PERMISSIONS.items():
            for code in codes:
                assert validate_permission_code(code), f"{role.value} grants unknown {code}"

    @pytest.mark.parametrize("role, code, allowed", [
        (Role.MANAGER, "CONVERT_SUPPLIER_REQUEST", False),
        (Role.MANAGER, "APPROVE_SUPPLIER_INVOICES", False),
        (Role.MANAGER, "CONFIRM_GOODS_RECEIVED", True),
        (Role.ACCOUNTANT, "APPROVE_SUPPLIER_INVOICES", True),
        (Role.ACCOUNTANT, "MANAGE_PURCHASE_ORDERS", False),
        (Role.CASHIER, "VIEW_FORECASTS", False),
        (Role.CASHIER, "RECORD_SALES", True),
        (Role.STAFF, "CREATE_SUPPLIER_REQUEST", True),
        (Role.STAFF, "CONFIRM_GOODS_RECEIVED", False),
    ])
    def test_capabilities(self, role, code, allowed):
        assert (code in get_role_permissions(role)) is allowed

    def test_role_strings_parse(self):
        assert parse_role(" Manager ") is Role.MANAGER
        assert get_role_permissions("Cashier") == get_role_permissions(Role.CASHIER)
        with pytest.raises(ValueError):
            parse_role("Janitor")

    def test_definition_lookup(self):
        definition = get_permission_definition("RECEIVE_GOODS")
        assert definition["name"] == "Receive Goods"
        assert get_permission_definition("NOPE") is None


class TestActorContext:
    def test_loads_active_staff(self, manager):
        ctx = actor_service.load_actor_context(manager.id)
        assert (ctx.staff_id, ctx.business_id, ctx.branch_id, ctx.role) == (
            manager.id, manager.business_id, manager.branch_id, Role.MANAGER,
        )
        assert ctx.can("RECEIVE_GOODS")

    def test_inactive_staff_rejected(self, manager, db_session):
        manager.is_active = False
        db_session.commit()
        with pytest.raises(actor_service.StaffNotFoundError):
            actor_service.load_actor_context(manager.id)

    def test_inactive_business_rejected(self, manager, business, db_session):
        business.is_active = False
        db_session.commit()
        with pytest.raises(actor_service.StaffNotFoundError):
            actor_service.load_actor_context(manager.id)

    def test_unknown_staff_rejected(self, db_session):
        with pytest.raises(actor_service.StaffNotFoundError):
            actor_service.load_actor_context(999)


class TestBranchScope:
    def test_home_branch_only_for_manager(self, manager_ctx, main_branch, east_branch):
        assert permission_service.require_branch_access(manager_ctx, main_branch.id) == main_branch
        with pytest.raises(permission_service.PermissionDeniedError, match="Branch not accessible"):
            permission_service.require_branch_access(manager_ctx, east_branch.id)
        assert permission_service.accessible_branch_ids(manager_ctx) == [main_branch.id]

    def test_all_branches_for_owner(self, owner_ctx, main_branch, east_branch):
        assert permission_service.accessible_branch_ids(owner_ctx) == [main_branch.id, east_branch.id]
        assert permission_service.resolve_branch_filter(owner_ctx, east_branch.id) == [east_branch.id]

    def test_other_business_branch_looks_missing(self, owner_ctx, other_business, db_session):
        foreign = Branch(business_id=other_business.id, name="Rival HQ", code="HQ")
        db_session.add(foreign)
        db_session.commit()
        with pytest.raises(permission_service.PermissionDeniedError, match="Branch not accessible"):
            permission_service.require_branch_access(owner_ctx, foreign.id)

    def test_unknown_code_is_a_programming_error(self, owner_ctx):
        with pytest.raises(ValueError):
            permission_service.has_permission(owner_ctx, "LAUNCH_ROCKETS")
