# Overview: Service-layer capability and branch-scope checks.

"""
Permission Checking

WHY: Gate every procurement action against the role -> capability table in
one place instead of comparing role strings at call sites.

DESIGN PRINCIPLES:
- Fail closed: deny unless the role's capability set contains the code
- Log denials only
- Branch scope: roles holding ACCESS_ALL_BRANCHES act on any branch of
  their business; everyone else only on their home branch
"""

from __future__ import annotations

import logging

from ..extensions import db
from ..errors import PermissionDeniedError as BasePermissionDeniedError
from ..models import Branch
from ..permissions import validate_permission_code


logger = logging.getLogger(__name__)


class PermissionDeniedError(BasePermissionDeniedError):
    """Raised when the actor lacks a capability or branch access."""
    pass


def has_permission(ctx, permission_code: str) -> bool:
    if not validate_permission_code(permission_code):
        raise ValueError(f"Unknown permission code: {permission_code}")
    return ctx.can(permission_code)


def require_permission(ctx, permission_code: str) -> None:
    """
    Raises:
        PermissionDeniedError: role lacks permission_code
    """
    if not has_permission(ctx, permission_code):
        logger.warning(
            "Permission denied: staff=%s role=%s missing=%s",
            ctx.staff_id, ctx.role.value, permission_code,
        )
        raise PermissionDeniedError(f"Requires permission {permission_code}")


def can_access_all_branches(ctx) -> bool:
    return ctx.can("ACCESS_ALL_BRANCHES")


def require_branch_access(ctx, branch_id: int) -> Branch:
    """
    Ensure the branch belongs to the actor's business and is within scope.

    Cross-business access is reported exactly like a missing branch so
    branch ids of other tenants are not disclosed.
    """
    branch = db.session.query(Branch).filter_by(id=branch_id).first()
    if not branch or branch.business_id != ctx.business_id:
        logger.warning("Branch %s outside business %s (staff=%s)", branch_id, ctx.business_id, ctx.staff_id)
        raise PermissionDeniedError("Branch not accessible")
    if not can_access_all_branches(ctx) and ctx.branch_id != branch.id:
        logger.warning("Branch %s outside scope of staff %s", branch_id, ctx.staff_id)
        raise PermissionDeniedError("Branch not accessible")
    return branch


def accessible_branch_ids(ctx) -> list[int]:
    """Branch ids the actor may read or write."""
    if can_access_all_branches(ctx):
        return [
            b.id for b in db.session.query(Branch.id)
            .filter(Branch.business_id == ctx.business_id)
            .order_by(Branch.id)
            .all()
        ]
    return [ctx.branch_id] if ctx.branch_id else []


def resolve_branch_filter(ctx, branch_id: int | None) -> list[int]:
    """
    Branch ids a list/report query should cover.

    An explicit branch_id is access-checked; otherwise every accessible
    branch is returned.
    """
    if branch_id:
        require_branch_access(ctx, branch_id)
        return [branch_id]
    return accessible_branch_ids(ctx)
