# Overview: Service-layer operations for the acting staff member; builds the explicit ActorContext.

"""
Actor Context

Every service operation receives an ActorContext describing who is acting
and for which business. Nothing is read from ambient request state inside
the services; routes and CLI commands build the context and pass it in.

MULTI-TENANT: business_id is the tenant boundary. branch_id is the actor's
home branch (None for business-level staff).
"""

from __future__ import annotations

from dataclasses import dataclass

from ..extensions import db
from ..errors import NotFoundError
from ..models import Staff
from ..permissions import Role, parse_role, get_role_permissions


class StaffNotFoundError(NotFoundError):
    """Raised when the acting staff member does not exist or is inactive."""
    pass


@dataclass(frozen=True)
class ActorContext:
    business_id: int
    staff_id: int
    role: Role
    branch_id: int | None = None

    @property
    def permissions(self) -> frozenset:
        return get_role_permissions(self.role)

    def can(self, permission_code: str) -> bool:
        return permission_code in self.permissions


def context_for_staff(staff: Staff) -> ActorContext:
    return ActorContext(
        business_id=staff.business_id,
        staff_id=staff.id,
        role=parse_role(staff.role),
        branch_id=staff.branch_id,
    )


def load_actor_context(staff_id: int) -> ActorContext:
    """
    Build the context for an active staff member of an active business.

    Raises:
        StaffNotFoundError: unknown id, deactivated staff or business
    """
    staff = db.session.query(Staff).filter_by(id=staff_id).first()
    if not staff or not staff.is_active:
        raise StaffNotFoundError(f"Staff {staff_id} not found")
    if staff.business is None or not staff.business.is_active:
        raise StaffNotFoundError(f"Staff {staff_id} not found")
    return context_for_staff(staff)
