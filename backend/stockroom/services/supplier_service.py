# Overview: Service-layer operations for suppliers and product categories.

"""
Supplier Service

Suppliers are business-level and shared by every branch. A supplier must be
active to receive new requests or purchase orders; deactivating one leaves
its existing documents untouched.

Names are matched case-insensitively (spreadsheet imports look suppliers
and categories up by name).
"""

from sqlalchemy import func

from ..extensions import db
from ..errors import NotFoundError, ValidationError
from ..models import Supplier, Category
from .permission_service import require_permission


class SupplierNotFoundError(NotFoundError):
    """Raised when a supplier is not found."""
    pass


class SupplierValidationError(ValidationError):
    """Raised when supplier data fails validation."""
    pass


class CategoryValidationError(ValidationError):
    pass


def _clean(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    return value or None


def create_supplier(
    ctx,
    *,
    name: str,
    contact_name: str | None = None,
    contact_email: str | None = None,
    contact_phone: str | None = None,
    whatsapp_number: str | None = None,
    address: str | None = None,
    notes: str | None = None,
) -> Supplier:
    """
    Create a new supplier.

    Raises:
        SupplierValidationError: blank name or duplicate active name
    """
    require_permission(ctx, "MANAGE_SUPPLIERS")

    if not name or not name.strip():
        raise SupplierValidationError("Supplier name is required")
    name = name.strip()

    if find_supplier_by_name(ctx.business_id, name):
        raise SupplierValidationError(f"Supplier '{name}' already exists")

    supplier = Supplier(
        business_id=ctx.business_id,
        name=name,
        contact_name=_clean(contact_name),
        contact_email=_clean(contact_email),
        contact_phone=_clean(contact_phone),
        whatsapp_number=_clean(whatsapp_number),
        address=address,
        notes=notes,
        is_active=True,
    )
    db.session.add(supplier)
    db.session.commit()
    return supplier


def update_supplier(ctx, supplier_id: int, **fields) -> Supplier:
    """
    Update contact details of an active supplier.

    Accepts name, contact_name, contact_email, contact_phone, whatsapp_number,
    address and notes. Fields passed as None are left unchanged.
    """
    require_permission(ctx, "MANAGE_SUPPLIERS")
    supplier = get_supplier(ctx.business_id, supplier_id)
    if not supplier.is_active:
        raise SupplierValidationError("Cannot update inactive supplier")

    allowed = {
        "name", "contact_name", "contact_email", "contact_phone",
        "whatsapp_number", "address", "notes",
    }
    unknown = set(fields) - allowed
    if unknown:
        raise SupplierValidationError(f"Unknown supplier fields: {', '.join(sorted(unknown))}")

    name = fields.get("name")
    if name is not None:
        name = name.strip()
        if not name:
            raise SupplierValidationError("Supplier name cannot be empty")
        existing = find_supplier_by_name(ctx.business_id, name)
        if existing and existing.id != supplier.id:
            raise SupplierValidationError(f"Supplier '{name}' already exists")
        supplier.name = name

    for key in ("contact_name", "contact_email", "contact_phone", "whatsapp_number"):
        if fields.get(key) is not None:
            setattr(supplier, key, _clean(fields[key]))
    for key in ("address", "notes"):
        if fields.get(key) is not None:
            setattr(supplier, key, fields[key])

    db.session.commit()
    return supplier


def get_supplier(business_id: int, supplier_id: int) -> Supplier:
    """
    Raises:
        SupplierNotFoundError: unknown id or supplier of another business
    """
    supplier = db.session.query(Supplier).filter_by(id=supplier_id, business_id=business_id).first()
    if not supplier:
        raise SupplierNotFoundError(f"Supplier {supplier_id} not found")
    return supplier


def find_supplier_by_name(business_id: int, name: str) -> Supplier | None:
    if not name:
        return None
    return db.session.query(Supplier).filter(
        Supplier.business_id == business_id,
        func.lower(Supplier.name) == name.strip().lower(),
        Supplier.is_active.is_(True),
    ).first()


def list_suppliers(
    business_id: int,
    *,
    include_inactive: bool = False,
    search: str | None = None,
) -> list[Supplier]:
    query = db.session.query(Supplier).filter(Supplier.business_id == business_id)
    if not include_inactive:
        query = query.filter(Supplier.is_active.is_(True))
    if search:
        query = query.filter(Supplier.name.ilike(f"%{search}%"))
    return query.order_by(Supplier.name.asc()).all()


def deactivate_supplier(ctx, supplier_id: int) -> Supplier:
    require_permission(ctx, "MANAGE_SUPPLIERS")
    supplier = get_supplier(ctx.business_id, supplier_id)
    if not supplier.is_active:
        raise SupplierValidationError("Supplier is already inactive")
    supplier.is_active = False
    db.session.commit()
    return supplier


def validate_supplier_for_business(supplier_id: int, business_id: int) -> Supplier:
    """
    Validate that a supplier exists, belongs to the business and is active.

    Raises:
        SupplierValidationError: If supplier is invalid
    """
    if not supplier_id:
        raise SupplierValidationError("supplier_id is required")
    supplier = db.session.query(Supplier).filter_by(id=supplier_id).first()
    if not supplier or supplier.business_id != business_id:
        raise SupplierValidationError(f"Supplier {supplier_id} not found")
    if not supplier.is_active:
        raise SupplierValidationError(f"Supplier '{supplier.name}' is inactive")
    return supplier


# -- Categories --

def create_category(ctx, name: str) -> Category:
    require_permission(ctx, "MANAGE_INVENTORY")
    if not name or not name.strip():
        raise CategoryValidationError("Category name is required")
    name = name.strip()
    if find_category_by_name(ctx.business_id, name):
        raise CategoryValidationError(f"Category '{name}' already exists")
    category = Category(business_id=ctx.business_id, name=name, is_active=True)
    db.session.add(category)
    db.session.commit()
    return category


def find_category_by_name(business_id: int, name: str) -> Category | None:
    if not name:
        return None
    return db.session.query(Category).filter(
        Category.business_id == business_id,
        func.lower(Category.name) == name.strip().lower(),
        Category.is_active.is_(True),
    ).first()


def list_categories(business_id: int) -> list[Category]:
    return (
        db.session.query(Category)
        .filter(Category.business_id == business_id, Category.is_active.is_(True))
        .order_by(Category.name.asc())
        .all()
    )
