# Overview: Service-layer operations for branch inventory records and stock movements.

# backend/stockroom/services/inventory_service.py

import logging
import secrets

from sqlalchemy import func

from ..extensions import db
from ..errors import NotFoundError, ValidationError
from ..models import Product, StockMovement, Category
from .concurrency import lock_for_update
from .permission_service import require_permission, require_branch_access, resolve_branch_filter
from .supplier_service import validate_supplier_for_business
from stockroom.time_utils import utcnow
"""
Inventory invariants (authoritative)

- Product rows are per-branch inventory records; stock is a mutable counter.
- stock >= 0 always (DB check constraint backs the service checks).
- stock changes only through: sale, GRN confirmation, manual adjustment,
  creation (import or manual). Forecasting never writes stock.
- Every change appends a StockMovement (previous_stock, new_stock, source,
  reference, actor) in the same DB transaction.
- Rows being incremented or decremented are locked FOR UPDATE and carry an
  optimistic version_id, so concurrent writers never lose an update.
- *_inner helpers flush but never commit; callers own the transaction.
"""


logger = logging.getLogger(__name__)

SOURCE_GRN_CONFIRMATION = "GRN_CONFIRMATION"
SOURCE_SALE = "SALE"
SOURCE_MANUAL_ADJUSTMENT = "MANUAL_ADJUSTMENT"
SOURCE_IMPORT = "IMPORT"
SOURCE_MANUAL_CREATE = "MANUAL_CREATE"

ACTION_INCREASE = "INCREASE"
ACTION_DECREASE = "DECREASE"
ACTION_SET = "SET"


class ProductNotFoundError(NotFoundError):
    pass


class InventoryValidationError(ValidationError):
    pass


def generate_sku() -> str:
    return f"AUTO-{secrets.token_hex(4).upper()}"


def _non_negative_int(value, field: str) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise InventoryValidationError(f"{field} must be a whole number")
    if number < 0:
        raise InventoryValidationError(f"{field} cannot be negative")
    return number


def _optional_cents(value, field: str) -> int | None:
    if value is None:
        return None
    return _non_negative_int(value, field)


def get_product(business_id: int, product_id: int) -> Product:
    product = db.session.query(Product).filter_by(id=product_id, business_id=business_id).first()
    if not product:
        raise ProductNotFoundError(f"Product {product_id} not found")
    return product


def get_product_in_branch(branch_id: int, product_id: int) -> Product:
    product = db.session.query(Product).filter_by(id=product_id, branch_id=branch_id).first()
    if not product:
        raise ProductNotFoundError(f"Product {product_id} not found in branch {branch_id}")
    return product


def find_product_by_sku(branch_id: int, sku: str) -> Product | None:
    """Case-insensitive SKU lookup within one branch."""
    if not sku:
        return None
    return db.session.query(Product).filter(
        Product.branch_id == branch_id,
        func.lower(Product.sku) == sku.strip().lower(),
    ).first()


def _record_movement(
    product: Product,
    *,
    action: str,
    quantity: int,
    previous_stock: int,
    source: str,
    actor_staff_id: int | None,
    reference_type: str | None = None,
    reference_id: int | None = None,
    reference_number: str | None = None,
    reason: str | None = None,
) -> StockMovement:
    movement = StockMovement(
        business_id=product.business_id,
        branch_id=product.branch_id,
        product_id=product.id,
        action=action,
        quantity=quantity,
        previous_stock=previous_stock,
        new_stock=product.stock,
        source=source,
        reference_type=reference_type,
        reference_id=reference_id,
        reference_number=reference_number,
        reason=reason,
        performed_by_staff_id=actor_staff_id,
        occurred_at=utcnow(),
    )
    db.session.add(movement)
    return movement


def _create_product_inner(
    *,
    business_id: int,
    branch_id: int,
    name: str,
    sku: str | None = None,
    category_id: int | None = None,
    supplier_id: int | None = None,
    stock: int = 0,
    low_stock_threshold: int = 10,
    cost_price_cents: int | None = None,
    retail_price_cents: int | None = None,
    wholesale_price_cents: int | None = None,
    source: str = SOURCE_MANUAL_CREATE,
    actor_staff_id: int | None = None,
    reference_type: str | None = None,
    reference_id: int | None = None,
    reference_number: str | None = None,
) -> Product:
    if not name or not name.strip():
        raise InventoryValidationError("Product name is required")
    sku = (sku or "").strip() or generate_sku()
    if find_product_by_sku(branch_id, sku):
        raise InventoryValidationError(f"SKU '{sku}' already exists in this branch")

    product = Product(
        business_id=business_id,
        branch_id=branch_id,
        name=name.strip(),
        sku=sku,
        category_id=category_id,
        supplier_id=supplier_id,
        stock=_non_negative_int(stock, "stock"),
        low_stock_threshold=_non_negative_int(low_stock_threshold, "low_stock_threshold"),
        cost_price_cents=_optional_cents(cost_price_cents, "cost_price_cents"),
        retail_price_cents=_optional_cents(retail_price_cents, "retail_price_cents"),
        wholesale_price_cents=_optional_cents(wholesale_price_cents, "wholesale_price_cents"),
        is_active=True,
    )
    db.session.add(product)
    db.session.flush()

    if product.stock:
        _record_movement(
            product,
            action=ACTION_INCREASE,
            quantity=product.stock,
            previous_stock=0,
            source=source,
            actor_staff_id=actor_staff_id,
            reference_type=reference_type,
            reference_id=reference_id,
            reference_number=reference_number,
        )
    return product


def create_product(
    ctx,
    *,
    branch_id: int,
    name: str,
    sku: str | None = None,
    category_id: int | None = None,
    supplier_id: int | None = None,
    stock: int = 0,
    low_stock_threshold: int = 10,
    cost_price_cents: int | None = None,
    retail_price_cents: int | None = None,
    wholesale_price_cents: int | None = None,
) -> Product:
    """
    Create an inventory record in a branch.

    Raises:
        PermissionDeniedError: missing MANAGE_INVENTORY or branch out of scope
        InventoryValidationError: blank name, duplicate SKU, negative numbers
    """
    require_permission(ctx, "MANAGE_INVENTORY")
    require_branch_access(ctx, branch_id)
    if category_id is not None:
        category = db.session.query(Category).filter_by(id=category_id, business_id=ctx.business_id).first()
        if not category:
            raise InventoryValidationError(f"Category {category_id} not found")
    if supplier_id is not None:
        validate_supplier_for_business(supplier_id, ctx.business_id)

    product = _create_product_inner(
        business_id=ctx.business_id,
        branch_id=branch_id,
        name=name,
        sku=sku,
        category_id=category_id,
        supplier_id=supplier_id,
        stock=stock,
        low_stock_threshold=low_stock_threshold,
        cost_price_cents=cost_price_cents,
        retail_price_cents=retail_price_cents,
        wholesale_price_cents=wholesale_price_cents,
        actor_staff_id=ctx.staff_id,
    )
    db.session.commit()
    return product


def _increase_stock_inner(
    product: Product,
    quantity: int,
    *,
    source: str,
    actor_staff_id: int | None,
    reference_type: str | None = None,
    reference_id: int | None = None,
    reference_number: str | None = None,
) -> StockMovement:
    if quantity <= 0:
        raise InventoryValidationError("Quantity must be positive")
    previous = product.stock
    product.stock = previous + quantity
    db.session.flush()
    return _record_movement(
        product,
        action=ACTION_INCREASE,
        quantity=quantity,
        previous_stock=previous,
        source=source,
        actor_staff_id=actor_staff_id,
        reference_type=reference_type,
        reference_id=reference_id,
        reference_number=reference_number,
    )


def _decrease_stock_inner(
    product: Product,
    quantity: int,
    *,
    source: str,
    actor_staff_id: int | None,
    reference_type: str | None = None,
    reference_id: int | None = None,
    reference_number: str | None = None,
) -> StockMovement:
    if quantity <= 0:
        raise InventoryValidationError("Quantity must be positive")
    previous = product.stock
    if quantity > previous:
        raise InventoryValidationError(
            f"Insufficient stock for {product.sku}: have {previous}, need {quantity}"
        )
    product.stock = previous - quantity
    db.session.flush()
    return _record_movement(
        product,
        action=ACTION_DECREASE,
        quantity=quantity,
        previous_stock=previous,
        source=source,
        actor_staff_id=actor_staff_id,
        reference_type=reference_type,
        reference_id=reference_id,
        reference_number=reference_number,
    )


def lock_product(product_id: int, branch_id: int) -> Product | None:
    return lock_for_update(
        db.session.query(Product).filter_by(id=product_id, branch_id=branch_id)
    ).first()


def _receive_into_branch_inner(
    *,
    business_id: int,
    branch_id: int,
    source_product_id: int,
    sku: str,
    name: str,
    quantity: int,
    actor_staff_id: int | None,
    reference_type: str,
    reference_id: int,
    reference_number: str,
) -> tuple[Product, bool]:
    """
    Add received stock to the branch's record for a product.

    Lookup order: same product id in the branch, then SKU in the branch. When
    the branch has no record yet, one is created from the source product
    (name, SKU, category, supplier, prices, threshold) holding the received
    quantity. Returns (product, created).
    """
    product = lock_product(source_product_id, branch_id)
    if product is None and sku:
        product = lock_for_update(
            db.session.query(Product).filter(
                Product.branch_id == branch_id,
                func.lower(Product.sku) == sku.strip().lower(),
            )
        ).first()

    if product is not None:
        _increase_stock_inner(
            product,
            quantity,
            source=SOURCE_GRN_CONFIRMATION,
            actor_staff_id=actor_staff_id,
            reference_type=reference_type,
            reference_id=reference_id,
            reference_number=reference_number,
        )
        return product, False

    source = db.session.query(Product).filter_by(id=source_product_id, business_id=business_id).first()
    product = _create_product_inner(
        business_id=business_id,
        branch_id=branch_id,
        name=source.name if source else name,
        sku=source.sku if source else sku,
        category_id=source.category_id if source else None,
        supplier_id=source.supplier_id if source else None,
        stock=quantity,
        low_stock_threshold=source.low_stock_threshold if source else 10,
        cost_price_cents=source.cost_price_cents if source else None,
        retail_price_cents=source.retail_price_cents if source else None,
        wholesale_price_cents=source.wholesale_price_cents if source else None,
        source=SOURCE_GRN_CONFIRMATION,
        actor_staff_id=actor_staff_id,
        reference_type=reference_type,
        reference_id=reference_id,
        reference_number=reference_number,
    )
    logger.info("Created inventory record %s (%s) in branch %s from received goods", product.id, product.sku, branch_id)
    return product, True


def adjust_stock(ctx, product_id: int, *, new_stock: int, reason: str | None = None) -> Product:
    """
    Manual stock edit: sets stock to new_stock and records the delta.
    """
    require_permission(ctx, "MANAGE_INVENTORY")
    product = get_product(ctx.business_id, product_id)
    require_branch_access(ctx, product.branch_id)
    new_stock = _non_negative_int(new_stock, "new_stock")

    product = lock_product(product.id, product.branch_id)
    previous = product.stock
    if previous == new_stock:
        return product

    product.stock = new_stock
    db.session.flush()
    _record_movement(
        product,
        action=ACTION_SET,
        quantity=abs(new_stock - previous),
        previous_stock=previous,
        source=SOURCE_MANUAL_ADJUSTMENT,
        actor_staff_id=ctx.staff_id,
        reason=reason,
    )
    db.session.commit()
    return product


def list_products(ctx, *, branch_id: int | None = None, include_inactive: bool = False) -> list[Product]:
    branch_ids = resolve_branch_filter(ctx, branch_id)
    if not branch_ids:
        return []
    query = db.session.query(Product).filter(
        Product.business_id == ctx.business_id,
        Product.branch_id.in_(branch_ids),
    )
    if not include_inactive:
        query = query.filter(Product.is_active.is_(True))
    return query.order_by(Product.branch_id.asc(), Product.name.asc()).all()


def list_low_stock(ctx, *, branch_id: int | None = None) -> list[Product]:
    """Active records at or below their low-stock threshold."""
    return [p for p in list_products(ctx, branch_id=branch_id) if p.is_low_stock]


def list_stock_movements(product_id: int, limit: int = 200) -> list[StockMovement]:
    return (
        db.session.query(StockMovement)
        .filter_by(product_id=product_id)
        .order_by(StockMovement.occurred_at.desc(), StockMovement.id.desc())
        .limit(limit)
        .all()
    )
