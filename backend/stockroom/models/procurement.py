from __future__ import annotations

from ..extensions import db
from stockroom.time_utils import to_utc_z, to_iso_date


COMMUNICATION_METHODS = ("Email", "SMS", "WhatsApp")

DELIVERY_FULL = "Full"
DELIVERY_PARTIAL = "Partial"


class SupplierRequest(db.Model):
    """
    Low-stock alert sent to a supplier for one product at one branch.

    conversion_status: Requested -> Converted | Cancelled (one-way).
    status records the outcome of the notification dispatch (Sent / Failed).

    At most one Requested row may exist per (branch, product); the partial
    unique index backs the check done in the service.
    """
    __tablename__ = "supplier_requests"
    __table_args__ = (
        db.Index(
            "uq_supplier_requests_active_product",
            "branch_id",
            "product_id",
            unique=True,
            sqlite_where=db.text("conversion_status = 'Requested'"),
            postgresql_where=db.text("conversion_status = 'Requested'"),
        ),
        db.CheckConstraint("requested_quantity > 0", name="ck_supplier_requests_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    business_id = db.Column(db.Integer, db.ForeignKey("businesses.id"), nullable=False, index=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    supplier_id = db.Column(db.Integer, db.ForeignKey("suppliers.id"), nullable=False, index=True)

    current_stock = db.Column(db.Integer, nullable=False)
    requested_quantity = db.Column(db.Integer, nullable=False)
    communication_methods = db.Column(db.JSON, nullable=False, default=list)
    custom_message = db.Column(db.Text, nullable=True)

    status = db.Column(db.String(16), nullable=False, default="Sent")
    sent_via = db.Column(db.JSON, nullable=True)

    conversion_status = db.Column(db.String(16), nullable=False, default="Requested", index=True)
    converted_to_po_id = db.Column(db.Integer, nullable=True)
    converted_at = db.Column(db.DateTime(timezone=True), nullable=True)
    converted_by_staff_id = db.Column(db.Integer, db.ForeignKey("staff.id"), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_reason = db.Column(db.String(255), nullable=True)

    created_by_staff_id = db.Column(db.Integer, db.ForeignKey("staff.id"), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    product = db.relationship("Product")
    supplier = db.relationship("Supplier")

    def __repr__(self) -> str:
        return (
            f"<SupplierRequest id={self.id} product_id={self.product_id} "
            f"branch_id={self.branch_id} conversion_status={self.conversion_status!r}>"
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "business_id": self.business_id,
            "branch_id": self.branch_id,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "product_sku": self.product.sku if self.product else None,
            "supplier_id": self.supplier_id,
            "supplier_name": self.supplier.name if self.supplier else None,
            "current_stock": self.current_stock,
            "requested_quantity": self.requested_quantity,
            "communication_methods": list(self.communication_methods or []),
            "custom_message": self.custom_message,
            "status": self.status,
            "sent_via": list(self.sent_via or []),
            "conversion_status": self.conversion_status,
            "converted_to_po_id": self.converted_to_po_id,
            "converted_at": to_utc_z(self.converted_at),
            "converted_by_staff_id": self.converted_by_staff_id,
            "cancelled_at": to_utc_z(self.cancelled_at),
            "cancelled_reason": self.cancelled_reason,
            "created_by_staff_id": self.created_by_staff_id,
            "created_at": to_utc_z(self.created_at),
        }


class PurchaseOrder(db.Model):
    """
    Order placed with a supplier for one branch.

    LIFECYCLE:
        Draft -> Sent -> Approved -> Delivered
        Draft | Sent | Approved -> Cancelled

    Only Approved orders may be received against. source_request_id is a
    plain reference (no FK): deleting the originating supplier request must
    never touch the order.
    """
    __tablename__ = "purchase_orders"
    __table_args__ = (
        db.UniqueConstraint("business_id", "po_number", name="uq_purchase_orders_business_number"),
        db.Index("ix_purchase_orders_branch_status", "branch_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    business_id = db.Column(db.Integer, db.ForeignKey("businesses.id"), nullable=False, index=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False)
    supplier_id = db.Column(db.Integer, db.ForeignKey("suppliers.id"), nullable=False, index=True)

    po_number = db.Column(db.String(32), nullable=False)
    status = db.Column(db.String(16), nullable=False, default="Draft")
    expected_delivery_date = db.Column(db.Date, nullable=True)
    notes = db.Column(db.Text, nullable=True)
    source_request_id = db.Column(db.Integer, nullable=True)

    sent_at = db.Column(db.DateTime(timezone=True), nullable=True)
    sent_via = db.Column(db.JSON, nullable=True)
    approved_at = db.Column(db.DateTime(timezone=True), nullable=True)
    approved_by_staff_id = db.Column(db.Integer, db.ForeignKey("staff.id"), nullable=True)
    delivered_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_reason = db.Column(db.String(255), nullable=True)

    created_by_staff_id = db.Column(db.Integer, db.ForeignKey("staff.id"), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    supplier = db.relationship("Supplier")
    branch = db.relationship("Branch")
    lines = db.relationship(
        "PurchaseOrderLine",
        backref="purchase_order",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="PurchaseOrderLine.id",
    )

    @property
    def total_amount_cents(self) -> int:
        return sum(line.total_cost_cents or 0 for line in self.lines)

    def __repr__(self) -> str:
        return f"<PurchaseOrder id={self.id} po_number={self.po_number!r} status={self.status!r}>"

    def to_dict(self, include_lines: bool = True) -> dict:
        data = {
            "id": self.id,
            "business_id": self.business_id,
            "branch_id": self.branch_id,
            "supplier_id": self.supplier_id,
            "supplier_name": self.supplier.name if self.supplier else None,
            "po_number": self.po_number,
            "status": self.status,
            "expected_delivery_date": to_iso_date(self.expected_delivery_date),
            "notes": self.notes,
            "source_request_id": self.source_request_id,
            "total_amount_cents": self.total_amount_cents,
            "sent_at": to_utc_z(self.sent_at),
            "sent_via": list(self.sent_via or []),
            "approved_at": to_utc_z(self.approved_at),
            "approved_by_staff_id": self.approved_by_staff_id,
            "delivered_at": to_utc_z(self.delivered_at),
            "cancelled_at": to_utc_z(self.cancelled_at),
            "cancelled_reason": self.cancelled_reason,
            "created_by_staff_id": self.created_by_staff_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_lines:
            data["lines"] = [line.to_dict() for line in self.lines]
        return data


class PurchaseOrderLine(db.Model):
    __tablename__ = "purchase_order_lines"
    __table_args__ = (
        db.UniqueConstraint("purchase_order_id", "product_id", name="uq_po_lines_order_product"),
        db.CheckConstraint("requested_quantity > 0", name="ck_po_lines_quantity_positive"),
    )

    id = db.Column(db.Integer, primary_key=True)
    purchase_order_id = db.Column(db.Integer, db.ForeignKey("purchase_orders.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)

    # Snapshots taken when the line was written
    product_sku = db.Column(db.String(64), nullable=False)
    product_name = db.Column(db.String(255), nullable=False)
    current_stock = db.Column(db.Integer, nullable=False, default=0)

    requested_quantity = db.Column(db.Integer, nullable=False)
    unit_cost_cents = db.Column(db.Integer, nullable=True)
    total_cost_cents = db.Column(db.Integer, nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "product_sku": self.product_sku,
            "product_name": self.product_name,
            "current_stock": self.current_stock,
            "requested_quantity": self.requested_quantity,
            "unit_cost_cents": self.unit_cost_cents,
            "total_cost_cents": self.total_cost_cents,
        }


class GoodsReceivedNote(db.Model):
    """
    Delivery confirmation against an Approved purchase order.

    LIFECYCLE: Draft -> Confirmed. Confirming increments branch stock once;
    afterwards the note and its lines are immutable.

    delivery_status is derived from the lines on every read.
    """
    __tablename__ = "goods_received_notes"
    __table_args__ = (
        db.UniqueConstraint("business_id", "grn_number", name="uq_grn_business_number"),
        db.Index("ix_grn_branch_status", "branch_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    business_id = db.Column(db.Integer, db.ForeignKey("businesses.id"), nullable=False, index=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False)
    purchase_order_id = db.Column(db.Integer, db.ForeignKey("purchase_orders.id"), nullable=False, index=True)
    supplier_id = db.Column(db.Integer, db.ForeignKey("suppliers.id"), nullable=False)

    grn_number = db.Column(db.String(32), nullable=False)
    status = db.Column(db.String(16), nullable=False, default="Draft")
    notes = db.Column(db.Text, nullable=True)

    received_by_staff_id = db.Column(db.Integer, db.ForeignKey("staff.id"), nullable=False)
    confirmed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    confirmed_by_staff_id = db.Column(db.Integer, db.ForeignKey("staff.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    purchase_order = db.relationship("PurchaseOrder", backref=db.backref("goods_received_notes", lazy=True))
    supplier = db.relationship("Supplier")
    lines = db.relationship(
        "GoodsReceivedLine",
        backref="goods_received_note",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="GoodsReceivedLine.id",
    )

    @property
    def delivery_status(self) -> str:
        return calculate_delivery_status(self.lines)

    @property
    def total_received_quantity(self) -> int:
        return sum(line.received_quantity for line in self.lines)

    def __repr__(self) -> str:
        return f"<GoodsReceivedNote id={self.id} grn_number={self.grn_number!r} status={self.status!r}>"

    def to_dict(self, include_lines: bool = True) -> dict:
        data = {
            "id": self.id,
            "business_id": self.business_id,
            "branch_id": self.branch_id,
            "purchase_order_id": self.purchase_order_id,
            "po_number": self.purchase_order.po_number if self.purchase_order else None,
            "supplier_id": self.supplier_id,
            "supplier_name": self.supplier.name if self.supplier else None,
            "grn_number": self.grn_number,
            "status": self.status,
            "delivery_status": self.delivery_status,
            "notes": self.notes,
            "received_by_staff_id": self.received_by_staff_id,
            "confirmed_at": to_utc_z(self.confirmed_at),
            "confirmed_by_staff_id": self.confirmed_by_staff_id,
            "created_at": to_utc_z(self.created_at),
        }
        if include_lines:
            data["lines"] = [line.to_dict() for line in self.lines]
        return data


class GoodsReceivedLine(db.Model):
    __tablename__ = "goods_received_lines"
    __table_args__ = (
        db.CheckConstraint(
            "received_quantity >= 0 AND received_quantity <= ordered_quantity",
            name="ck_grn_lines_received_within_ordered",
        ),
    )

    id = db.Column(db.Integer, primary_key=True)
    grn_id = db.Column(db.Integer, db.ForeignKey("goods_received_notes.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)
    product_sku = db.Column(db.String(64), nullable=False)
    product_name = db.Column(db.String(255), nullable=False)
    ordered_quantity = db.Column(db.Integer, nullable=False)
    received_quantity = db.Column(db.Integer, nullable=False, default=0)
    notes = db.Column(db.String(255), nullable=True)

    @property
    def is_fully_received(self) -> bool:
        return self.received_quantity == self.ordered_quantity

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "product_sku": self.product_sku,
            "product_name": self.product_name,
            "ordered_quantity": self.ordered_quantity,
            "received_quantity": self.received_quantity,
            "notes": self.notes,
        }


def calculate_delivery_status(lines) -> str:
    """Full iff every line is fully received, otherwise Partial."""
    lines = list(lines)
    if lines and all(line.received_quantity == line.ordered_quantity for line in lines):
        return DELIVERY_FULL
    return DELIVERY_PARTIAL


class SupplierInvoice(db.Model):
    """
    Supplier bill for a confirmed GRN.

    LIFECYCLE: Draft -> Approved -> Paid. Approval writes exactly one linked
    Expense. grn_id is unique: one invoice per GRN.

    subtotal_cents and total_cents are persisted and recomputed by the
    service on every line or tax edit.
    """
    __tablename__ = "supplier_invoices"
    __table_args__ = (
        db.UniqueConstraint("grn_id", name="uq_supplier_invoices_grn"),
        db.Index("ix_supplier_invoices_business_status", "business_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    business_id = db.Column(db.Integer, db.ForeignKey("businesses.id"), nullable=False, index=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False)
    supplier_id = db.Column(db.Integer, db.ForeignKey("suppliers.id"), nullable=False, index=True)
    purchase_order_id = db.Column(db.Integer, db.ForeignKey("purchase_orders.id"), nullable=False)
    grn_id = db.Column(db.Integer, db.ForeignKey("goods_received_notes.id"), nullable=False)

    invoice_number = db.Column(db.String(64), nullable=False)
    invoice_date = db.Column(db.Date, nullable=False)
    due_date = db.Column(db.Date, nullable=False)

    subtotal_cents = db.Column(db.Integer, nullable=False, default=0)
    tax_cents = db.Column(db.Integer, nullable=True)
    total_cents = db.Column(db.Integer, nullable=False, default=0)

    status = db.Column(db.String(16), nullable=False, default="Draft")
    notes = db.Column(db.Text, nullable=True)

    created_by_staff_id = db.Column(db.Integer, db.ForeignKey("staff.id"), nullable=False)
    approved_at = db.Column(db.DateTime(timezone=True), nullable=True)
    approved_by_staff_id = db.Column(db.Integer, db.ForeignKey("staff.id"), nullable=True)
    paid_at = db.Column(db.DateTime(timezone=True), nullable=True)
    paid_by_staff_id = db.Column(db.Integer, db.ForeignKey("staff.id"), nullable=True)
    linked_expense_id = db.Column(db.Integer, db.ForeignKey("expenses.id"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    supplier = db.relationship("Supplier")
    goods_received_note = db.relationship("GoodsReceivedNote")
    purchase_order = db.relationship("PurchaseOrder")
    lines = db.relationship(
        "SupplierInvoiceLine",
        backref="invoice",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="SupplierInvoiceLine.id",
    )

    def __repr__(self) -> str:
        return f"<SupplierInvoice id={self.id} invoice_number={self.invoice_number!r} status={self.status!r}>"

    def to_dict(self, include_lines: bool = True) -> dict:
        data = {
            "id": self.id,
            "business_id": self.business_id,
            "branch_id": self.branch_id,
            "supplier_id": self.supplier_id,
            "supplier_name": self.supplier.name if self.supplier else None,
            "purchase_order_id": self.purchase_order_id,
            "po_number": self.purchase_order.po_number if self.purchase_order else None,
            "grn_id": self.grn_id,
            "grn_number": self.goods_received_note.grn_number if self.goods_received_note else None,
            "invoice_number": self.invoice_number,
            "invoice_date": to_iso_date(self.invoice_date),
            "due_date": to_iso_date(self.due_date),
            "subtotal_cents": self.subtotal_cents,
            "tax_cents": self.tax_cents,
            "total_cents": self.total_cents,
            "status": self.status,
            "notes": self.notes,
            "created_by_staff_id": self.created_by_staff_id,
            "approved_at": to_utc_z(self.approved_at),
            "approved_by_staff_id": self.approved_by_staff_id,
            "paid_at": to_utc_z(self.paid_at),
            "paid_by_staff_id": self.paid_by_staff_id,
            "linked_expense_id": self.linked_expense_id,
            "created_at": to_utc_z(self.created_at),
        }
        if include_lines:
            data["lines"] = [line.to_dict() for line in self.lines]
        return data


class SupplierInvoiceLine(db.Model):
    __tablename__ = "supplier_invoice_lines"
    __table_args__ = (
        db.UniqueConstraint("invoice_id", "product_id", name="uq_invoice_lines_invoice_product"),
    )

    id = db.Column(db.Integer, primary_key=True)
    invoice_id = db.Column(db.Integer, db.ForeignKey("supplier_invoices.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)
    product_sku = db.Column(db.String(64), nullable=False)
    product_name = db.Column(db.String(255), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False, default=0)
    line_total_cents = db.Column(db.Integer, nullable=False, default=0)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "product_sku": self.product_sku,
            "product_name": self.product_name,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "line_total_cents": self.line_total_cents,
        }
