"""
Purchase orders: numbering, line snapshots, Draft-only edits and the
Draft -> Sent -> Approved path.
"""

import pytest

from stockroom.errors import PermissionDeniedError, StateError, ValidationError
from stockroom.models import ProcurementEvent
from stockroom.services import purchase_order_service as pos


def test_numbers_are_sequential_per_business(manager_ctx, main_branch, supplier, make_product):
    product = make_product()
    first = pos.create_purchase_order(
        manager_ctx, branch_id=main_branch.id, supplier_id=supplier.id,
        items=[{"product_id": product.id, "requested_quantity": 5}],
    )
    second = pos.create_purchase_order(
        manager_ctx, branch_id=main_branch.id, supplier_id=supplier.id,
        items=[{"product_id": product.id, "requested_quantity": 7}],
    )
    assert (first.po_number, second.po_number) == ("PO-001", "PO-002")


def test_lines_snapshot_product_and_stock(manager_ctx, main_branch, supplier, make_product):
    product = make_product("Sugar 1kg", "SUG-1", stock=12, cost=300)
    po = pos.create_purchase_order(
        manager_ctx, branch_id=main_branch.id, supplier_id=supplier.id,
        items=[{"product_id": product.id, "requested_quantity": 20}],
        expected_delivery_date="2026-11-01",
    )
    line = po.lines[0]
    assert (line.product_sku, line.product_name, line.current_stock) == ("SUG-1", "Sugar 1kg", 12)
    assert line.unit_cost_cents == 300
    assert line.total_cost_cents == 6000
    assert po.total_amount_cents == 6000
    assert po.to_dict()["expected_delivery_date"] == "2026-11-01"


class TestValidation:
    def test_needs_lines(self, manager_ctx, main_branch, supplier):
        with pytest.raises(ValidationError):
            pos.create_purchase_order(manager_ctx, branch_id=main_branch.id, supplier_id=supplier.id, items=[])

    def test_rejects_non_positive_quantity(self, manager_ctx, main_branch, supplier, make_product):
        product = make_product()
        with pytest.raises(ValidationError):
            pos.create_purchase_order(
                manager_ctx, branch_id=main_branch.id, supplier_id=supplier.id,
                items=[{"product_id": product.id, "requested_quantity": 0}],
            )

    def test_rejects_duplicate_product(self, manager_ctx, main_branch, supplier, make_product):
        product = make_product()
        with pytest.raises(ValidationError):
            pos.create_purchase_order(
                manager_ctx, branch_id=main_branch.id, supplier_id=supplier.id,
                items=[
                    {"product_id": product.id, "requested_quantity": 1},
                    {"product_id": product.id, "requested_quantity": 2},
                ],
            )

    def test_rejects_inactive_supplier(self, manager_ctx, main_branch, supplier, make_product, db_session):
        product = make_product()
        supplier.is_active = False
        db_session.commit()
        with pytest.raises(ValidationError):
            pos.create_purchase_order(
                manager_ctx, branch_id=main_branch.id, supplier_id=supplier.id,
                items=[{"product_id": product.id, "requested_quantity": 1}],
            )


class TestLifecycle:
    def test_send_then_approve(self, manager_ctx, main_branch, supplier, make_product, db_session):
        product = make_product()
        po = pos.create_purchase_order(
            manager_ctx, branch_id=main_branch.id, supplier_id=supplier.id,
            items=[{"product_id": product.id, "requested_quantity": 5}],
        )
        pos.send_purchase_order(manager_ctx, po.id, methods=["Email", "SMS", "Email"])
        assert po.status == pos.STATUS_SENT
        assert po.sent_via == ["Email", "SMS"]

        pos.approve_purchase_order(manager_ctx, po.id)
        assert po.status == pos.STATUS_APPROVED
        assert po.approved_by_staff_id == manager_ctx.staff_id
        assert [o.id for o in pos.list_available_for_grn(manager_ctx)] == [po.id]

        events = (
            db_session.query(ProcurementEvent.event_type)
            .filter_by(entity_type="purchase_order", entity_id=po.id)
            .order_by(ProcurementEvent.id)
            .all()
        )
        assert [e.event_type for e in events] == [
            "purchase_order.created",
            "purchase_order.sent",
            "purchase_order.approved",
        ]

    def test_cannot_approve_a_draft(self, manager_ctx, main_branch, supplier, make_product):
        product = make_product()
        po = pos.create_purchase_order(
            manager_ctx, branch_id=main_branch.id, supplier_id=supplier.id,
            items=[{"product_id": product.id, "requested_quantity": 5}],
        )
        with pytest.raises(StateError):
            pos.approve_purchase_order(manager_ctx, po.id)
        assert po.status == pos.STATUS_DRAFT

    def test_only_drafts_are_editable(self, manager_ctx, main_branch, supplier, make_product, approved_order):
        product = make_product()
        other = make_product("Flour", "FLOUR")
        draft = pos.create_purchase_order(
            manager_ctx, branch_id=main_branch.id, supplier_id=supplier.id,
            items=[{"product_id": product.id, "requested_quantity": 5}],
        )
        pos.update_purchase_order(
            manager_ctx, draft.id,
            items=[{"product_id": other.id, "requested_quantity": 9}],
            notes="switch to flour",
        )
        assert [(l.product_id, l.requested_quantity) for l in draft.lines] == [(other.id, 9)]
        assert draft.notes == "switch to flour"

        approved = approved_order(
            manager_ctx, branch=main_branch, supplier=supplier,
            items=[{"product_id": product.id, "requested_quantity": 5}],
        )
        with pytest.raises(StateError):
            pos.update_purchase_order(manager_ctx, approved.id, notes="too late")

    def test_cancelled_orders_stay_cancelled(self, manager_ctx, main_branch, supplier, make_product):
        product = make_product()
        po = pos.create_purchase_order(
            manager_ctx, branch_id=main_branch.id, supplier_id=supplier.id,
            items=[{"product_id": product.id, "requested_quantity": 5}],
        )
        pos.cancel_purchase_order(manager_ctx, po.id, reason="duplicate")
        assert po.status == pos.STATUS_CANCELLED
        assert po.cancelled_reason == "duplicate"
        with pytest.raises(StateError):
            pos.send_purchase_order(manager_ctx, po.id, methods=["Email"])


def test_branch_scope_is_enforced(manager_ctx, east_branch, supplier, make_product):
    product = make_product(branch=east_branch)
    with pytest.raises(PermissionDeniedError):
        pos.create_purchase_order(
            manager_ctx, branch_id=east_branch.id, supplier_id=supplier.id,
            items=[{"product_id": product.id, "requested_quantity": 1}],
        )


def test_cashier_cannot_order(cashier_ctx, main_branch, supplier, make_product):
    product = make_product()
    with pytest.raises(PermissionDeniedError):
        pos.create_purchase_order(
            cashier_ctx, branch_id=main_branch.id, supplier_id=supplier.id,
            items=[{"product_id": product.id, "requested_quantity": 1}],
        )
