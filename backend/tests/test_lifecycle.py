"""
Document lifecycles: transition tables and the guarded status update.
"""

import pytest

from stockroom.extensions import db
from stockroom.models import PurchaseOrder
from stockroom.services import lifecycle_service as lc
from stockroom.services import purchase_order_service as pos


class TestTransitionTables:
    @pytest.mark.parametrize("lifecycle, from_status, to_status", [
        (lc.SUPPLIER_REQUEST_LIFECYCLE, "Requested", "Converted"),
        (lc.SUPPLIER_REQUEST_LIFECYCLE, "Requested", "Cancelled"),
        (lc.PURCHASE_ORDER_LIFECYCLE, "Draft", "Sent"),
        (lc.PURCHASE_ORDER_LIFECYCLE, "Sent", "Approved"),
        (lc.PURCHASE_ORDER_LIFECYCLE, "Approved", "Delivered"),
        (lc.PURCHASE_ORDER_LIFECYCLE, "Approved", "Cancelled"),
        (lc.GOODS_RECEIVED_LIFECYCLE, "Draft", "Confirmed"),
        (lc.SUPPLIER_INVOICE_LIFECYCLE, "Draft", "Approved"),
        (lc.SUPPLIER_INVOICE_LIFECYCLE, "Approved", "Paid"),
    ])
    def test_allowed(self, lifecycle, from_status, to_status):
        assert lifecycle.can_transition(from_status, to_status)

    @pytest.mark.parametrize("lifecycle, from_status, to_status", [
        (lc.SUPPLIER_REQUEST_LIFECYCLE, "Converted", "Requested"),
        (lc.SUPPLIER_REQUEST_LIFECYCLE, "Cancelled", "Converted"),
        (lc.PURCHASE_ORDER_LIFECYCLE, "Draft", "Approved"),
        (lc.PURCHASE_ORDER_LIFECYCLE, "Delivered", "Cancelled"),
        (lc.PURCHASE_ORDER_LIFECYCLE, "Cancelled", "Draft"),
        (lc.GOODS_RECEIVED_LIFECYCLE, "Confirmed", "Draft"),
        (lc.SUPPLIER_INVOICE_LIFECYCLE, "Draft", "Paid"),
        (lc.SUPPLIER_INVOICE_LIFECYCLE, "Paid", "Approved"),
    ])
    def test_rejected(self, lifecycle, from_status, to_status):
        assert not lifecycle.can_transition(from_status, to_status)

    @pytest.mark.parametrize("lifecycle, status", [
        (lc.SUPPLIER_REQUEST_LIFECYCLE, "Converted"),
        (lc.SUPPLIER_REQUEST_LIFECYCLE, "Cancelled"),
        (lc.PURCHASE_ORDER_LIFECYCLE, "Delivered"),
        (lc.PURCHASE_ORDER_LIFECYCLE, "Cancelled"),
        (lc.GOODS_RECEIVED_LIFECYCLE, "Confirmed"),
        (lc.SUPPLIER_INVOICE_LIFECYCLE, "Paid"),
    ])
    def test_terminal_states(self, lifecycle, status):
        assert lifecycle.is_terminal(status)

    def test_unknown_status(self):
        with pytest.raises(lc.LifecycleError):
            lc.PURCHASE_ORDER_LIFECYCLE.validate_status("Shipped")

    def test_next_statuses(self):
        assert lc.PURCHASE_ORDER_LIFECYCLE.next_statuses("Draft") == ["Cancelled", "Sent"]


class TestAdvance:
    @pytest.fixture
    def draft_order(self, manager_ctx, main_branch, supplier, make_product):
        product = make_product()
        return pos.create_purchase_order(
            manager_ctx, branch_id=main_branch.id, supplier_id=supplier.id,
            items=[{"product_id": product.id, "requested_quantity": 1}],
        )

    def test_moves_and_writes_extra_values(self, draft_order, db_session):
        lc.advance(draft_order, lc.PURCHASE_ORDER_LIFECYCLE, "Sent", sent_via=["SMS"])
        db_session.commit()
        assert draft_order.status == "Sent"
        assert draft_order.sent_via == ["SMS"]

    def test_same_state_is_rejected(self, draft_order):
        with pytest.raises(lc.LifecycleError):
            lc.advance(draft_order, lc.PURCHASE_ORDER_LIFECYCLE, "Draft")

    def test_custom_error_class(self, draft_order):
        with pytest.raises(pos.PurchaseOrderStateError):
            lc.advance(draft_order, lc.PURCHASE_ORDER_LIFECYCLE, "Delivered", error_cls=pos.PurchaseOrderStateError)

    def test_stale_read_loses_the_race(self, draft_order, db_session):
        # another actor cancels the order behind this session's back
        db.session.execute(
            PurchaseOrder.__table__.update()
            .where(PurchaseOrder.id == draft_order.id)
            .values(status="Cancelled")
        )

        with pytest.raises(lc.LifecycleError, match="no longer Draft"):
            lc.advance(draft_order, lc.PURCHASE_ORDER_LIFECYCLE, "Sent")

        stored = db_session.query(PurchaseOrder.status).filter_by(id=draft_order.id).scalar()
        assert stored == "Cancelled"
