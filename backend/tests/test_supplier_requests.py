"""
Supplier requests: dispatch outcome, one open request per product and
branch, and the one-way conversion into a purchase order.
"""

import pytest

from stockroom.errors import PermissionDeniedError, StateError, ValidationError
from stockroom.models import PurchaseOrder, SupplierRequest
from stockroom.services import supplier_request_service as srs


def _request(ctx, branch, product, supplier, **overrides):
    kwargs = dict(
        branch_id=branch.id,
        product_id=product.id,
        supplier_id=supplier.id,
        requested_quantity=50,
        communication_methods=["Email"],
    )
    kwargs.update(overrides)
    return srs.create_supplier_request(ctx, **kwargs)


class TestCreate:
    def test_sent_when_a_channel_delivers(self, manager_ctx, main_branch, supplier, make_product, notifier):
        product = make_product(stock=3)
        request = _request(manager_ctx, main_branch, product, supplier, custom_message="Before Friday please")

        assert request.status == srs.DISPATCH_SENT
        assert request.sent_via == ["Email"]
        assert request.current_stock == 3
        assert request.conversion_status == srs.CONVERSION_REQUESTED
        assert notifier.sent[0]["contact"] == "orders@freshfarms.test"
        assert "Before Friday please" in notifier.sent[0]["message"]

    def test_falls_through_to_next_channel(self, manager_ctx, main_branch, supplier, make_product, notifier):
        notifier.failing.add("Email")
        product = make_product()
        request = _request(manager_ctx, main_branch, product, supplier, communication_methods=["Email", "WhatsApp"])

        # WhatsApp falls back to the phone number
        assert request.status == srs.DISPATCH_SENT
        assert request.sent_via == ["WhatsApp"]

    def test_missing_contact_records_failure(self, manager_ctx, main_branch, supplier, make_product, notifier, db_session):
        supplier.contact_email = None
        db_session.commit()
        product = make_product()
        request = _request(manager_ctx, main_branch, product, supplier)

        assert request.status == srs.DISPATCH_FAILED
        assert request.sent_via == []
        assert db_session.get(SupplierRequest, request.id) is not None

    @pytest.mark.parametrize("quantity", [0, -5])
    def test_quantity_must_be_positive(self, manager_ctx, main_branch, supplier, make_product, quantity):
        product = make_product()
        with pytest.raises(ValidationError):
            _request(manager_ctx, main_branch, product, supplier, requested_quantity=quantity)

    def test_needs_a_known_method(self, manager_ctx, main_branch, supplier, make_product):
        product = make_product()
        with pytest.raises(ValidationError):
            _request(manager_ctx, main_branch, product, supplier, communication_methods=[])
        with pytest.raises(ValidationError):
            _request(manager_ctx, main_branch, product, supplier, communication_methods=["Pigeon"])

    def test_one_open_request_per_product_and_branch(self, manager_ctx, main_branch, supplier, make_product, notifier):
        product = make_product()
        _request(manager_ctx, main_branch, product, supplier)
        with pytest.raises(StateError):
            _request(manager_ctx, main_branch, product, supplier)

    def test_cashier_cannot_create(self, cashier_ctx, main_branch, supplier, make_product):
        product = make_product()
        with pytest.raises(PermissionDeniedError):
            _request(cashier_ctx, main_branch, product, supplier)


class TestConvert:
    def test_conversion_creates_exactly_one_draft_order(self, owner_ctx, main_branch, supplier, make_product, notifier, db_session):
        product = make_product(cost=450)
        request = _request(owner_ctx, main_branch, product, supplier)

        request, po = srs.convert_to_purchase_order(owner_ctx, request.id)

        assert request.conversion_status == srs.CONVERSION_CONVERTED
        assert request.converted_to_po_id == po.id
        assert request.converted_by_staff_id == owner_ctx.staff_id
        assert po.status == "Draft"
        assert po.po_number == "PO-001"
        assert po.source_request_id == request.id
        assert [(l.product_id, l.requested_quantity, l.unit_cost_cents) for l in po.lines] == [
            (product.id, 50, 450)
        ]

        with pytest.raises(StateError):
            srs.convert_to_purchase_order(owner_ctx, request.id)
        assert db_session.query(PurchaseOrder).count() == 1

    def test_new_request_allowed_once_previous_is_converted(self, owner_ctx, main_branch, supplier, make_product, notifier):
        product = make_product()
        first = _request(owner_ctx, main_branch, product, supplier)
        with pytest.raises(StateError):
            _request(owner_ctx, main_branch, product, supplier)

        srs.convert_to_purchase_order(owner_ctx, first.id)
        second = _request(owner_ctx, main_branch, product, supplier)
        assert second.conversion_status == srs.CONVERSION_REQUESTED

    def test_only_owner_converts(self, manager_ctx, main_branch, supplier, make_product, notifier):
        product = make_product()
        request = _request(manager_ctx, main_branch, product, supplier)
        with pytest.raises(PermissionDeniedError):
            srs.convert_to_purchase_order(manager_ctx, request.id)


class TestCancelAndDelete:
    def test_cancelled_request_cannot_convert(self, owner_ctx, main_branch, supplier, make_product, notifier):
        product = make_product()
        request = _request(owner_ctx, main_branch, product, supplier)
        srs.cancel_supplier_request(owner_ctx, request.id, reason="Found stock in back room")

        assert request.conversion_status == srs.CONVERSION_CANCELLED
        assert request.cancelled_reason == "Found stock in back room"
        with pytest.raises(StateError):
            srs.convert_to_purchase_order(owner_ctx, request.id)

        # the product is free for a new request again
        assert _request(owner_ctx, main_branch, product, supplier).conversion_status == srs.CONVERSION_REQUESTED

    def test_delete_keeps_converted_order(self, owner_ctx, main_branch, supplier, make_product, notifier, db_session):
        product = make_product()
        request = _request(owner_ctx, main_branch, product, supplier)
        _, po = srs.convert_to_purchase_order(owner_ctx, request.id)
        request_id, po_id = request.id, po.id

        srs.delete_supplier_request(owner_ctx, request_id)

        assert db_session.get(SupplierRequest, request_id) is None
        assert db_session.get(PurchaseOrder, po_id) is not None

    def test_only_creator_or_owner_deletes(self, manager_ctx, owner_ctx, east_ctx, main_branch, east_branch, supplier, make_product, notifier):
        product = make_product()
        request = _request(owner_ctx, main_branch, product, supplier)
        with pytest.raises(PermissionDeniedError):
            srs.delete_supplier_request(manager_ctx, request.id)

        east_product = make_product("Oil", "OIL", branch=east_branch)
        own = _request(east_ctx, east_branch, east_product, supplier)
        srs.delete_supplier_request(east_ctx, own.id)

    def test_other_branch_request_not_visible(self, owner_ctx, manager_ctx, east_branch, supplier, make_product, notifier):
        east_product = make_product("Oil", "OIL", branch=east_branch)
        request = _request(owner_ctx, east_branch, east_product, supplier)
        with pytest.raises(PermissionDeniedError):
            srs.get_supplier_request(manager_ctx, request.id)
        assert srs.list_supplier_requests(manager_ctx) == []
