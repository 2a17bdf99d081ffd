"""
Supplier invoices: pricing, totals, one invoice per GRN and the expense
booked on approval.
"""

from datetime import date

import pytest

from stockroom.errors import CollaboratorError, PermissionDeniedError, StateError, ValidationError
from stockroom.models import Expense, SupplierInvoice
from stockroom.services import expense_service
from stockroom.services import goods_received_service as grs
from stockroom.services import supplier_invoice_service as sis


@pytest.fixture
def confirmed_grn(manager_ctx, main_branch, supplier, make_product, approved_order):
    """Two received lines: 10 units at 5.00 and 4 units at 2.50."""
    rice = make_product("Rice 5kg", "RICE-5", cost=500)
    salt = make_product("Salt", "SALT", cost=250)
    po = approved_order(
        manager_ctx, branch=main_branch, supplier=supplier,
        items=[
            {"product_id": rice.id, "requested_quantity": 10},
            {"product_id": salt.id, "requested_quantity": 4},
        ],
    )
    grn = grs.create_goods_received_note(manager_ctx, purchase_order_id=po.id, received={rice.id: 10, salt.id: 4})
    grs.confirm_goods_received_note(manager_ctx, grn.id)
    return grn, rice, salt


def _invoice(ctx, grn, **overrides):
    kwargs = dict(
        grn_id=grn.id,
        invoice_number="INV-1",
        invoice_date="2026-10-01",
        due_date="2026-10-31",
        tax_cents=600,
    )
    kwargs.update(overrides)
    return sis.create_supplier_invoice(ctx, **kwargs)


class TestPricing:
    def test_unit_price_drives_total(self):
        assert sis.price_invoice_line(10, unit_price_cents=500) == (500, 5000)

    def test_total_drives_unit_price_rounded_half_up(self):
        assert sis.price_invoice_line(4, line_total_cents=1001) == (250, 1001)
        assert sis.price_invoice_line(4, line_total_cents=1002) == (251, 1002)

    def test_zero_quantity_keeps_total(self):
        assert sis.price_invoice_line(0, line_total_cents=300) == (0, 300)

    def test_unpriced_line_is_zero(self):
        assert sis.price_invoice_line(3) == (0, 0)

    def test_negative_amounts_rejected(self):
        with pytest.raises(ValidationError):
            sis.price_invoice_line(1, unit_price_cents=-1)

    def test_totals_treat_missing_tax_as_zero(self):
        assert sis.calculate_invoice_totals([5000, 1000]) == (6000, 6000)
        assert sis.calculate_invoice_totals([5000, 1000], 600) == (6000, 6600)


class TestCreate:
    def test_defaults_to_received_lines_at_order_cost(self, accountant_ctx, confirmed_grn):
        grn, rice, salt = confirmed_grn
        invoice = _invoice(accountant_ctx, grn)

        assert invoice.status == sis.STATUS_DRAFT
        assert sorted((l.product_id, l.quantity, l.unit_price_cents, l.line_total_cents) for l in invoice.lines) == sorted([
            (rice.id, 10, 500, 5000),
            (salt.id, 4, 250, 1000),
        ])
        assert (invoice.subtotal_cents, invoice.tax_cents, invoice.total_cents) == (6000, 600, 6600)
        assert invoice.purchase_order_id == grn.purchase_order_id
        assert invoice.due_date == date(2026, 10, 31)

    def test_explicit_items(self, accountant_ctx, confirmed_grn):
        grn, rice, _ = confirmed_grn
        invoice = _invoice(
            accountant_ctx, grn, tax_cents=None,
            items=[{"product_id": rice.id, "line_total_cents": 4800}],
        )
        assert [(l.unit_price_cents, l.line_total_cents) for l in invoice.lines] == [(480, 4800)]
        assert invoice.total_cents == 4800

    def test_one_invoice_per_grn(self, accountant_ctx, confirmed_grn, db_session):
        grn, _, _ = confirmed_grn
        _invoice(accountant_ctx, grn)
        with pytest.raises(StateError):
            _invoice(accountant_ctx, grn, invoice_number="INV-2")
        assert db_session.query(SupplierInvoice).count() == 1

    def test_deleting_a_draft_frees_the_grn(self, accountant_ctx, confirmed_grn):
        grn, _, _ = confirmed_grn
        first = _invoice(accountant_ctx, grn)
        sis.delete_supplier_invoice(accountant_ctx, first.id)
        assert _invoice(accountant_ctx, grn, invoice_number="INV-2").invoice_number == "INV-2"

    def test_grn_must_be_confirmed(self, manager_ctx, accountant_ctx, main_branch, supplier, make_product, approved_order):
        product = make_product()
        po = approved_order(
            manager_ctx, branch=main_branch, supplier=supplier,
            items=[{"product_id": product.id, "requested_quantity": 2}],
        )
        draft = grs.create_goods_received_note(manager_ctx, purchase_order_id=po.id, received={product.id: 2})
        with pytest.raises(StateError):
            _invoice(accountant_ctx, draft)

    def test_total_must_be_positive(self, accountant_ctx, confirmed_grn):
        grn, rice, _ = confirmed_grn
        with pytest.raises(ValidationError):
            _invoice(accountant_ctx, grn, tax_cents=None, items=[{"product_id": rice.id, "unit_price_cents": 0}])

    def test_number_and_dates_required(self, accountant_ctx, confirmed_grn):
        grn, _, _ = confirmed_grn
        with pytest.raises(ValidationError):
            _invoice(accountant_ctx, grn, invoice_number="  ")
        with pytest.raises(ValidationError):
            _invoice(accountant_ctx, grn, due_date=None)
        with pytest.raises(ValidationError):
            _invoice(accountant_ctx, grn, invoice_date="01/10/2026")


class TestEdits:
    def test_line_and_tax_edits_recompute_totals(self, accountant_ctx, confirmed_grn):
        grn, _, salt = confirmed_grn
        invoice = _invoice(accountant_ctx, grn)

        sis.update_invoice_line(accountant_ctx, invoice.id, salt.id, line_total_cents=1001)
        assert (invoice.subtotal_cents, invoice.total_cents) == (6001, 6601)

        sis.update_invoice_tax(accountant_ctx, invoice.id, None)
        assert invoice.total_cents == invoice.subtotal_cents == 6001

    def test_approved_invoice_is_frozen(self, accountant_ctx, confirmed_grn):
        grn, _, salt = confirmed_grn
        invoice = _invoice(accountant_ctx, grn)
        sis.approve_supplier_invoice(accountant_ctx, invoice.id)
        with pytest.raises(StateError):
            sis.update_invoice_tax(accountant_ctx, invoice.id, 0)
        with pytest.raises(StateError):
            sis.update_invoice_line(accountant_ctx, invoice.id, salt.id, unit_price_cents=1)


class TestApproval:
    def test_books_exactly_one_expense(self, accountant_ctx, confirmed_grn, db_session):
        grn, _, _ = confirmed_grn
        invoice = _invoice(accountant_ctx, grn)

        sis.approve_supplier_invoice(accountant_ctx, invoice.id)

        assert invoice.status == sis.STATUS_APPROVED
        expense = db_session.query(Expense).one()
        assert expense.amount_cents == 6600
        assert expense.category == expense_service.CATEGORY_INVENTORY_PROCUREMENT == "Inventory Procurement"
        assert expense.title == "Supplier Invoice: INV-1"
        assert expense.expense_date == date(2026, 10, 1)
        assert expense.is_system_generated is True
        assert invoice.linked_expense_id == expense.id

        with pytest.raises(StateError):
            sis.approve_supplier_invoice(accountant_ctx, invoice.id)
        assert db_session.query(Expense).count() == 1

    def test_expense_failure_leaves_invoice_draft(self, accountant_ctx, confirmed_grn, monkeypatch, db_session):
        grn, _, _ = confirmed_grn
        invoice = _invoice(accountant_ctx, grn)
        invoice_id = invoice.id

        def broken_expense(**kwargs):
            raise expense_service.ExpenseError("ledger offline")

        monkeypatch.setattr(sis, "_create_system_expense_inner", broken_expense)

        with pytest.raises(CollaboratorError):
            sis.approve_supplier_invoice(accountant_ctx, invoice_id)
        assert db_session.get(SupplierInvoice, invoice_id).status == sis.STATUS_DRAFT
        assert db_session.query(Expense).count() == 0

    def test_manager_cannot_approve(self, manager_ctx, accountant_ctx, confirmed_grn):
        grn, _, _ = confirmed_grn
        invoice = _invoice(accountant_ctx, grn)
        with pytest.raises(PermissionDeniedError):
            sis.approve_supplier_invoice(manager_ctx, invoice.id)


def test_outstanding_payables_track_approved_unpaid(accountant_ctx, confirmed_grn, main_branch):
    grn, _, _ = confirmed_grn
    invoice = _invoice(accountant_ctx, grn)
    business_id = accountant_ctx.business_id
    assert sis.get_outstanding_payables(business_id) == 0

    sis.approve_supplier_invoice(accountant_ctx, invoice.id)
    assert sis.get_outstanding_payables(business_id) == 6600
    assert sis.get_outstanding_payables(business_id, main_branch.id) == 6600

    sis.mark_invoice_paid(accountant_ctx, invoice.id)
    assert invoice.status == sis.STATUS_PAID
    assert sis.get_outstanding_payables(business_id) == 0
    with pytest.raises(StateError):
        sis.mark_invoice_paid(accountant_ctx, invoice.id)
