"""
Inventory spreadsheet import and export.
"""

import io

import pytest
from openpyxl import load_workbook

from stockroom.errors import PermissionDeniedError
from stockroom.models import Category, Product
from stockroom.services import import_service


SHEET = (
    "Stock Sheet October,,,,,,,,,\n"
    "Product Name,Category,SKU,Stock Quantity,Cost Price,Retail Price,Wholesale Price,Supplier,Branch,Low Stock Threshold\n"
    "Rice 5kg,Grains,RICE-5,20,12.5,15,,Fresh Farms,Main Branch,5\n"
    "Beans,Pulses,BEANS,,3,,,Nobody,East Branch,\n"
    ",,,,,,,,,\n"
    ",Grains,NONAME,1,1,1,,,,\n"
)


@pytest.fixture
def grains(db_session, business):
    category = Category(business_id=business.id, name="Grains")
    db_session.add(category)
    db_session.commit()
    return category


def _import(ctx, text, filename="stock.csv"):
    return import_service.import_inventory_file(ctx, io.BytesIO(text.encode("utf-8")), filename)


@pytest.mark.parametrize("raw, cents", [
    ("12.5", 1250),
    ("3", 300),
    ("1,200.00", 120000),
    ("0.005", 1),
    ("", None),
    ("free", None),
    ("-1", None),
])
def test_parse_price_cents(raw, cents):
    assert import_service.parse_price_cents(raw) == cents


class TestImport:
    def test_creates_rows_and_reports_problems(self, manager_ctx, main_branch, supplier, grains, db_session):
        result = _import(manager_ctx, SHEET)

        assert result.total_rows == 3
        assert result.created == [
            'Row 3: Created product "Rice 5kg" (RICE-5)',
            'Row 4: Created product "Beans" (BEANS)',
        ]
        assert result.errors == ["Row 6: Product name is required"]
        assert result.warnings == [
            'Row 4: Category "Pulses" not found',
            'Row 4: Supplier "Nobody" not found',
            'Row 4: Branch "East Branch" not found, using default',
        ]

        rice = db_session.query(Product).filter_by(sku="RICE-5").one()
        assert (rice.stock, rice.cost_price_cents, rice.retail_price_cents) == (20, 1250, 1500)
        assert (rice.category_id, rice.supplier_id, rice.low_stock_threshold) == (grains.id, supplier.id, 5)
        assert rice.branch_id == main_branch.id

        beans = db_session.query(Product).filter_by(sku="BEANS").one()
        assert beans.stock == 0
        assert beans.retail_price_cents == 300
        assert beans.low_stock_threshold == import_service.DEFAULT_LOW_STOCK_THRESHOLD
        assert beans.branch_id == main_branch.id

    def test_stock_must_be_a_whole_number(self, manager_ctx, main_branch, db_session):
        result = import_service.import_inventory_rows(manager_ctx, [
            ["Product Name", "Stock Quantity", "Low Stock Threshold"],
            ["Tea", "inf", ""],
            ["Milk", "abc", ""],
            ["Salt", "4", "inf"],
        ])

        assert result.errors == [
            "Row 2: Stock Quantity must be a whole number",
            "Row 3: Stock Quantity must be a whole number",
        ]
        assert len(result.created) == 1
        assert result.created[0].startswith('Row 4: Created product "Salt"')
        salt = db_session.query(Product).filter_by(name="Salt").one()
        assert (salt.stock, salt.low_stock_threshold) == (4, import_service.DEFAULT_LOW_STOCK_THRESHOLD)
        assert db_session.query(Product).filter(Product.name.in_(["Tea", "Milk"])).count() == 0

    def test_existing_sku_is_skipped(self, manager_ctx, main_branch, make_product):
        make_product(sku="RICE-5")
        result = _import(manager_ctx, SHEET)
        assert 'Row 3: Product with SKU "RICE-5" already exists, skipped' in result.warnings
        assert result.created == ['Row 4: Created product "Beans" (BEANS)']

    def test_missing_header_row(self, manager_ctx, main_branch):
        result = _import(manager_ctx, "Name,Qty\nRice,3\n")
        assert result.errors == ["Could not find header row. Please use the template format."]
        assert result.created == []

    def test_header_without_data(self, manager_ctx, main_branch):
        result = _import(manager_ctx, "Product Name,SKU\n,\n")
        assert result.errors == ["No data rows found in file"]

    def test_unsupported_format(self, manager_ctx, main_branch):
        with pytest.raises(import_service.InventoryImportError, match="Unsupported file format"):
            _import(manager_ctx, SHEET, filename="stock.txt")

    def test_corrupt_workbook(self, manager_ctx, main_branch):
        with pytest.raises(import_service.InventoryImportError, match="valid .xlsx"):
            import_service.import_inventory_file(manager_ctx, io.BytesIO(b"not a zip"), "stock.xlsx")

    def test_non_utf8_csv(self, manager_ctx, main_branch, db_session):
        with pytest.raises(import_service.InventoryImportError, match="UTF-8"):
            import_service.import_inventory_file(manager_ctx, io.BytesIO(b"Product Name\n\xff\xfe\xfa\n"), "stock.csv")
        assert db_session.query(Product).count() == 0

    def test_cashier_cannot_import(self, cashier_ctx, main_branch):
        with pytest.raises(PermissionDeniedError):
            _import(cashier_ctx, SHEET)


class TestExport:
    def test_writes_import_layout(self, owner_ctx, main_branch, supplier, make_product):
        make_product("Oil", "OIL", stock=4, cost=1250, supplier=supplier)

        buffer = io.BytesIO()
        assert import_service.export_inventory_xlsx(owner_ctx, buffer) == 1

        buffer.seek(0)
        wb = load_workbook(buffer)
        rows = list(wb.active.iter_rows(values_only=True))
        assert list(rows[0]) == list(import_service.COLUMNS)
        assert (rows[1][0], rows[1][2], rows[1][3]) == ("Oil", "OIL", 4)
        assert rows[1][4] == pytest.approx(12.5)
        assert rows[1][7:] == ("Fresh Farms", "Main Branch", 10)

    def test_export_reimports_as_duplicates(self, owner_ctx, main_branch, make_product):
        make_product("Oil", "OIL", stock=4)

        buffer = io.BytesIO()
        import_service.export_inventory_xlsx(owner_ctx, buffer)
        buffer.seek(0)
        result = import_service.import_inventory_file(owner_ctx, buffer, "inventory.xlsx")

        assert result.total_rows == 1
        assert result.created == []
        assert result.warnings == ['Row 2: Product with SKU "OIL" already exists, skipped']

    def test_respects_branch_scope(self, manager_ctx, east_branch, make_product):
        make_product("Oil", "OIL", branch=east_branch)
        buffer = io.BytesIO()
        assert import_service.export_inventory_xlsx(manager_ctx, buffer) == 0
