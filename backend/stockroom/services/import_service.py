# Overview: Service-layer operations for spreadsheet inventory import and export.

"""
Inventory spreadsheet import/export.

Workbook layout (first sheet, one header row, one product per row):

    Product Name | Category | SKU | Stock Quantity | Cost Price | Retail Price |
    Wholesale Price | Supplier | Branch | Low Stock Threshold

The header row is the first row containing "Product Name", so title rows
above it are ignored. Prices are in currency units ("12.50") and stored as
cents. Rows are validated one at a time: a bad row is reported and skipped,
the rest are still created. Unknown category or supplier names only warn;
an unknown branch falls back to the business default branch.
"""

from __future__ import annotations

import csv
import io
import logging
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from zipfile import BadZipFile

from openpyxl import Workbook, load_workbook
from openpyxl.utils.exceptions import InvalidFileException

from ..extensions import db
from ..errors import ValidationError
from ..models import Branch, Product, Category, Supplier
from .inventory_service import (
    _create_product_inner,
    find_product_by_sku,
    InventoryValidationError,
    SOURCE_IMPORT,
)
from .permission_service import require_permission, accessible_branch_ids, resolve_branch_filter
from .supplier_service import find_category_by_name, find_supplier_by_name


logger = logging.getLogger(__name__)

COL_NAME = "Product Name"
COL_CATEGORY = "Category"
COL_SKU = "SKU"
COL_STOCK = "Stock Quantity"
COL_COST = "Cost Price"
COL_RETAIL = "Retail Price"
COL_WHOLESALE = "Wholesale Price"
COL_SUPPLIER = "Supplier"
COL_BRANCH = "Branch"
COL_THRESHOLD = "Low Stock Threshold"

COLUMNS = (
    COL_NAME, COL_CATEGORY, COL_SKU, COL_STOCK, COL_COST,
    COL_RETAIL, COL_WHOLESALE, COL_SUPPLIER, COL_BRANCH, COL_THRESHOLD,
)

DEFAULT_LOW_STOCK_THRESHOLD = 10
XLSX_EXTENSIONS = {"xlsx", "xlsm", "xltx", "xltm"}


class InventoryImportError(ValidationError):
    """Raised when a file cannot be read as an inventory sheet."""
    pass


@dataclass
class ImportResult:
    created: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    total_rows: int = 0

    def to_dict(self) -> dict:
        return {
            "created": list(self.created),
            "errors": list(self.errors),
            "warnings": list(self.warnings),
            "total_rows": self.total_rows,
        }


def read_sheet_rows(stream, filename: str) -> list[list]:
    """Raw rows of the first sheet (xlsx) or the whole file (csv)."""
    ext = (filename or "").rsplit(".", 1)[-1].lower()
    if ext == "csv":
        raw = stream.read()
        try:
            text = raw.decode("utf-8-sig") if isinstance(raw, bytes) else raw
        except UnicodeDecodeError as exc:
            raise InventoryImportError("File is not valid UTF-8 text") from exc
        return [list(row) for row in csv.reader(io.StringIO(text))]
    if ext in XLSX_EXTENSIONS:
        try:
            wb = load_workbook(stream, read_only=True, data_only=True)
        except (InvalidFileException, BadZipFile, KeyError, OSError) as exc:
            raise InventoryImportError(
                "Failed to read Excel file. Please ensure it's a valid .xlsx file"
            ) from exc
        try:
            return [list(row) for row in wb.worksheets[0].iter_rows(values_only=True)]
        finally:
            wb.close()
    raise InventoryImportError("Unsupported file format")


def _cell(row: list, header_map: dict[str, int], column: str) -> str:
    index = header_map.get(column)
    if index is None or index >= len(row) or row[index] is None:
        return ""
    value = row[index]
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return str(value).strip()


def _is_blank(row) -> bool:
    return not row or all(cell is None or str(cell).strip() == "" for cell in row)


def parse_price_cents(value: str) -> int | None:
    """"12.5" -> 1250. Blank or unparsable -> None."""
    if not value:
        return None
    try:
        amount = Decimal(value.replace(",", ""))
    except InvalidOperation:
        return None
    if amount < 0:
        return None
    return int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _parse_int(value: str, default: int) -> int | None:
    """Blank -> default. Unparsable (including "inf" and "nan") -> None."""
    if not value:
        return default
    try:
        return int(float(value))
    except (TypeError, ValueError, OverflowError):
        return None


def _default_branch(business_id: int, allowed: set[int]) -> Branch | None:
    branches = (
        db.session.query(Branch)
        .filter(Branch.business_id == business_id, Branch.is_active.is_(True))
        .order_by(Branch.is_default.desc(), Branch.id.asc())
        .all()
    )
    for branch in branches:
        if branch.id in allowed:
            return branch
    return None


def _find_branch(business_id: int, name: str) -> Branch | None:
    lowered = name.lower()
    for branch in db.session.query(Branch).filter_by(business_id=business_id, is_active=True).all():
        if branch.name.lower() == lowered:
            return branch
    return None


def import_inventory_rows(ctx, rows: list[list]) -> ImportResult:
    """
    Create one inventory record per data row. Commits the rows that passed.
    """
    require_permission(ctx, "IMPORT_INVENTORY")
    result = ImportResult()

    header_index = next(
        (i for i, row in enumerate(rows) if row and COL_NAME in [str(c).strip() if c is not None else "" for c in row]),
        -1,
    )
    if header_index == -1:
        result.errors.append("Could not find header row. Please use the template format.")
        return result

    header_map = {}
    for index, header in enumerate(rows[header_index]):
        if header is not None and str(header).strip():
            header_map[str(header).strip()] = index

    data_rows = [
        (header_index + offset + 2, row)
        for offset, row in enumerate(rows[header_index + 1:])
        if not _is_blank(row)
    ]
    result.total_rows = len(data_rows)
    if not data_rows:
        result.errors.append("No data rows found in file")
        return result

    allowed = set(accessible_branch_ids(ctx))
    default_branch = _default_branch(ctx.business_id, allowed)

    for row_num, row in data_rows:
        name = _cell(row, header_map, COL_NAME)
        if not name:
            result.errors.append(f"Row {row_num}: Product name is required")
            continue

        category_id = None
        category_name = _cell(row, header_map, COL_CATEGORY)
        if category_name:
            category = find_category_by_name(ctx.business_id, category_name)
            if category:
                category_id = category.id
            else:
                result.warnings.append(f'Row {row_num}: Category "{category_name}" not found')

        supplier_id = None
        supplier_name = _cell(row, header_map, COL_SUPPLIER)
        if supplier_name:
            supplier = find_supplier_by_name(ctx.business_id, supplier_name)
            if supplier:
                supplier_id = supplier.id
            else:
                result.warnings.append(f'Row {row_num}: Supplier "{supplier_name}" not found')

        branch = None
        branch_name = _cell(row, header_map, COL_BRANCH)
        if branch_name:
            branch = _find_branch(ctx.business_id, branch_name)
            if branch is None or branch.id not in allowed:
                result.warnings.append(f'Row {row_num}: Branch "{branch_name}" not found, using default')
                branch = None
        if branch is None:
            branch = default_branch
        if branch is None:
            result.errors.append(f"Row {row_num}: No valid branch available")
            continue

        sku = _cell(row, header_map, COL_SKU)
        if sku and find_product_by_sku(branch.id, sku):
            result.warnings.append(f'Row {row_num}: Product with SKU "{sku}" already exists, skipped')
            continue

        cost = parse_price_cents(_cell(row, header_map, COL_COST))
        retail = parse_price_cents(_cell(row, header_map, COL_RETAIL))
        wholesale = parse_price_cents(_cell(row, header_map, COL_WHOLESALE))
        stock = _parse_int(_cell(row, header_map, COL_STOCK), 0)
        if stock is None:
            result.errors.append(f"Row {row_num}: Stock Quantity must be a whole number")
            continue
        stock = max(0, stock)
        threshold = _parse_int(_cell(row, header_map, COL_THRESHOLD), DEFAULT_LOW_STOCK_THRESHOLD)
        if threshold is None or threshold < 0:
            threshold = DEFAULT_LOW_STOCK_THRESHOLD

        try:
            product = _create_product_inner(
                business_id=ctx.business_id,
                branch_id=branch.id,
                name=name,
                sku=sku or None,
                category_id=category_id,
                supplier_id=supplier_id,
                stock=stock,
                low_stock_threshold=threshold,
                cost_price_cents=cost,
                retail_price_cents=retail if retail is not None else cost,
                wholesale_price_cents=wholesale,
                source=SOURCE_IMPORT,
                actor_staff_id=ctx.staff_id,
            )
        except InventoryValidationError as exc:
            result.errors.append(f"Row {row_num}: {exc}")
            continue
        result.created.append(f'Row {row_num}: Created product "{product.name}" ({product.sku})')

    db.session.commit()
    logger.info(
        "Inventory import by staff %s: %s created, %s errors, %s warnings",
        ctx.staff_id, len(result.created), len(result.errors), len(result.warnings),
    )
    return result


def import_inventory_file(ctx, stream, filename: str) -> ImportResult:
    require_permission(ctx, "IMPORT_INVENTORY")
    return import_inventory_rows(ctx, read_sheet_rows(stream, filename))


def _price(cents: int | None):
    if cents is None:
        return None
    return float(Decimal(cents) / 100)


def export_inventory_xlsx(ctx, stream, *, branch_id: int | None = None) -> int:
    """
    Write the accessible inventory as a workbook in the import layout.

    Returns the number of product rows written.
    """
    require_permission(ctx, "VIEW_PROCUREMENT")
    branch_ids = resolve_branch_filter(ctx, branch_id)

    branches = {b.id: b.name for b in db.session.query(Branch).filter(Branch.business_id == ctx.business_id)}
    categories = {c.id: c.name for c in db.session.query(Category).filter(Category.business_id == ctx.business_id)}
    suppliers = {s.id: s.name for s in db.session.query(Supplier).filter(Supplier.business_id == ctx.business_id)}

    products = []
    if branch_ids:
        products = (
            db.session.query(Product)
            .filter(
                Product.business_id == ctx.business_id,
                Product.branch_id.in_(branch_ids),
                Product.is_active.is_(True),
            )
            .order_by(Product.branch_id.asc(), Product.name.asc())
            .all()
        )

    wb = Workbook()
    ws = wb.active
    ws.title = "Inventory"
    ws.append(list(COLUMNS))
    for product in products:
        ws.append([
            product.name,
            categories.get(product.category_id, ""),
            product.sku,
            product.stock,
            _price(product.cost_price_cents),
            _price(product.retail_price_cents),
            _price(product.wholesale_price_cents),
            suppliers.get(product.supplier_id, ""),
            branches.get(product.branch_id, ""),
            product.low_stock_threshold,
        ])
    wb.save(stream)
    return len(products)
