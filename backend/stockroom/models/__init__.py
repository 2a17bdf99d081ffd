from .tenancy import Business, Branch, Staff
from .inventory import Category, Supplier, Product, StockMovement
from .sales import Sale, SaleLine
from .forecasting import LeadTimeConfig, ForecastingConfig
from .procurement import (
    SupplierRequest,
    PurchaseOrder,
    PurchaseOrderLine,
    GoodsReceivedNote,
    GoodsReceivedLine,
    SupplierInvoice,
    SupplierInvoiceLine,
)
from .finance import Expense
from .documents import DocumentSequence, ProcurementEvent

__all__ = [
    'Business', 'Branch', 'Staff',
    'Category', 'Supplier', 'Product', 'StockMovement',
    'Sale', 'SaleLine',
    'LeadTimeConfig', 'ForecastingConfig',
    'SupplierRequest', 'PurchaseOrder', 'PurchaseOrderLine',
    'GoodsReceivedNote', 'GoodsReceivedLine',
    'SupplierInvoice', 'SupplierInvoiceLine',
    'Expense',
    'DocumentSequence', 'ProcurementEvent',
]
