from .inventory import (
    Category,
    Product,
    UnitTrackedProduct,
    ManualStockProduct,
    ProductUnit,
    StockMovement,
    Procurement,
    ProcurementLine,
)
from .sales import Sale, SaleLine, PaymentIntent
from .documents import AuditSession, AuditResult, AuditReport, DocumentSequence

__all__ = [
    'Category', 'Product', 'UnitTrackedProduct', 'ManualStockProduct',
    'ProductUnit', 'StockMovement', 'Procurement', 'ProcurementLine',
    'Sale', 'SaleLine', 'PaymentIntent',
    'AuditSession', 'AuditResult', 'AuditReport', 'DocumentSequence',
]
