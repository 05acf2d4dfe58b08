from .inventory import Product, ProductUnit, UnitAuditEvent, BarcodeSequence, BarcodeRegistration
from .sales import Sale, SaleItem

__all__ = [
    'Product', 'ProductUnit', 'UnitAuditEvent',
    'BarcodeSequence', 'BarcodeRegistration',
    'Sale', 'SaleItem',
]
