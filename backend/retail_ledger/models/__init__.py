from .catalog import Product, Supplier, Customer, Payment
from .inventory import InventoryMovement, MovementType, ItemCondition, OrderSequence, LedgerImmutableError
from .sales import Sale, SaleItem, SaleAdjustment, SaleAdjustmentItem, ProfitRecord
from .purchasing import PurchaseOrder, PurchaseOrderItem
from .quotations import Quotation, QuotationItem
from .outsourcing import OutsourcingOrder, ExternalPurchase

__all__ = [
    'Product', 'Supplier', 'Customer', 'Payment',
    'InventoryMovement', 'MovementType', 'ItemCondition', 'OrderSequence', 'LedgerImmutableError',
    'Sale', 'SaleItem', 'SaleAdjustment', 'SaleAdjustmentItem', 'ProfitRecord',
    'PurchaseOrder', 'PurchaseOrderItem',
    'Quotation', 'QuotationItem',
    'OutsourcingOrder', 'ExternalPurchase',
]
