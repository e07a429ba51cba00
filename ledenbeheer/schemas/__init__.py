from .invoice import InvoiceCreate, InvoiceItemIn, InvoiceTotals, InvoiceUpdate
from .payment import ProviderPayment

__all__ = [
    "InvoiceCreate",
    "InvoiceItemIn",
    "InvoiceTotals",
    "InvoiceUpdate",
    "ProviderPayment",
]
