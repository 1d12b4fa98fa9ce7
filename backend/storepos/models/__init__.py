from .tenancy import Store
from .auth import User, SessionToken
from .customers import Member
from .inventory import Product
from .sales import Sale, SaleDetail, Receivable, InvoiceCounter

__all__ = [
    'Store',
    'User', 'SessionToken',
    'Member',
    'Product',
    'Sale', 'SaleDetail', 'Receivable', 'InvoiceCounter',
]
