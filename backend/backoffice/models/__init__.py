from .tenancy import Organization, Client, Company, Site, Department
from .auth import User, SessionToken
from .commerce import Customer, Order
from .refunds import Refund, RefundSettings
from .vendors import Vendor, VendorCompany, VendorClientConnection, VendorProduct, VendorProductSync
from .audit import AuditLog

__all__ = [
    'Organization', 'Client', 'Company', 'Site', 'Department',
    'User', 'SessionToken',
    'Customer', 'Order',
    'Refund', 'RefundSettings',
    'Vendor', 'VendorCompany', 'VendorClientConnection', 'VendorProduct', 'VendorProductSync',
    'AuditLog',
]
