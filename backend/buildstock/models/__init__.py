from .auth import User, SessionToken
from .locations import Location
from .inventory import Product, InventoryRecord, InventoryRequest
from .security import AuditLog
from .communications import Notification

__all__ = [
    'User', 'SessionToken',
    'Location',
    'Product', 'InventoryRecord', 'InventoryRequest',
    'AuditLog',
    'Notification',
]
