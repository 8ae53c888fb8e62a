from .inventory import Product, InventoryAudit
from .auth import User
from .notifications import Notification

__all__ = [
    'Product', 'InventoryAudit',
    'User',
    'Notification',
]
