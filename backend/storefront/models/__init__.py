from .orders import Order, OrderItem, ORDER_STATUSES, PAYMENT_STATUSES
from .settings import SettingValue

__all__ = [
    'Order', 'OrderItem', 'ORDER_STATUSES', 'PAYMENT_STATUSES',
    'SettingValue',
]
