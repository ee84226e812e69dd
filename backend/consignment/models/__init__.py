from .tenancy import Organization
from .auth import User, SessionToken
from .security import SecurityEvent
from .consignors import Provider, ProviderInvitation
from .inventory import Item, ItemPhoto
from .sales import Transaction
from .payouts import Payout
from .statements import Statement
from .storefront import ShoppingCart, CartItem, Order, OrderItem
from .notifications import Notification

__all__ = [
    'Organization',
    'User', 'SessionToken', 'SecurityEvent',
    'Provider', 'ProviderInvitation', 'Item', 'ItemPhoto',
    'Transaction', 'Payout', 'Statement',
    'ShoppingCart', 'CartItem', 'Order', 'OrderItem',
    'Notification',
]
