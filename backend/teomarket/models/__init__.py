from .catalog import Currency, CustomerGroup, Customer, Product, ProductGroupPrice
from .carts import Cart, CartItem
from .orders import Order, OrderProduct, OrderHistory
from .returns import ProductReturn
from .maintenance import DocumentSequence, JobLock

__all__ = [
    'Currency', 'CustomerGroup', 'Customer', 'Product', 'ProductGroupPrice',
    'Cart', 'CartItem',
    'Order', 'OrderProduct', 'OrderHistory',
    'ProductReturn',
    'DocumentSequence', 'JobLock',
]
