#import wszystkich modeli zeby SQLAlchemy je zarejestrowal w base metadata

from storefront.data.models.user import UserModel
from storefront.data.models.address import AddressModel
from storefront.data.models.product import ProductModel
from storefront.data.models.cart import CartModel
from storefront.data.models.cart_item import CartItemModel
from storefront.data.models.order import OrderModel
from storefront.data.models.order_item import OrderItemModel
from storefront.data.models.payment import PaymentModel
from storefront.data.models.notification import NotificationModel
from storefront.data.models.order_sequence import OrderSequenceModel

__all__ = [
    "UserModel",
    "AddressModel",
    "ProductModel",
    "CartModel",
    "CartItemModel",
    "OrderModel",
    "OrderItemModel",
    "PaymentModel",
    "NotificationModel",
    "OrderSequenceModel",
]
