#import wszystkich modeli zeby SQLAlchemy je zarejestrowal w base metadata

from storefront.data.models.order import OrderModel
from storefront.data.models.order_item import OrderItemModel
from storefront.data.models.payment import PaymentModel
from storefront.data.models.review import ReviewModel

__all__ = ["OrderModel", "OrderItemModel", "PaymentModel", "ReviewModel"]
