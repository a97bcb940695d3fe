from models.shop import Shop
from models.product import Product
from models.view import ShopView, ProductView

__all__ = ["Shop", "Product", "ShopView", "ProductView"]
