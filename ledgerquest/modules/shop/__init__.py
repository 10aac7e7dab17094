from .service import PurchaseResult, ShopItem, ShopService

__all__ = ["ShopService", "ShopItem", "PurchaseResult"]
