"""Dependency injection for services."""
from services.cart_service import CartService
from services.inventory_service import InventoryService
from services.order_service import OrderService


def get_cart_service() -> CartService:
    """Get cart service instance."""
    return CartService()


def get_inventory_service() -> InventoryService:
    """Get inventory service instance."""
    return InventoryService()


def get_order_service() -> OrderService:
    """Get order service instance."""
    return OrderService(get_cart_service(), get_inventory_service())
