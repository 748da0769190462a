"""Cart snapshot reader used by order placement."""
import logging
from dataclasses import dataclass
from typing import List, Optional, Tuple
from sqlalchemy.orm import Session
from opentelemetry import trace

from models import Cart, CartItem, Product

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CartLine:
    """One (product, quantity) pair taken from a cart, with the product name when known."""
    product_id: int
    quantity: int
    name: Optional[str] = None


class CartService:
    """Reads and clears carts on behalf of the order core."""

    def __init__(self):
        self.tracer = trace.get_tracer(__name__)

    def get_cart_snapshot(
        self,
        db: Session,
        user_id: str
    ) -> Tuple[Optional[Cart], List[CartLine]]:
        """
        Lock the user's cart and read its lines.

        The cart row lock makes two conversions of the same cart run one
        after the other; the second one then sees an empty cart.

        Args:
            db: Database session inside an open transaction
            user_id: User identifier

        Returns:
            The cart (None if the user has none) and its lines in the
            order they were added
        """
        with self.tracer.start_as_current_span("db.query.lock_cart") as db_span:
            db_span.set_attribute("db.operation", "SELECT FOR UPDATE")
            db_span.set_attribute("db.table", "carts")
            db_span.set_attribute("user.id", user_id)

            cart = db.query(Cart).filter(
                Cart.user_id == user_id
            ).with_for_update().populate_existing().one_or_none()

            if cart is None:
                db_span.set_attribute("db.rows_returned", 0)
                return None, []

        with self.tracer.start_as_current_span("db.query.get_cart_items") as db_span:
            db_span.set_attribute("db.operation", "SELECT")
            db_span.set_attribute("db.table", "cart_items")
            db_span.set_attribute("cart.id", cart.id)

            cart_items = db.query(CartItem, Product.name).outerjoin(
                Product, Product.id == CartItem.product_id
            ).filter(
                CartItem.cart_id == cart.id
            ).order_by(CartItem.id).all()

            db_span.set_attribute("db.rows_returned", len(cart_items))

        return cart, [
            CartLine(product_id=item.product_id, quantity=item.quantity, name=name)
            for item, name in cart_items
        ]

    def clear_cart(self, db: Session, cart: Cart) -> int:
        """
        Delete every item in a cart.

        Args:
            db: Database session inside an open transaction
            cart: Cart to empty

        Returns:
            Number of deleted items
        """
        with self.tracer.start_as_current_span("db.query.delete_cart_items") as db_span:
            db_span.set_attribute("db.operation", "DELETE")
            db_span.set_attribute("db.table", "cart_items")
            db_span.set_attribute("cart.id", cart.id)

            deleted_count = db.query(CartItem).filter(
                CartItem.cart_id == cart.id
            ).delete(synchronize_session="fetch")

            db_span.set_attribute("db.rows_affected", deleted_count)

        logger.info("Cleared cart", extra={
            "user_id": cart.user_id,
            "cart_id": cart.id,
            "items_removed": deleted_count
        })
        return deleted_count
