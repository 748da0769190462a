"""Order management service."""
import logging
from typing import List
from sqlalchemy.orm import Session, selectinload
from opentelemetry import trace

from errors import AlreadyCancelled, EmptyCart, NotFound, RejectionError
from models import Cart, Order, OrderItem, OrderStatus
from services.cart_service import CartService
from services.inventory_service import InventoryService, Reservation
from services.conflict_policy import concurrency_guard
from monitoring import (
    orders_placed_counter,
    order_rejections_counter,
    order_amount_histogram,
    orders_cancelled_counter
)

logger = logging.getLogger(__name__)


def _end_open_transaction(db: Session) -> None:
    """Commit whatever the caller already started so the order work gets its own transaction."""
    if db.in_transaction():
        db.commit()


class OrderService:
    """Service for turning carts into orders and cancelling them."""

    def __init__(
        self,
        cart_service: CartService,
        inventory_service: InventoryService
    ):
        """
        Initialize order service.

        Args:
            cart_service: Cart snapshot reader
            inventory_service: Stock reservation coordinator
        """
        self.cart_service = cart_service
        self.inventory_service = inventory_service
        self.tracer = trace.get_tracer(__name__)

    def place_order(self, db: Session, user_id: str) -> Order:
        """
        Convert the user's cart into a PENDING order.

        Cart read, stock reservation, order creation and cart clearing
        share one transaction and commit or roll back together.

        Args:
            db: Database session; work already in progress on it is committed first
            user_id: User identifier

        Returns:
            The created order with its items

        Raises:
            EmptyCart: If the user has no cart or it has no items
            InsufficientStock: If any line cannot be fulfilled
            ConcurrencyConflict: If the store aborted the transaction
        """
        span = trace.get_current_span()
        span.set_attribute("user.id", user_id)

        try:
            with concurrency_guard("place_order", user_id=user_id):
                _end_open_transaction(db)
                with db.begin():
                    cart, lines = self.cart_service.get_cart_snapshot(db, user_id)
                    if not lines:
                        raise EmptyCart(user_id)

                    reservation = self.inventory_service.reserve(db, lines)
                    order = self.materialize_order(db, user_id, cart, reservation)
        except RejectionError as e:
            order_rejections_counter.add(1, {
                "operation": "place_order",
                "reason": e.code
            })
            logger.info("Order rejected", extra={
                "user_id": user_id,
                "reason": e.code
            })
            raise

        orders_placed_counter.add(1)
        order_amount_histogram.record(float(order.total_amount))

        logger.info("Order placed", extra={
            "user_id": user_id,
            "order_id": order.id,
            "amount": str(order.total_amount),
            "item_count": len(order.items)
        })
        return order

    def materialize_order(
        self,
        db: Session,
        user_id: str,
        cart: Cart,
        reservation: Reservation
    ) -> Order:
        """
        Persist the order for a reservation and empty the source cart.

        Must run in the same transaction as the reservation so that a
        failure here also undoes the stock decrements.

        Args:
            db: Database session inside the placement transaction
            user_id: User identifier
            cart: Cart the reservation was made from
            reservation: Reserved lines and total

        Returns:
            The flushed order
        """
        with self.tracer.start_as_current_span("db.transaction.create_order") as db_span:
            db_span.set_attribute("db.operation", "INSERT")
            db_span.set_attribute("db.table", "orders")
            db_span.set_attribute("user.id", user_id)

            order = Order(
                user_id=user_id,
                status=OrderStatus.PENDING.value,
                total_amount=reservation.total_amount,
                items=[
                    OrderItem(
                        product_id=line.product_id,
                        quantity=line.quantity,
                        price=line.unit_price
                    )
                    for line in reservation.lines
                ]
            )
            db.add(order)
            db.flush()

            db_span.set_attribute("order.id", order.id)

        self.cart_service.clear_cart(db, cart)
        db.flush()
        return order

    def cancel_order(self, db: Session, order_id: int) -> Order:
        """
        Cancel a PENDING order and restore its stock.

        The order row is locked first so concurrent cancellations of the
        same order restore stock only once.

        Args:
            db: Database session; work already in progress on it is committed first
            order_id: Order identifier

        Returns:
            The cancelled order

        Raises:
            NotFound: If the order (or one of its products) does not exist
            AlreadyCancelled: If the order was cancelled before
            ConcurrencyConflict: If the store aborted the transaction
        """
        span = trace.get_current_span()
        span.set_attribute("order.id", order_id)

        try:
            with concurrency_guard("cancel_order", order_id=order_id):
                _end_open_transaction(db)
                with db.begin():
                    with self.tracer.start_as_current_span("db.query.lock_order") as db_span:
                        db_span.set_attribute("db.operation", "SELECT FOR UPDATE")
                        db_span.set_attribute("db.table", "orders")
                        db_span.set_attribute("order.id", order_id)

                        order = db.query(Order).filter(
                            Order.id == order_id
                        ).with_for_update().populate_existing().one_or_none()

                    if order is None:
                        raise NotFound("Order", order_id)
                    if order.status == OrderStatus.CANCELLED.value:
                        raise AlreadyCancelled(order_id)

                    self.inventory_service.restore(db, order.items)
                    order.status = OrderStatus.CANCELLED.value
                    db.flush()
        except RejectionError as e:
            order_rejections_counter.add(1, {
                "operation": "cancel_order",
                "reason": e.code
            })
            logger.info("Order cancellation rejected", extra={
                "order_id": order_id,
                "reason": e.code
            })
            raise

        orders_cancelled_counter.add(1)
        logger.info("Order cancelled", extra={
            "order_id": order.id,
            "user_id": order.user_id,
            "restored_items": len(order.items)
        })
        return order

    def get_order(self, db: Session, order_id: int) -> Order:
        """
        Get an order with its items.

        Args:
            db: Database session
            order_id: Order identifier

        Returns:
            The order

        Raises:
            NotFound: If the order does not exist
        """
        order = db.query(Order).options(
            selectinload(Order.items)
        ).filter(Order.id == order_id).one_or_none()

        if order is None:
            raise NotFound("Order", order_id)
        return order

    def get_user_orders(self, db: Session, user_id: str) -> List[Order]:
        """
        Get all orders for a user, newest first.

        Args:
            db: Database session
            user_id: User identifier

        Returns:
            List of orders
        """
        with self.tracer.start_as_current_span("db.query.get_user_orders") as db_span:
            db_span.set_attribute("db.operation", "SELECT")
            db_span.set_attribute("db.table", "orders")
            db_span.set_attribute("user.id", user_id)

            orders = db.query(Order).options(
                selectinload(Order.items)
            ).filter(Order.user_id == user_id).order_by(Order.id.desc()).all()

            db_span.set_attribute("db.rows_returned", len(orders))

            return orders
