"""Stock reservation and restoration."""
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Sequence
from sqlalchemy.orm import Session
from opentelemetry import trace

from errors import InsufficientItem, InsufficientStock, NotFound
from models import OrderItem, Product
from services.cart_service import CartLine
from monitoring import stock_units_reserved_counter

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReservedLine:
    """A line whose stock has been decremented, with the price paid per unit."""
    product_id: int
    quantity: int
    unit_price: Decimal


@dataclass(frozen=True)
class Reservation:
    lines: List[ReservedLine]
    total_amount: Decimal


def coalesce_lines(lines: Iterable[CartLine]) -> List[CartLine]:
    """Merge lines naming the same product, keeping first-seen order."""
    quantities: Dict[int, int] = {}
    names: Dict[int, Optional[str]] = {}
    for line in lines:
        if line.quantity <= 0:
            raise ValueError(
                f"Quantity for product {line.product_id} must be positive, got {line.quantity}"
            )
        quantities[line.product_id] = quantities.get(line.product_id, 0) + line.quantity
        if names.get(line.product_id) is None:
            names[line.product_id] = line.name
    return [
        CartLine(product_id=pid, quantity=qty, name=names[pid])
        for pid, qty in quantities.items()
    ]


class InventoryService:
    """Locks, validates and adjusts product stock inside a caller's transaction."""

    def __init__(self):
        self.tracer = trace.get_tracer(__name__)

    def reserve(self, db: Session, lines: Sequence[CartLine]) -> Reservation:
        """
        Reserve stock for every line or for none of them.

        Each product row is locked (SELECT ... FOR UPDATE) in the order the
        lines are given and held until the surrounding transaction ends.
        Nothing is decremented until every line has been checked.

        Args:
            db: Database session inside an open serializable transaction
            lines: Requested (product, quantity) pairs

        Returns:
            Reserved lines with their locked unit prices and the order total

        Raises:
            InsufficientStock: If any product is missing, soft-deleted or
                short; lists every failing line
            sqlalchemy.exc.DBAPIError: If the store aborts the lock acquisition
        """
        lines = coalesce_lines(lines)
        insufficient: List[InsufficientItem] = []
        locked = []

        for line in lines:
            with self.tracer.start_as_current_span("db.query.lock_product") as db_span:
                db_span.set_attribute("db.operation", "SELECT FOR UPDATE")
                db_span.set_attribute("db.table", "products")
                db_span.set_attribute("product.id", line.product_id)

                product = db.query(Product).filter(
                    Product.id == line.product_id
                ).with_for_update().populate_existing().one_or_none()

                db_span.set_attribute("db.rows_returned", 0 if product is None else 1)

            if product is None or product.deleted_at is not None:
                insufficient.append(InsufficientItem(
                    product_id=line.product_id,
                    name=product.name if product is not None else line.name,
                    requested=line.quantity,
                    available=0
                ))
            elif product.stock < line.quantity:
                insufficient.append(InsufficientItem(
                    product_id=product.id,
                    name=product.name,
                    requested=line.quantity,
                    available=product.stock
                ))
            else:
                locked.append((product, line.quantity))

        if insufficient:
            logger.info("Insufficient stock for order", extra={
                "insufficient_product_ids": [item.product_id for item in insufficient],
                "line_count": len(lines)
            })
            raise InsufficientStock(insufficient)

        total_amount = Decimal("0")
        reserved: List[ReservedLine] = []
        for product, quantity in locked:
            with self.tracer.start_as_current_span("db.query.update_product_stock") as update_span:
                update_span.set_attribute("db.operation", "UPDATE")
                update_span.set_attribute("db.table", "products")
                update_span.set_attribute("product.id", product.id)

                old_stock = product.stock
                product.stock = old_stock - quantity
                update_span.set_attribute("product.stock.before", old_stock)
                update_span.set_attribute("product.stock.after", product.stock)

            unit_price = Decimal(product.price)
            reserved.append(ReservedLine(
                product_id=product.id,
                quantity=quantity,
                unit_price=unit_price
            ))
            total_amount += unit_price * quantity
            stock_units_reserved_counter.add(quantity, {"product_id": str(product.id)})

        db.flush()
        return Reservation(lines=reserved, total_amount=total_amount)

    def restore(self, db: Session, items: Iterable[OrderItem]) -> None:
        """
        Put the quantities of order items back into stock.

        Restoration is unconditional: soft-deleted products are restocked
        too and no upper bound is checked.

        Args:
            db: Database session inside an open transaction
            items: Order items to restore

        Raises:
            NotFound: If a product row no longer exists
        """
        for item in items:
            with self.tracer.start_as_current_span("db.query.restore_product_stock") as update_span:
                update_span.set_attribute("db.operation", "UPDATE")
                update_span.set_attribute("db.table", "products")
                update_span.set_attribute("product.id", item.product_id)
                update_span.set_attribute("product.stock.delta", item.quantity)

                updated = db.query(Product).filter(
                    Product.id == item.product_id
                ).update(
                    {Product.stock: Product.stock + item.quantity},
                    synchronize_session=False
                )

                update_span.set_attribute("db.rows_affected", updated)

            if not updated:
                raise NotFound("Product", item.product_id)
