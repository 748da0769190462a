"""Typed rejections returned by the order core."""
from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Optional


@dataclass(frozen=True)
class InsufficientItem:
    """A cart line that cannot be fulfilled from current stock."""
    product_id: int
    name: Optional[str]
    requested: int
    available: int


class RejectionError(Exception):
    """Base class for business outcomes the caller is expected to handle."""

    code = "rejected"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "message": self.message}


class EmptyCart(RejectionError):
    code = "empty_cart"

    def __init__(self, user_id: str):
        super().__init__("Cart is empty")
        self.user_id = user_id


class InsufficientStock(RejectionError):
    code = "insufficient_stock"

    def __init__(self, items: List[InsufficientItem]):
        super().__init__("Insufficient stock for one or more items")
        self.items = list(items)

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["insufficient_items"] = [asdict(item) for item in self.items]
        return data


class ConcurrencyConflict(RejectionError):
    """The store aborted the transaction because of concurrent demand.

    The outcome is unknown to the caller; retrying is safe.
    """

    code = "concurrency_conflict"

    def __init__(self, operation: str):
        super().__init__(
            "Could not be processed due to concurrent demand. Please try again."
        )
        self.operation = operation


class NotFound(RejectionError):
    code = "not_found"

    def __init__(self, entity: str, entity_id: Any):
        super().__init__(f'{entity} with ID "{entity_id}" not found')
        self.entity = entity
        self.entity_id = entity_id


class AlreadyCancelled(RejectionError):
    code = "already_cancelled"

    def __init__(self, order_id: int):
        super().__init__("Order is already cancelled")
        self.order_id = order_id
