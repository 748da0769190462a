"""Orders API router."""
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from database import get_db
from errors import ConcurrencyConflict, NotFound, RejectionError
from schemas import OrderResponse, OrdersListResponse, PlaceOrderRequest
from dependencies import get_order_service

router = APIRouter(prefix="/orders", tags=["orders"])


def _rejection_to_http(error: RejectionError) -> HTTPException:
    if isinstance(error, NotFound):
        status_code = 404
    elif isinstance(error, ConcurrencyConflict):
        status_code = 409
    else:
        status_code = 400
    return HTTPException(status_code=status_code, detail=error.to_dict())


@router.post("", response_model=OrderResponse, status_code=201)
def place_order(
    request: PlaceOrderRequest,
    db: Session = Depends(get_db),
    order_service=Depends(get_order_service)
):
    """Create a new order from the user's cart."""
    try:
        order = order_service.place_order(db, request.user_id)
    except RejectionError as e:
        raise _rejection_to_http(e)

    return OrderResponse.model_validate(order)


@router.get("", response_model=OrdersListResponse)
def get_orders(
    user_id: str,
    db: Session = Depends(get_db),
    order_service=Depends(get_order_service)
):
    """Get a user's orders."""
    orders = order_service.get_user_orders(db, user_id)

    return {"orders": [OrderResponse.model_validate(order) for order in orders]}


@router.get("/{order_id}", response_model=OrderResponse)
def get_order(
    order_id: int,
    db: Session = Depends(get_db),
    order_service=Depends(get_order_service)
):
    """Fetch a specific order with its items."""
    try:
        order = order_service.get_order(db, order_id)
    except RejectionError as e:
        raise _rejection_to_http(e)

    return OrderResponse.model_validate(order)


@router.post("/{order_id}/cancel", response_model=OrderResponse)
def cancel_order(
    order_id: int,
    db: Session = Depends(get_db),
    order_service=Depends(get_order_service)
):
    """Cancel an order and restore stock."""
    try:
        order = order_service.cancel_order(db, order_id)
    except RejectionError as e:
        raise _rejection_to_http(e)

    return OrderResponse.model_validate(order)
