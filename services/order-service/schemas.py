"""Pydantic schemas for request/response validation."""
from datetime import datetime
from decimal import Decimal
from pydantic import BaseModel, ConfigDict, Field
from typing import List


class PlaceOrderRequest(BaseModel):
    """Schema for placing an order from a user's cart."""
    user_id: str = Field(..., min_length=1)


class OrderItemResponse(BaseModel):
    """Schema for order item in response."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    product_id: int
    quantity: int
    price: Decimal


class OrderResponse(BaseModel):
    """Schema for order response."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: str
    status: str
    total_amount: Decimal
    created_at: datetime
    items: List[OrderItemResponse]


class OrdersListResponse(BaseModel):
    """Schema for orders list response."""
    orders: List[OrderResponse]
