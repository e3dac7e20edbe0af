"""Checkout request/response schemas."""

from pydantic import BaseModel, Field


class CreateOrderRequest(BaseModel):
    """Request schema for POST /checkout/orders."""

    case_id: str = Field(min_length=1)


class CaptureOrderRequest(BaseModel):
    """Request schema for POST /checkout/orders/{order_id}/capture."""

    case_id: str = Field(min_length=1)


class CreateOrderOut(BaseModel):
    order_id: str
    state: str
    order: dict


class CheckoutAttemptOut(BaseModel):
    """Terminal state of a checkout attempt."""

    state: str
    order_id: str | None = None
    case_id: str
    message: str
    fallback: bool = False
