# storefront/domain/schemas.py
from pydantic import BaseModel, Field, ConfigDict
from typing import List, Optional
from decimal import Decimal
from datetime import datetime


class OrderItemIn(BaseModel):
    """Produkt w zamowieniu, cena pochodzi z katalogu."""

    product_id: str = Field(..., min_length=1, description="ID produktu")
    quantity: int = Field(..., description="Ilosc produktu (>= 1)")


class OrderCreate(BaseModel):
    """Checkout request."""

    items: List[OrderItemIn]
    payment_method: str = "cash_on_delivery"
    note: Optional[str] = None


class PaymentCreate(BaseModel):
    method: str


class NoteUpdate(BaseModel):
    """Nowa notatka, null lub pusty tekst ja usuwa."""

    note: Optional[str] = None


class OrderItemOut(BaseModel):
    product_id: str
    quantity: int
    unit_price: Decimal

    model_config = ConfigDict(from_attributes=True)


class PaymentOut(BaseModel):
    id: str
    order_id: str
    user_id: str
    amount: Decimal
    method: str
    status: str
    transaction_id: Optional[str] = None
    paid_at: Optional[datetime] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class OrderOut(BaseModel):
    id: str
    user_id: str
    status: str
    items: List[OrderItemOut]
    total_price: Decimal
    payment_method: str
    payment_id: Optional[str] = None
    note: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class PaymentInitiatedOut(BaseModel):
    """Response for InitiatePayment: the order after the call plus the new payment."""

    order: OrderOut
    payment: PaymentOut
    redirect_url: Optional[str] = None


class SettlementOut(BaseModel):
    payment_id: str
    status: str
    duplicate: bool = False


class ReviewCreate(BaseModel):
    product_id: str = Field(..., min_length=1)
    rating: int
    comment: Optional[str] = None


class ReviewOut(BaseModel):
    id: str
    user_id: str
    product_id: str
    rating: int
    comment: Optional[str] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class RefreshIn(BaseModel):
    refresh_token: str = Field(..., min_length=1)


class TokenOut(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int


