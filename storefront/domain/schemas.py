# storefront/domain/schemas.py
from pydantic import BaseModel, Field, ConfigDict
from typing import Dict, List, Optional
from decimal import Decimal
from datetime import date, datetime

from storefront.domain.cart import CartSnapshot
from storefront.domain.states import OrderStatus, PaymentMethod, PaymentStatus, ProductType


class ItemIn(BaseModel):
    """Schema dla dodawania produktu do koszyka."""

    product_id: str = Field(..., min_length=1, max_length=64, description="ID produktu w katalogu")
    product_type: ProductType = ProductType.PRIMARY
    quantity: int = Field(1, description="Ilosc, dodawana do istniejacej pozycji")


class QuantityIn(BaseModel):
    quantity: int


class SelectIn(BaseModel):
    selected: bool


# snapshot koszyka jest juz modelem pydantic
CartOut = CartSnapshot


class OrderCreate(BaseModel):
    """Schema dla checkoutu z koszyka."""

    user_id: int = Field(..., gt=0, description="ID uzytkownika (musi byc > 0)")
    address: str = Field(..., min_length=1, max_length=500)
    method: PaymentMethod


class StatusUpdateIn(BaseModel):
    """Zmiana statusu przez obsluge."""

    status: OrderStatus
    cancel_reason: Optional[str] = Field(None, max_length=500)


class CancelIn(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)


class AddressIn(BaseModel):
    address: str = Field(..., min_length=1, max_length=500)


class BadgeOut(BaseModel):
    label: str
    tone: str


class OrderItemOut(BaseModel):
    product_id: str
    product_type: ProductType
    title: str
    quantity: int
    unit_price: Decimal


class PaymentOut(BaseModel):
    id: int
    order_id: int
    method: PaymentMethod
    status: PaymentStatus
    amount: Decimal
    paid_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class OrderOut(BaseModel):
    """Schema dla zamowienia (response)."""

    id: int
    user_id: int
    status: OrderStatus
    badge: BadgeOut
    allowed_transitions: List[OrderStatus]
    address: str
    total: Decimal
    cancel_reason: Optional[str] = None
    created_at: datetime
    items: List[OrderItemOut]
    payment: Optional[PaymentOut] = None


class RefundNoticeOut(BaseModel):
    order_id: int
    payment_id: int
    amount: Decimal
    sla_days: int


class TransitionOut(BaseModel):
    order: OrderOut
    refund_notice: Optional[RefundNoticeOut] = None


class CallbackOutcomeOut(BaseModel):
    outcome: str
    order_id: int
    payment_id: int
    reason: Optional[str] = None


# statystyki dla panelu obslugi

class TopProductOut(BaseModel):
    product_id: str
    product_type: ProductType
    title: str
    sold: int


class TopCustomerOut(BaseModel):
    user_id: int
    orders: int
    spent: Decimal


class DailySalesOut(BaseModel):
    day: date
    total: Decimal


class DailyOrdersOut(BaseModel):
    day: date
    count: int


class OrderStatsOut(BaseModel):
    """Liczby zamowien per status i przychod z dostarczonych zamowien."""

    total_orders: int
    by_status: Dict[OrderStatus, int]
    delivered_revenue: Decimal
    top_products: List[TopProductOut]
    top_customers: List[TopCustomerOut]
    sales_over_time: List[DailySalesOut]
    orders_over_time: List[DailyOrdersOut]


class ErrorOut(BaseModel):
    code: str
    message: str
    allowed: Optional[List[str]] = None
