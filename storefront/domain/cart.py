# storefront/domain/cart.py
from decimal import Decimal
from enum import Enum
from typing import List, NamedTuple, Optional

from pydantic import BaseModel, ConfigDict, Field

from storefront.domain.states import ProductType


class LineKey(NamedTuple):
    product_id: str
    product_type: ProductType


class CartLine(BaseModel):
    """Pozycja koszyka, klucz (product_id, product_type)."""

    model_config = ConfigDict(frozen=True)

    product_id: str
    product_type: ProductType = ProductType.PRIMARY
    quantity: int = Field(1, ge=1)
    selected: bool = True

    @property
    def key(self) -> LineKey:
        return LineKey(self.product_id, self.product_type)


class ResolvedProduct(BaseModel):
    """Projekcja produktu z katalogu, tylko do odczytu."""

    model_config = ConfigDict(frozen=True)

    id: str
    type: ProductType
    title: str
    unit_price: Decimal
    image_ref: Optional[str] = None
    stock_quantity: int = 0
    promotion_percentage: Optional[Decimal] = None

    @property
    def in_stock(self) -> bool:
        return self.stock_quantity > 0


class ResolutionState(str, Enum):
    RESOLVED = "RESOLVED"
    RESOLVING = "RESOLVING"
    FAILED = "FAILED"
    UNRESOLVED = "UNRESOLVED"


class CartEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    line: CartLine
    product: Optional[ResolvedProduct] = None
    state: ResolutionState
    selected: bool

    @property
    def line_total(self) -> Decimal:
        if self.product is None:
            return Decimal("0.00")
        return self.product.unit_price * self.line.quantity


class CartSnapshot(BaseModel):
    model_config = ConfigDict(frozen=True)

    entries: List[CartEntry]
    selected: List[CartEntry]
    subtotal: Decimal
    discount: Decimal
    shipping_fee: Decimal
    total: Decimal
    selected_count: int
    total_count: int
    persistent: bool = True
