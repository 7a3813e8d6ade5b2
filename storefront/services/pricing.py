# storefront/services/pricing.py
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Sequence

from storefront.domain.cart import CartEntry, CartLine, CartSnapshot, ResolutionState
from storefront.services.product_cache import ProductResolutionCache
from storefront.utils.settings import FREE_SHIPPING_THRESHOLD, FLAT_SHIPPING_FEE

CENT = Decimal("0.01")


def money(value: Decimal) -> Decimal:
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


class PricingPolicy:
    """Rabat i dostawa - czyste funkcje, zdefiniowane takze dla pustego koszyka."""

    def __init__(
        self,
        free_shipping_threshold: Decimal = FREE_SHIPPING_THRESHOLD,
        flat_shipping_fee: Decimal = FLAT_SHIPPING_FEE,
    ):
        self.free_shipping_threshold = Decimal(free_shipping_threshold)
        self.flat_shipping_fee = Decimal(flat_shipping_fee)

    def subtotal(self, selected: Iterable[CartEntry]) -> Decimal:
        return money(sum((e.line_total for e in selected), Decimal("0.00")))

    def discount(self, selected: Iterable[CartEntry], subtotal: Decimal) -> Decimal:
        if subtotal <= 0:
            return Decimal("0.00")

        total = Decimal("0.00")
        for entry in selected:
            pct = entry.product.promotion_percentage if entry.product else None
            if pct:
                total += entry.line_total * pct / Decimal(100)
        # rabat nigdy nie przekracza sumy
        return min(money(total), subtotal)

    def shipping_fee(self, subtotal: Decimal) -> Decimal:
        # darmowa dostawa nie dotyczy pustego koszyka
        if subtotal > 0 and subtotal >= self.free_shipping_threshold:
            return Decimal("0.00")
        return money(self.flat_shipping_fee)


def build_snapshot(
    lines: Sequence[CartLine],
    cache: ProductResolutionCache,
    policy: PricingPolicy,
    persistent: bool = True,
) -> CartSnapshot:
    """
    Snapshot liczony zawsze od zera z aktualnych linii i cache.
    Tylko odczyt cache (lookup), nigdy nie uruchamia fetcha.
    """
    entries = []
    for line in lines:
        product, state = cache.lookup(line.key)
        # nierozwiazane albo niedostepne pozycje nie sa wyceniane
        effective = line.selected and product is not None and product.in_stock
        entries.append(CartEntry(line=line, product=product, state=state, selected=effective))

    selected = [e for e in entries if e.selected]
    subtotal = policy.subtotal(selected)
    discount = policy.discount(selected, subtotal)
    shipping = policy.shipping_fee(subtotal)

    return CartSnapshot(
        entries=entries,
        selected=selected,
        subtotal=subtotal,
        discount=discount,
        shipping_fee=shipping,
        total=subtotal - discount + shipping,
        selected_count=len(selected),
        total_count=len(entries),
        persistent=persistent,
    )
