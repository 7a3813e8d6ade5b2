# storefront/domain/errors.py
"""
Wyjatki domenowe.

Kazdy wyjatek dziedziczy po StorefrontError (stabilny `code` dla UI) oraz po
wbudowanym typie, ktorego routery uzywaja do mapowania na HTTP:
ValueError -> walidacja, LookupError -> brak encji, RuntimeError -> infrastruktura.
"""
from typing import Iterable


class StorefrontError(Exception):
    code = "STOREFRONT_ERROR"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


# koszyk

class InvalidQuantity(StorefrontError, ValueError):
    code = "INVALID_QUANTITY"

    def __init__(self, quantity: int):
        super().__init__(f"Quantity must be at least 1, got {quantity}")
        self.quantity = quantity


class CartLineNotFound(StorefrontError, LookupError):
    code = "CART_LINE_NOT_FOUND"

    def __init__(self, product_id: str, product_type: str):
        super().__init__(f"Cart has no line for {product_type} {product_id}")


class CartEmpty(StorefrontError, ValueError):
    code = "CART_EMPTY"

    def __init__(self):
        super().__init__("No selected, priced cart lines to check out")


class CartNotReady(StorefrontError, ValueError):
    code = "CART_NOT_READY"

    def __init__(self, product_ids: Iterable[str]):
        self.product_ids = sorted(product_ids)
        super().__init__(
            f"Selected cart lines are not priced yet: {', '.join(self.product_ids)}, retry in a moment"
        )


class CatalogLookupFailed(StorefrontError, RuntimeError):
    code = "CATALOG_LOOKUP_FAILED"

    def __init__(self, product_id: str, product_type: str, reason: str):
        super().__init__(f"Catalog lookup for {product_type} {product_id} failed: {reason}")
        self.product_id = product_id
        self.product_type = product_type


class PersistenceUnavailable(StorefrontError, RuntimeError):
    code = "PERSISTENCE_UNAVAILABLE"


# zamowienia

class OrderNotFound(StorefrontError, LookupError):
    code = "ORDER_NOT_FOUND"

    def __init__(self, order_id: int):
        super().__init__(f"Order {order_id} not found")


class PaymentNotFound(StorefrontError, LookupError):
    code = "PAYMENT_NOT_FOUND"

    def __init__(self, payment_id: int):
        super().__init__(f"Payment {payment_id} not found")


class InvalidTransition(StorefrontError, ValueError):
    code = "INVALID_TRANSITION"

    def __init__(self, current: str, requested: str, allowed: Iterable[str]):
        self.current = current
        self.requested = requested
        self.allowed = sorted(allowed)
        allowed_txt = ", ".join(self.allowed) or "none, status is terminal"
        super().__init__(
            f"Cannot move order from {current} to {requested} (allowed: {allowed_txt})"
        )


class AddressChangeNotAllowed(StorefrontError, ValueError):
    code = "ADDRESS_CHANGE_NOT_ALLOWED"

    def __init__(self, status: str):
        super().__init__(f"Address can only be changed while PENDING, order is {status}")


class InvalidRefundTransition(StorefrontError, ValueError):
    code = "INVALID_REFUND_TRANSITION"

    def __init__(self, status: str):
        super().__init__(f"Refund can only complete from REFUNDING, payment is {status}")


class InsufficientStock(StorefrontError, ValueError):
    code = "INSUFFICIENT_STOCK"

    def __init__(self, product_id: str, quantity: int):
        super().__init__(f"Not enough stock of product {product_id} to ship {quantity}")
        self.product_id = product_id


class ConcurrentModification(StorefrontError, RuntimeError):
    code = "CONCURRENT_MODIFICATION"


# callback bramki

class MalformedCallback(StorefrontError, ValueError):
    code = "MALFORMED_CALLBACK"


class StaleCallback(StorefrontError, ValueError):
    code = "STALE_CALLBACK"

    def __init__(self, message: str, payment_id: int | None = None):
        super().__init__(message)
        self.payment_id = payment_id

