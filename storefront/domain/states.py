# storefront/domain/states.py
from dataclasses import dataclass
from enum import Enum

from storefront.domain.errors import InvalidTransition


class OrderStatus(str, Enum):
    PENDING_PAYMENT = "PENDING_PAYMENT"  # bramka: czeka na platnosc
    PENDING = "PENDING"  # COD albo oplacone, czeka na potwierdzenie
    CONFIRMED = "CONFIRMED"
    PROCESSING = "PROCESSING"
    DELIVERING = "DELIVERING"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"
    RETURNED = "RETURNED"


class PaymentMethod(str, Enum):
    CASH_ON_DELIVERY = "CASH_ON_DELIVERY"
    GATEWAY = "GATEWAY"


class PaymentStatus(str, Enum):
    PENDING = "PENDING"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"
    REFUNDING = "REFUNDING"
    REFUNDED = "REFUNDED"


class ProductType(str, Enum):
    PRIMARY = "PRIMARY"
    BUNDLE = "BUNDLE"


# jedyne zrodlo prawdy o dozwolonych przejsciach
ALLOWED_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.PENDING_PAYMENT: frozenset({OrderStatus.PENDING, OrderStatus.CANCELLED}),
    OrderStatus.PENDING: frozenset({OrderStatus.CONFIRMED, OrderStatus.CANCELLED}),
    OrderStatus.CONFIRMED: frozenset({OrderStatus.PROCESSING, OrderStatus.CANCELLED}),
    OrderStatus.PROCESSING: frozenset({OrderStatus.DELIVERING, OrderStatus.CANCELLED}),
    OrderStatus.DELIVERING: frozenset({OrderStatus.DELIVERED}),
    OrderStatus.DELIVERED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
    OrderStatus.RETURNED: frozenset(),
}


def initial_status(method: PaymentMethod) -> OrderStatus:
    if method == PaymentMethod.GATEWAY:
        return OrderStatus.PENDING_PAYMENT
    return OrderStatus.PENDING


def allowed_transitions(status: OrderStatus) -> frozenset[OrderStatus]:
    return ALLOWED_TRANSITIONS[OrderStatus(status)]


def is_terminal(status: OrderStatus) -> bool:
    return not allowed_transitions(status)


def check_transition(current: OrderStatus, requested: OrderStatus) -> None:
    """
    Walidacja przejscia po stronie klienta (mirror serwera).
    Rzuca InvalidTransition z lista dozwolonych statusow.
    """
    current = OrderStatus(current)
    requested = OrderStatus(requested)
    allowed = allowed_transitions(current)
    if requested not in allowed:
        raise InvalidTransition(
            current=current.value,
            requested=requested.value,
            allowed=[s.value for s in allowed],
        )


@dataclass(frozen=True)
class Badge:
    label: str
    tone: str


def status_badge(status: OrderStatus) -> Badge:
    """Etykieta i kolor dla UI. Nie decyduje o poprawnosci przejsc."""
    status = OrderStatus(status)
    if status is OrderStatus.PENDING_PAYMENT:
        return Badge("Awaiting payment", "amber")
    if status is OrderStatus.PENDING:
        return Badge("Pending", "yellow")
    if status is OrderStatus.CONFIRMED:
        return Badge("Confirmed", "blue")
    if status is OrderStatus.PROCESSING:
        return Badge("Processing", "indigo")
    if status is OrderStatus.DELIVERING:
        return Badge("Delivering", "purple")
    if status is OrderStatus.DELIVERED:
        return Badge("Delivered", "green")
    if status is OrderStatus.CANCELLED:
        return Badge("Cancelled", "red")
    if status is OrderStatus.RETURNED:
        return Badge("Returned", "gray")
    raise AssertionError(f"Unhandled order status {status}")
