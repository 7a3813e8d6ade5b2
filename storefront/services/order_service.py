# storefront/services/order_service.py
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Callable, Dict, List, Tuple

from sqlalchemy.orm import Session

from storefront.data.models.order import OrderModel
from storefront.data.models.order_item import OrderItemModel
from storefront.data.models.payment import PaymentModel
from storefront.domain.cart import CartSnapshot, LineKey, ResolutionState
from storefront.domain.errors import (
    AddressChangeNotAllowed,
    CartEmpty,
    CartNotReady,
    ConcurrentModification,
    InsufficientStock,
    InvalidRefundTransition,
    OrderNotFound,
    StorefrontError,
)
from storefront.domain.states import (
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
    ProductType,
    allowed_transitions,
    check_transition,
    initial_status,
    status_badge,
)
from storefront.repos.order_repo import OrderRepo
from storefront.repos.payment_repo import PaymentRepo
from storefront.services.cart_service import CartPricingEngine
from storefront.services.notification_service import NotificationService
from storefront.services.pricing import money
from storefront.services.product_cache import ProductResolutionCache
from storefront.services.product_client import ProductClient
from storefront.utils.settings import CATALOG_WAIT_SECONDS, REFUND_SLA_DAYS
from storefront.utils.logging import get_logger

logger = get_logger(__name__)


def payment_to_dict(payment: PaymentModel | None) -> Dict[str, Any] | None:
    if payment is None:
        return None
    return {
        "id": payment.id,
        "order_id": payment.order_id,
        "method": payment.method,
        "status": payment.status,
        "amount": payment.amount,
        "paid_at": payment.paid_at,
    }


def order_to_dict(order: OrderModel) -> Dict[str, Any]:
    badge = status_badge(OrderStatus(order.status))
    return {
        "id": order.id,
        "user_id": order.user_id,
        "status": order.status,
        "badge": {"label": badge.label, "tone": badge.tone},
        "allowed_transitions": sorted(s.value for s in allowed_transitions(OrderStatus(order.status))),
        "address": order.address,
        "total": order.total,
        "cancel_reason": order.cancel_reason,
        "created_at": order.created_at,
        "items": [
            {
                "product_id": i.product_id,
                "product_type": i.product_type,
                "title": i.title,
                "quantity": i.quantity,
                "unit_price": i.unit_price,
            }
            for i in order.items
        ],
        "payment": payment_to_dict(order.payment),
    }


class OrderService:
    """
    Maszyna stanow zamowienia i platnosci.

    Tabela przejsc jest w domain.states, tutaj:
    - walidacja + warunkowy UPDATE (version i status) jako ostateczny arbiter
    - hooki na krawedziach przejsc, w tej samej transakcji co zmiana statusu
    - powiadomienia dopiero po commit
    """

    def __init__(
        self,
        db: Session,
        product_client: ProductClient | None = None,
        product_cache: ProductResolutionCache | None = None,
        notification_service: NotificationService | None = None,
        refund_sla_days: int = REFUND_SLA_DAYS,
        wait_seconds: float = CATALOG_WAIT_SECONDS,
    ):
        self.db = db
        self.repo = OrderRepo(db)
        self.payments = PaymentRepo(db)
        self.product_client = product_client or ProductClient()
        self.product_cache = product_cache
        self.notification_service = notification_service or NotificationService()
        self.refund_sla_days = refund_sla_days
        self.wait_seconds = wait_seconds
        self._stock_taken: List[Tuple[str, int, ProductType]] = []

        # stan magazynu schodzi dopiero przy wysylce, nie przy tworzeniu zamowienia
        self._edge_hooks: Dict[Tuple[OrderStatus, OrderStatus], Callable] = {
            (OrderStatus.PROCESSING, OrderStatus.DELIVERING): self._dispatch_stock,
            (OrderStatus.DELIVERING, OrderStatus.DELIVERED): self._settle_cash_on_delivery,
        }

    # query

    def _load(self, order_id: int, user_id: int | None = None) -> OrderModel:
        order = self.repo.get_order(order_id)
        if not order:
            raise OrderNotFound(order_id)
        if user_id is not None and order.user_id != user_id:
            raise PermissionError("Brak dostepu do zamowienia")
        return order

    def get_order(self, order_id: int, user_id: int | None = None) -> Dict[str, Any]:
        return order_to_dict(self._load(order_id, user_id))

    def list_orders(self, user_id: int | None = None, status: OrderStatus | None = None) -> List[Dict[str, Any]]:
        status_value = OrderStatus(status).value if status is not None else None
        return [order_to_dict(o) for o in self.repo.list_orders(user_id=user_id, status=status_value)]

    def stats(self, top: int = 5) -> Dict[str, Any]:
        """
        Use Case: statystyki dla obslugi sklepu.
        Przychod, sprzedaz dzienna i rankingi licza tylko zamowienia DELIVERED,
        liczba zamowien dziennie liczy wszystkie.
        """
        counts = self.repo.count_by_status()
        by_status = {s.value: counts.get(s.value, 0) for s in OrderStatus}
        delivered = OrderStatus.DELIVERED.value

        sales: Dict[date, Decimal] = {}
        per_day: Dict[date, int] = {}
        for created_at, status, total in self.repo.timeline():
            day = created_at.date()
            per_day[day] = per_day.get(day, 0) + 1
            if status == delivered:
                sales[day] = sales.get(day, Decimal("0.00")) + Decimal(total)

        return {
            "total_orders": sum(by_status.values()),
            "by_status": by_status,
            "delivered_revenue": money(self.repo.revenue(delivered)),
            "top_products": [
                {"product_id": pid, "product_type": ptype, "title": title, "sold": int(sold)}
                for pid, ptype, title, sold in self.repo.top_products(delivered, limit=top)
            ],
            "top_customers": [
                {"user_id": user_id, "orders": orders, "spent": money(Decimal(str(spent)))}
                for user_id, orders, spent in self.repo.top_customers(delivered, limit=top)
            ],
            "sales_over_time": [{"day": day, "total": money(v)} for day, v in sorted(sales.items())],
            "orders_over_time": [{"day": day, "count": n} for day, n in sorted(per_day.items())],
        }

    # commands

    def create_order(
        self,
        user_id: int,
        address: str,
        method: PaymentMethod,
        snapshot: CartSnapshot,
    ) -> Dict[str, Any]:
        """
        Use Case: checkout z zaznaczonych pozycji snapshotu.
        Pozycje to kopia ceny i ilosci z chwili zamowienia.
        """
        if not snapshot.selected:
            raise CartEmpty()

        method = PaymentMethod(method)
        status = initial_status(method)

        order = OrderModel(
            user_id=user_id,
            status=status.value,
            address=address,
            total=snapshot.total,
            version=1,
            items=[
                OrderItemModel(
                    product_id=e.line.product_id,
                    product_type=e.line.product_type.value,
                    title=e.product.title,
                    quantity=e.line.quantity,
                    unit_price=e.product.unit_price,
                )
                for e in snapshot.selected
            ],
        )

        try:
            self.repo.add_order(order)
            self.payments.add_payment(
                PaymentModel(
                    order_id=order.id,
                    method=method.value,
                    status=PaymentStatus.PENDING.value,
                    amount=snapshot.total,
                    version=1,
                )
            )
            self.repo.commit()
        except Exception as e:
            logger.error(f"Blad podczas tworzenia zamowienia dla user {user_id}: {e}")
            self.repo.rollback()
            raise

        order = self._load(order.id)
        logger.info(f"Order {order.id} created for user {user_id}: {method.value}, {status.value}, total {order.total}")

        self.notification_service.send_order_notification(user_id, order.id, order.status)
        return order_to_dict(order)

    def create_order_from_cart(self, cart: CartPricingEngine, address: str, method: PaymentMethod) -> Dict[str, Any]:
        snapshot = cart.wait_resolved(self.wait_seconds)

        # zaznaczona pozycja bez ceny nie moze po cichu wypasc z zamowienia
        pending = [
            e.line.product_id
            for e in snapshot.entries
            if e.line.selected and e.state is not ResolutionState.RESOLVED
        ]
        if pending:
            logger.warning(f"Checkout for user {cart.user_id} refused, lines not priced yet: {pending}")
            raise CartNotReady(pending)

        order = self.create_order(cart.user_id, address, method, snapshot)

        # z koszyka znikaja tylko kupione pozycje
        cart.remove_keys([e.line.key for e in snapshot.selected])
        return order

    def request_transition(
        self,
        order_id: int,
        to: OrderStatus,
        reason: str | None = None,
        user_id: int | None = None,
    ) -> Dict[str, Any]:
        """
        Use Case: zmiana statusu zamowienia.

        Rzuca InvalidTransition (z lista dozwolonych) zanim cokolwiek zapisze.
        Zwraca {"order": ..., "refund_notice": ... | None}.
        """
        order = self._load(order_id, user_id)
        current = OrderStatus(order.status)
        to = OrderStatus(to)
        check_transition(current, to)

        payment = order.payment
        new_data = {"status": to.value, "version": order.version + 1}
        if to is OrderStatus.CANCELLED:
            new_data["cancel_reason"] = reason

        refund_notice = None
        self._stock_taken = []
        try:
            rowcount = self.repo.update_order_version(
                order_id=order.id,
                old_version=order.version,
                old_status=current.value,
                new_data=new_data,
            )
            # status albo wersja zmienione przez inna operacje
            if rowcount == 0:
                raise ConcurrentModification(
                    f"Order {order.id} was modified concurrently, reload and retry"
                )

            if to is OrderStatus.CANCELLED:
                refund_notice = self._refund_on_cancel(order, payment)

            hook = self._edge_hooks.get((current, to))
            if hook is not None:
                hook(order, payment)

            self.repo.commit()
        except Exception as e:
            logger.error(f"Order {order.id} {current.value} -> {to.value} failed: {e}")
            self.repo.rollback()
            self._restore_stock(order.id)
            raise

        logger.info(f"Order {order_id}: {current.value} -> {to.value}")

        order = self._load(order_id)
        self._after_transition(order, current, to, refund_notice)
        return {"order": order_to_dict(order), "refund_notice": refund_notice}

    def cancel_order(self, order_id: int, user_id: int, reason: str | None) -> Dict[str, Any]:
        """Use Case: anulowanie przez klienta (tylko wlasne zamowienie)."""
        return self.request_transition(order_id, OrderStatus.CANCELLED, reason=reason, user_id=user_id)

    def change_address(self, order_id: int, user_id: int, address: str) -> Dict[str, Any]:
        order = self._load(order_id, user_id)
        if order.status != OrderStatus.PENDING.value:
            raise AddressChangeNotAllowed(order.status)

        rowcount = self.repo.update_order_version(
            order_id=order.id,
            old_version=order.version,
            old_status=order.status,
            new_data={"address": address, "version": order.version + 1},
        )
        if rowcount == 0:
            self.repo.rollback()
            raise ConcurrentModification(f"Order {order.id} was modified concurrently, reload and retry")

        self.repo.commit()
        logger.info(f"Order {order_id}: address changed by user {user_id}")
        return order_to_dict(self._load(order_id))

    def complete_refund(self, order_id: int) -> Dict[str, Any]:
        """Use Case: obsluga potwierdza zwrot pieniedzy, REFUNDING -> REFUNDED."""
        order = self._load(order_id)
        payment = order.payment
        if payment is None or payment.status != PaymentStatus.REFUNDING.value:
            raise InvalidRefundTransition(payment.status if payment else "MISSING")

        rowcount = self.payments.update_payment_version(
            payment_id=payment.id,
            old_version=payment.version,
            new_data={"status": PaymentStatus.REFUNDED.value, "version": payment.version + 1},
        )
        if rowcount == 0:
            self.payments.rollback()
            raise ConcurrentModification(f"Payment {payment.id} was modified concurrently, reload and retry")

        self.payments.commit()
        logger.info(f"Payment {payment.id} of order {order_id} refunded")
        return order_to_dict(self._load(order_id))

    # hooki przejsc

    def _refund_on_cancel(self, order: OrderModel, payment: PaymentModel | None) -> Dict[str, Any] | None:
        # oplacone przez bramke -> REFUNDING (nigdy od razu REFUNDED), reszta bez zmian
        if payment is None:
            return None
        if payment.method != PaymentMethod.GATEWAY.value or payment.status != PaymentStatus.SUCCESS.value:
            return None

        rowcount = self.payments.update_payment_version(
            payment_id=payment.id,
            old_version=payment.version,
            new_data={"status": PaymentStatus.REFUNDING.value, "version": payment.version + 1},
        )
        if rowcount == 0:
            raise ConcurrentModification(f"Payment {payment.id} was modified concurrently, reload and retry")

        logger.info(f"Payment {payment.id} of cancelled order {order.id} moved to REFUNDING")
        return {
            "order_id": order.id,
            "payment_id": payment.id,
            "amount": Decimal(payment.amount),
            "sla_days": self.refund_sla_days,
        }

    def _dispatch_stock(self, order: OrderModel, payment: PaymentModel | None) -> None:
        # najpierw sprawdzenie calego zamowienia, zeby nie zdejmowac stanu czesciowo
        needed: Dict[LineKey, int] = {}
        for item in order.items:
            key = LineKey(item.product_id, ProductType(item.product_type))
            needed[key] = needed.get(key, 0) + item.quantity
        for key, quantity in needed.items():
            current = self.product_client.fetch_product(key.product_id, key.product_type)
            if current.stock_quantity < quantity:
                raise InsufficientStock(key.product_id, quantity)

        for item in order.items:
            remaining = self.product_client.decrement_stock(
                item.product_id, item.quantity, ProductType(item.product_type)
            )
            self._stock_taken.append((item.product_id, item.quantity, ProductType(item.product_type)))
            logger.info(f"Stock of {item.product_id} decreased by {item.quantity}, now {remaining}")

    def _restore_stock(self, order_id: int) -> None:
        # przejscie wycofane, zdjety stan wraca do katalogu
        while self._stock_taken:
            product_id, quantity, product_type = self._stock_taken.pop()
            try:
                self.product_client.restock(product_id, quantity, product_type)
                logger.info(f"Order {order_id}: stock of {product_id} restored by {quantity}")
            except StorefrontError as e:
                logger.error(f"Order {order_id}: could not restore {quantity} of {product_id}: {e}")

    def _settle_cash_on_delivery(self, order: OrderModel, payment: PaymentModel | None) -> None:
        # gotowka pobrana przy dostawie
        if payment is None or payment.method != PaymentMethod.CASH_ON_DELIVERY.value:
            return
        if payment.status != PaymentStatus.PENDING.value:
            return

        rowcount = self.payments.update_payment_version(
            payment_id=payment.id,
            old_version=payment.version,
            new_data={
                "status": PaymentStatus.SUCCESS.value,
                "paid_at": datetime.now(timezone.utc),
                "version": payment.version + 1,
            },
        )
        if rowcount == 0:
            raise ConcurrentModification(f"Payment {payment.id} was modified concurrently, reload and retry")

    def _after_transition(
        self,
        order: OrderModel,
        current: OrderStatus,
        to: OrderStatus,
        refund_notice: Dict[str, Any] | None,
    ) -> None:
        if (current, to) == (OrderStatus.PROCESSING, OrderStatus.DELIVERING) and self.product_cache is not None:
            # nowy stan magazynu, stara wartosc widoczna do czasu odpowiedzi
            for item in order.items:
                self.product_cache.refresh(LineKey(item.product_id, ProductType(item.product_type)))

        self.notification_service.send_order_notification(order.user_id, order.id, to.value)
        if refund_notice is not None:
            self.notification_service.send_refund_request(
                refund_notice["order_id"],
                refund_notice["payment_id"],
                refund_notice["amount"],
                refund_notice["sla_days"],
            )
