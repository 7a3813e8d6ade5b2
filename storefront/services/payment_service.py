# storefront/services/payment_service.py
import hashlib
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Dict

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from storefront.data.models.payment_callback import PaymentCallbackModel
from storefront.domain.errors import (
    ConcurrentModification,
    MalformedCallback,
    PaymentNotFound,
    StaleCallback,
)
from storefront.domain.states import OrderStatus, PaymentMethod, PaymentStatus
from storefront.repos.order_repo import OrderRepo
from storefront.repos.payment_repo import PaymentRepo
from storefront.services.notification_service import NotificationService
from storefront.services.order_service import payment_to_dict
from storefront.utils.settings import GATEWAY_SUCCESS_CODE, GATEWAY_AMOUNT_SCALE
from storefront.utils.logging import get_logger

logger = get_logger(__name__)

# "77" albo "77-<proba>", kazda proba platnosci ma wlasna referencje w bramce
_TXN_REF = re.compile(r"^(\d+)(?:[-_:][A-Za-z0-9]+)?$")

SUCCESS = "SUCCESS"
FAILURE = "FAILURE"


@dataclass(frozen=True)
class GatewayCallback:
    response_code: str | None
    gateway_txn_ref: str | None
    amount: str | None = None
    bank_ref: str | None = None
    timestamp: str | None = None

    @property
    def callback_key(self) -> str:
        """Odcisk callbacku - ten sam redirect zawsze daje ten sam klucz."""
        raw = "|".join(
            (v or "").strip()
            for v in (self.response_code, self.gateway_txn_ref, self.amount, self.bank_ref, self.timestamp)
        )
        return hashlib.sha256(raw.encode()).hexdigest()


def parse_payment_id(gateway_txn_ref: str | None) -> int:
    match = _TXN_REF.match((gateway_txn_ref or "").strip())
    if not match:
        raise MalformedCallback(f"Cannot read payment id from gateway reference {gateway_txn_ref!r}")
    payment_id = int(match.group(1))
    if payment_id <= 0:
        raise MalformedCallback(f"Cannot read payment id from gateway reference {gateway_txn_ref!r}")
    return payment_id


class PaymentService:
    """
    Uzgadnianie callbacku bramki platnosci (redirect z parametrami).

    Callback moze przyjsc wiele razy (odswiezenie, back, retry sieci), wiec:
    - znacznik (payment_id, callback_key) w bazie, nie flaga w pamieci procesu
    - znacznik + zmiana platnosci + zmiana zamowienia w jednej transakcji
    - powtorka zwraca zapisany wynik i nic nie zmienia
    """

    def __init__(
        self,
        db: Session,
        notification_service: NotificationService | None = None,
        success_code: str = GATEWAY_SUCCESS_CODE,
        amount_scale: int = GATEWAY_AMOUNT_SCALE,
    ):
        self.db = db
        self.repo = PaymentRepo(db)
        self.orders = OrderRepo(db)
        self.notification_service = notification_service or NotificationService()
        self.success_code = success_code
        self.amount_scale = amount_scale

    # query

    def get_payment(self, payment_id: int) -> Dict[str, Any]:
        payment = self.repo.get_payment(payment_id)
        if not payment:
            raise PaymentNotFound(payment_id)
        return payment_to_dict(payment)

    # commands

    def apply_gateway_callback(self, callback: GatewayCallback) -> Dict[str, Any]:
        """
        Use Case: dokladnie jeden wynik (SUCCESS albo FAILURE) dla danego callbacku.

        MalformedCallback - nie da sie odczytac payment id / brak kodu odpowiedzi
        StaleCallback - nieznana platnosc albo zamowienie juz nie czeka na platnosc
        """
        payment_id = parse_payment_id(callback.gateway_txn_ref)
        if not (callback.response_code or "").strip():
            raise MalformedCallback("Gateway callback has no response code")
        amount = self._parse_amount(callback.amount)
        key = callback.callback_key

        marker = self.repo.get_callback(payment_id, key)
        if marker:
            logger.info(f"Callback for payment {payment_id} already applied, returning stored outcome")
            return self._outcome(marker)

        payment = self.repo.get_payment(payment_id)
        if not payment:
            raise StaleCallback(f"Payment {payment_id} does not exist", payment_id)

        order = payment.order
        if payment.method != PaymentMethod.GATEWAY.value or order.status != OrderStatus.PENDING_PAYMENT.value:
            logger.warning(
                f"Stale callback for payment {payment_id}: order {order.id} is {order.status}"
            )
            raise StaleCallback(
                f"Order {order.id} is {order.status}, it no longer waits for payment {payment_id}",
                payment_id,
            )

        code = callback.response_code.strip()
        succeeded = code == self.success_code
        reason = None if succeeded else f"Gateway declined the payment (response code {code})"

        try:
            self.repo.add_callback(
                PaymentCallbackModel(
                    payment_id=payment_id,
                    callback_key=key,
                    order_id=order.id,
                    response_code=code,
                    gateway_txn_ref=callback.gateway_txn_ref.strip(),
                    bank_ref=callback.bank_ref,
                    amount=amount,
                    outcome=SUCCESS if succeeded else FAILURE,
                    reason=reason,
                )
            )
            if succeeded:
                self._mark_payment_done(payment, order)
            else:
                self._mark_payment_failed(payment)
            self.repo.commit()
        except (IntegrityError, ConcurrentModification) as e:
            # rownolegle dostarczenie - wygral inny request
            self.repo.rollback()
            logger.info(f"Concurrent callback for payment {payment_id} lost the race: {e}")
            return self._after_lost_race(payment_id, key)
        except Exception as e:
            logger.error(f"Blad podczas uzgadniania platnosci {payment_id}: {e}")
            self.repo.rollback()
            raise

        logger.info(f"Payment {payment_id} of order {order.id}: {'SUCCESS' if succeeded else 'FAILED'}")

        marker = self.repo.get_callback(payment_id, key)
        if succeeded:
            self.notification_service.send_order_notification(
                order.user_id, marker.order_id, OrderStatus.PENDING.value
            )
        return self._outcome(marker)

    def _mark_payment_done(self, payment, order) -> None:
        rowcount = self.repo.update_payment_version(
            payment_id=payment.id,
            old_version=payment.version,
            new_data={
                "status": PaymentStatus.SUCCESS.value,
                "paid_at": datetime.now(timezone.utc),
                "version": payment.version + 1,
            },
        )
        if rowcount == 0:
            raise ConcurrentModification(f"Payment {payment.id} changed concurrently")

        rowcount = self.orders.update_order_version(
            order_id=order.id,
            old_version=order.version,
            old_status=OrderStatus.PENDING_PAYMENT.value,
            new_data={"status": OrderStatus.PENDING.value, "version": order.version + 1},
        )
        if rowcount == 0:
            raise ConcurrentModification(f"Order {order.id} changed concurrently")

    def _mark_payment_failed(self, payment) -> None:
        # zamowienie zostaje w PENDING_PAYMENT, mozna zaplacic ponownie
        rowcount = self.repo.update_payment_version(
            payment_id=payment.id,
            old_version=payment.version,
            new_data={"status": PaymentStatus.FAILED.value, "version": payment.version + 1},
        )
        if rowcount == 0:
            raise ConcurrentModification(f"Payment {payment.id} changed concurrently")

    def _after_lost_race(self, payment_id: int, key: str) -> Dict[str, Any]:
        marker = self.repo.get_callback(payment_id, key)
        if marker:
            return self._outcome(marker)
        raise StaleCallback(f"Payment {payment_id} was settled by another callback", payment_id)

    def _parse_amount(self, raw: str | None) -> Decimal | None:
        if raw is None or not str(raw).strip():
            return None
        try:
            value = Decimal(str(raw).strip())
        except InvalidOperation as e:
            raise MalformedCallback(f"Gateway amount {raw!r} is not a number") from e
        if not value.is_finite() or value < 0:
            raise MalformedCallback(f"Gateway amount {raw!r} is not a valid amount")
        # bramka podaje kwote w setnych
        return (value / self.amount_scale).quantize(Decimal("0.01"))

    @staticmethod
    def _outcome(marker: PaymentCallbackModel) -> Dict[str, Any]:
        if marker.outcome == SUCCESS:
            return {"outcome": SUCCESS, "order_id": marker.order_id, "payment_id": marker.payment_id, "reason": None}
        return {"outcome": FAILURE, "order_id": marker.order_id, "payment_id": marker.payment_id, "reason": marker.reason}
