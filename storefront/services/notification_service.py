# storefront/services/notification_service.py
from decimal import Decimal

from kombu.exceptions import OperationalError

from storefront.celery_worker import celery_app
from storefront.utils.logging import get_logger

logger = get_logger(__name__)

_STATUS_MESSAGES = {
    "PENDING": "has been paid and is pending for confirmation",
    "CONFIRMED": "has been confirmed",
    "PROCESSING": "is being processed",
    "DELIVERING": "is out for delivery and cannot be cancelled now",
    "DELIVERED": "has been delivered",
    "CANCELLED": "has been cancelled",
}


class NotificationService:
    """
    Fasada na taski Celery, serwisy wolaja tylko te metody.
    Powiadomienia ida po commit, wiec awaria brokera nie moze juz cofnac ani zepsuc operacji.
    """

    @staticmethod
    def _enqueue(task, *args) -> bool:
        try:
            task.delay(*args)
            return True
        except OperationalError as e:
            logger.error(f"Broker unavailable, notification {task.name}{args} not sent: {e}")
            return False

    @staticmethod
    def send_order_notification(user_id: int, order_id: int, status: str) -> bool:
        return NotificationService._enqueue(send_order_notification_task, user_id, order_id, status)

    @staticmethod
    def send_refund_request(order_id: int, payment_id: int, amount: Decimal, sla_days: int) -> bool:
        # Decimal nie przechodzi przez json serializer celery
        return NotificationService._enqueue(send_refund_request_task, order_id, payment_id, str(amount), sla_days)


@celery_app.task(name="storefront.services.notification_service.send_order_notification_task")
def send_order_notification_task(user_id: int, order_id: int, status: str):
    """
    W prawdziwym systemie email/SMS/push, tutaj tylko log.
    """
    message = _STATUS_MESSAGES.get(status, f"is now {status}")
    logger.info(f"[NOTIFICATION] User {user_id}: Order {order_id} {message}")
    return {"user_id": user_id, "order_id": order_id, "status": status}


@celery_app.task(name="storefront.services.notification_service.send_refund_request_task")
def send_refund_request_task(order_id: int, payment_id: int, amount: str, sla_days: int):
    logger.info(
        f"[NOTIFICATION] Staff: order {order_id} was cancelled after payment {payment_id}, "
        f"refund {amount} within {sla_days} days"
    )
    return {"order_id": order_id, "payment_id": payment_id, "amount": amount}
