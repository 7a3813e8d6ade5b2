# storefront/repos/payment_repo.py
from sqlalchemy import select, update
from sqlalchemy.orm import Session

from storefront.data.models.payment import PaymentModel
from storefront.data.models.payment_callback import PaymentCallbackModel


class PaymentRepo:
    def __init__(self, db: Session):
        self.db = db

    def add_payment(self, payment: PaymentModel) -> PaymentModel:
        self.db.add(payment)
        self.db.flush()
        return payment

    def get_payment(self, payment_id: int) -> PaymentModel | None:
        return self.db.get(PaymentModel, payment_id)

    def get_payment_by_order(self, order_id: int) -> PaymentModel | None:
        return self.db.execute(
            select(PaymentModel).where(PaymentModel.order_id == order_id)
        ).scalar_one_or_none()

    def update_payment_version(self, payment_id: int, old_version: int, new_data: dict) -> int:
        result = self.db.execute(
            update(PaymentModel)
            .where(PaymentModel.id == payment_id, PaymentModel.version == old_version)
            .values(**new_data)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    # znaczniki idempotencji callbackow

    def get_callback(self, payment_id: int, callback_key: str) -> PaymentCallbackModel | None:
        return self.db.get(PaymentCallbackModel, (payment_id, callback_key))

    def add_callback(self, marker: PaymentCallbackModel) -> PaymentCallbackModel:
        self.db.add(marker)
        self.db.flush()
        return marker

    def refresh(self, payment: PaymentModel) -> PaymentModel:
        self.db.refresh(payment)
        return payment

    def commit(self):
        self.db.commit()

    def rollback(self):
        self.db.rollback()
