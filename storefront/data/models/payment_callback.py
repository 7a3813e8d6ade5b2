from datetime import datetime, timezone

from sqlalchemy import Column, Integer, ForeignKey, String, DateTime, Numeric, Text
from sqlalchemy.orm import relationship

from storefront.data.database import Base


class PaymentCallbackModel(Base):
    """
    Znacznik idempotencji callbacku bramki.
    PK (payment_id, callback_key) - drugi insert tego samego callbacku konczy sie IntegrityError,
    zapisywany w tej samej transakcji co zmiana platnosci i zamowienia.
    """

    __tablename__ = "payment_callbacks"

    payment_id = Column(Integer, ForeignKey("payments.id"), primary_key=True)
    callback_key = Column(String(64), primary_key=True)

    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False)
    response_code = Column(String(16), nullable=False)
    gateway_txn_ref = Column(String(64), nullable=False)
    bank_ref = Column(String(64), nullable=True)
    amount = Column(Numeric(12, 2), nullable=True)

    outcome = Column(String(16), nullable=False)  # SUCCESS, FAILURE
    reason = Column(Text, nullable=True)
    received_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))

    payment = relationship("PaymentModel", back_populates="callbacks")
