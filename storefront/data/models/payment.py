from datetime import datetime, timezone

from sqlalchemy import Column, Integer, ForeignKey, String, DateTime, Numeric
from sqlalchemy.orm import relationship

from storefront.data.database import Base


class PaymentModel(Base):
    __tablename__ = "payments"

    id = Column(Integer, primary_key=True)
    # 1:1 z zamowieniem
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, unique=True)

    method = Column(String(20), nullable=False)  # CASH_ON_DELIVERY, GATEWAY
    status = Column(String(20), nullable=False)  # PENDING, SUCCESS, FAILED, REFUNDING, REFUNDED
    amount = Column(Numeric(12, 2), nullable=False)
    paid_at = Column(DateTime(timezone=True), nullable=True)
    version = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))

    order = relationship("OrderModel", back_populates="payment")
    callbacks = relationship("PaymentCallbackModel", back_populates="payment")
