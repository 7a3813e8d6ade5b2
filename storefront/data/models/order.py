from datetime import datetime, timezone

from sqlalchemy import Column, Integer, String, DateTime, Numeric, Text
from sqlalchemy.orm import relationship

from storefront.data.database import Base


class OrderModel(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, nullable=False, index=True)

    # PENDING_PAYMENT, PENDING, CONFIRMED, PROCESSING, DELIVERING, DELIVERED, CANCELLED, RETURNED
    status = Column(String(20), nullable=False, index=True)
    address = Column(Text, nullable=False)
    total = Column(Numeric(12, 2), nullable=False)
    cancel_reason = Column(Text, nullable=True)
    version = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))

    items = relationship(
        "OrderItemModel",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderItemModel.id",
    )
    payment = relationship("PaymentModel", back_populates="order", uselist=False)
