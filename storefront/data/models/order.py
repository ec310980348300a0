from sqlalchemy import Column, String, DateTime, Numeric, Text
from sqlalchemy.orm import relationship
from datetime import datetime, timezone
import uuid

from storefront.data.database import Base


def _utcnow():
    return datetime.now(timezone.utc)


class OrderModel(Base):
    __tablename__ = "orders"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(64), nullable=False, index=True)

    status = Column(String(20), nullable=False, default="pending")  # pending, completed, cancelled
    total_price = Column(Numeric(12, 2), nullable=False)
    payment_method = Column(String(32), nullable=False, default="cash_on_delivery")
    #aktualna platnosc, historia w payments.order_id
    payment_id = Column(String(36), nullable=True)
    note = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    items = relationship(
        "OrderItemModel",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderItemModel.position",
        lazy="selectin",
    )
    payments = relationship(
        "PaymentModel",
        back_populates="order",
        order_by="PaymentModel.created_at",
        lazy="selectin",
    )
