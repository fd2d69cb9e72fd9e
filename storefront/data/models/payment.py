from datetime import datetime, timezone

from sqlalchemy import Column, Integer, ForeignKey, String, DateTime, Numeric, Text
from sqlalchemy.orm import relationship

from storefront.data.database import Base


class PaymentModel(Base):
    __tablename__ = "payments"

    id = Column(Integer, primary_key=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, index=True)

    amount = Column(Numeric(12, 2), nullable=False)
    currency = Column(String(3), nullable=False)
    method = Column(String(16), nullable=False)  # MOMO, COD
    status = Column(String(16), nullable=False)  # PENDING, INITIATED, PAID, FAILED, CANCELLED

    # klucz idempotencji, wysylany do MoMo jako X-Reference-Id, nigdy nie zmieniany
    reference = Column(String(64), nullable=False, unique=True)
    transaction_id = Column(String(64), nullable=True)
    error = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    order = relationship("OrderModel", back_populates="payments")
