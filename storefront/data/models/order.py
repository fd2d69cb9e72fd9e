from sqlalchemy import Column, Integer, ForeignKey, String, DateTime, Numeric
from sqlalchemy.orm import relationship
from datetime import datetime, timezone

from storefront.data.database import Base

class OrderModel(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True)
    order_number = Column(String(32), nullable=False, unique=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    shipping_address_id = Column(Integer, ForeignKey("addresses.id"), nullable=False)

    payment_method = Column(String(16), nullable=False)
    status = Column(String(32), nullable=False, index=True)  # AWAITING_CONFIRMATION, PENDING_PAYMENT, PROCESSING, CANCELLED, DELIVERED
    subtotal = Column(Numeric(12, 2), nullable=False)
    vat_amount = Column(Numeric(12, 2), nullable=False)
    total = Column(Numeric(12, 2), nullable=False)

    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    items = relationship(
        "OrderItemModel",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderItemModel.id",
    )
    payments = relationship(
        "PaymentModel",
        back_populates="order",
        order_by="PaymentModel.id",
    )

    @property
    def latest_payment(self):
        return self.payments[-1] if self.payments else None
