from sqlalchemy import Column, DateTime, JSON, Numeric, String, Text, UniqueConstraint, func
from sqlalchemy.orm import relationship
from .base import Base


class Order(Base):
    __tablename__ = "order"
    __table_args__ = (UniqueConstraint("user_id", "idempotency_key", name="uq_order_user_idempotency"),)

    id = Column(String(36), primary_key=True)
    order_number = Column(String(32), nullable=False, unique=True)
    user_id = Column(String(128), nullable=False, index=True)
    status = Column(String(32), nullable=False)
    subtotal = Column(Numeric(12, 2), nullable=False)
    tax_amount = Column(Numeric(12, 2), nullable=False)
    shipping_amount = Column(Numeric(12, 2), nullable=False)
    total_amount = Column(Numeric(12, 2), nullable=False)
    currency = Column(String(3), nullable=False)
    # Address / payment value types, stored as their dict form
    shipping_address = Column(JSON, nullable=False)
    billing_address = Column(JSON, nullable=False)
    payment_method = Column(String(32), nullable=False)
    payment_details = Column(JSON, nullable=True)
    payment_status = Column(String(32), nullable=False)
    notes = Column(Text, nullable=True)
    tracking_number = Column(String(128), nullable=True)
    idempotency_key = Column(String(128), nullable=True)
    created_at = Column(DateTime, nullable=False, server_default=func.now())
    updated_at = Column(DateTime, nullable=False, server_default=func.now())

    items = relationship("OrderItem", back_populates="order", order_by="OrderItem.position")
