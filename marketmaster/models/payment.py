import uuid

from sqlalchemy import Column, String, Numeric, DateTime, ForeignKey
from sqlalchemy.sql import func

from .base import Base


class Payment(Base):
    __tablename__ = "payments"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    package_type = Column(String(16), nullable=False)
    amount = Column(Numeric(14, 2), nullable=False)
    currency = Column(String(8), nullable=False)
    paypal_order_id = Column(String(64), nullable=False, unique=True, index=True)
    status = Column(String(16), nullable=False, default="completed")
    created_at = Column(DateTime(timezone=True), server_default=func.now())
