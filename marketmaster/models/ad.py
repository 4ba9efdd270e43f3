import uuid

from sqlalchemy import Column, Integer, String, Text, Numeric, DateTime, ForeignKey, JSON, Index
from sqlalchemy.sql import func

from .base import Base


class Ad(Base):
    __tablename__ = "ads"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    seller_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)

    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=False)
    category = Column(String(100), nullable=False)
    sub_category = Column(String(100), nullable=True)
    price = Column(Numeric(14, 2), nullable=False)
    condition = Column(String(16), nullable=False, default="used")   # new / used / refurbished
    location = Column(String(200), nullable=False)
    images = Column(JSON, nullable=False, default=list)               # 1..5 URL, первая: обложка
    whatsapp_contact = Column(String(64), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    expiry_date = Column(DateTime(timezone=True), nullable=False)

    views = Column(Integer, nullable=False, default=0)
    clicks = Column(Integer, nullable=False, default=0)
    whatsapp_clicks = Column(Integer, nullable=False, default=0)

    __table_args__ = (
        Index("ix_ads_category", "category"),
        Index("ix_ads_expiry_date", "expiry_date"),
    )
