import uuid

from sqlalchemy import Column, String, DateTime
from sqlalchemy.sql import func

from .base import Base


class User(Base):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    email = Column(String(320), unique=True, index=True, nullable=False)
    password_hash = Column(String(200), nullable=True)
    role = Column(String(16), nullable=False, default="buyer")   # 'buyer' / 'seller'

    full_name = Column(String(200), nullable=True)
    avatar_url = Column(String(1000), nullable=True)

    # только у продавцов
    username = Column(String(64), nullable=True)
    country = Column(String(100), nullable=True)
    address = Column(String(500), nullable=True)
    contact_number = Column(String(64), nullable=True)
    whatsapp_number = Column(String(64), nullable=True)
    package_type = Column(String(16), nullable=False, default="none")   # none / silver / gold
    package_expiry = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
