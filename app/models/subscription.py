from sqlalchemy import Column, DateTime, ForeignKey, Integer, JSON, Numeric, String
from sqlalchemy.sql import func

from app.models.database import Base
from app.models.status import SubscriptionStatus


class VendorSubscription(Base):
    __tablename__ = "vendor_subscriptions"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    plan_id = Column(String(64), nullable=False)
    duration = Column(String(16), nullable=False)  # monthly | yearly
    amount = Column(Numeric(12, 2), nullable=False)
    currency = Column(String(8), nullable=False)
    status = Column(String(32), nullable=False, default=SubscriptionStatus.PENDING.value, index=True)
    provider = Column(String(32), nullable=True)
    gateway_transaction_id = Column(String(255), nullable=True, index=True)
    transaction_number = Column(String(64), unique=True, nullable=False)
    payment_confirmed_at = Column(DateTime(timezone=True), nullable=True)
    expires_at = Column(DateTime(timezone=True), nullable=True)
    approved_by_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    approval_source = Column(String(16), nullable=True)  # gateway | admin
    gateway_payload = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
