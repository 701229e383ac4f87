from sqlalchemy import Boolean, Column, DateTime, Float, ForeignKey, Integer, JSON, String, Text
from sqlalchemy.sql import func

from app.models.database import Base


class AutoProcessLog(Base):
    """One row per automation run. Rows are only ever inserted."""

    __tablename__ = "auto_process_logs"

    id = Column(Integer, primary_key=True, index=True)
    run_type = Column(String(32), nullable=False, index=True)
    manual = Column(Boolean, nullable=False, default=False)
    processed_orders = Column(Integer, nullable=False, default=0)
    total_orders = Column(Integer, nullable=False, default=0)
    unresolved_orders = Column(Integer, nullable=False, default=0)
    execution_time = Column(Float, nullable=True)  # seconds
    errors = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)


class AdminActionLog(Base):
    __tablename__ = "admin_action_logs"

    id = Column(Integer, primary_key=True, index=True)
    admin_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    action = Column(String(64), nullable=False)  # force_transaction_success | confirm_order | approve_subscription
    target_type = Column(String(32), nullable=False)
    target_id = Column(String(255), nullable=False)
    outcome = Column(String(16), nullable=False)  # applied | noop | rejected
    reason = Column(String(64), nullable=True)
    notes = Column(Text, nullable=True)
    before_state = Column(JSON, nullable=True)
    after_state = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)
