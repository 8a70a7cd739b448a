"""
Agendo — Subscription Model
One row per billing attempt. Rows are never deleted.
"""

import enum
from datetime import datetime, timezone
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Numeric, Index, text
from sqlalchemy.orm import relationship

from app.core.database import Base


class SubscriptionStatus(str, enum.Enum):
    PENDING = "pending"
    ACTIVE = "active"
    ACTIVE_UNTIL_END_OF_CYCLE = "active_until_end_of_cycle"
    CANCELED = "canceled"


# Statuses that grant access; at most one per user
ENTITLED_STATUSES = (
    SubscriptionStatus.ACTIVE.value,
    SubscriptionStatus.ACTIVE_UNTIL_END_OF_CYCLE.value,
)

_ONE_ENTITLED_PER_USER = text("status IN ('active', 'active_until_end_of_cycle')")


class Subscription(Base):
    __tablename__ = "subscriptions"
    __table_args__ = (
        Index(
            "uq_subscriptions_user_entitled",
            "user_id",
            unique=True,
            postgresql_where=_ONE_ENTITLED_PER_USER,
            sqlite_where=_ONE_ENTITLED_PER_USER,
        ),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    plan_id = Column(Integer, ForeignKey("plans.id", ondelete="SET NULL"), nullable=True, index=True)
    mp_plan_id = Column(String(255), nullable=True)
    mp_subscription_id = Column(String(255), unique=True, nullable=True, index=True)

    # Snapshot of what was sold at checkout
    plan_name = Column(String(255), nullable=True)
    plan_amount = Column(Numeric(10, 2), nullable=True)
    plan_currency = Column(String(3), nullable=True)
    plan_frequency = Column(Integer, nullable=True)
    plan_frequency_type = Column(String(20), nullable=True)

    status = Column(String(50), default=SubscriptionStatus.PENDING.value, nullable=False, index=True)
    starts_at = Column(DateTime(timezone=True), nullable=True)
    expires_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)
    updated_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc), nullable=False)

    # Relationships
    user = relationship("User", back_populates="subscriptions")
    plan = relationship("Plan", back_populates="subscriptions", lazy="selectin")

    def __repr__(self):
        return f"<Subscription(id={self.id}, user_id={self.user_id}, status='{self.status}')>"
