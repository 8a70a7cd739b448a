"""
Agendo — Plan Model
Billable offerings, optionally linked to a Mercado Pago preapproval plan.
"""

from datetime import datetime, timezone
from sqlalchemy import Column, Integer, String, Boolean, DateTime, Numeric
from sqlalchemy.orm import relationship

from app.core.database import Base


class Plan(Base):
    __tablename__ = "plans"

    id = Column(Integer, primary_key=True, autoincrement=True)
    key = Column(String(50), unique=True, nullable=False, index=True)  # bronze, silver, gold
    name = Column(String(255), nullable=False)
    monthly_limit = Column(Integer, default=0, nullable=False)  # 0 = unlimited
    price = Column(Numeric(10, 2), nullable=True)
    frequency = Column(Integer, nullable=True)
    frequency_type = Column(String(20), nullable=True)  # days, months
    mp_plan_id = Column(String(255), unique=True, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)
    updated_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc), nullable=False)

    # Relationships
    subscriptions = relationship("Subscription", back_populates="plan")

    def __repr__(self):
        return f"<Plan(id={self.id}, key='{self.key}', mp_plan_id='{self.mp_plan_id}')>"
