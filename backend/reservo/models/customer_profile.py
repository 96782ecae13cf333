# backend/reservo/models/customer_profile.py
"""
Per-customer booking profile.

Identity (email verification, account state) lives with the identity
provider; this table only persists the last computed trust score so that
listings and dashboards can read it without replaying history.
"""

from datetime import datetime

from sqlalchemy import Column, DateTime, Integer, String

from ..database import Base


class CustomerProfile(Base):
    __tablename__ = "customer_profiles"

    customer_id = Column(String(26), primary_key=True)
    trust_score = Column(Integer, nullable=False, default=100)
    trust_score_updated_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.now)

    def __repr__(self) -> str:
        return f"<CustomerProfile {self.customer_id}: trust={self.trust_score}>"
