"""
Credit balance model
Lab Report Analyzer
"""

from datetime import datetime, timezone

from sqlalchemy import Column, String, Integer, DateTime

from app.database.session import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CreditBalance(Base):
    """Remaining analysis credits per owner."""

    __tablename__ = "credit_balances"

    owner_id = Column(String(64), primary_key=True)
    balance = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False
    )

    def __repr__(self) -> str:
        return f"<CreditBalance owner_id={self.owner_id} balance={self.balance}>"
