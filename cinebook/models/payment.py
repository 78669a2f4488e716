
from sqlalchemy import Column, String, DateTime, DECIMAL, Integer, func
from cinebook.db.session import Base

class Payment(Base):
    """Append-only audit entry for a payment-provider event."""

    __tablename__ = "payments"

    id = Column(Integer, primary_key=True, autoincrement=True)
    session_ref = Column(String(255), nullable=False, index=True)
    txn_ref = Column(String(255), nullable=True)
    amount = Column(DECIMAL(10, 2), nullable=False)
    currency = Column(String(8), nullable=False, default="inr")
    status = Column(String(32), nullable=False)   # provider-reported, e.g. "paid"
    method = Column(String(32), nullable=False, default="card")
    recorded_at = Column(DateTime(timezone=True), server_default=func.now())
