from sqlalchemy import Column, String, Integer, DateTime, Index
from core.timeutils import utcnow
from models.base import Base, BigIntPK


class RateLimitWindow(Base):
    """
    Fixed-window call budget for one (account, endpoint pattern).

    Purpose:
    - Advisory backpressure before remote calls are issued
    - Shared across process instances because it lives in storage

    Design:
    - A new row is created for the first call of each window
    - calls_count is incremented atomically in SQL
    - Rows are purged once window_end is past the retention horizon
    """
    __tablename__ = "rate_limit_windows"

    id = Column(BigIntPK, primary_key=True, autoincrement=True)

    account_id = Column(String(100), nullable=False)
    endpoint_pattern = Column(String(255), nullable=False)

    calls_count = Column(Integer, nullable=False, default=0)
    max_calls = Column(Integer, nullable=False)
    window_minutes = Column(Integer, nullable=False)

    window_start = Column(DateTime, nullable=False)
    window_end = Column(DateTime, nullable=False, index=True)

    created_at = Column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        Index("idx_rate_limit_scope_start", "account_id", "endpoint_pattern", "window_start"),
    )
