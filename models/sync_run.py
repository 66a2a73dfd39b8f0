from sqlalchemy import Column, String, Enum, DateTime, Float, Integer, Text, Index, ForeignKey, Uuid
from sqlalchemy.orm import relationship
import uuid
from core.timeutils import utcnow
from models.base import Base, BigIntPK, JSONType, SyncStatus, SyncType, TriggeredBy


class SyncRun(Base):
    """
    Tracks metadata for each sync attempt.

    Purpose:
    - Audit trail of all sync runs
    - Run-level processed/created/updated/failed accounting
    - Error tracking and debugging

    Lifecycle:
    - Created IN_PROGRESS when the orchestrator starts
    - Finalized exactly once to SUCCESS, PARTIAL_SUCCESS or FAILED
    """
    __tablename__ = "sync_runs"

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    run_id = Column(Uuid, default=uuid.uuid4, unique=True, nullable=False, index=True)

    account_id = Column(BigIntPK, ForeignKey("ad_accounts.id"), nullable=False, index=True)

    # Run metadata
    sync_type = Column(Enum(SyncType), nullable=False, default=SyncType.FULL)
    entity_types = Column(String(255), nullable=True)  # Comma-separated, None = all stages
    triggered_by = Column(Enum(TriggeredBy), nullable=False, default=TriggeredBy.API)
    status = Column(Enum(SyncStatus), default=SyncStatus.PENDING, nullable=False, index=True)

    # Timestamps
    started_at = Column(DateTime, nullable=False, default=utcnow, index=True)
    completed_at = Column(DateTime, nullable=True)
    duration_seconds = Column(Float, nullable=True)

    # Statistics
    records_processed = Column(Integer, default=0)
    records_created = Column(Integer, default=0)
    records_updated = Column(Integer, default=0)
    records_failed = Column(Integer, default=0)

    # Error tracking
    error_message = Column(Text, nullable=True)
    error_details = Column(JSONType, nullable=True)

    # Per-stage counters and item errors
    stage_summary = Column(JSONType, nullable=True)

    account = relationship("AdAccount", back_populates="sync_runs")

    __table_args__ = (
        Index("idx_sync_run_account_started", "account_id", "started_at"),
        Index("idx_sync_run_status", "status", "started_at"),
    )
