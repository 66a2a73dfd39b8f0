from sqlalchemy import Column, String, Enum, DateTime, Boolean, Text, Index
from sqlalchemy.orm import relationship
from core.timeutils import utcnow
from models.base import Base, BigIntPK, Platform


class AdAccount(Base):
    """
    A connected advertising account (the owning integration).

    Purpose:
    - Holds the credentials the sync orchestrator uses for remote calls
    - Owns every campaign and metric row produced by its syncs
    - Tracks when the last fully successful sync finished
    """
    __tablename__ = "ad_accounts"

    id = Column(BigIntPK, primary_key=True, autoincrement=True)

    platform = Column(Enum(Platform), nullable=False, index=True)
    external_account_id = Column(String(100), nullable=False)  # act_123 / customer id
    owner_id = Column(String(100), nullable=False, index=True)  # Owning user
    name = Column(String(255), nullable=True)

    # Credentials
    access_token = Column(Text, nullable=True)
    login_customer_id = Column(String(100), nullable=True)  # Google Ads manager account

    is_active = Column(Boolean, nullable=False, default=True, index=True)
    last_synced_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    campaigns = relationship("Campaign", back_populates="account")
    sync_runs = relationship("SyncRun", back_populates="account")

    __table_args__ = (
        Index("idx_account_platform_external", "platform", "external_account_id", unique=True),
    )
