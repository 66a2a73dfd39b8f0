from sqlalchemy import Column, String, Enum, DateTime, Float, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from core.timeutils import utcnow
from models.base import Base, BigIntPK, Platform, CampaignStatus


class Campaign(Base):
    """
    Platform-scoped campaign identity.

    Design:
    - Natural key (platform, platform_campaign_id, account_id) is the upsert key
    - Created on first sync observation, updated on every sync
    - Never hard-deleted; removal upstream becomes a status change
    """
    __tablename__ = "campaigns"

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    account_id = Column(BigIntPK, ForeignKey("ad_accounts.id"), nullable=False, index=True)

    platform = Column(Enum(Platform), nullable=False, index=True)
    platform_campaign_id = Column(String(100), nullable=False)

    name = Column(String(500), nullable=False)
    status = Column(Enum(CampaignStatus), nullable=False, default=CampaignStatus.ACTIVE, index=True)
    objective = Column(String(100), nullable=True)
    daily_budget = Column(Float, nullable=True)
    lifetime_budget = Column(Float, nullable=True)

    last_seen_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    account = relationship("AdAccount", back_populates="campaigns")
    ad_sets = relationship("AdSet", back_populates="campaign")

    __table_args__ = (
        UniqueConstraint("platform", "platform_campaign_id", "account_id", name="uq_campaign_identity"),
    )


class AdSet(Base):
    """Ad set (Meta) / ad group (Google Ads) under a campaign."""
    __tablename__ = "ad_sets"

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    account_id = Column(BigIntPK, ForeignKey("ad_accounts.id"), nullable=False, index=True)
    campaign_id = Column(BigIntPK, ForeignKey("campaigns.id"), nullable=False, index=True)

    platform_ad_set_id = Column(String(100), nullable=False)
    name = Column(String(500), nullable=False)
    status = Column(Enum(CampaignStatus), nullable=False, default=CampaignStatus.ACTIVE)
    optimization_goal = Column(String(100), nullable=True)
    daily_budget = Column(Float, nullable=True)
    lifetime_budget = Column(Float, nullable=True)

    last_seen_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    campaign = relationship("Campaign", back_populates="ad_sets")
    ads = relationship("Ad", back_populates="ad_set")

    __table_args__ = (
        UniqueConstraint("campaign_id", "platform_ad_set_id", name="uq_ad_set_identity"),
    )


class Ad(Base):
    """Individual ad under an ad set."""
    __tablename__ = "ads"

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    account_id = Column(BigIntPK, ForeignKey("ad_accounts.id"), nullable=False, index=True)
    campaign_id = Column(BigIntPK, ForeignKey("campaigns.id"), nullable=False, index=True)
    ad_set_id = Column(BigIntPK, ForeignKey("ad_sets.id"), nullable=False, index=True)

    platform_ad_id = Column(String(100), nullable=False)
    name = Column(String(500), nullable=False)
    status = Column(Enum(CampaignStatus), nullable=False, default=CampaignStatus.ACTIVE)
    creative_id = Column(String(100), nullable=True)

    last_seen_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    ad_set = relationship("AdSet", back_populates="ads")

    __table_args__ = (
        UniqueConstraint("ad_set_id", "platform_ad_id", name="uq_ad_identity"),
    )
