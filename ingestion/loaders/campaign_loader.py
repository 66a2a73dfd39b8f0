"""
Load normalized campaigns, ad sets, ads and metric snapshots with upsert logic (idempotency)
"""

from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple, Union
from sqlalchemy import select, func, and_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from core import timeutils
from core.database import upsert_insert
from core.exceptions import DatabaseError, LoadError, UpsertError
from models.base import EntityScope, Platform, Resolution
from models.campaign import Campaign, AdSet, Ad
from models.metrics import BUCKET_KEYS, SCOPE_KEYS, CampaignMetricsDaily, bucket_columns, metrics_table
from schemas.normalized import (
    BatchLoadResult,
    LoadItemError,
    LoadResult,
    NormalizedAd,
    NormalizedAdSet,
    NormalizedCampaign,
    NormalizedMetrics,
    OwnerContext,
    TransformedItem,
)
import logging

logger = logging.getLogger(__name__)

LoadItem = Union[TransformedItem, Tuple[NormalizedCampaign, NormalizedMetrics]]


class CampaignLoader:
    """
    Load normalized entities with idempotent upsert operations.

    Ensures:
    - At most one campaign per (platform, platform_campaign_id, account_id)
    - At most one snapshot per (entity, time bucket); reloads overwrite it
    - Each item runs inside its own SAVEPOINT, so one failure never
      corrupts another item of the same batch
    """

    def __init__(self, db_session: AsyncSession):
        self.db = db_session

    async def _upsert(
        self,
        model,
        values: Dict[str, Any],
        conflict_columns: Sequence[str],
        update_columns: Iterable[str]
    ) -> Tuple[int, bool]:
        """
        INSERT ... ON CONFLICT DO UPDATE returning the row id.

        Returns:
            (row id, created) where created is True when no row matched the key before the write
        """
        key_filter = and_(*[getattr(model, column) == values[column] for column in conflict_columns])
        existing = await self.db.execute(select(model.id).where(key_filter))
        existed = existing.scalar_one_or_none() is not None

        stmt = upsert_insert(self.db, model).values(**values)
        set_ = {column: stmt.excluded[column] for column in update_columns}
        set_["updated_at"] = timeutils.utcnow()
        stmt = stmt.on_conflict_do_update(index_elements=list(conflict_columns), set_=set_).returning(model.id)

        result = await self.db.execute(stmt)
        return result.scalar_one(), not existed

    async def upsert_campaign(self, campaign: NormalizedCampaign, owner: OwnerContext) -> Tuple[int, bool]:
        now = timeutils.utcnow()
        values = {
            "account_id": owner.account_id,
            "platform": campaign.platform,
            "platform_campaign_id": campaign.platform_campaign_id,
            "name": campaign.name,
            "status": campaign.status,
            "objective": campaign.objective,
            "daily_budget": campaign.daily_budget,
            "lifetime_budget": campaign.lifetime_budget,
            "last_seen_at": now,
            "created_at": now,
            "updated_at": now,
        }
        return await self._upsert(
            Campaign,
            values,
            conflict_columns=("platform", "platform_campaign_id", "account_id"),
            update_columns=("name", "status", "objective", "daily_budget", "lifetime_budget", "last_seen_at"),
        )

    async def _find_campaign_id(self, platform: Platform, platform_campaign_id: str, account_id: int) -> Optional[int]:
        result = await self.db.execute(
            select(Campaign.id).where(
                and_(
                    Campaign.platform == platform,
                    Campaign.platform_campaign_id == platform_campaign_id,
                    Campaign.account_id == account_id
                )
            )
        )
        return result.scalar_one_or_none()

    async def _find_ad_set(self, account_id: int, platform_ad_set_id: str) -> Optional[AdSet]:
        result = await self.db.execute(
            select(AdSet).where(
                and_(AdSet.account_id == account_id, AdSet.platform_ad_set_id == platform_ad_set_id)
            )
        )
        return result.scalars().first()

    async def upsert_ad_set(self, ad_set: NormalizedAdSet, owner: OwnerContext) -> Tuple[int, bool]:
        campaign_id = await self._find_campaign_id(ad_set.platform, ad_set.platform_campaign_id, owner.account_id)
        if campaign_id is None:
            raise LoadError(
                f"Parent campaign {ad_set.platform_campaign_id} not loaded",
                context={"platform_ad_set_id": ad_set.platform_ad_set_id, "account_id": owner.account_id}
            )

        now = timeutils.utcnow()
        values = {
            "account_id": owner.account_id,
            "campaign_id": campaign_id,
            "platform_ad_set_id": ad_set.platform_ad_set_id,
            "name": ad_set.name,
            "status": ad_set.status,
            "optimization_goal": ad_set.optimization_goal,
            "daily_budget": ad_set.daily_budget,
            "lifetime_budget": ad_set.lifetime_budget,
            "last_seen_at": now,
            "created_at": now,
            "updated_at": now,
        }
        return await self._upsert(
            AdSet,
            values,
            conflict_columns=("campaign_id", "platform_ad_set_id"),
            update_columns=("name", "status", "optimization_goal", "daily_budget", "lifetime_budget", "last_seen_at"),
        )

    async def upsert_ad(self, ad: NormalizedAd, owner: OwnerContext) -> Tuple[int, bool]:
        parent = await self._find_ad_set(owner.account_id, ad.platform_ad_set_id)
        if parent is None:
            raise LoadError(
                f"Parent ad set {ad.platform_ad_set_id} not loaded",
                context={"platform_ad_id": ad.platform_ad_id, "account_id": owner.account_id}
            )

        now = timeutils.utcnow()
        values = {
            "account_id": owner.account_id,
            "campaign_id": parent.campaign_id,
            "ad_set_id": parent.id,
            "platform_ad_id": ad.platform_ad_id,
            "name": ad.name,
            "status": ad.status,
            "creative_id": ad.creative_id,
            "last_seen_at": now,
            "created_at": now,
            "updated_at": now,
        }
        return await self._upsert(
            Ad,
            values,
            conflict_columns=("ad_set_id", "platform_ad_id"),
            update_columns=("name", "status", "creative_id", "last_seen_at"),
        )

    async def upsert_metrics(
        self,
        scope: EntityScope,
        entity_keys: Dict[str, int],
        metrics: NormalizedMetrics
    ) -> Tuple[int, bool]:
        """
        Upsert one snapshot for an entity, keyed by (entity, canonical bucket).

        Args:
            scope: Entity scope of the snapshot table
            entity_keys: Scope columns (account_id, campaign_id[, ad_set_id[, ad_id]])
            metrics: Snapshot; every measured and derived field is overwritten
        """
        scope = EntityScope(scope)
        resolution = Resolution(metrics.resolution)
        model = metrics_table(scope, resolution)

        missing = [key for key in SCOPE_KEYS[scope] if entity_keys.get(key) is None]
        if missing:
            raise UpsertError(
                f"Missing scope keys for {model.__tablename__}",
                context={"table_name": model.__tablename__, "missing": missing}
            )

        measured = metrics.measured_fields()
        now = timeutils.utcnow()
        values = {
            **{key: entity_keys[key] for key in SCOPE_KEYS[scope]},
            **bucket_columns(resolution, metrics.bucket_start),
            **measured,
            "created_at": now,
            "updated_at": now,
        }

        entity_column = SCOPE_KEYS[scope][-1]
        return await self._upsert(
            model,
            values,
            conflict_columns=(entity_column, *BUCKET_KEYS[resolution]),
            update_columns=measured.keys(),
        )

    async def load(self, campaign: NormalizedCampaign, metrics: NormalizedMetrics, owner: OwnerContext) -> LoadResult:
        """
        Upsert a campaign and its metric snapshot.

        Returns:
            LoadResult; created is True when the snapshot row is new. Never raises for storage errors.
        """
        try:
            async with self.db.begin_nested():
                campaign_id, campaign_created = await self.upsert_campaign(campaign, owner)
                _, snapshot_created = await self.upsert_metrics(
                    EntityScope.CAMPAIGN,
                    {"account_id": owner.account_id, "campaign_id": campaign_id},
                    metrics
                )
        except Exception as e:
            logger.error(
                f"Failed to load campaign {campaign.platform_campaign_id}: {str(e)}",
                extra={"error_context": {"platform": campaign.platform.value, "account_id": owner.account_id}}
            )
            return LoadResult(success=False, error=str(e))

        if campaign_created:
            logger.debug(f"Created campaign {campaign.platform_campaign_id} (id={campaign_id})")
        return LoadResult(success=True, campaign_id=campaign_id, created=snapshot_created)

    async def _load_entity(self, upsert, entity, owner: OwnerContext, label: str) -> LoadResult:
        try:
            async with self.db.begin_nested():
                row_id, created = await upsert(entity, owner)
        except Exception as e:
            logger.error(f"Failed to load {label}: {str(e)}")
            return LoadResult(success=False, error=str(e))
        return LoadResult(success=True, campaign_id=row_id, created=created)

    async def load_campaign(self, campaign: NormalizedCampaign, owner: OwnerContext) -> LoadResult:
        return await self._load_entity(
            self.upsert_campaign, campaign, owner, f"campaign {campaign.platform_campaign_id}"
        )

    async def load_ad_set(self, ad_set: NormalizedAdSet, owner: OwnerContext) -> LoadResult:
        return await self._load_entity(self.upsert_ad_set, ad_set, owner, f"ad set {ad_set.platform_ad_set_id}")

    async def load_ad(self, ad: NormalizedAd, owner: OwnerContext) -> LoadResult:
        return await self._load_entity(self.upsert_ad, ad, owner, f"ad {ad.platform_ad_id}")

    async def load_batch(self, items: List[LoadItem], owner: OwnerContext) -> BatchLoadResult:
        """
        Load many (campaign, metrics) items, continuing past failures.

        Commits once at the end; failed items were already rolled back to their savepoint.
        """
        result = BatchLoadResult(total=len(items))
        loaded: List[str] = []

        for item in items:
            if isinstance(item, TransformedItem):
                campaign, metrics = item.campaign, item.metrics
            else:
                campaign, metrics = item

            load_result = await self.load(campaign, metrics, owner)
            if load_result.success:
                result.success += 1
                loaded.append(campaign.name)
                if load_result.created:
                    result.created += 1
                else:
                    result.updated += 1
            else:
                result.failed += 1
                result.errors.append(LoadItemError(campaign=campaign.name, error=load_result.error or "Unknown error"))

        try:
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            error = DatabaseError(
                "Failed to commit loaded batch",
                context={"operation": "COMMIT", "account_id": owner.account_id, "items": len(items)},
                original_exception=e
            )
            logger.error(str(error), extra={"error_context": error.to_dict()})
            # Items that reached their savepoint were lost with the transaction
            result.errors.extend(LoadItemError(campaign=name, error=error.message) for name in loaded)
            result.failed = result.total
            result.success = result.created = result.updated = 0
            return result

        logger.info(
            f"Loaded {result.success}/{result.total} items "
            f"(created={result.created}, updated={result.updated}, failed={result.failed})"
        )
        return result

    async def get_last_sync_date(self, account_id: int) -> Optional[datetime]:
        """Creation time of the newest daily campaign snapshot for an account."""
        result = await self.db.execute(
            select(func.max(CampaignMetricsDaily.created_at)).where(CampaignMetricsDaily.account_id == account_id)
        )
        return result.scalar_one_or_none()

    async def get_campaign_count(self, account_id: int, platform: Optional[Platform] = None) -> int:
        query = select(func.count(Campaign.id)).where(Campaign.account_id == account_id)
        if platform is not None:
            query = query.where(Campaign.platform == Platform(platform))
        result = await self.db.execute(query)
        return result.scalar_one()
