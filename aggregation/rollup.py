"""
Generic time-bucket rollup: one coarser-resolution snapshot per entity from
the finer-resolution snapshots inside the bucket.

Additive counters are summed. Ratio fields are the arithmetic mean of the
source buckets' ratios; they are not recomputed from the summed counters.
"""

from datetime import date, datetime, time
from typing import Any, Dict, List, Optional, Tuple, Union
from pydantic import BaseModel, Field
from sqlalchemy import select, func, and_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from core import timeutils
from core.database import upsert_insert
from core.exceptions import AggregationError, DatabaseError
from models.base import EntityScope, Resolution
from models.metrics import (
    ADDITIVE_FIELDS,
    BUCKET_KEYS,
    RATIO_FIELDS,
    SCOPE_KEYS,
    bucket_columns,
    metrics_table,
)
import logging

logger = logging.getLogger(__name__)

# A day for hourly -> daily, a (year, month) pair for daily -> monthly
Bucket = Union[date, Tuple[int, int]]


class RollupSpec(BaseModel):
    """One rollup: ``scope`` snapshots from ``source_resolution`` into ``target_resolution``."""
    scope: EntityScope
    source_resolution: Resolution
    target_resolution: Resolution
    sum_fields: Tuple[str, ...] = ADDITIVE_FIELDS
    mean_fields: Tuple[str, ...] = RATIO_FIELDS

    class Config:
        frozen = True

    @property
    def source_model(self):
        return metrics_table(self.scope, self.source_resolution)

    @property
    def target_model(self):
        return metrics_table(self.scope, self.target_resolution)

    @property
    def group_keys(self) -> Tuple[str, ...]:
        return SCOPE_KEYS[self.scope]

    @property
    def name(self) -> str:
        return f"{self.scope.value}:{self.source_resolution.value}->{self.target_resolution.value}"

    def source_condition(self, bucket: Bucket):
        """Rows of the source table that fall inside ``bucket``."""
        model = self.source_model
        if self.target_resolution == Resolution.DAILY:
            return model.date == timeutils.as_date(bucket)

        year, month = bucket
        first_day, last_day = timeutils.month_bounds(year, month)
        return and_(model.date >= first_day, model.date <= last_day)

    def target_bucket(self, bucket: Bucket) -> Dict[str, Any]:
        if self.target_resolution == Resolution.DAILY:
            moment = datetime.combine(timeutils.as_date(bucket), time.min)
        else:
            year, month = bucket
            moment = datetime(year, month, 1)
        return bucket_columns(self.target_resolution, moment)


def rollup_specs(source_resolution: Resolution, target_resolution: Resolution) -> List[RollupSpec]:
    """One RollupSpec per entity scope, campaign first."""
    return [RollupSpec(scope=scope, source_resolution=source_resolution, target_resolution=target_resolution) for scope in EntityScope]


class AggregationResult(BaseModel):
    name: str
    bucket: str
    groups: int = 0
    succeeded: int = 0
    failed: int = 0
    errors: List[str] = Field(default_factory=list)
    # Set when the rollup as a whole could not run or commit
    error: Optional[str] = None


def _fill_defaults(model, values: Dict[str, Any]) -> Dict[str, Any]:
    # SUM/AVG of no non-null values is NULL; non-nullable columns take 0 instead
    columns = model.__table__.c
    return {
        field: (0 if value is None and not columns[field].nullable else value)
        for field, value in values.items()
    }


async def _rollup_group(session: AsyncSession, spec: RollupSpec, bucket: Bucket, group: Dict[str, Any]):
    source = spec.source_model
    target = spec.target_model

    group_condition = and_(*[getattr(source, key) == value for key, value in group.items()])
    aggregates = [func.sum(getattr(source, field)).label(field) for field in spec.sum_fields]
    aggregates += [func.avg(getattr(source, field)).label(field) for field in spec.mean_fields]

    result = await session.execute(
        select(*aggregates).where(and_(spec.source_condition(bucket), group_condition))
    )
    measured = _fill_defaults(target, dict(result.one()._mapping))

    now = timeutils.utcnow()
    values = {**group, **spec.target_bucket(bucket), **measured, "created_at": now, "updated_at": now}

    stmt = upsert_insert(session, target).values(**values)
    set_ = {field: stmt.excluded[field] for field in measured}
    set_["updated_at"] = now
    stmt = stmt.on_conflict_do_update(
        index_elements=[spec.group_keys[-1], *BUCKET_KEYS[spec.target_resolution]],
        set_=set_,
    )
    await session.execute(stmt)


async def run_rollup(session: AsyncSession, spec: RollupSpec, bucket: Bucket) -> AggregationResult:
    """
    Roll one bucket up for every entity with at least one source row in it.

    Each group runs inside its own SAVEPOINT; a failing group is logged and
    counted and never stops its siblings. Re-running produces identical rows.
    """
    result = AggregationResult(name=spec.name, bucket=str(bucket))
    source = spec.source_model

    try:
        group_rows = await session.execute(
            select(*[getattr(source, key) for key in spec.group_keys])
            .where(spec.source_condition(bucket))
            .distinct()
        )
        groups = [dict(row._mapping) for row in group_rows.all()]
    except SQLAlchemyError as e:
        return await _storage_failure(session, result, "enumerate groups", e)
    result.groups = len(groups)

    for group in groups:
        try:
            async with session.begin_nested():
                await _rollup_group(session, spec, bucket, group)
            result.succeeded += 1
        except Exception as e:
            error = AggregationError(
                f"Rollup failed for {spec.name}",
                context={**group, "bucket": str(bucket)},
                original_exception=e
            )
            logger.error(str(error), extra={"error_context": error.to_dict()})
            result.failed += 1
            result.errors.append(str(error))

    try:
        await session.commit()
    except SQLAlchemyError as e:
        # Nothing of this bucket was persisted
        result.succeeded = 0
        result.failed = result.groups
        return await _storage_failure(session, result, "commit", e)

    logger.info(
        f"Rollup {spec.name} for {bucket}: {result.succeeded}/{result.groups} groups "
        f"({result.failed} failed)"
    )
    return result


async def _storage_failure(session: AsyncSession, result: AggregationResult, operation: str, e: Exception) -> AggregationResult:
    try:
        await session.rollback()
    except SQLAlchemyError as rollback_error:
        logger.warning(f"Rollback after failed rollup {result.name} also failed: {rollback_error}")

    error = DatabaseError(
        f"Rollup {result.name} could not {operation}",
        context={"operation": operation, "bucket": result.bucket},
        original_exception=e
    )
    logger.error(str(error), extra={"error_context": error.to_dict()})
    result.error = str(error)
    return result
