"""
Time-bucket aggregation for the multi-resolution metrics store.

Modules:
    rollup: Generic rollup (SUM additive counters, MEAN ratio fields, upsert target)
    engine: Hourly -> daily and daily -> monthly runs across campaign, ad set and ad scopes

Usage:
    from aggregation.engine import AggregationEngine

    async with async_session_maker() as session:
        results = await AggregationEngine(session).aggregate_hourly_to_daily(date(2024, 1, 15))
"""

__all__ = [
    "AggregationEngine",
    "AggregationResult",
    "RollupSpec",
    "run_rollup",
]
