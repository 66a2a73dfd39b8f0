"""
Shared interface and helpers for platform transformers.

A transformer is pure: it maps one raw platform record to the normalized
schema and never touches storage or the network.
"""

from abc import ABC, abstractmethod
from datetime import datetime, time
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple, TypeVar, Union
from pydantic import ValidationError as PydanticValidationError
from core import timeutils
from core.exceptions import ValidationError
from models.base import Platform, Resolution
from schemas.normalized import (
    NormalizedAd,
    NormalizedAdSet,
    NormalizedCampaign,
    NormalizedMetrics,
    TransformConfig,
    TransformedItem,
    TransformItemError,
    BatchTransformResult,
)
import logging

logger = logging.getLogger(__name__)

RawItem = Union[Tuple[Dict[str, Any], Dict[str, Any]], Dict[str, Any]]

T = TypeVar("T")


def safe_divide(numerator: float, denominator: float, scale: float = 1.0) -> float:
    """numerator / denominator * scale, or 0 when the denominator is not positive."""
    if not denominator or denominator <= 0:
        return 0.0
    return numerator / denominator * scale


def derive_ratios(
    impressions: int,
    clicks: int,
    spend: float,
    conversions: float,
    revenue: float
) -> Dict[str, float]:
    """Derived performance ratios; every division by zero resolves to 0."""
    return {
        "ctr": safe_divide(clicks, impressions, 100.0),
        "cpc": safe_divide(spend, clicks),
        "cpm": safe_divide(spend, impressions, 1000.0),
        "cpa": safe_divide(spend, conversions),
        "roas": safe_divide(revenue, spend),
    }


def parse_number(
    value: Any,
    field_name: str,
    entity_id: Optional[str] = None,
    as_int: bool = False,
    default: Optional[float] = 0
) -> Optional[Union[int, float]]:
    """
    Parse a numeric field that may arrive as a string.

    Missing values become ``default``. Unparseable and negative values raise
    ValidationError; negatives are never clamped.
    """
    if value is None or value == "":
        return default

    try:
        number = float(value)
    except (TypeError, ValueError) as e:
        raise ValidationError(
            f"Field '{field_name}' is not numeric",
            context={"field_name": field_name, "field_value": value, "platform_entity_id": entity_id},
            original_exception=e
        )

    if number < 0:
        raise ValidationError(
            f"Invalid metric values: negative {field_name}",
            context={"field_name": field_name, "field_value": value, "platform_entity_id": entity_id}
        )

    return int(number) if as_int else number


def canonical_bucket_start(value: Any, resolution: Resolution) -> datetime:
    """Normalize any instant inside a bucket to the bucket's canonical start."""
    if isinstance(value, datetime):
        moment = timeutils.to_naive_utc(value)
    elif isinstance(value, str) and len(value) > 10:
        moment = timeutils.to_naive_utc(datetime.fromisoformat(value.replace("Z", "+00:00")))
    else:
        moment = datetime.combine(timeutils.as_date(value), time.min)

    if resolution == Resolution.HOURLY:
        return timeutils.truncate_to_hour(moment)
    if resolution == Resolution.MONTHLY:
        return datetime(moment.year, moment.month, 1)
    return datetime.combine(moment.date(), time.min)


class PlatformTransformer(ABC):
    """
    Maps one platform's raw records to normalized campaigns, ad sets, ads and metrics.

    Variants form a closed set selected by ``get_transformer(platform)``.
    """

    platform: Platform

    @abstractmethod
    def transform_campaign(self, raw_campaign: Dict[str, Any]) -> NormalizedCampaign:
        pass

    @abstractmethod
    def transform_metrics(self, raw_metrics: Dict[str, Any], config: TransformConfig) -> NormalizedMetrics:
        pass

    @abstractmethod
    def transform_ad_set(self, raw_ad_set: Dict[str, Any]) -> NormalizedAdSet:
        pass

    @abstractmethod
    def transform_ad(self, raw_ad: Dict[str, Any]) -> NormalizedAd:
        pass

    @abstractmethod
    def validate(self, response: Any) -> Tuple[bool, List[str]]:
        """Check a raw list response envelope. Returns (is_valid, errors)."""
        pass

    @abstractmethod
    def entity_id(self, raw_campaign: Dict[str, Any]) -> Optional[str]:
        """Native campaign id of a raw record, for error reporting."""
        pass

    def record_id(self, raw: Any) -> Optional[str]:
        """Native id of a raw record for error reporting, None when it has no usable shape."""
        if not isinstance(raw, dict):
            return None
        try:
            return self.entity_id(raw)
        except (AttributeError, TypeError, ValueError):
            return None

    def _normalize(self, hook: Callable[..., T], raw: Any, *args) -> T:
        """
        Run one per-entity hook on a raw record.

        Raises:
            ValidationError: for every malformed input, whatever the hook tripped on
        """
        try:
            return hook(raw, *args)
        except ValidationError:
            raise
        except PydanticValidationError as e:
            # Subclass of ValueError, so checked first
            raise ValidationError(
                "Normalized record failed schema validation",
                context={
                    "platform": self.platform.value,
                    "platform_entity_id": self.record_id(raw),
                    "errors": [err["msg"] for err in e.errors()]
                },
                original_exception=e
            )
        except (ValueError, TypeError, AttributeError, KeyError) as e:
            raise ValidationError(
                f"Malformed {self.platform.value} record: {e}",
                context={"platform": self.platform.value, "platform_entity_id": self.record_id(raw)},
                original_exception=e
            )

    def normalize_campaign(self, raw_campaign: Any) -> NormalizedCampaign:
        return self._normalize(self.transform_campaign, raw_campaign)

    def normalize_ad_set(self, raw_ad_set: Any) -> NormalizedAdSet:
        return self._normalize(self.transform_ad_set, raw_ad_set)

    def normalize_ad(self, raw_ad: Any) -> NormalizedAd:
        return self._normalize(self.transform_ad, raw_ad)

    def normalize_metrics(self, raw_metrics: Any, config: TransformConfig) -> NormalizedMetrics:
        return self._normalize(self.transform_metrics, raw_metrics, config)

    def merge_metrics_rows(self, rows: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """Platform hook: combine raw insight rows before transform. Identity by default."""
        return list(rows)

    def prepare_metrics_rows(self, rows: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """merge_metrics_rows with malformed rows surfacing as ValidationError."""
        return self._normalize(self.merge_metrics_rows, rows)

    def transform(
        self,
        raw_campaign: Dict[str, Any],
        raw_metrics: Dict[str, Any],
        config: TransformConfig
    ) -> Tuple[NormalizedCampaign, NormalizedMetrics]:
        """
        Transform one campaign and its metric snapshot.

        Raises:
            ValidationError: missing identity fields, unparseable or negative counters
        """
        campaign = self.normalize_campaign(raw_campaign)
        metrics = self.normalize_metrics(raw_metrics, config)
        return campaign, metrics

    def _unpack(self, item: Any) -> Tuple[Any, Any]:
        if isinstance(item, dict):
            return item.get("campaign") or {}, item.get("metrics") or {}
        raw_campaign, raw_metrics = item
        return raw_campaign, raw_metrics

    def transform_batch(self, items: Iterable[RawItem], config: TransformConfig) -> BatchTransformResult:
        """
        Transform many (raw_campaign, raw_metrics) pairs.

        A failing item is skipped and reported; it never aborts the batch.
        Items may be tuples or dicts with "campaign" and "metrics" keys.
        """
        result = BatchTransformResult()

        for index, item in enumerate(items):
            raw_campaign = None
            try:
                raw_campaign, raw_metrics = self._normalize(self._unpack, item)
                campaign, metrics = self.transform(raw_campaign, raw_metrics, config)
                result.successes.append(TransformedItem(campaign=campaign, metrics=metrics))
            except ValidationError as e:
                entity_id = self.record_id(raw_campaign)
                logger.warning(
                    f"Skipping {self.platform.value} item {index} (campaign {entity_id}): {e.message}",
                    extra={"error_context": e.to_dict()}
                )
                result.errors.append(
                    TransformItemError(
                        index=index,
                        platform_entity_id=entity_id,
                        error_type=type(e).__name__,
                        error_message=e.message
                    )
                )

        logger.info(
            f"Transformed {len(result.successes)} {self.platform.value} items "
            f"({len(result.errors)} skipped)"
        )
        return result
