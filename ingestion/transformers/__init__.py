"""
Platform transformers: raw platform records to the normalized schema.
"""

from models.base import Platform
from ingestion.transformers.base import PlatformTransformer, derive_ratios, safe_divide
from ingestion.transformers.meta_transformer import MetaTransformer
from ingestion.transformers.google_ads_transformer import GoogleAdsTransformer, aggregate_google_ads_rows

TRANSFORMERS = {
    Platform.META: MetaTransformer,
    Platform.GOOGLE_ADS: GoogleAdsTransformer,
}


def get_transformer(platform) -> PlatformTransformer:
    """Transformer for ``platform`` (a Platform or its string value)."""
    try:
        return TRANSFORMERS[Platform(platform)]()
    except ValueError:
        raise ValueError(f"Unsupported platform: {platform}")


__all__ = [
    "PlatformTransformer",
    "MetaTransformer",
    "GoogleAdsTransformer",
    "aggregate_google_ads_rows",
    "derive_ratios",
    "safe_divide",
    "get_transformer",
]
