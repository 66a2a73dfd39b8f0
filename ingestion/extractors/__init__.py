"""
Remote ad-platform clients.
"""

from typing import Optional
from core.exceptions import MissingCredentialsError
from models.account import AdAccount
from models.base import Platform
from ingestion.base import AdPlatformClient
from ingestion.rate_limiter import RateLimiter
from ingestion.extractors.meta_client import MetaAdsClient
from ingestion.extractors.google_ads_client import GoogleAdsClient


def build_client(account: AdAccount, rate_limiter: Optional[RateLimiter] = None, **kwargs) -> AdPlatformClient:
    """
    Client for an ad account's platform using the account's credentials.

    Raises:
        MissingCredentialsError: the account has no access token
    """
    if not account.access_token:
        raise MissingCredentialsError(
            f"Ad account {account.id} has no access token",
            context={"account_id": account.id, "platform": account.platform.value}
        )

    if account.platform == Platform.META:
        return MetaAdsClient(account.access_token, account.external_account_id, rate_limiter=rate_limiter, **kwargs)

    if account.platform == Platform.GOOGLE_ADS:
        return GoogleAdsClient(
            account.access_token,
            account.external_account_id,
            login_customer_id=account.login_customer_id,
            rate_limiter=rate_limiter,
            **kwargs
        )

    raise ValueError(f"Unsupported platform: {account.platform}")


__all__ = ["AdPlatformClient", "MetaAdsClient", "GoogleAdsClient", "build_client"]
