"""
Loaders that persist normalized campaigns, hierarchy entities and metric snapshots.
"""

from ingestion.loaders.campaign_loader import CampaignLoader

__all__ = ["CampaignLoader"]
