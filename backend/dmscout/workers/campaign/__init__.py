"""Campaign DM queue processing."""

from dmscout.workers.campaign.runner import CampaignProgress, CampaignRunner, CampaignRunSummary
from dmscout.workers.campaign.throttle import SendThrottle

__all__ = [
    "CampaignProgress",
    "CampaignRunner",
    "CampaignRunSummary",
    "SendThrottle",
]
