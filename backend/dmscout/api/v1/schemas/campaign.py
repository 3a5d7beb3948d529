from datetime import datetime

from pydantic import BaseModel, Field


class CampaignCreateRequest(BaseModel):
    name: str
    templateId: str
    handles: list[str] = Field(default_factory=list)
    jobId: str | None = None
    scheduledAt: datetime | None = None


class CampaignItem(BaseModel):
    campaignId: str
    templateId: str
    name: str
    status: str
    sendRate: str
    totalTargets: int
    sent: int
    replied: int
    interested: int
    failed: int
    scheduledAt: datetime | None = None
    startedAt: datetime | None = None
    completedAt: datetime | None = None


class CampaignListResponse(BaseModel):
    campaigns: list[CampaignItem]


class QueueItem(BaseModel):
    itemId: str
    igHandle: str
    message: str
    status: str
    errorMessage: str | None = None
    sentAt: datetime | None = None


class QueueListResponse(BaseModel):
    campaignId: str
    items: list[QueueItem]
