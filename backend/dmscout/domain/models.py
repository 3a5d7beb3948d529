from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Literal

JobKind = Literal["extraction", "campaign"]
JobStatus = Literal["pending", "running", "completed", "failed"]
ResultOutcome = Literal["found", "not_found", "error"]
SendRate = Literal["conservative", "moderate", "aggressive"]
CampaignStatus = Literal["draft", "scheduled", "running", "paused", "completed", "failed"]
QueueItemStatus = Literal["pending", "sent", "failed"]

SEND_RATES: tuple[str, ...] = ("conservative", "moderate", "aggressive")
STARTABLE_CAMPAIGN_STATUSES: tuple[str, ...] = ("draft", "scheduled", "paused")


@dataclass
class UserRecord:
    user_id: str
    email: str | None
    plan: str
    daily_extract_quota: int
    extracts_used_today: int
    daily_dm_quota: int
    dms_used_today: int
    last_quota_reset: date | None = None

    @property
    def extracts_remaining(self) -> int:
        return max(0, self.daily_extract_quota - self.extracts_used_today)

    @property
    def dms_remaining(self) -> int:
        return max(0, self.daily_dm_quota - self.dms_used_today)


@dataclass
class UploadRecord:
    upload_id: str
    owner_id: str
    filename: str
    rows: int
    status: str


@dataclass
class JobRecord:
    job_id: str
    owner_id: str
    kind: JobKind
    status: JobStatus
    total: int = 0
    completed_count: int = 0
    failed_count: int = 0
    created_at: datetime | None = None
    updated_at: datetime | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class ResultRecord:
    result_id: str
    job_id: str
    domain: str
    detected_handle: str | None
    confidence_score: float | None
    source_url: str | None
    outcome: ResultOutcome
    created_at: datetime | None = None


@dataclass
class NewResult:
    """A Result about to be persisted; the store assigns the id."""

    job_id: str
    domain: str
    detected_handle: str | None
    confidence_score: float | None
    source_url: str | None
    outcome: ResultOutcome


@dataclass
class TemplateRecord:
    template_id: str
    owner_id: str
    name: str
    content: str
    spintax_variations: int = 3
    send_rate: SendRate = "moderate"
    is_active: bool = True


@dataclass
class CampaignRecord:
    campaign_id: str
    owner_id: str
    template_id: str
    name: str
    status: CampaignStatus
    send_rate: SendRate = "moderate"
    total_targets: int = 0
    sent_count: int = 0
    replied_count: int = 0
    interested_count: int = 0
    failed_count: int = 0
    scheduled_at: datetime | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None


@dataclass
class QueueItemRecord:
    item_id: str
    campaign_id: str
    target_handle: str
    rendered_message: str
    status: QueueItemStatus
    position: int = 0
    error_message: str | None = None
    sent_at: datetime | None = None


@dataclass
class NewQueueItem:
    target_handle: str
    rendered_message: str


@dataclass
class InstagramAccountRecord:
    """A sender account. ``session_data`` is stored but never returned over the API."""

    account_id: str
    owner_id: str
    username: str
    session_data: str | None = None
    is_active: bool = True
    last_used: datetime | None = None
    created_at: datetime | None = None
