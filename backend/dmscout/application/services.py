from __future__ import annotations

import logging
from datetime import date, datetime, timezone
from typing import Any, Callable, Iterable, Protocol

from dmscout.application.errors import ConflictError, NotFoundError, QuotaExceededError
from dmscout.application.templating import normalize_domains, normalize_handle, render_message
from dmscout.domain.models import (
    SEND_RATES,
    STARTABLE_CAMPAIGN_STATUSES,
    CampaignRecord,
    InstagramAccountRecord,
    JobRecord,
    NewQueueItem,
    QueueItemRecord,
    ResultRecord,
    TemplateRecord,
    UploadRecord,
    UserRecord,
)
from dmscout.workers.campaign import CampaignRunner
from dmscout.workers.dispatcher import JobDispatcher
from dmscout.workers.extraction import ExtractionRunner

logger = logging.getLogger(__name__)

_MAX_SPINTAX_VARIATIONS = 20


def utc_today() -> date:
    return datetime.now(timezone.utc).date()


class AccountStorePort(Protocol):
    def get_user(self, user_id: str) -> UserRecord | None:
        ...

    def ensure_user(
        self,
        *,
        user_id: str,
        daily_extract_quota: int,
        daily_dm_quota: int,
        today: date,
        email: str | None = None,
    ) -> UserRecord:
        ...

    def reset_daily_quotas(self, *, user_id: str, today: date) -> bool:
        ...


class ExtractionStorePort(AccountStorePort, Protocol):
    def try_reserve_extracts(self, *, user_id: str, count: int) -> bool:
        ...

    def create_upload(self, *, owner_id: str, filename: str, rows: int, status: str = "processing") -> UploadRecord:
        ...

    def create_job(
        self,
        *,
        owner_id: str,
        kind: str,
        total: int,
        metadata: dict[str, Any] | None = None,
        upload_id: str | None = None,
    ) -> JobRecord:
        ...

    def get_job(self, job_id: str) -> JobRecord | None:
        ...

    def list_jobs_for_owner(self, owner_id: str, *, kind: str | None = None) -> list[JobRecord]:
        ...

    def list_results_for_job(self, job_id: str) -> list[ResultRecord]:
        ...

    def list_recent_results(self, owner_id: str, *, limit: int = 10) -> list[ResultRecord]:
        ...


class TemplateStorePort(Protocol):
    def create_template(
        self,
        *,
        owner_id: str,
        name: str,
        content: str,
        spintax_variations: int = 3,
        send_rate: str = "moderate",
    ) -> TemplateRecord:
        ...

    def get_template(self, template_id: str) -> TemplateRecord | None:
        ...

    def list_templates_for_owner(self, owner_id: str) -> list[TemplateRecord]:
        ...

    def update_template(self, template_id: str, **fields: Any) -> TemplateRecord | None:
        ...

    def deactivate_template(self, template_id: str) -> bool:
        ...


class CampaignStorePort(Protocol):
    def get_template(self, template_id: str) -> TemplateRecord | None:
        ...

    def get_job(self, job_id: str) -> JobRecord | None:
        ...

    def list_results_for_job(self, job_id: str) -> list[ResultRecord]:
        ...

    def create_campaign(
        self,
        *,
        owner_id: str,
        template_id: str,
        name: str,
        send_rate: str,
        status: str,
        items: Iterable[NewQueueItem],
        scheduled_at: datetime | None = None,
    ) -> CampaignRecord:
        ...

    def get_campaign(self, campaign_id: str) -> CampaignRecord | None:
        ...

    def list_campaigns_for_owner(self, owner_id: str) -> list[CampaignRecord]:
        ...

    def list_queue_items(self, campaign_id: str) -> list[QueueItemRecord]:
        ...

    def list_pending_queue_items(self, campaign_id: str) -> list[QueueItemRecord]:
        ...

    def update_campaign_status(
        self,
        campaign_id: str,
        status: str,
        *,
        from_statuses: Iterable[str] | None = None,
    ) -> bool:
        ...


class InstagramAccountStorePort(Protocol):
    def create_instagram_account(
        self,
        *,
        owner_id: str,
        username: str,
        session_data: str | None = None,
    ) -> InstagramAccountRecord:
        ...

    def list_instagram_accounts_for_owner(
        self,
        owner_id: str,
        *,
        active_only: bool = False,
    ) -> list[InstagramAccountRecord]:
        ...


class AccountApplicationService:
    """Provisions users on first sight and rolls their daily quotas over."""

    def __init__(
        self,
        *,
        store: AccountStorePort,
        default_extract_quota: int,
        default_dm_quota: int,
        today: Callable[[], date] = utc_today,
    ):
        self.store = store
        self.default_extract_quota = default_extract_quota
        self.default_dm_quota = default_dm_quota
        self.today = today

    def get_account(self, user_id: str) -> UserRecord:
        today = self.today()
        self.store.ensure_user(
            user_id=user_id,
            daily_extract_quota=self.default_extract_quota,
            daily_dm_quota=self.default_dm_quota,
            today=today,
        )
        if self.store.reset_daily_quotas(user_id=user_id, today=today):
            logger.info("Daily quotas reset for user %s", user_id)
        user = self.store.get_user(user_id)
        if user is None:
            raise NotFoundError("User not found")
        return user


class ExtractionApplicationService:
    def __init__(
        self,
        *,
        store: ExtractionStorePort,
        accounts: AccountApplicationService,
        dispatcher: JobDispatcher,
        runner: ExtractionRunner,
    ):
        self.store = store
        self.accounts = accounts
        self.dispatcher = dispatcher
        self.runner = runner

    def submit_batch(self, *, user_id: str, domains: list[str], filename: str | None = None) -> dict[str, str]:
        cleaned = normalize_domains(domains)
        if not cleaned:
            raise ValueError("No valid domains supplied.")

        self.accounts.get_account(user_id)
        if not self.store.try_reserve_extracts(user_id=user_id, count=len(cleaned)):
            user = self.store.get_user(user_id)
            raise QuotaExceededError(
                "Extraction quota exceeded",
                required=len(cleaned),
                remaining=user.extracts_remaining if user else 0,
            )

        upload = self.store.create_upload(owner_id=user_id, filename=filename or "domains.csv", rows=len(cleaned))
        job = self.store.create_job(
            owner_id=user_id,
            kind="extraction",
            total=len(cleaned),
            metadata={"domains": cleaned},
            upload_id=upload.upload_id,
        )
        self.dispatcher.submit(f"job:{job.job_id}", self.runner.run, job_id=job.job_id, domains=cleaned)
        return {"uploadId": upload.upload_id, "jobId": job.job_id, "status": "accepted"}

    def get_owned_job(self, *, user_id: str, job_id: str) -> JobRecord:
        job = self.store.get_job(job_id)
        if job is None or job.owner_id != user_id or job.kind != "extraction":
            raise NotFoundError("Job not found")
        return job

    def list_jobs(self, *, user_id: str) -> list[JobRecord]:
        return self.store.list_jobs_for_owner(user_id, kind="extraction")

    def list_results(self, *, user_id: str, job_id: str) -> list[ResultRecord]:
        self.get_owned_job(user_id=user_id, job_id=job_id)
        return self.store.list_results_for_job(job_id)

    def recent_results(self, *, user_id: str, limit: int = 10) -> list[ResultRecord]:
        return self.store.list_recent_results(user_id, limit=limit)


def _validate_template_fields(
    *,
    name: str | None,
    content: str | None,
    spintax_variations: int | None,
    send_rate: str | None,
) -> None:
    if name is not None and not name.strip():
        raise ValueError("Template name is required.")
    if content is not None and not content.strip():
        raise ValueError("Template content is required.")
    if spintax_variations is not None and not 1 <= spintax_variations <= _MAX_SPINTAX_VARIATIONS:
        raise ValueError(f"spintaxVariations must be between 1 and {_MAX_SPINTAX_VARIATIONS}.")
    if send_rate is not None and send_rate not in SEND_RATES:
        raise ValueError(f"sendRate must be one of: {', '.join(SEND_RATES)}.")


class TemplateApplicationService:
    def __init__(self, *, store: TemplateStorePort):
        self.store = store

    def create_template(
        self,
        *,
        user_id: str,
        name: str,
        content: str,
        spintax_variations: int = 3,
        send_rate: str = "moderate",
    ) -> TemplateRecord:
        _validate_template_fields(
            name=name,
            content=content,
            spintax_variations=spintax_variations,
            send_rate=send_rate,
        )
        return self.store.create_template(
            owner_id=user_id,
            name=name.strip(),
            content=content,
            spintax_variations=spintax_variations,
            send_rate=send_rate,
        )

    def get_owned_template(self, *, user_id: str, template_id: str) -> TemplateRecord:
        template = self.store.get_template(template_id)
        if template is None or template.owner_id != user_id or not template.is_active:
            raise NotFoundError("Template not found")
        return template

    def list_templates(self, *, user_id: str) -> list[TemplateRecord]:
        return self.store.list_templates_for_owner(user_id)

    def update_template(
        self,
        *,
        user_id: str,
        template_id: str,
        name: str | None = None,
        content: str | None = None,
        spintax_variations: int | None = None,
        send_rate: str | None = None,
    ) -> TemplateRecord:
        self.get_owned_template(user_id=user_id, template_id=template_id)
        _validate_template_fields(
            name=name,
            content=content,
            spintax_variations=spintax_variations,
            send_rate=send_rate,
        )
        updated = self.store.update_template(
            template_id,
            name=name.strip() if name is not None else None,
            content=content,
            spintax_variations=spintax_variations,
            send_rate=send_rate,
        )
        if updated is None:
            raise NotFoundError("Template not found")
        return updated

    def delete_template(self, *, user_id: str, template_id: str) -> None:
        self.get_owned_template(user_id=user_id, template_id=template_id)
        self.store.deactivate_template(template_id)


class CampaignApplicationService:
    def __init__(
        self,
        *,
        store: CampaignStorePort,
        accounts: AccountApplicationService,
        dispatcher: JobDispatcher,
        runner: CampaignRunner,
    ):
        self.store = store
        self.accounts = accounts
        self.dispatcher = dispatcher
        self.runner = runner

    @staticmethod
    def _run_key(campaign_id: str) -> str:
        return f"campaign:{campaign_id}"

    def _collect_targets(self, *, user_id: str, handles: list[str], job_id: str | None) -> list[str]:
        raw: list[str] = list(handles)
        if job_id:
            job = self.store.get_job(job_id)
            if job is None or job.owner_id != user_id:
                raise NotFoundError("Job not found")
            raw.extend(
                result.detected_handle
                for result in self.store.list_results_for_job(job_id)
                if result.outcome == "found" and result.detected_handle
            )

        seen: set[str] = set()
        targets: list[str] = []
        for value in raw:
            handle = normalize_handle(value)
            if handle and handle not in seen:
                seen.add(handle)
                targets.append(handle)
        return targets

    def create_campaign(
        self,
        *,
        user_id: str,
        name: str,
        template_id: str,
        handles: list[str] | None = None,
        job_id: str | None = None,
        scheduled_at: datetime | None = None,
    ) -> CampaignRecord:
        if not name or not name.strip():
            raise ValueError("Campaign name is required.")

        template = self.store.get_template(template_id)
        if template is None or template.owner_id != user_id or not template.is_active:
            raise NotFoundError("Template not found")

        targets = self._collect_targets(user_id=user_id, handles=handles or [], job_id=job_id)
        if not targets:
            raise ValueError("Campaign has no valid target handles.")

        items = [
            NewQueueItem(
                target_handle=handle,
                rendered_message=render_message(
                    template.content,
                    handle=handle,
                    max_variations=template.spintax_variations,
                ),
            )
            for handle in targets
        ]
        campaign = self.store.create_campaign(
            owner_id=user_id,
            template_id=template.template_id,
            name=name.strip(),
            send_rate=template.send_rate,
            status="scheduled" if scheduled_at else "draft",
            items=items,
            scheduled_at=scheduled_at,
        )
        logger.info("Campaign %s created with %d targets", campaign.campaign_id, campaign.total_targets)
        return campaign

    def get_owned_campaign(self, *, user_id: str, campaign_id: str) -> CampaignRecord:
        campaign = self.store.get_campaign(campaign_id)
        if campaign is None or campaign.owner_id != user_id:
            raise NotFoundError("Campaign not found")
        return campaign

    def list_campaigns(self, *, user_id: str) -> list[CampaignRecord]:
        return self.store.list_campaigns_for_owner(user_id)

    def list_queue(self, *, user_id: str, campaign_id: str) -> list[QueueItemRecord]:
        self.get_owned_campaign(user_id=user_id, campaign_id=campaign_id)
        return self.store.list_queue_items(campaign_id)

    def start_campaign(self, *, user_id: str, campaign_id: str) -> CampaignRecord:
        campaign = self.get_owned_campaign(user_id=user_id, campaign_id=campaign_id)
        key = self._run_key(campaign_id)
        if campaign.status == "running" or self.dispatcher.is_active(key):
            raise ConflictError("Campaign is already running")
        if campaign.status not in STARTABLE_CAMPAIGN_STATUSES:
            raise ConflictError(f"Campaign cannot be started from status '{campaign.status}'")

        user = self.accounts.get_account(user_id)
        if user.dms_remaining <= 0:
            pending = len(self.store.list_pending_queue_items(campaign_id))
            raise QuotaExceededError("DM quota exceeded", required=pending, remaining=0)

        if not self.store.update_campaign_status(campaign_id, "running", from_statuses=STARTABLE_CAMPAIGN_STATUSES):
            raise ConflictError("Campaign status changed, try again")

        try:
            self.dispatcher.submit(key, self.runner.run, campaign_id=campaign_id)
        except ConflictError:
            self.store.update_campaign_status(campaign_id, campaign.status, from_statuses=("running",))
            raise

        return self.get_owned_campaign(user_id=user_id, campaign_id=campaign_id)

    def pause_campaign(self, *, user_id: str, campaign_id: str) -> CampaignRecord:
        self.get_owned_campaign(user_id=user_id, campaign_id=campaign_id)
        if not self.store.update_campaign_status(campaign_id, "paused", from_statuses=("running",)):
            raise ConflictError("Campaign is not running")
        return self.get_owned_campaign(user_id=user_id, campaign_id=campaign_id)


class InstagramAccountApplicationService:
    """Sender accounts a user has connected. Session blobs stay server-side."""

    def __init__(self, *, store: InstagramAccountStorePort):
        self.store = store

    def list_accounts(self, *, user_id: str, active_only: bool = False) -> list[InstagramAccountRecord]:
        return self.store.list_instagram_accounts_for_owner(user_id, active_only=active_only)

    def add_account(
        self,
        *,
        user_id: str,
        username: str,
        session_data: str | None = None,
    ) -> InstagramAccountRecord:
        if not (username or "").strip():
            raise ValueError("Username is required.")
        handle = normalize_handle(username)
        if handle is None:
            raise ValueError(f"'{username.strip()}' is not a valid Instagram username.")
        account = self.store.create_instagram_account(
            owner_id=user_id,
            username=handle.removeprefix("@"),
            session_data=session_data or None,
        )
        logger.info("Instagram account %s connected for user %s", account.account_id, user_id)
        return account
