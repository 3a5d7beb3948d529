from __future__ import annotations

from functools import lru_cache

from fastapi import Header, HTTPException

from dmscout.application.services import (
    AccountApplicationService,
    CampaignApplicationService,
    ExtractionApplicationService,
    InstagramAccountApplicationService,
    TemplateApplicationService,
)
from dmscout.core.config import get_settings
from dmscout.infra.db.store import DatabaseStore
from dmscout.infra.delivery.mock import MockDelivery
from dmscout.infra.delivery.webhook import WebhookDelivery
from dmscout.infra.fetch.http import HttpPageFetcher
from dmscout.infra.ports.delivery import DeliveryPort
from dmscout.infra.ports.fetch import PageFetcherPort
from dmscout.infra.realtime.bus import NotificationBus
from dmscout.workers.campaign import CampaignRunner, SendThrottle
from dmscout.workers.dispatcher import JobDispatcher
from dmscout.workers.extraction import ExtractionRunner, HandleDetector


@lru_cache(maxsize=1)
def get_store() -> DatabaseStore:
    return DatabaseStore()


@lru_cache(maxsize=1)
def get_notification_bus() -> NotificationBus:
    return NotificationBus()


@lru_cache(maxsize=1)
def get_dispatcher() -> JobDispatcher:
    settings = get_settings()
    return JobDispatcher(max_workers=settings.worker_pool_size, synchronous=settings.sync_processing)


@lru_cache(maxsize=1)
def get_page_fetcher() -> PageFetcherPort:
    settings = get_settings()
    return HttpPageFetcher(timeout_seconds=settings.fetch_timeout_seconds, user_agent=settings.fetch_user_agent)


@lru_cache(maxsize=1)
def get_delivery() -> DeliveryPort:
    settings = get_settings()
    if settings.delivery_backend == "webhook":
        if not settings.delivery_webhook_url:
            raise RuntimeError("DMSCOUT_DELIVERY_WEBHOOK_URL is required when DMSCOUT_DELIVERY_BACKEND=webhook")
        return WebhookDelivery(url=settings.delivery_webhook_url, timeout_seconds=settings.delivery_timeout_seconds)
    return MockDelivery()


@lru_cache(maxsize=1)
def get_throttle() -> SendThrottle:
    settings = get_settings()
    return SendThrottle(settings.throttle_delays(), jitter=settings.throttle_jitter)


def get_extraction_runner() -> ExtractionRunner:
    settings = get_settings()
    return ExtractionRunner(
        store=get_store(),
        publisher=get_notification_bus(),
        detector=HandleDetector(fetcher=get_page_fetcher()),
        concurrency=settings.extraction_concurrency,
        flush_every=settings.progress_flush_every,
    )


def get_campaign_runner() -> CampaignRunner:
    return CampaignRunner(
        store=get_store(),
        publisher=get_notification_bus(),
        delivery=get_delivery(),
        throttle=get_throttle(),
    )


def get_account_service() -> AccountApplicationService:
    settings = get_settings()
    return AccountApplicationService(
        store=get_store(),
        default_extract_quota=settings.default_extract_quota,
        default_dm_quota=settings.default_dm_quota,
    )


def get_extraction_service() -> ExtractionApplicationService:
    return ExtractionApplicationService(
        store=get_store(),
        accounts=get_account_service(),
        dispatcher=get_dispatcher(),
        runner=get_extraction_runner(),
    )


def get_template_service() -> TemplateApplicationService:
    return TemplateApplicationService(store=get_store())


def get_instagram_account_service() -> InstagramAccountApplicationService:
    return InstagramAccountApplicationService(store=get_store())


def get_campaign_service() -> CampaignApplicationService:
    return CampaignApplicationService(
        store=get_store(),
        accounts=get_account_service(),
        dispatcher=get_dispatcher(),
        runner=get_campaign_runner(),
    )


def shutdown_workers() -> None:
    get_throttle().close()
    get_dispatcher().shutdown(wait=True)
    get_page_fetcher().close()
    get_delivery().close()
    get_throttle.cache_clear()
    get_dispatcher.cache_clear()
    get_page_fetcher.cache_clear()
    get_delivery.cache_clear()


async def provide_user_id(x_user_id: str | None = Header(default=None)) -> str:
    user_id = (x_user_id or "").strip()
    if not user_id:
        raise HTTPException(status_code=401, detail="Missing X-User-Id header")
    return user_id


async def provide_account_service() -> AccountApplicationService:
    return get_account_service()


async def provide_extraction_service() -> ExtractionApplicationService:
    return get_extraction_service()


async def provide_template_service() -> TemplateApplicationService:
    return get_template_service()


async def provide_campaign_service() -> CampaignApplicationService:
    return get_campaign_service()


async def provide_instagram_account_service() -> InstagramAccountApplicationService:
    return get_instagram_account_service()
