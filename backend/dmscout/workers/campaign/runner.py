from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Iterable, Protocol

from dmscout.domain.models import CampaignRecord, QueueItemRecord
from dmscout.infra.ports.delivery import DeliveryOutcome, DeliveryPort
from dmscout.workers.campaign.throttle import SendThrottle

logger = logging.getLogger(__name__)


class CampaignStorePort(Protocol):
    def get_campaign(self, campaign_id: str) -> CampaignRecord | None:
        ...

    def list_pending_queue_items(self, campaign_id: str) -> list[QueueItemRecord]:
        ...

    def update_queue_item_status(self, item_id: str, status: str, error_message: str | None = None) -> bool:
        ...

    def update_campaign_progress(
        self,
        campaign_id: str,
        sent: int,
        replied: int,
        interested: int,
        failed: int,
    ) -> bool:
        ...

    def update_campaign_status(
        self,
        campaign_id: str,
        status: str,
        *,
        from_statuses: Iterable[str] | None = None,
    ) -> bool:
        ...

    def increment_usage(self, user_id: str, extracts_used: int = 0, dms_used: int = 0) -> None:
        ...


class EventPublisher(Protocol):
    def publish(self, user_id: str, event: dict[str, Any]) -> None:
        ...


@dataclass
class CampaignProgress:
    sent: int = 0
    replied: int = 0
    interested: int = 0
    failed: int = 0

    @classmethod
    def from_campaign(cls, campaign: CampaignRecord) -> CampaignProgress:
        return cls(
            sent=campaign.sent_count,
            replied=campaign.replied_count,
            interested=campaign.interested_count,
            failed=campaign.failed_count,
        )

    def as_event(self, event_type: str, campaign_id: str) -> dict[str, Any]:
        return {
            "type": event_type,
            "campaignId": campaign_id,
            "sent": self.sent,
            "replied": self.replied,
            "interested": self.interested,
            "failed": self.failed,
        }


@dataclass
class CampaignRunSummary:
    campaign_id: str
    processed: int
    interrupted: bool
    progress: CampaignProgress


class CampaignRunner:
    """Drains a campaign's pending DM queue, one throttled send at a time.

    The campaign status is re-read before every item; anything other than
    ``running`` (usually an external pause) stops the loop and leaves the
    remaining items pending for the next start.
    """

    def __init__(
        self,
        *,
        store: CampaignStorePort,
        publisher: EventPublisher,
        delivery: DeliveryPort,
        throttle: SendThrottle,
        publish_sent_every: int = 3,
        publish_failed_every: int = 2,
    ):
        self.store = store
        self.publisher = publisher
        self.delivery = delivery
        self.throttle = throttle
        self.publish_sent_every = max(1, publish_sent_every)
        self.publish_failed_every = max(1, publish_failed_every)

    def _deliver(self, item: QueueItemRecord) -> DeliveryOutcome:
        try:
            return self.delivery.attempt_send(handle=item.target_handle, message=item.rendered_message)
        except Exception as exc:
            logger.warning("Delivery to %s raised", item.target_handle, exc_info=True)
            return DeliveryOutcome.rejected(f"Delivery error: {exc}" if str(exc) else exc.__class__.__name__)

    def _process(self, campaign: CampaignRecord, item: QueueItemRecord) -> str | None:
        """Send one item and record its terminal state.

        Returns "sent", "failed", or None when the item had already left the
        pending state and nothing was recorded.
        """
        try:
            outcome = self._deliver(item)
            if outcome.sent:
                applied = self.store.update_queue_item_status(item.item_id, "sent")
            else:
                logger.info("Message to %s rejected: %s", item.target_handle, outcome.reason)
                applied = self.store.update_queue_item_status(item.item_id, "failed", outcome.reason)
        except Exception as exc:
            logger.exception("Unexpected error processing queue item %s", item.item_id)
            try:
                applied = self.store.update_queue_item_status(item.item_id, "failed", str(exc) or "Unknown error")
            except Exception:
                logger.exception("Failed to mark queue item %s as failed", item.item_id)
                return None
            return "failed" if applied else None

        if not applied:
            return None
        if outcome.sent:
            try:
                self.store.increment_usage(campaign.owner_id, dms_used=1)
            except Exception:
                logger.exception("Failed to record DM usage for user %s", campaign.owner_id)
            return "sent"
        return "failed"

    def _should_publish(self, result: str, progress: CampaignProgress) -> bool:
        if result == "sent":
            return progress.sent % self.publish_sent_every == 0
        return progress.failed % self.publish_failed_every == 0

    def _store_progress(self, campaign_id: str, progress: CampaignProgress) -> None:
        try:
            self.store.update_campaign_progress(
                campaign_id,
                progress.sent,
                progress.replied,
                progress.interested,
                progress.failed,
            )
        except Exception:
            logger.exception("Failed to store progress for campaign %s", campaign_id)

    def _complete(self, campaign_id: str) -> bool:
        if self.store.update_campaign_status(campaign_id, "completed", from_statuses=("running",)):
            return True
        # A pause that landed during the last send leaves nothing to resume.
        if self.store.list_pending_queue_items(campaign_id):
            return False
        return self.store.update_campaign_status(campaign_id, "completed", from_statuses=("paused",))

    def run(self, *, campaign_id: str) -> CampaignRunSummary | None:
        campaign = self.store.get_campaign(campaign_id)
        if campaign is None:
            logger.error("Campaign %s not found, aborting run", campaign_id)
            return None

        progress = CampaignProgress.from_campaign(campaign)
        items = self.store.list_pending_queue_items(campaign_id)
        logger.info("Campaign %s started with %d pending messages", campaign_id, len(items))

        processed = 0
        interrupted = False
        for item in items:
            current = self.store.get_campaign(campaign_id)
            if current is None or current.status != "running":
                logger.info(
                    "Campaign %s is %s; stopping with %d messages pending",
                    campaign_id,
                    current.status if current else "gone",
                    len(items) - processed,
                )
                interrupted = True
                break

            if not self.throttle.wait(current.send_rate):
                logger.info("Send throttle closed; stopping campaign %s", campaign_id)
                interrupted = True
                break

            result = self._process(campaign, item)
            processed += 1
            if result is None:
                continue

            if result == "sent":
                progress.sent += 1
            else:
                progress.failed += 1

            self._store_progress(campaign_id, progress)
            if self._should_publish(result, progress):
                self.publisher.publish(campaign.owner_id, progress.as_event("campaign_progress", campaign_id))

        if not interrupted and not self._complete(campaign_id):
            logger.info("Campaign %s left running state before completion was recorded", campaign_id)
            interrupted = True

        if interrupted:
            self.publisher.publish(campaign.owner_id, progress.as_event("campaign_progress", campaign_id))
            return CampaignRunSummary(campaign_id, processed, True, progress)

        self.publisher.publish(campaign.owner_id, progress.as_event("campaign_completed", campaign_id))
        logger.info(
            "Campaign %s completed: %d sent, %d failed",
            campaign_id,
            progress.sent,
            progress.failed,
        )
        return CampaignRunSummary(campaign_id, processed, False, progress)
