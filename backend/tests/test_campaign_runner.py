from dataclasses import replace

from dmscout.workers.campaign import CampaignRunner, SendThrottle
from tests.fakes import InMemoryCampaignStore, RecordingPublisher, ScriptedDelivery, make_campaign

HANDLES = ["@alpha", "@bravo", "@charlie", "@delta", "@echo"]


def _runner(store, publisher, delivery=None) -> CampaignRunner:
    return CampaignRunner(
        store=store,
        publisher=publisher,
        delivery=delivery or ScriptedDelivery(),
        throttle=SendThrottle({"conservative": 0.0, "moderate": 0.0, "aggressive": 0.0}),
    )


def test_external_pause_stops_the_loop_and_leaves_items_pending():
    store = InMemoryCampaignStore(make_campaign(), HANDLES, pause_after=2)
    publisher = RecordingPublisher()

    summary = _runner(store, publisher).run(campaign_id="cmp_1")

    assert summary is not None
    assert summary.interrupted is True
    assert summary.processed == 2
    assert store.campaign.status == "paused"
    assert [item.status for item in store.items] == ["sent", "sent", "pending", "pending", "pending"]
    assert store.campaign.sent_count == 2
    assert store.dms_used == 2

    assert publisher.of_type("campaign_completed") == []
    assert publisher.events[-1][1] == {
        "type": "campaign_progress",
        "campaignId": "cmp_1",
        "sent": 2,
        "replied": 0,
        "interested": 0,
        "failed": 0,
    }


def test_resume_processes_only_pending_items_and_completes():
    store = InMemoryCampaignStore(make_campaign(), HANDLES, pause_after=2)
    publisher = RecordingPublisher()
    delivery = ScriptedDelivery()
    runner = _runner(store, publisher, delivery)
    runner.run(campaign_id="cmp_1")

    store.pause_after = None
    store.campaign = replace(store.campaign, status="running")
    summary = runner.run(campaign_id="cmp_1")

    assert summary.interrupted is False
    assert summary.processed == 3
    assert delivery.attempts == HANDLES
    assert store.campaign.status == "completed"
    assert all(item.status == "sent" for item in store.items)
    assert publisher.events[-1][1]["type"] == "campaign_completed"
    assert publisher.events[-1][1]["sent"] == 5
    # sent counts 3 crossed during the second run
    assert [event["sent"] for event in publisher.of_type("campaign_progress")] == [2, 3]


def test_rejections_are_recorded_per_item():
    delivery = ScriptedDelivery(rejections={"@bravo": "Recipient not found", "@delta": "Account restricted"})
    store = InMemoryCampaignStore(make_campaign(), HANDLES)
    publisher = RecordingPublisher()

    summary = _runner(store, publisher, delivery).run(campaign_id="cmp_1")

    assert summary.progress.sent == 3
    assert summary.progress.failed == 2
    assert store.item("@bravo").status == "failed"
    assert store.item("@bravo").error_message == "Recipient not found"
    assert store.item("@delta").error_message == "Account restricted"
    assert store.dms_used == 3
    assert store.campaign.status == "completed"

    progress_events = publisher.of_type("campaign_progress")
    assert {"sent": 3, "failed": 2} in [{"sent": e["sent"], "failed": e["failed"]} for e in progress_events]


def test_delivery_exception_marks_item_failed_and_continues():
    delivery = ScriptedDelivery(errors={"@alpha": RuntimeError("connection reset")})
    store = InMemoryCampaignStore(make_campaign(), HANDLES[:2])
    publisher = RecordingPublisher()

    summary = _runner(store, publisher, delivery).run(campaign_id="cmp_1")

    assert store.item("@alpha").status == "failed"
    assert "connection reset" in store.item("@alpha").error_message
    assert store.item("@bravo").status == "sent"
    assert (summary.progress.sent, summary.progress.failed) == (1, 1)
    assert store.campaign.status == "completed"


def test_reply_counters_are_carried_through():
    campaign = replace(make_campaign(), sent_count=4, replied_count=2, interested_count=1)
    store = InMemoryCampaignStore(campaign, ["@foxtrot"])
    publisher = RecordingPublisher()

    _runner(store, publisher).run(campaign_id="cmp_1")

    final = publisher.events[-1][1]
    assert (final["sent"], final["replied"], final["interested"]) == (5, 2, 1)


def test_closed_throttle_interrupts_run():
    store = InMemoryCampaignStore(make_campaign(), HANDLES)
    publisher = RecordingPublisher()
    runner = _runner(store, publisher)
    runner.throttle.close()

    summary = runner.run(campaign_id="cmp_1")

    assert summary.interrupted is True
    assert summary.processed == 0
    assert store.campaign.status == "running"
    assert all(item.status == "pending" for item in store.items)


def test_unknown_campaign_returns_none():
    store = InMemoryCampaignStore(make_campaign(), HANDLES)
    publisher = RecordingPublisher()

    assert _runner(store, publisher).run(campaign_id="cmp_missing") is None
    assert publisher.events == []


def test_pause_during_last_send_still_completes_a_drained_queue():
    store = InMemoryCampaignStore(make_campaign(), HANDLES[:2], pause_after=2)
    publisher = RecordingPublisher()

    summary = _runner(store, publisher).run(campaign_id="cmp_1")

    assert summary.interrupted is False
    assert store.list_pending_queue_items("cmp_1") == []
    assert store.campaign.status == "completed"
    assert publisher.events[-1][1]["type"] == "campaign_completed"
    assert publisher.events[-1][1]["sent"] == 2


def test_completion_is_not_forced_over_other_external_states():
    store = InMemoryCampaignStore(make_campaign(), HANDLES[:1])
    publisher = RecordingPublisher()
    runner = _runner(store, publisher)
    record_update = store.update_queue_item_status

    def _update_then_fail_campaign(item_id, status, error_message=None):
        applied = record_update(item_id, status, error_message)
        store.campaign = replace(store.campaign, status="failed")
        return applied

    store.update_queue_item_status = _update_then_fail_campaign

    summary = runner.run(campaign_id="cmp_1")

    assert summary.interrupted is True
    assert store.campaign.status == "failed"
    assert publisher.of_type("campaign_completed") == []
    assert publisher.events[-1][1]["type"] == "campaign_progress"
