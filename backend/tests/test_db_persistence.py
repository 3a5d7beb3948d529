import threading
from datetime import date, timedelta
from uuid import uuid4

import pytest

from dmscout.domain.models import NewQueueItem, NewResult
from dmscout.infra.db.session import init_db
from dmscout.infra.db.store import DatabaseStore

TODAY = date(2026, 3, 14)


@pytest.fixture(scope="module")
def store() -> DatabaseStore:
    init_db()
    return DatabaseStore()


def _user(store: DatabaseStore, *, extract_quota: int = 150, dm_quota: int = 10) -> str:
    user_id = f"user_{uuid4().hex[:12]}"
    store.ensure_user(user_id=user_id, daily_extract_quota=extract_quota, daily_dm_quota=dm_quota, today=TODAY)
    return user_id


def test_ensure_user_is_idempotent(store: DatabaseStore):
    user_id = _user(store)
    again = store.ensure_user(user_id=user_id, daily_extract_quota=999, daily_dm_quota=999, today=TODAY)

    assert again.daily_extract_quota == 150
    assert again.daily_dm_quota == 10


def test_quota_reset_happens_once_per_day(store: DatabaseStore):
    user_id = _user(store)
    store.increment_usage(user_id, extracts_used=7, dms_used=3)

    assert store.reset_daily_quotas(user_id=user_id, today=TODAY) is False
    assert store.get_user(user_id).extracts_used_today == 7

    tomorrow = TODAY + timedelta(days=1)
    assert store.reset_daily_quotas(user_id=user_id, today=tomorrow) is True
    assert store.reset_daily_quotas(user_id=user_id, today=tomorrow) is False

    user = store.get_user(user_id)
    assert (user.extracts_used_today, user.dms_used_today) == (0, 0)
    assert user.last_quota_reset == tomorrow


def test_extract_reservation_never_exceeds_quota(store: DatabaseStore):
    user_id = _user(store, extract_quota=5)

    assert store.try_reserve_extracts(user_id=user_id, count=3) is True
    assert store.try_reserve_extracts(user_id=user_id, count=3) is False
    assert store.try_reserve_extracts(user_id=user_id, count=2) is True

    user = store.get_user(user_id)
    assert user.extracts_used_today == 5
    assert user.extracts_remaining == 0


def test_job_progress_and_results_persist_across_instances(store: DatabaseStore):
    user_id = _user(store)
    upload = store.create_upload(owner_id=user_id, filename="leads.csv", rows=2)
    job = store.create_job(owner_id=user_id, kind="extraction", total=2, upload_id=upload.upload_id)
    store.create_result(NewResult(job.job_id, "a.com", "@acme", 95.0, "https://a.com", "found"))
    store.create_result(NewResult(job.job_id, "b.com", None, 0.0, "https://b.com", "error"))
    store.update_job_progress(job.job_id, 1, 1)
    store.update_job_status(job.job_id, "completed")

    second = DatabaseStore()
    reloaded = second.get_job(job.job_id)
    results = second.list_results_for_job(job.job_id)

    assert reloaded.status == "completed"
    assert (reloaded.completed_count, reloaded.failed_count) == (1, 1)
    assert [r.domain for r in results] == ["a.com", "b.com"]
    assert [r.job_id for r in second.list_recent_results(user_id, limit=1)] == [job.job_id]


def test_queue_item_reaches_terminal_state_once(store: DatabaseStore):
    user_id = _user(store)
    template = store.create_template(owner_id=user_id, name="Intro", content="Hi {{name}}")
    campaign = store.create_campaign(
        owner_id=user_id,
        template_id=template.template_id,
        name="Spring",
        send_rate="moderate",
        status="draft",
        items=[NewQueueItem("@one", "Hi one"), NewQueueItem("@two", "Hi two")],
    )
    first, second = store.list_pending_queue_items(campaign.campaign_id)

    assert campaign.total_targets == 2
    assert store.update_queue_item_status(first.item_id, "sent") is True
    assert store.update_queue_item_status(first.item_id, "failed", "late failure") is False

    items = store.list_queue_items(campaign.campaign_id)
    assert [item.target_handle for item in items] == ["@one", "@two"]
    assert items[0].status == "sent"
    assert items[0].sent_at is not None
    assert items[0].error_message is None
    assert [item.item_id for item in store.list_pending_queue_items(campaign.campaign_id)] == [second.item_id]


def test_conditional_campaign_status_transitions(store: DatabaseStore):
    user_id = _user(store)
    template = store.create_template(owner_id=user_id, name="Intro", content="Hi")
    campaign = store.create_campaign(
        owner_id=user_id,
        template_id=template.template_id,
        name="Fall",
        send_rate="aggressive",
        status="draft",
        items=[NewQueueItem("@one", "Hi")],
    )
    cid = campaign.campaign_id

    assert store.update_campaign_status(cid, "running", from_statuses=("draft", "scheduled", "paused")) is True
    started_at = store.get_campaign(cid).started_at
    assert started_at is not None

    assert store.update_campaign_status(cid, "paused", from_statuses=("running",)) is True
    assert store.update_campaign_status(cid, "completed", from_statuses=("running",)) is False
    assert store.get_campaign(cid).status == "paused"

    assert store.update_campaign_status(cid, "running", from_statuses=("paused",)) is True
    assert store.get_campaign(cid).started_at == started_at


def test_deactivated_templates_are_hidden_from_listing(store: DatabaseStore):
    user_id = _user(store)
    keep = store.create_template(owner_id=user_id, name="Keep", content="Hi")
    drop = store.create_template(owner_id=user_id, name="Drop", content="Yo")

    assert store.deactivate_template(drop.template_id) is True

    assert [t.template_id for t in store.list_templates_for_owner(user_id)] == [keep.template_id]
    assert store.get_template(drop.template_id).is_active is False


def test_concurrent_reservations_never_exceed_quota(store: DatabaseStore):
    user_id = _user(store, extract_quota=10)
    start = threading.Barrier(8)
    granted: list[int] = []
    lock = threading.Lock()

    def _reserve() -> None:
        start.wait()
        if store.try_reserve_extracts(user_id=user_id, count=3):
            with lock:
                granted.append(3)

    workers = [threading.Thread(target=_reserve) for _ in range(8)]
    for worker in workers:
        worker.start()
    for worker in workers:
        worker.join(timeout=30)

    assert sum(granted) <= 10
    assert len(granted) == 3
    assert store.get_user(user_id).extracts_used_today == sum(granted)


def test_instagram_session_update_marks_last_used(store: DatabaseStore):
    user_id = _user(store)
    idle = store.create_instagram_account(owner_id=user_id, username="idle_sender")
    busy = store.create_instagram_account(owner_id=user_id, username="busy_sender", session_data="v1")

    assert busy.last_used is None
    assert store.update_instagram_account_session(busy.account_id, "v2") is True
    assert store.update_instagram_account_session("iga_missing", "v2") is False

    active = store.list_instagram_accounts_for_owner(user_id, active_only=True)
    assert [a.account_id for a in active] == [busy.account_id, idle.account_id]
    assert active[0].session_data == "v2"
    assert active[0].last_used is not None
    assert store.list_instagram_accounts_for_owner(f"user_{uuid4().hex[:12]}") == []
