from __future__ import annotations

import logging
from datetime import date, datetime, timezone
from typing import Any, Iterable

from sqlalchemy import desc, func, or_, select, update
from sqlalchemy.exc import IntegrityError

from dmscout.domain.models import (
    CampaignRecord,
    InstagramAccountRecord,
    JobRecord,
    NewQueueItem,
    NewResult,
    QueueItemRecord,
    ResultRecord,
    TemplateRecord,
    UploadRecord,
    UserRecord,
)
from dmscout.infra.db.models import (
    CampaignRow,
    InstagramAccountRow,
    JobRow,
    QueueItemRow,
    ResultRow,
    TemplateRow,
    UploadRow,
    UserRow,
)
from dmscout.infra.db.session import get_session_factory
from dmscout.utils.ids import new_public_id

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DatabaseStore:
    """Persistence gateway backed by SQLAlchemy.

    Every method runs in its own short session and commits before returning,
    so callers never hold a transaction (or a lock) across two calls.
    """

    def __init__(self):
        self._session_factory = get_session_factory()

    @staticmethod
    def _to_user_record(row: UserRow) -> UserRecord:
        return UserRecord(
            user_id=row.public_id,
            email=row.email,
            plan=row.plan,
            daily_extract_quota=row.daily_extract_quota,
            extracts_used_today=row.extracts_used_today,
            daily_dm_quota=row.daily_dm_quota,
            dms_used_today=row.dms_used_today,
            last_quota_reset=row.last_quota_reset,
        )

    @staticmethod
    def _to_upload_record(row: UploadRow, owner_public_id: str) -> UploadRecord:
        return UploadRecord(
            upload_id=row.public_id,
            owner_id=owner_public_id,
            filename=row.filename,
            rows=row.rows,
            status=row.status,
        )

    @staticmethod
    def _to_job_record(row: JobRow, owner_public_id: str) -> JobRecord:
        return JobRecord(
            job_id=row.public_id,
            owner_id=owner_public_id,
            kind=row.kind,  # type: ignore[arg-type]
            status=row.status,  # type: ignore[arg-type]
            total=row.total,
            completed_count=row.completed,
            failed_count=row.failed,
            created_at=row.created_at,
            updated_at=row.updated_at,
            metadata=dict(row.meta_json or {}),
        )

    @staticmethod
    def _to_result_record(row: ResultRow, job_public_id: str) -> ResultRecord:
        return ResultRecord(
            result_id=row.public_id,
            job_id=job_public_id,
            domain=row.domain,
            detected_handle=row.ig_handle,
            confidence_score=row.confidence,
            source_url=row.source_url,
            outcome=row.status,  # type: ignore[arg-type]
            created_at=row.created_at,
        )

    @staticmethod
    def _to_template_record(row: TemplateRow, owner_public_id: str) -> TemplateRecord:
        return TemplateRecord(
            template_id=row.public_id,
            owner_id=owner_public_id,
            name=row.name,
            content=row.content,
            spintax_variations=row.spintax_variations,
            send_rate=row.send_rate,  # type: ignore[arg-type]
            is_active=row.is_active,
        )

    @staticmethod
    def _to_campaign_record(row: CampaignRow, owner_public_id: str, template_public_id: str) -> CampaignRecord:
        return CampaignRecord(
            campaign_id=row.public_id,
            owner_id=owner_public_id,
            template_id=template_public_id,
            name=row.name,
            status=row.status,  # type: ignore[arg-type]
            send_rate=row.send_rate,  # type: ignore[arg-type]
            total_targets=row.total_handles,
            sent_count=row.sent,
            replied_count=row.replied,
            interested_count=row.interested,
            failed_count=row.failed,
            scheduled_at=row.scheduled_at,
            started_at=row.started_at,
            completed_at=row.completed_at,
        )

    @staticmethod
    def _to_queue_item_record(row: QueueItemRow, campaign_public_id: str) -> QueueItemRecord:
        return QueueItemRecord(
            item_id=row.public_id,
            campaign_id=campaign_public_id,
            target_handle=row.ig_handle,
            rendered_message=row.message,
            status=row.status,  # type: ignore[arg-type]
            position=row.position,
            error_message=row.error_message,
            sent_at=row.sent_at,
        )

    @staticmethod
    def _to_instagram_account_record(row: InstagramAccountRow, owner_public_id: str) -> InstagramAccountRecord:
        return InstagramAccountRecord(
            account_id=row.public_id,
            owner_id=owner_public_id,
            username=row.username,
            session_data=row.session_data,
            is_active=row.is_active,
            last_used=row.last_used,
            created_at=row.created_at,
        )

    @staticmethod
    def _campaign_select():
        return (
            select(CampaignRow, UserRow.public_id, TemplateRow.public_id)
            .join(UserRow, CampaignRow.user_id == UserRow.id)
            .join(TemplateRow, CampaignRow.template_id == TemplateRow.id)
        )

    # Users and quotas

    def get_user(self, user_id: str) -> UserRecord | None:
        with self._session_factory() as db:
            row = db.execute(select(UserRow).where(UserRow.public_id == user_id)).scalar_one_or_none()
            if row is None:
                return None
            return self._to_user_record(row)

    def ensure_user(
        self,
        *,
        user_id: str,
        daily_extract_quota: int,
        daily_dm_quota: int,
        today: date,
        email: str | None = None,
    ) -> UserRecord:
        existing = self.get_user(user_id)
        if existing is not None:
            return existing

        with self._session_factory() as db:
            row = UserRow(
                public_id=user_id,
                email=email,
                plan="free",
                daily_extract_quota=daily_extract_quota,
                extracts_used_today=0,
                daily_dm_quota=daily_dm_quota,
                dms_used_today=0,
                last_quota_reset=today,
            )
            db.add(row)
            try:
                db.commit()
            except IntegrityError:
                # Another request provisioned the same user first.
                db.rollback()
                row = db.execute(select(UserRow).where(UserRow.public_id == user_id)).scalar_one()
            return self._to_user_record(row)

    def reset_daily_quotas(self, *, user_id: str, today: date) -> bool:
        """Zero both usage counters once per calendar day.

        The update only matches rows whose reset date is older than ``today``,
        so concurrent or repeated resets on the same day are no-ops.
        """
        with self._session_factory() as db:
            result = db.execute(
                update(UserRow)
                .where(UserRow.public_id == user_id)
                .where(or_(UserRow.last_quota_reset.is_(None), UserRow.last_quota_reset < today))
                .values(extracts_used_today=0, dms_used_today=0, last_quota_reset=today)
            )
            db.commit()
            return result.rowcount > 0

    def try_reserve_extracts(self, *, user_id: str, count: int) -> bool:
        """Atomically add ``count`` to today's extract usage if it fits the quota."""
        with self._session_factory() as db:
            result = db.execute(
                update(UserRow)
                .where(UserRow.public_id == user_id)
                .where(UserRow.extracts_used_today + count <= UserRow.daily_extract_quota)
                .values(extracts_used_today=UserRow.extracts_used_today + count)
            )
            db.commit()
            return result.rowcount > 0

    def increment_usage(self, user_id: str, extracts_used: int = 0, dms_used: int = 0) -> None:
        with self._session_factory() as db:
            db.execute(
                update(UserRow)
                .where(UserRow.public_id == user_id)
                .values(
                    extracts_used_today=UserRow.extracts_used_today + extracts_used,
                    dms_used_today=UserRow.dms_used_today + dms_used,
                )
            )
            db.commit()

    # Uploads, jobs and results

    def _user_pk(self, db, user_id: str) -> int | None:
        return db.execute(select(UserRow.id).where(UserRow.public_id == user_id)).scalar_one_or_none()

    def create_upload(self, *, owner_id: str, filename: str, rows: int, status: str = "processing") -> UploadRecord:
        with self._session_factory() as db:
            user_pk = self._user_pk(db, owner_id)
            if user_pk is None:
                raise LookupError(f"Unknown user {owner_id}")

            row = UploadRow(
                public_id=new_public_id("upl_"),
                user_id=user_pk,
                filename=filename,
                rows=rows,
                status=status,
            )
            db.add(row)
            db.commit()
            return self._to_upload_record(row, owner_id)

    def create_job(
        self,
        *,
        owner_id: str,
        kind: str,
        total: int,
        metadata: dict[str, Any] | None = None,
        upload_id: str | None = None,
    ) -> JobRecord:
        with self._session_factory() as db:
            user_pk = self._user_pk(db, owner_id)
            if user_pk is None:
                raise LookupError(f"Unknown user {owner_id}")

            upload_pk = None
            if upload_id:
                upload_pk = db.execute(
                    select(UploadRow.id).where(UploadRow.public_id == upload_id)
                ).scalar_one_or_none()

            row = JobRow(
                public_id=new_public_id("job_"),
                user_id=user_pk,
                upload_id=upload_pk,
                kind=kind,
                status="pending",
                total=total,
                completed=0,
                failed=0,
                meta_json=dict(metadata or {}),
            )
            db.add(row)
            db.commit()
            db.refresh(row)
            return self._to_job_record(row, owner_id)

    def get_job(self, job_id: str) -> JobRecord | None:
        with self._session_factory() as db:
            stmt = select(JobRow, UserRow.public_id).join(UserRow, JobRow.user_id == UserRow.id).where(
                JobRow.public_id == job_id
            )
            row = db.execute(stmt).one_or_none()
            if row is None:
                return None
            job_row, owner_public_id = row
            return self._to_job_record(job_row, owner_public_id)

    def list_jobs_for_owner(self, owner_id: str, *, kind: str | None = None) -> list[JobRecord]:
        with self._session_factory() as db:
            stmt = select(JobRow).join(UserRow, JobRow.user_id == UserRow.id).where(UserRow.public_id == owner_id)
            if kind:
                stmt = stmt.where(JobRow.kind == kind)
            rows = db.execute(stmt.order_by(desc(JobRow.created_at), desc(JobRow.id))).scalars().all()
            return [self._to_job_record(row, owner_id) for row in rows]

    def update_job_progress(self, job_id: str, completed: int, failed: int) -> bool:
        with self._session_factory() as db:
            result = db.execute(
                update(JobRow).where(JobRow.public_id == job_id).values(completed=completed, failed=failed)
            )
            db.commit()
            return result.rowcount > 0

    def update_job_status(self, job_id: str, status: str) -> bool:
        with self._session_factory() as db:
            row = db.execute(select(JobRow).where(JobRow.public_id == job_id)).scalar_one_or_none()
            if row is None:
                return False
            row.status = status
            if status in ("completed", "failed") and row.upload_id is not None:
                upload = db.get(UploadRow, row.upload_id)
                if upload is not None:
                    upload.status = status
            db.commit()
            return True

    def create_result(self, result: NewResult) -> ResultRecord:
        with self._session_factory() as db:
            job_pk = db.execute(select(JobRow.id).where(JobRow.public_id == result.job_id)).scalar_one_or_none()
            if job_pk is None:
                raise LookupError(f"Unknown job {result.job_id}")

            row = ResultRow(
                public_id=new_public_id("res_"),
                job_id=job_pk,
                domain=result.domain,
                ig_handle=result.detected_handle,
                confidence=result.confidence_score,
                source_url=result.source_url,
                status=result.outcome,
            )
            db.add(row)
            db.commit()
            return self._to_result_record(row, result.job_id)

    def list_results_for_job(self, job_id: str) -> list[ResultRecord]:
        with self._session_factory() as db:
            job_pk = db.execute(select(JobRow.id).where(JobRow.public_id == job_id)).scalar_one_or_none()
            if job_pk is None:
                return []
            rows = (
                db.execute(select(ResultRow).where(ResultRow.job_id == job_pk).order_by(ResultRow.id.asc()))
                .scalars()
                .all()
            )
            return [self._to_result_record(row, job_id) for row in rows]

    def list_recent_results(self, owner_id: str, *, limit: int = 10) -> list[ResultRecord]:
        with self._session_factory() as db:
            stmt = (
                select(ResultRow, JobRow.public_id)
                .join(JobRow, ResultRow.job_id == JobRow.id)
                .join(UserRow, JobRow.user_id == UserRow.id)
                .where(UserRow.public_id == owner_id)
                .order_by(desc(ResultRow.created_at), desc(ResultRow.id))
                .limit(limit)
            )
            return [self._to_result_record(row, job_public_id) for row, job_public_id in db.execute(stmt).all()]

    # Templates

    def create_template(
        self,
        *,
        owner_id: str,
        name: str,
        content: str,
        spintax_variations: int = 3,
        send_rate: str = "moderate",
    ) -> TemplateRecord:
        with self._session_factory() as db:
            user_pk = self._user_pk(db, owner_id)
            if user_pk is None:
                raise LookupError(f"Unknown user {owner_id}")

            row = TemplateRow(
                public_id=new_public_id("tpl_"),
                user_id=user_pk,
                name=name,
                content=content,
                spintax_variations=spintax_variations,
                send_rate=send_rate,
                is_active=True,
            )
            db.add(row)
            db.commit()
            return self._to_template_record(row, owner_id)

    def get_template(self, template_id: str) -> TemplateRecord | None:
        with self._session_factory() as db:
            stmt = (
                select(TemplateRow, UserRow.public_id)
                .join(UserRow, TemplateRow.user_id == UserRow.id)
                .where(TemplateRow.public_id == template_id)
            )
            row = db.execute(stmt).one_or_none()
            if row is None:
                return None
            template_row, owner_public_id = row
            return self._to_template_record(template_row, owner_public_id)

    def list_templates_for_owner(self, owner_id: str) -> list[TemplateRecord]:
        with self._session_factory() as db:
            stmt = (
                select(TemplateRow)
                .join(UserRow, TemplateRow.user_id == UserRow.id)
                .where(UserRow.public_id == owner_id, TemplateRow.is_active.is_(True))
                .order_by(desc(TemplateRow.created_at), desc(TemplateRow.id))
            )
            return [self._to_template_record(row, owner_id) for row in db.execute(stmt).scalars().all()]

    def update_template(self, template_id: str, **fields: Any) -> TemplateRecord | None:
        allowed = {"name", "content", "spintax_variations", "send_rate"}
        with self._session_factory() as db:
            stmt = (
                select(TemplateRow, UserRow.public_id)
                .join(UserRow, TemplateRow.user_id == UserRow.id)
                .where(TemplateRow.public_id == template_id)
            )
            row = db.execute(stmt).one_or_none()
            if row is None:
                return None
            template_row, owner_public_id = row
            for key, value in fields.items():
                if key in allowed and value is not None:
                    setattr(template_row, key, value)
            db.commit()
            return self._to_template_record(template_row, owner_public_id)

    def deactivate_template(self, template_id: str) -> bool:
        with self._session_factory() as db:
            result = db.execute(
                update(TemplateRow).where(TemplateRow.public_id == template_id).values(is_active=False)
            )
            db.commit()
            return result.rowcount > 0

    # Campaigns and the DM queue

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
        with self._session_factory() as db:
            user_pk = self._user_pk(db, owner_id)
            if user_pk is None:
                raise LookupError(f"Unknown user {owner_id}")
            template_pk = db.execute(
                select(TemplateRow.id).where(TemplateRow.public_id == template_id)
            ).scalar_one_or_none()
            if template_pk is None:
                raise LookupError(f"Unknown template {template_id}")

            campaign_row = CampaignRow(
                public_id=new_public_id("cmp_"),
                user_id=user_pk,
                template_id=template_pk,
                name=name,
                status=status,
                send_rate=send_rate,
                total_handles=0,
                scheduled_at=scheduled_at,
            )
            db.add(campaign_row)
            db.flush()

            count = 0
            for position, item in enumerate(items):
                db.add(
                    QueueItemRow(
                        public_id=new_public_id("dm_"),
                        campaign_id=campaign_row.id,
                        position=position,
                        ig_handle=item.target_handle,
                        message=item.rendered_message,
                        status="pending",
                    )
                )
                count += 1

            campaign_row.total_handles = count
            db.commit()
            return self._to_campaign_record(campaign_row, owner_id, template_id)

    def get_campaign(self, campaign_id: str) -> CampaignRecord | None:
        with self._session_factory() as db:
            row = db.execute(self._campaign_select().where(CampaignRow.public_id == campaign_id)).one_or_none()
            if row is None:
                return None
            campaign_row, owner_public_id, template_public_id = row
            return self._to_campaign_record(campaign_row, owner_public_id, template_public_id)

    def list_campaigns_for_owner(self, owner_id: str) -> list[CampaignRecord]:
        with self._session_factory() as db:
            stmt = (
                self._campaign_select()
                .where(UserRow.public_id == owner_id)
                .order_by(desc(CampaignRow.created_at), desc(CampaignRow.id))
            )
            return [self._to_campaign_record(*row) for row in db.execute(stmt).all()]

    def update_campaign_status(
        self,
        campaign_id: str,
        status: str,
        *,
        from_statuses: Iterable[str] | None = None,
    ) -> bool:
        """Set the campaign status.

        With ``from_statuses`` the update is conditional and returns False when
        the campaign was in some other status, which lets a pause request and
        the runner's completion race without clobbering each other.
        """
        values: dict[str, Any] = {"status": status}
        if status == "running":
            values["started_at"] = func.coalesce(CampaignRow.started_at, _utcnow())
        elif status == "completed":
            values["completed_at"] = _utcnow()

        stmt = update(CampaignRow).where(CampaignRow.public_id == campaign_id)
        if from_statuses is not None:
            stmt = stmt.where(CampaignRow.status.in_(list(from_statuses)))

        with self._session_factory() as db:
            result = db.execute(stmt.values(**values))
            db.commit()
            return result.rowcount > 0

    def update_campaign_progress(
        self,
        campaign_id: str,
        sent: int,
        replied: int,
        interested: int,
        failed: int,
    ) -> bool:
        with self._session_factory() as db:
            result = db.execute(
                update(CampaignRow)
                .where(CampaignRow.public_id == campaign_id)
                .values(sent=sent, replied=replied, interested=interested, failed=failed)
            )
            db.commit()
            return result.rowcount > 0

    def _queue_items(self, campaign_id: str, *, status: str | None) -> list[QueueItemRecord]:
        with self._session_factory() as db:
            campaign_pk = db.execute(
                select(CampaignRow.id).where(CampaignRow.public_id == campaign_id)
            ).scalar_one_or_none()
            if campaign_pk is None:
                return []
            stmt = select(QueueItemRow).where(QueueItemRow.campaign_id == campaign_pk)
            if status:
                stmt = stmt.where(QueueItemRow.status == status)
            rows = db.execute(stmt.order_by(QueueItemRow.position.asc(), QueueItemRow.id.asc())).scalars().all()
            return [self._to_queue_item_record(row, campaign_id) for row in rows]

    def list_pending_queue_items(self, campaign_id: str) -> list[QueueItemRecord]:
        return self._queue_items(campaign_id, status="pending")

    def list_queue_items(self, campaign_id: str) -> list[QueueItemRecord]:
        return self._queue_items(campaign_id, status=None)

    def update_queue_item_status(self, item_id: str, status: str, error_message: str | None = None) -> bool:
        """Move a pending item to its terminal state. Items are never reprocessed."""
        values: dict[str, Any] = {"status": status, "error_message": error_message}
        if status == "sent":
            values["sent_at"] = _utcnow()
        with self._session_factory() as db:
            result = db.execute(
                update(QueueItemRow)
                .where(QueueItemRow.public_id == item_id, QueueItemRow.status == "pending")
                .values(**values)
            )
            db.commit()
            if result.rowcount == 0:
                logger.warning("Queue item %s was not pending; status %s not applied", item_id, status)
            return result.rowcount > 0

    # Instagram sender accounts

    def create_instagram_account(
        self,
        *,
        owner_id: str,
        username: str,
        session_data: str | None = None,
    ) -> InstagramAccountRecord:
        with self._session_factory() as db:
            user_pk = self._user_pk(db, owner_id)
            if user_pk is None:
                raise LookupError(f"Unknown user {owner_id}")

            row = InstagramAccountRow(
                public_id=new_public_id("iga_"),
                user_id=user_pk,
                username=username,
                session_data=session_data,
                is_active=True,
            )
            db.add(row)
            db.commit()
            return self._to_instagram_account_record(row, owner_id)

    def list_instagram_accounts_for_owner(
        self,
        owner_id: str,
        *,
        active_only: bool = False,
    ) -> list[InstagramAccountRecord]:
        with self._session_factory() as db:
            stmt = (
                select(InstagramAccountRow)
                .join(UserRow, InstagramAccountRow.user_id == UserRow.id)
                .where(UserRow.public_id == owner_id)
            )
            if active_only:
                stmt = stmt.where(InstagramAccountRow.is_active.is_(True)).order_by(
                    InstagramAccountRow.last_used.desc().nulls_last(), desc(InstagramAccountRow.id)
                )
            else:
                stmt = stmt.order_by(desc(InstagramAccountRow.created_at), desc(InstagramAccountRow.id))
            return [self._to_instagram_account_record(row, owner_id) for row in db.execute(stmt).scalars().all()]

    def update_instagram_account_session(self, account_id: str, session_data: str) -> bool:
        with self._session_factory() as db:
            result = db.execute(
                update(InstagramAccountRow)
                .where(InstagramAccountRow.public_id == account_id)
                .values(session_data=session_data, last_used=_utcnow())
            )
            db.commit()
            return result.rowcount > 0
