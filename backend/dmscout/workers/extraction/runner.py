from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Protocol

from dmscout.domain.models import JobRecord, NewResult
from dmscout.workers.extraction.detector import Detection, HandleDetector

logger = logging.getLogger(__name__)


class ExtractionStorePort(Protocol):
    def get_job(self, job_id: str) -> JobRecord | None:
        ...

    def update_job_status(self, job_id: str, status: str) -> bool:
        ...

    def update_job_progress(self, job_id: str, completed: int, failed: int) -> bool:
        ...

    def create_result(self, result: NewResult) -> Any:
        ...


class EventPublisher(Protocol):
    def publish(self, user_id: str, event: dict[str, Any]) -> None:
        ...


@dataclass
class JobProgress:
    total: int
    completed: int = 0
    failed: int = 0

    @property
    def processed(self) -> int:
        return self.completed + self.failed

    def record(self, outcome: str) -> None:
        if outcome == "error":
            self.failed += 1
        else:
            self.completed += 1

    def as_event(self, event_type: str, job_id: str) -> dict[str, Any]:
        return {
            "type": event_type,
            "jobId": job_id,
            "completed": self.completed,
            "failed": self.failed,
            "total": self.total,
        }


class ExtractionRunner:
    """Runs one extraction batch to completion.

    Domains are fetched on a bounded thread pool, but their results are
    consumed in list order by this thread alone: Result rows are written in
    order and the progress counters only ever grow.
    """

    def __init__(
        self,
        *,
        store: ExtractionStorePort,
        publisher: EventPublisher,
        detector: HandleDetector,
        concurrency: int = 4,
        flush_every: int = 5,
    ):
        self.store = store
        self.publisher = publisher
        self.detector = detector
        self.concurrency = max(1, concurrency)
        self.flush_every = max(1, flush_every)

    def _detect(self, domain: str) -> Detection:
        try:
            return self.detector.detect(domain)
        except Exception as exc:
            logger.exception("Handle detection crashed for %s", domain)
            return Detection(
                outcome="error",
                handle=None,
                confidence=0.0,
                source_url=self.detector.source_url_for(domain),
                error=str(exc),
            )

    def _record(self, job_id: str, domain: str, detection: Detection) -> str:
        if detection.outcome == "error":
            logger.warning("Extraction failed for %s: %s", domain, detection.error)
        try:
            self.store.create_result(
                NewResult(
                    job_id=job_id,
                    domain=domain,
                    detected_handle=detection.handle,
                    confidence_score=detection.confidence,
                    source_url=detection.source_url,
                    outcome=detection.outcome,  # type: ignore[arg-type]
                )
            )
        except Exception:
            logger.exception("Failed to persist result for %s in job %s", domain, job_id)
            return "error"
        return detection.outcome

    def _flush(self, job: JobRecord, progress: JobProgress) -> None:
        try:
            self.store.update_job_progress(job.job_id, progress.completed, progress.failed)
        except Exception:
            logger.exception("Failed to store progress for job %s", job.job_id)
        self.publisher.publish(job.owner_id, progress.as_event("job_progress", job.job_id))

    def run(self, *, job_id: str, domains: list[str]) -> JobProgress | None:
        job = self.store.get_job(job_id)
        if job is None:
            logger.error("Job %s not found, aborting extraction", job_id)
            return None

        progress = JobProgress(total=len(domains))
        self.store.update_job_status(job_id, "running")
        logger.info("Extraction job %s started with %d domains", job_id, progress.total)

        if domains:
            workers = min(self.concurrency, len(domains))
            with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="extract") as pool:
                for domain, detection in zip(domains, pool.map(self._detect, domains)):
                    progress.record(self._record(job_id, domain, detection))
                    if progress.processed % self.flush_every == 0 or progress.processed == progress.total:
                        self._flush(job, progress)
        else:
            self._flush(job, progress)

        try:
            self.store.update_job_status(job_id, "completed")
        except Exception:
            logger.exception("Failed to mark job %s completed", job_id)
        self.publisher.publish(job.owner_id, progress.as_event("job_completed", job_id))
        logger.info(
            "Extraction job %s completed: %d completed, %d failed",
            job_id,
            progress.completed,
            progress.failed,
        )
        return progress
