# graphyy/worker.py
from __future__ import annotations

import threading

import structlog

from graphyy.config import Settings
from graphyy.github import SnapshotFetcher
from graphyy.pipeline import AnalysisOutcome, build_uploader, run_analysis
from graphyy.s3_uploader import S3Uploader
from graphyy.store import JobStore

logger = structlog.get_logger(__name__)


class Worker:
    """
    Sequential claimant: one job in flight per worker process.

    Claims go through JobStore.claim_oldest_pending(), so several workers can
    share a database without processing the same job twice.
    """

    def __init__(
            self,
            *,
            store: JobStore,
            fetcher: SnapshotFetcher,
            settings: Settings,
            uploader: S3Uploader | None = None,
    ):
        self.store = store
        self.fetcher = fetcher
        self.settings = settings
        self.uploader = uploader if uploader is not None else build_uploader(settings)
        self._stop = threading.Event()

    def run_once(self) -> AnalysisOutcome | None:
        """Claim and process the oldest PENDING job; None when there is nothing to do."""
        job = self.store.claim_oldest_pending()
        if job is None:
            return None
        logger.info("worker_processing", job_id=job.id, repo=job.repo_full_name)
        return run_analysis(
            job.id,
            store=self.store,
            fetcher=self.fetcher,
            settings=self.settings,
            uploader=self.uploader,
            claim=False,
        )

    def run_forever(self, *, max_iterations: int | None = None) -> int:
        """
        Poll until stop() is called (or max_iterations polls have run).
        Returns the number of jobs processed. An error in one iteration is logged; the loop goes on.
        """
        processed = 0
        iterations = 0
        logger.info("worker_started", poll_interval_seconds=self.settings.poll_interval_seconds)
        while not self._stop.is_set():
            if max_iterations is not None and iterations >= max_iterations:
                break
            iterations += 1
            try:
                outcome = self.run_once()
            except Exception as e:  # noqa: BLE001 - keep polling
                logger.exception("worker_poll_failed", error=str(e))
                outcome = None
            if outcome is not None:
                processed += 1
                continue  # drain the queue before sleeping
            self._stop.wait(self.settings.poll_interval_seconds)
        logger.info("worker_stopped", processed=processed)
        return processed

    def stop(self) -> None:
        self._stop.set()
