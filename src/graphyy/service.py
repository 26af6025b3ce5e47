# graphyy/service.py
from __future__ import annotations

import threading
import time
from typing import Any, Callable

import structlog

from graphyy.config import Settings
from graphyy.github import SnapshotFetcher
from graphyy.job import JobStatus
from graphyy.pipeline import build_uploader, run_analysis
from graphyy.s3_uploader import S3Uploader
from graphyy.store import JobStore

logger = structlog.get_logger(__name__)


class JobNotFoundError(LookupError):
    pass


class AnalysisService:
    """
    The job lifecycle as seen from outside:
    - submit(repo_url) -> {"jobId", "status": "PENDING"}
    - poll(job_id) -> {"status", "artifact" (COMPLETED only), "error" (FAILED only), ...}
    - analyse_inline(repo_url): submit + run in the background + poll within a wall-clock budget
    """

    def __init__(
            self,
            *,
            store: JobStore,
            fetcher: SnapshotFetcher,
            settings: Settings,
            uploader: S3Uploader | None = None,
            clock: Callable[[], float] = time.monotonic,
            sleep: Callable[[float], None] = time.sleep,
    ):
        self.store = store
        self.fetcher = fetcher
        self.settings = settings
        self.uploader = uploader if uploader is not None else build_uploader(settings)
        self._clock = clock
        self._sleep = sleep

    def submit(self, repo_url: str, *, requested_by: str | None = None) -> dict[str, Any]:
        job = self.store.create_job(repo_url, requested_by=requested_by)
        return {"jobId": job.id, "status": job.status.value}

    def poll(self, job_id: str) -> dict[str, Any]:
        job = self.store.get(job_id)
        if job is None:
            raise JobNotFoundError(f"Analysis {job_id} not found")

        artifact = None
        if job.status == JobStatus.COMPLETED:
            stored = self.store.get_artifact(job_id)
            artifact = stored.to_dict() if stored is not None else None

        return {
            "id": job.id,
            "status": job.status.value,
            "error": job.error if job.status == JobStatus.FAILED else None,
            "artifact": artifact,
            "repo": {"owner": job.repo_owner, "name": job.repo_name, "fullName": job.repo_full_name},
            "createdAt": job.created_at.isoformat() if job.created_at else None,
        }

    def run(self, job_id: str):
        return run_analysis(
            job_id,
            store=self.store,
            fetcher=self.fetcher,
            settings=self.settings,
            uploader=self.uploader,
        )

    def start_background(self, job_id: str) -> threading.Thread:
        """Not a daemon: the job finishes even if nobody is polling anymore."""
        t = threading.Thread(target=self.run, args=(job_id,), name=f"graphyy-job-{job_id[:8]}")
        t.start()
        return t

    def wait_for_job(
            self, job_id: str, *, budget_seconds: float | None = None, interval_seconds: float = 1.0
    ) -> dict[str, Any]:
        """
        Poll until the job is terminal or the budget runs out.

        Giving up is purely local: nothing is signalled to the pipeline, which
        may still complete or fail afterwards.
        """
        budget = self.settings.inline_budget_seconds if budget_seconds is None else budget_seconds
        deadline = self._clock() + max(0.0, budget)

        while True:
            view = self.poll(job_id)
            if JobStatus(view["status"]).is_terminal:
                view["timedOut"] = False
                return view
            remaining = deadline - self._clock()
            if remaining <= 0:
                logger.info("inline_budget_exhausted", job_id=job_id, status=view["status"], budget_seconds=budget)
                view["timedOut"] = True
                return view
            self._sleep(min(interval_seconds, remaining))

    def analyse_inline(
            self,
            repo_url: str,
            *,
            requested_by: str | None = None,
            budget_seconds: float | None = None,
            interval_seconds: float = 1.0,
    ) -> dict[str, Any]:
        submitted = self.submit(repo_url, requested_by=requested_by)
        job_id = submitted["jobId"]
        self.start_background(job_id)
        return self.wait_for_job(job_id, budget_seconds=budget_seconds, interval_seconds=interval_seconds)
