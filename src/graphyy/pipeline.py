# graphyy/pipeline.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional, TypedDict

import structlog

from graphyy.artifact import build_artifact
from graphyy.config import Settings
from graphyy.content_filter import select_snapshot_files
from graphyy.github import RepoInfo, SnapshotFetcher, TreeEntry
from graphyy.job import Job, JobStatus
from graphyy.models import Artifact, FileRecord
from graphyy.s3_uploader import S3Uploader
from graphyy.store import JobStore
from graphyy.utils import sha256_text
from graphyy.validate import validate_artifact

try:
    from langgraph.graph import END, StateGraph
except Exception as e:  # pragma: no cover
    raise RuntimeError("LangGraph is required. Install 'langgraph'.") from e

logger = structlog.get_logger(__name__)


# -----------------------------
# Stages (canonical)
# -----------------------------
STAGE_INIT = "init"
STAGE_CLAIM = "claim"
STAGE_LOAD_JOB = "load_job"
STAGE_FETCH_REPO = "fetch_repo"
STAGE_FETCH_CONTENTS = "fetch_contents"
STAGE_BUILD_GRAPH = "build_graph"
STAGE_VALIDATE = "validate"
STAGE_PERSIST = "persist"
STAGE_EMIT_RESULT = "emit_result"
STAGE_DONE = "done"


class PipelineStageError(RuntimeError):
    def __init__(self, stage: str, inner: Exception):
        super().__init__(str(inner))
        self.stage = stage
        self.inner = inner


class JobStateError(RuntimeError):
    """The job is missing or not PROCESSING; nothing about it may be written."""


@dataclass(frozen=True)
class PipelineContext:
    store: JobStore
    fetcher: SnapshotFetcher
    settings: Settings
    uploader: S3Uploader | None = None


class AnalysisState(TypedDict, total=False):
    job_id: str
    context: PipelineContext
    stage: str

    job: Job
    repo_info: RepoInfo
    entries: list[TreeEntry]

    files: list[FileRecord]
    fetch_failures: dict[str, str]  # {path: error}

    artifact: Artifact
    artifact_sha256: str
    s3_uri: Optional[str]

    result: dict[str, Any]


@dataclass(frozen=True)
class AnalysisOutcome:
    job_id: str
    status: JobStatus | None
    claimed: bool = True
    error: str | None = None
    stage: str | None = None
    failure_recorded: bool = True
    result: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "job_id": self.job_id,
            "status": self.status.value if self.status else None,
            "claimed": self.claimed,
            "error": self.error,
            "stage": self.stage,
            "failure_recorded": self.failure_recorded,
            "result": self.result,
        }


def node_load_job(state: AnalysisState) -> AnalysisState:
    stage = STAGE_LOAD_JOB
    try:
        ctx = state["context"]
        job = ctx.store.get(state["job_id"])
        if job is None:
            raise JobStateError(f"Analysis {state['job_id']} not found")
        if job.status != JobStatus.PROCESSING:
            raise JobStateError(f"Analysis {job.id} is {job.status.value}, expected PROCESSING")
        state["stage"] = stage
        state["job"] = job
        return state
    except Exception as e:
        raise PipelineStageError(stage, e) from e


def node_fetch_repo(state: AnalysisState) -> AnalysisState:
    """Repository metadata + file list. Any failure here is fatal for the job."""
    stage = STAGE_FETCH_REPO
    try:
        ctx = state["context"]
        job = state["job"]
        info = ctx.fetcher.fetch_repo_info(job.repo_owner, job.repo_name)
        listed = ctx.fetcher.list_files(job.repo_owner, job.repo_name, info.default_branch)
        entries = select_snapshot_files(listed, max_files=ctx.settings.max_files)

        logger.info(
            "snapshot_listed",
            job_id=job.id,
            repo=info.full_name,
            ref=info.default_branch,
            files_listed=len(listed),
            files_selected=len(entries),
        )
        state["stage"] = stage
        state["repo_info"] = info
        state["entries"] = entries
        return state
    except Exception as e:
        raise PipelineStageError(stage, e) from e


def node_fetch_contents(state: AnalysisState) -> AnalysisState:
    """
    Content fan-out:
    - eligible files are fetched concurrently (bounded)
    - a per-file failure keeps the file as a node without content
    """
    stage = STAGE_FETCH_CONTENTS
    try:
        ctx = state["context"]
        job = state["job"]
        entries = state.get("entries", [])

        outcomes = ctx.fetcher.fetch_contents(
            job.repo_owner,
            job.repo_name,
            entries,
            concurrency=ctx.settings.fetch_concurrency,
        )

        files: list[FileRecord] = []
        failures: dict[str, str] = {}
        for o in outcomes:
            if o.error is not None:
                failures[o.path] = o.error
            files.append(FileRecord(path=o.path, content=o.content, size=o.size))

        if failures:
            logger.warning(
                "content_fetch_partial",
                job_id=job.id,
                failed=len(failures),
                sample=sorted(failures)[:5],
            )
        logger.info(
            "content_fetched",
            job_id=job.id,
            files=len(files),
            with_content=sum(1 for f in files if f.content),
        )

        state["stage"] = stage
        state["files"] = files
        state["fetch_failures"] = failures
        return state
    except Exception as e:
        raise PipelineStageError(stage, e) from e


def node_build_graph(state: AnalysisState) -> AnalysisState:
    stage = STAGE_BUILD_GRAPH
    try:
        artifact = build_artifact(state.get("files", []))
        state["stage"] = stage
        state["artifact"] = artifact
        state["artifact_sha256"] = sha256_text(artifact.to_json())
        return state
    except Exception as e:
        raise PipelineStageError(stage, e) from e


def node_validate(state: AnalysisState) -> AnalysisState:
    stage = STAGE_VALIDATE
    try:
        validate_artifact(state["artifact"], [f.path for f in state.get("files", [])])
        state["stage"] = stage
        return state
    except Exception as e:
        raise PipelineStageError(stage, e) from e


def node_persist(state: AnalysisState) -> AnalysisState:
    """Upsert keyed by job id (idempotent); the COMPLETED transition rides on the same write.

    The S3 mirror is written only after that commit. A mirror failure is logged
    and leaves the job COMPLETED with ``s3_uri`` unset.
    """
    stage = STAGE_PERSIST
    try:
        ctx = state["context"]
        job = state["job"]
        artifact = state["artifact"]

        ctx.store.complete(job.id, artifact)

        s3_uri: str | None = None
        if ctx.uploader is not None:
            try:
                s3_uri = ctx.uploader.put_artifact(job.id, artifact)
            except Exception as e:  # noqa: BLE001 - the job is already COMPLETED
                logger.warning(
                    "artifact_mirror_failed",
                    job_id=job.id,
                    error=f"{type(e).__name__}: {e}",
                )

        state["stage"] = stage
        state["s3_uri"] = s3_uri
        return state
    except Exception as e:
        raise PipelineStageError(stage, e) from e


def node_emit_result(state: AnalysisState) -> AnalysisState:
    stage = STAGE_EMIT_RESULT
    try:
        job = state["job"]
        artifact = state["artifact"]
        info = state["repo_info"]
        files = state.get("files", [])
        state["result"] = {
            "ok": True,
            "stage": STAGE_DONE,
            "job_id": job.id,
            "repo": info.full_name,
            "ref": info.default_branch,
            "counts": {
                "files": len(files),
                "files_with_content": sum(1 for f in files if f.content),
                "content_fetch_failures": len(state.get("fetch_failures", {})),
                "nodes": len(artifact.nodes),
                "edges": len(artifact.edges),
            },
            "artifact_sha256": state.get("artifact_sha256"),
            "s3_uri": state.get("s3_uri"),
        }
        state["stage"] = stage
        return state
    except Exception as e:
        raise PipelineStageError(stage, e) from e


def build_analysis_graph():
    g = StateGraph(AnalysisState)

    g.add_node("load_job", node_load_job)
    g.add_node("fetch_repo", node_fetch_repo)
    g.add_node("fetch_contents", node_fetch_contents)
    g.add_node("build_graph", node_build_graph)
    g.add_node("validate_artifact", node_validate)
    g.add_node("persist", node_persist)
    g.add_node("emit_result", node_emit_result)

    g.set_entry_point("load_job")
    g.add_edge("load_job", "fetch_repo")
    g.add_edge("fetch_repo", "fetch_contents")
    g.add_edge("fetch_contents", "build_graph")
    g.add_edge("build_graph", "validate_artifact")
    g.add_edge("validate_artifact", "persist")
    g.add_edge("persist", "emit_result")
    g.add_edge("emit_result", END)

    return g.compile()


def build_uploader(settings: Settings) -> S3Uploader | None:
    if not settings.s3_bucket:
        return None
    return S3Uploader(bucket=settings.s3_bucket, prefix=settings.s3_prefix, region=settings.aws_region)


def run_analysis(
        job_id: str,
        *,
        store: JobStore,
        fetcher: SnapshotFetcher,
        settings: Settings | None = None,
        uploader: S3Uploader | None = None,
        claim: bool = True,
) -> AnalysisOutcome:
    """
    Drive one job from PENDING to a terminal state.

    Contract:
    - claim=True: PENDING -> PROCESSING here; a job someone else holds is left alone
    - claim=False: the caller already claimed it (worker path)
    - a job that is missing or not PROCESSING when loaded is not written to
    - any stage error -> FAILED with the error message, no artifact
    - if writing FAILED itself fails, that is logged as an alarm and reported
      on the outcome (failure_recorded=False), never raised
    - no retries
    """
    settings = settings or Settings()
    log = logger.bind(job_id=job_id)

    if claim:
        try:
            claimed = store.claim(job_id)
        except Exception as e:
            log.error("job_claim_failed", error=str(e))
            return AnalysisOutcome(job_id=job_id, status=None, claimed=False, error=str(e), stage=STAGE_CLAIM)
        if not claimed:
            log.info("job_not_claimable")
            return AnalysisOutcome(job_id=job_id, status=None, claimed=False)

    app = build_analysis_graph()
    state: AnalysisState = {
        "job_id": job_id,
        "context": PipelineContext(store=store, fetcher=fetcher, settings=settings, uploader=uploader),
        "stage": STAGE_INIT,
    }

    try:
        final_state = app.invoke(state)
    except Exception as e:  # noqa: BLE001 - every failure becomes a FAILED job
        stage = e.stage if isinstance(e, PipelineStageError) else "unknown"
        message = str(e) or type(e).__name__
        if isinstance(e, PipelineStageError) and isinstance(e.inner, JobStateError):
            log.warning("job_not_processable", error=message)
            return AnalysisOutcome(job_id=job_id, status=None, claimed=False, error=message, stage=stage)
        log.error("job_failed", stage=stage, error=message)
        try:
            store.fail(job_id, message)
        except Exception as record_err:  # noqa: BLE001
            log.critical(
                "job_failure_not_recorded",
                alarm=True,
                stage=stage,
                error=message,
                record_error=str(record_err),
            )
            return AnalysisOutcome(
                job_id=job_id,
                status=JobStatus.FAILED,
                error=message,
                stage=stage,
                failure_recorded=False,
            )
        return AnalysisOutcome(job_id=job_id, status=JobStatus.FAILED, error=message, stage=stage)

    result = final_state.get("result") or {}
    log.info("job_completed", nodes=result.get("counts", {}).get("nodes"), edges=result.get("counts", {}).get("edges"))
    return AnalysisOutcome(job_id=job_id, status=JobStatus.COMPLETED, stage=STAGE_DONE, result=result)
