# graphyy/store.py
"""
Job and artifact persistence (SQLAlchemy).

The only shared mutable state in the system lives here. Two guarantees:
- claiming a job is a conditional update, so at most one process moves it out of PENDING
- artifacts are upserted by job id, so re-running a job overwrites rather than duplicates
"""
from __future__ import annotations

import uuid
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Generator

import structlog
from sqlalchemy import JSON, DateTime, ForeignKey, String, Text, create_engine, select, update
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column, sessionmaker
from sqlalchemy.pool import StaticPool

from graphyy.job import Job, JobStatus, require_github_repo
from graphyy.models import Artifact
from graphyy.utils import sha256_text, utc_now

logger = structlog.get_logger(__name__)

# A lost claim race moves on to the next-oldest candidate at most this many times per call.
MAX_CLAIM_ATTEMPTS = 5


class PersistenceError(RuntimeError):
    pass


class Base(DeclarativeBase):
    pass


class AnalysisRow(Base):
    """`analyses` table."""

    __tablename__ = "analyses"

    id: Mapped[str] = mapped_column(String(32), primary_key=True)
    repo_owner: Mapped[str] = mapped_column(String(255), nullable=False)
    repo_name: Mapped[str] = mapped_column(String(255), nullable=False)
    repo_url: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, index=True, default=JobStatus.PENDING.value)
    error: Mapped[str | None] = mapped_column(Text, nullable=True)
    requested_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utc_now)


class GraphArtifactRow(Base):
    """`graph_artifacts` table, one row per analysis."""

    __tablename__ = "graph_artifacts"

    analysis_id: Mapped[str] = mapped_column(ForeignKey("analyses.id"), primary_key=True)
    nodes: Mapped[Any] = mapped_column(JSON, nullable=False)
    edges: Mapped[Any] = mapped_column(JSON, nullable=False)
    file_tree: Mapped[Any] = mapped_column(JSON, nullable=False)
    file_roles: Mapped[Any] = mapped_column(JSON, nullable=False)
    content_sha256: Mapped[str] = mapped_column(String(64), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utc_now)


def create_db_engine(database_url: str) -> Engine:
    if database_url.startswith("sqlite"):
        kwargs: dict[str, Any] = {"connect_args": {"check_same_thread": False}}
        if database_url in ("sqlite://", "sqlite:///:memory:"):
            # one shared connection, otherwise every session sees its own empty database
            kwargs["poolclass"] = StaticPool
        return create_engine(database_url, **kwargs)
    return create_engine(database_url, pool_pre_ping=True)


class JobStore:
    def __init__(self, engine: Engine):
        self.engine = engine
        self._session_factory = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)

    @classmethod
    def from_url(cls, database_url: str, *, create_tables: bool = True) -> "JobStore":
        store = cls(create_db_engine(database_url))
        if create_tables:
            store.create_tables()
        return store

    def create_tables(self) -> None:
        Base.metadata.create_all(self.engine)

    @contextmanager
    def session(self) -> Generator[Session, None, None]:
        """Commit on success, roll back on any exception; SQLAlchemy errors surface as PersistenceError."""
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            logger.warning("db_transaction_rolled_back", error=str(e))
            raise PersistenceError(str(e)) from e
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    # -----------------------------
    # Jobs
    # -----------------------------

    def create_job(self, repo_url: str, *, requested_by: str | None = None) -> Job:
        owner, name = require_github_repo(repo_url)
        now = utc_now()
        row = AnalysisRow(
            id=uuid.uuid4().hex,
            repo_owner=owner,
            repo_name=name,
            repo_url=repo_url,
            status=JobStatus.PENDING.value,
            requested_by=requested_by,
            created_at=now,
            updated_at=now,
        )
        with self.session() as s:
            s.add(row)
        logger.info("job_created", job_id=row.id, repo=f"{owner}/{name}")
        return Job.model_validate(row)

    def get(self, job_id: str) -> Job | None:
        with self.session() as s:
            row = s.get(AnalysisRow, job_id)
            return Job.model_validate(row) if row is not None else None

    def claim(self, job_id: str) -> bool:
        """PENDING -> PROCESSING, only if the row is still PENDING at update time."""
        with self.session() as s:
            res = s.execute(
                update(AnalysisRow)
                .where(AnalysisRow.id == job_id, AnalysisRow.status == JobStatus.PENDING.value)
                .values(status=JobStatus.PROCESSING.value, updated_at=utc_now())
            )
            claimed = res.rowcount == 1
        if claimed:
            logger.info("job_claimed", job_id=job_id)
        return claimed

    def claim_oldest_pending(self) -> Job | None:
        for _ in range(MAX_CLAIM_ATTEMPTS):
            with self.session() as s:
                job_id = s.execute(
                    select(AnalysisRow.id)
                    .where(AnalysisRow.status == JobStatus.PENDING.value)
                    .order_by(AnalysisRow.created_at.asc(), AnalysisRow.id.asc())
                    .limit(1)
                ).scalar_one_or_none()
            if job_id is None:
                return None
            if self.claim(job_id):
                return self.get(job_id)
            logger.info("job_claim_lost", job_id=job_id)
        return None

    def complete(self, job_id: str, artifact: Artifact) -> None:
        """Upsert the artifact and mark COMPLETED in one transaction."""
        data = artifact.to_dict()
        digest = sha256_text(artifact.to_json())
        now = utc_now()
        with self.session() as s:
            row = s.get(GraphArtifactRow, job_id)
            if row is None:
                row = GraphArtifactRow(analysis_id=job_id, created_at=now)
                s.add(row)
            row.nodes = data["nodes"]
            row.edges = data["edges"]
            row.file_tree = data["fileTree"]
            row.file_roles = data["fileRoles"]
            row.content_sha256 = digest
            row.updated_at = now

            res = s.execute(
                update(AnalysisRow)
                .where(AnalysisRow.id == job_id)
                .values(status=JobStatus.COMPLETED.value, error=None, updated_at=now)
            )
            if res.rowcount != 1:
                raise PersistenceError(f"Analysis {job_id} not found")

    def fail(self, job_id: str, message: str) -> None:
        with self.session() as s:
            res = s.execute(
                update(AnalysisRow)
                .where(AnalysisRow.id == job_id)
                .values(status=JobStatus.FAILED.value, error=message, updated_at=utc_now())
            )
            if res.rowcount != 1:
                raise PersistenceError(f"Analysis {job_id} not found")

    # -----------------------------
    # Artifacts
    # -----------------------------

    def get_artifact(self, job_id: str) -> Artifact | None:
        with self.session() as s:
            row = s.get(GraphArtifactRow, job_id)
            if row is None:
                return None
            return Artifact.from_dict(
                {
                    "nodes": row.nodes,
                    "edges": row.edges,
                    "fileTree": row.file_tree,
                    "fileRoles": row.file_roles,
                }
            )

    def get_artifact_sha256(self, job_id: str) -> str | None:
        with self.session() as s:
            row = s.get(GraphArtifactRow, job_id)
            return row.content_sha256 if row is not None else None
