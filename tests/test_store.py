import pytest

from graphyy.artifact import build_artifact
from graphyy.job import InvalidRepositoryError, JobStatus
from graphyy.models import FileRecord
from graphyy.store import JobStore, PersistenceError

from conftest import REPO_URL


def _artifact(content: str = "import b from './b'\n"):
    return build_artifact([FileRecord(path="a.ts", content=content), FileRecord(path="b.ts")])


def test_create_and_get(store):
    job = store.create_job(REPO_URL, requested_by="alice")
    assert job.status == JobStatus.PENDING
    assert (job.repo_owner, job.repo_name) == ("acme", "demo")

    loaded = store.get(job.id)
    assert loaded.id == job.id
    assert loaded.requested_by == "alice"
    assert loaded.error is None
    assert store.get("missing") is None


def test_create_rejects_non_github_urls(store):
    with pytest.raises(InvalidRepositoryError):
        store.create_job("https://gitlab.com/a/b")


def test_claim_is_at_most_once(store):
    job = store.create_job(REPO_URL)
    assert store.claim(job.id) is True
    assert store.claim(job.id) is False
    assert store.get(job.id).status == JobStatus.PROCESSING


def test_two_stores_on_one_database_share_one_claim(tmp_path):
    url = f"sqlite:///{tmp_path / 'shared.db'}"
    first = JobStore.from_url(url)
    second = JobStore.from_url(url)
    job = first.create_job(REPO_URL)
    assert [first.claim(job.id), second.claim(job.id)] == [True, False]


def test_claim_oldest_pending_goes_in_creation_order(store):
    a = store.create_job(REPO_URL)
    b = store.create_job("https://github.com/acme/other")

    claimed = store.claim_oldest_pending()
    assert claimed.id == a.id
    assert claimed.status == JobStatus.PROCESSING
    assert store.claim_oldest_pending().id == b.id
    assert store.claim_oldest_pending() is None


def test_complete_stores_artifact_and_status(store):
    job = store.create_job(REPO_URL)
    store.claim(job.id)
    artifact = _artifact()
    store.complete(job.id, artifact)

    assert store.get(job.id).status == JobStatus.COMPLETED
    assert store.get_artifact(job.id) == artifact
    assert len(store.get_artifact_sha256(job.id)) == 64


def test_complete_is_an_upsert(store):
    job = store.create_job(REPO_URL)
    store.complete(job.id, _artifact())
    replacement = _artifact(content="")
    store.complete(job.id, replacement)

    assert store.get_artifact(job.id) == replacement
    assert store.get_artifact(job.id).edges == []


def test_fail_records_message(store):
    job = store.create_job(REPO_URL)
    store.fail(job.id, "Repository acme/demo not found")
    loaded = store.get(job.id)
    assert loaded.status == JobStatus.FAILED
    assert loaded.error == "Repository acme/demo not found"
    assert store.get_artifact(job.id) is None


def test_unknown_job_writes_raise(store):
    with pytest.raises(PersistenceError):
        store.fail("nope", "boom")
