from graphyy.job import JobStatus
from graphyy.worker import Worker

from conftest import REPO_URL, FakeFetcher


def test_run_once_with_empty_queue(store, fetcher, settings):
    worker = Worker(store=store, fetcher=fetcher, settings=settings)
    assert worker.run_once() is None
    assert fetcher.calls == []


def test_run_once_processes_the_oldest_job(store, fetcher, settings):
    first = store.create_job(REPO_URL)
    second = store.create_job("https://github.com/acme/other")
    worker = Worker(store=store, fetcher=fetcher, settings=settings)

    outcome = worker.run_once()
    assert outcome.job_id == first.id
    assert outcome.status == JobStatus.COMPLETED
    assert store.get(first.id).status == JobStatus.COMPLETED
    assert store.get(second.id).status == JobStatus.PENDING


def test_run_forever_drains_queue_and_keeps_going_after_failures(store, settings):
    ok = store.create_job(REPO_URL)
    worker = Worker(store=store, fetcher=FakeFetcher(), settings=settings)
    bad_worker = Worker(store=store, fetcher=FakeFetcher(repo_error="GitHub API error: 502"), settings=settings)

    bad = store.create_job("https://github.com/acme/broken")
    assert worker.run_once().job_id == ok.id
    assert bad_worker.run_forever(max_iterations=3) == 1

    assert store.get(ok.id).status == JobStatus.COMPLETED
    failed = store.get(bad.id)
    assert failed.status == JobStatus.FAILED
    assert failed.error == "GitHub API error: 502"


def test_poll_errors_do_not_stop_the_loop(store, fetcher, settings):
    worker = Worker(store=store, fetcher=fetcher, settings=settings)
    calls = []

    def flaky():
        calls.append(1)
        raise RuntimeError("database unavailable")

    worker.store.claim_oldest_pending = flaky
    assert worker.run_forever(max_iterations=2) == 0
    assert len(calls) == 2


def test_stop_ends_the_loop(store, fetcher, settings):
    worker = Worker(store=store, fetcher=fetcher, settings=settings)
    worker.stop()
    assert worker.run_forever() == 0
