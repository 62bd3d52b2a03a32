import logging
import threading
import time
from dataclasses import replace
from datetime import datetime, timedelta, timezone

import pytest

from conftest import FakeExtractor, FakeGenerator, FakeMailer
from tinderizer.pipeline import InMemoryStatusCache, Job, ValidationError
from tinderizer.pipeline import status
from tinderizer.pipeline.stages import CleanupStage

URL = "http://example.com/article"
EMAIL = "a@b.com"


def test_success_path_delivers_and_cleans_up(make_pipeline, storage):
    generator = FakeGenerator()
    mailer = FakeMailer()
    pipeline = make_pipeline(generator=generator, mailer=mailer)

    job = pipeline.submit(EMAIL, URL)
    pipeline.join()

    report = pipeline.lookup(job.key)
    assert report.done
    assert report.message == status.DONE
    assert len(mailer.sent) == 1
    email, filename, title, payload = mailer.sent[0]
    assert email == EMAIL
    assert filename == "article.mobi"
    assert title == f"Article at {URL}"
    assert payload.startswith(b"MOBI")
    assert storage.removed == [job.key]
    assert not generator.outputs[0].exists()
    assert not storage.job_dir_exists(job.key)


def test_extraction_failure_diverts_to_cleanup(make_pipeline, storage):
    generator = FakeGenerator()
    mailer = FakeMailer()
    pipeline = make_pipeline(extractor=FakeExtractor(fail_urls={URL}), generator=generator, mailer=mailer)

    job = pipeline.submit(EMAIL, URL)
    pipeline.join()

    report = pipeline.lookup(job.key)
    assert report.done
    assert "failed" in report.message.lower()
    assert generator.outputs == []
    assert mailer.sent == []
    assert storage.removed == [job.key]


def test_conversion_failure_diverts_to_cleanup(make_pipeline, storage):
    mailer = FakeMailer()
    pipeline = make_pipeline(generator=FakeGenerator(fail=True), mailer=mailer)

    job = pipeline.submit(EMAIL, URL)
    pipeline.join()

    report = pipeline.lookup(job.key)
    assert report.message == status.CONVERSION_FAILED
    assert report.done
    assert mailer.sent == []
    assert storage.removed == [job.key]
    assert not storage.job_dir_exists(job.key)


def test_delivery_failure_still_cleans_up(make_pipeline, storage):
    pipeline = make_pipeline(mailer=FakeMailer(fail=True))

    job = pipeline.submit(EMAIL, URL)
    pipeline.join()

    report = pipeline.lookup(job.key)
    assert report.message == status.DELIVERY_FAILED
    assert report.done
    assert storage.removed == [job.key]


def test_crashing_job_does_not_stop_the_worker(make_pipeline, storage):
    bad_url = "http://example.com/bad"
    mailer = FakeMailer()
    pipeline = make_pipeline(extractor=FakeExtractor(crash_urls={bad_url}), mailer=mailer)

    bad = pipeline.submit(EMAIL, bad_url)
    good = pipeline.submit(EMAIL, URL)
    pipeline.join()

    assert pipeline.lookup(bad.key).message == status.CRASHED
    assert pipeline.lookup(bad.key).done
    assert pipeline.lookup(good.key).message == status.DONE
    assert len(mailer.sent) == 1
    assert sorted(storage.removed) == sorted([bad.key, good.key])


def test_stage_returning_no_outcome_is_diverted(make_pipeline, storage):
    pipeline = make_pipeline(start=False)
    pipeline.conversion.process = lambda job: None
    pipeline.start()

    job = pipeline.submit(EMAIL, URL)
    pipeline.join()

    assert pipeline.lookup(job.key).message == status.CRASHED
    assert storage.removed == [job.key]


def test_supplied_content_skips_fetch(make_pipeline):
    extractor = FakeExtractor()
    pipeline = make_pipeline(extractor=extractor)

    job = pipeline.submit(EMAIL, URL, content="<html><body><p>Saved page</p></body></html>")
    pipeline.join()

    assert extractor.calls == [("normalize", URL)]
    assert pipeline.lookup(job.key).done


def test_invalid_submission_never_enters_the_pipeline(make_pipeline):
    cache = InMemoryStatusCache()
    pipeline = make_pipeline(cache=cache, start=False)

    with pytest.raises(ValidationError):
        pipeline.submit("not-an-email", URL)
    with pytest.raises(ValidationError):
        pipeline.submit(EMAIL, "not-a-url")

    assert all(depth == 0 for depth in pipeline.queue_depths().values())
    assert len(cache) == 0


def test_blacklisted_domain_is_rejected(make_pipeline):
    pipeline = make_pipeline(start=False, blacklist=("spam.example",))

    with pytest.raises(ValidationError):
        pipeline.submit(EMAIL, "https://www.spam.example/post")
    assert pipeline.queue_depths()["extraction"] == 0


def test_status_is_working_as_soon_as_submit_returns(make_pipeline):
    pipeline = make_pipeline(start=False)

    job = pipeline.submit(EMAIL, URL)

    report = pipeline.lookup(job.key)
    assert report.message == status.WORKING
    assert not report.done
    assert pipeline.queue_depths()["extraction"] == 1


def test_keys_are_unique_for_identical_submissions(make_pipeline):
    pipeline = make_pipeline(start=False, queue_size=5)

    keys = {pipeline.submit(EMAIL, URL).key for _ in range(5)}

    assert len(keys) == 5
    assert all(len(key) == 36 for key in keys)


def test_concurrent_submissions_each_reach_cleanup_once(make_pipeline, storage):
    mailer = FakeMailer()
    pipeline = make_pipeline(mailer=mailer, workers_per_stage=3, queue_size=10)
    keys = []
    lock = threading.Lock()

    def submit(i):
        job = pipeline.submit(f"reader{i}@example.com", f"http://example.com/{i}")
        with lock:
            keys.append(job.key)

    threads = [threading.Thread(target=submit, args=(i,)) for i in range(25)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    pipeline.join()

    assert len(set(keys)) == 25
    assert sorted(storage.removed) == sorted(keys)
    assert len(mailer.sent) == 25
    assert all(pipeline.lookup(key).done for key in keys)


def test_single_worker_processes_in_submission_order(make_pipeline):
    extractor = FakeExtractor()
    pipeline = make_pipeline(extractor=extractor)
    urls = [f"http://example.com/{i}" for i in range(5)]

    for url in urls:
        pipeline.submit(EMAIL, url)
    pipeline.join()

    assert [url for _, url in extractor.calls] == urls


def test_full_input_queue_blocks_submission(make_pipeline):
    pipeline = make_pipeline(start=False, queue_size=1)
    pipeline.submit(EMAIL, URL)
    submitted = threading.Event()

    def submit_second():
        pipeline.submit(EMAIL, URL)
        submitted.set()

    thread = threading.Thread(target=submit_second, daemon=True)
    thread.start()
    time.sleep(0.2)
    assert not submitted.is_set()

    pipeline.start()
    assert submitted.wait(timeout=5)
    pipeline.join()


def test_stop_drains_queued_jobs(make_pipeline, storage):
    pipeline = make_pipeline(extractor=FakeExtractor(delay=0.01))
    keys = [pipeline.submit(EMAIL, f"http://example.com/{i}").key for i in range(5)]

    pipeline.stop(timeout=5)

    assert not pipeline.running
    assert sorted(storage.removed) == sorted(keys)


def test_cleanup_writes_fallback_only_without_terminal_status(storage):
    cache = InMemoryStatusCache()
    stage = CleanupStage(storage, cache)
    unfinished = Job.create(EMAIL, URL, reporter=cache)
    failed = Job.create(EMAIL, URL, reporter=cache)
    unfinished.progress(status.CONVERTING)
    failed.progress(status.EXTRACTION_FAILED)

    stage.process(unfinished)
    stage.process(failed)

    assert cache.get(unfinished.key) == status.NO_RESULT
    assert status.is_done(status.NO_RESULT)
    assert cache.get(failed.key) == status.EXTRACTION_FAILED


def test_cleanup_error_is_swallowed(tmp_path):
    from tinderizer.pipeline import CleanupError, LocalJobStorage, StoragePaths

    class BrokenStorage(LocalJobStorage):
        def remove_job_dir(self, key):
            raise CleanupError("permission denied")

    cache = InMemoryStatusCache()
    stage = CleanupStage(BrokenStorage(StoragePaths(tmp_path)), cache)
    job = Job.create(EMAIL, URL, reporter=cache)
    job.progress(status.DONE)

    stage.process(job)

    assert cache.get(job.key) == status.DONE


def test_stop_timeout_keeps_downstream_stages_running(make_pipeline, storage):
    pipeline = make_pipeline(extractor=FakeExtractor(delay=0.5))
    keys = [pipeline.submit(EMAIL, f"http://example.com/{i}").key for i in range(2)]

    pipeline.stop(timeout=0.05)

    assert pipeline.running
    pipeline.stop(timeout=5)
    assert not pipeline.running
    assert sorted(storage.removed) == sorted(keys)
    for key in keys:
        assert pipeline.lookup(key).message == status.DONE


def test_cleanup_logs_time_since_submission(storage, caplog):
    caplog.set_level(logging.INFO, logger="tinderizer.pipeline.stages")
    cache = InMemoryStatusCache()
    job = Job.create(EMAIL, URL, reporter=cache)
    assert job.submitted_at.tzinfo is not None
    job = replace(job, submitted_at=datetime.now(timezone.utc) - timedelta(seconds=90))
    job.progress(status.DONE)

    CleanupStage(storage, cache).process(job)

    assert f"Job {job.key} finished 90." in caplog.text
