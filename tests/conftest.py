import threading
import time
from pathlib import Path

import pytest

from tinderizer.pipeline import (
    ArticleExtractor,
    DeliveryError,
    EbookGenerator,
    FetchError,
    GenerationError,
    InMemoryStatusCache,
    LocalJobStorage,
    Mailer,
    NormalizedDocument,
    Pipeline,
    StoragePaths,
)


class FakeExtractor(ArticleExtractor):
    def __init__(self, fail_urls=(), crash_urls=(), delay=0.0):
        self.fail_urls = set(fail_urls)
        self.crash_urls = set(crash_urls)
        self.delay = delay
        self.calls = []
        self._lock = threading.Lock()

    def _record(self, kind, url):
        with self._lock:
            self.calls.append((kind, url))
        if self.delay:
            time.sleep(self.delay)
        if url in self.fail_urls:
            raise FetchError(f"could not fetch {url}")
        if url in self.crash_urls:
            raise RuntimeError(f"unexpected fault for {url}")

    def extract(self, url, workdir: Path) -> NormalizedDocument:
        self._record("extract", url)
        (workdir / "image-1.png").write_bytes(b"\x89PNG")
        return NormalizedDocument(
            url=url,
            title=f"Article at {url}",
            html='<p>Hello</p><img src="image-1.png">',
            domain="example.com",
            images=["image-1.png"],
        )

    def normalize(self, url, html, workdir: Path) -> NormalizedDocument:
        self._record("normalize", url)
        return NormalizedDocument(url=url, title="Supplied", html=html, domain="example.com")


class FakeGenerator(EbookGenerator):
    def __init__(self, fail=False):
        self.fail = fail
        self.outputs = []
        self._lock = threading.Lock()

    def convert(self, document, workdir: Path) -> Path:
        if self.fail:
            raise GenerationError("generator exited 1 without output")
        path = workdir / "article.mobi"
        path.write_bytes(b"MOBI" + document.title.encode("utf-8"))
        with self._lock:
            self.outputs.append(path)
        return path


class FakeMailer(Mailer):
    def __init__(self, fail=False):
        self.fail = fail
        self.sent = []
        self._lock = threading.Lock()

    def send(self, email, attachment: Path, title: str) -> None:
        if self.fail:
            raise DeliveryError("connection refused")
        with self._lock:
            self.sent.append((email, attachment.name, title, attachment.read_bytes()))


class RecordingStorage(LocalJobStorage):
    """
    Local storage that remembers every cleanup call.
    """

    def __init__(self, paths: StoragePaths):
        super().__init__(paths)
        self.removed = []
        self._lock = threading.Lock()

    def remove_job_dir(self, key: str) -> None:
        with self._lock:
            self.removed.append(key)
        super().remove_job_dir(key)


@pytest.fixture
def storage(tmp_path):
    return RecordingStorage(StoragePaths(tmp_path / "jobs"))


@pytest.fixture
def make_pipeline(storage):
    created = []

    def factory(extractor=None, generator=None, mailer=None, cache=None, start=True, **kwargs):
        pipeline = Pipeline(
            cache=InMemoryStatusCache() if cache is None else cache,
            extractor=extractor or FakeExtractor(),
            generator=generator or FakeGenerator(),
            mailer=mailer or FakeMailer(),
            storage=storage,
            **kwargs,
        )
        created.append(pipeline)
        return pipeline.start() if start else pipeline

    yield factory
    for pipeline in created:
        pipeline.stop(timeout=5)
