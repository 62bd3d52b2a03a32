from __future__ import annotations

import logging
import queue
import threading
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Set

from . import status
from .config import PipelineConfig
from .delivery import Mailer, SmtpMailer
from .extraction import ArticleExtractor, ReadabilityExtractor
from .generation import EbookGenerator, KindleGenerator
from .models import Divert, Forward, Job, StageName, StageOutcome, StatusReport
from .stages import CleanupStage, ConversionStage, EmailStage, ExtractionStage, Stage
from .status import InMemoryStatusCache, RedisStatusCache, StatusCache
from .storage import LocalJobStorage, StoragePaths
from .validation import validate

logger = logging.getLogger(__name__)

_STOP = object()


class Pipeline:
    """
    Wires extraction -> conversion -> email -> cleanup with bounded queues and
    runs each stage on its own pool of worker threads.

    Every accepted job reaches the cleanup queue exactly once: stages only
    return a `Forward` or `Divert`, and the worker loop routes that outcome.
    A stage that raises, or returns anything else, is treated as a divert.
    Full queues block the producer, which is the only backpressure; that
    includes `submit` when the input queue is full.
    """

    def __init__(
        self,
        cache: StatusCache,
        extractor: ArticleExtractor,
        generator: EbookGenerator,
        mailer: Mailer,
        storage: LocalJobStorage,
        queue_size: int = 10,
        workers_per_stage: int = 1,
        blacklist: Iterable[str] = (),
    ):
        if queue_size < 1:
            raise ValueError("queue_size must be at least 1")
        if workers_per_stage < 1:
            raise ValueError("workers_per_stage must be at least 1")
        self.cache = cache
        self.storage = storage
        self.blacklist = tuple(blacklist)
        self.workers_per_stage = workers_per_stage

        self.incoming: queue.Queue = queue.Queue(maxsize=queue_size)
        self.converting: queue.Queue = queue.Queue(maxsize=queue_size)
        self.emailing: queue.Queue = queue.Queue(maxsize=queue_size)
        self.cleaning: queue.Queue = queue.Queue(maxsize=queue_size)

        self.extraction = ExtractionStage(extractor, storage)
        self.conversion = ConversionStage(generator, storage)
        self.email = EmailStage(mailer)
        self.cleanup = CleanupStage(storage, cache)

        self._hops = [
            (self.extraction, self.incoming, self.converting),
            (self.conversion, self.converting, self.emailing),
            (self.email, self.emailing, self.cleaning),
        ]
        self._threads: List[List[threading.Thread]] = []
        self._signalled: Set[int] = set()
        self._lock = threading.Lock()

    @property
    def running(self) -> bool:
        return bool(self._threads)

    def start(self) -> "Pipeline":
        with self._lock:
            if self._threads:
                return self
            for stage, inbox, forward in self._hops:
                self._threads.append(self._spawn(stage.name, self._run_stage, stage, inbox, forward))
            self._threads.append(self._spawn(self.cleanup.name, self._run_cleanup))
        logger.info("Pipeline started with %d worker(s) per stage", self.workers_per_stage)
        return self

    def stop(self, timeout: Optional[float] = None) -> None:
        """
        Drain and stop the workers stage by stage. Jobs already queued are
        processed before each stage's workers exit.

        A stage is only told to stop once every stage upstream of it has
        exited. If `timeout` expires while a stage is still busy, that stage
        and everything after it keep running, `running` stays true, and a
        later `stop()` finishes the shutdown. Workers are daemon threads, so
        jobs still in flight are lost if the process exits before then.
        """
        with self._lock:
            inboxes = [self.incoming, self.converting, self.emailing, self.cleaning]
            for index, (inbox, threads) in enumerate(zip(inboxes, self._threads)):
                if index not in self._signalled:
                    for _ in threads:
                        inbox.put(_STOP)
                    self._signalled.add(index)
                for thread in threads:
                    thread.join(timeout)
                busy = [thread.name for thread in threads if thread.is_alive()]
                if busy:
                    logger.warning("Stop timed out waiting for %s; later stages keep running", ", ".join(busy))
                    return
            self._threads = []
            self._signalled.clear()
        logger.info("Pipeline stopped")

    def join(self) -> None:
        """
        Block until every job submitted so far has been cleaned up.
        """
        for q in (self.incoming, self.converting, self.emailing, self.cleaning):
            q.join()

    def submit(self, email: str, url: str, content: Optional[str] = None) -> Job:
        validate(email, url, self.blacklist)
        job = Job.create(email, url, content=content, reporter=self.cache)
        job.progress(status.WORKING)
        self.incoming.put(job)
        logger.info("Queued job %s for %s", job.key, job.url)
        return job

    def lookup(self, key: str) -> StatusReport:
        return status.lookup(self.cache, key)

    def queue_depths(self) -> Dict[str, int]:
        return {
            StageName.EXTRACTION.value: self.incoming.qsize(),
            StageName.CONVERSION.value: self.converting.qsize(),
            StageName.EMAIL.value: self.emailing.qsize(),
            StageName.CLEANUP.value: self.cleaning.qsize(),
        }

    def _spawn(self, name: StageName, target, *args) -> List[threading.Thread]:
        threads = []
        for index in range(self.workers_per_stage):
            thread = threading.Thread(
                target=target,
                args=args,
                name=f"tinderizer-{name.value}-{index}",
                daemon=True,
            )
            thread.start()
            threads.append(thread)
        return threads

    def _run_stage(self, stage: Stage, inbox: queue.Queue, forward: queue.Queue) -> None:
        while True:
            job = inbox.get()
            try:
                if job is _STOP:
                    return
                outcome = self._process(stage, job)
                self._route(outcome, forward)
            finally:
                inbox.task_done()

    def _process(self, stage: Stage, job: Job) -> StageOutcome:
        try:
            outcome = stage.process(job)
        except Exception:  # noqa: BLE001
            logger.exception("%s stage crashed on job %s", stage.name.value, job.key)
            return Divert(job, status.CRASHED)
        if not isinstance(outcome, (Forward, Divert)):
            logger.error("%s stage returned %r for job %s", stage.name.value, outcome, job.key)
            return Divert(job, status.CRASHED)
        return outcome

    def _route(self, outcome: StageOutcome, forward: queue.Queue) -> None:
        if outcome.message:
            self._publish(outcome.job, outcome.message)
        if isinstance(outcome, Divert):
            self.cleaning.put(outcome.job)
        else:
            forward.put(outcome.job)

    def _publish(self, job: Job, message: str) -> None:
        try:
            job.progress(message)
        except Exception:  # noqa: BLE001
            logger.exception("Failed to publish status for job %s", job.key)

    def _run_cleanup(self) -> None:
        while True:
            job = self.cleaning.get()
            try:
                if job is _STOP:
                    return
                try:
                    self.cleanup.process(job)
                except Exception:  # noqa: BLE001
                    logger.exception("cleanup stage crashed on job %s", job.key)
            finally:
                self.cleaning.task_done()


def build_pipeline(config: PipelineConfig) -> Pipeline:
    """
    Create a pipeline with the production collaborators. The caller starts it.
    """
    if config.redis_url:
        cache: StatusCache = RedisStatusCache.from_url(config.redis_url, ttl=config.status_ttl_seconds)
    else:
        cache = InMemoryStatusCache(ttl=config.status_ttl_seconds)
    storage = LocalJobStorage(StoragePaths(Path(config.work_root)))
    extractor = ReadabilityExtractor(timeout=config.fetch_timeout_seconds, user_agent=config.user_agent)
    generator = KindleGenerator(command=(config.kindlegen_path,), timeout=config.generation_timeout_seconds)
    mailer = SmtpMailer(
        host=config.smtp_host,
        port=config.smtp_port,
        sender=config.smtp_sender,
        username=config.smtp_username,
        password=config.smtp_password,
        starttls=config.smtp_starttls,
        timeout=config.smtp_timeout_seconds,
    )
    return Pipeline(
        cache=cache,
        extractor=extractor,
        generator=generator,
        mailer=mailer,
        storage=storage,
        queue_size=config.queue_size,
        workers_per_stage=config.workers_per_stage,
        blacklist=config.blacklist,
    )
