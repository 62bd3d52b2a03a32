from __future__ import annotations

import logging
from datetime import datetime, timezone

from . import status
from .delivery import Mailer
from .errors import CleanupError, DeliveryError, FetchError, GenerationError
from .extraction import ArticleExtractor
from .generation import EbookGenerator
from .models import Divert, Forward, Job, StageName, StageOutcome
from .status import StatusCache
from .storage import LocalJobStorage

logger = logging.getLogger(__name__)


class Stage:
    """
    One pipeline step. `process` turns a job into a routing decision and
    never enqueues anything itself; the orchestrator owns the queues.
    """

    name: StageName

    def process(self, job: Job) -> StageOutcome:
        raise NotImplementedError


class ExtractionStage(Stage):
    name = StageName.EXTRACTION

    def __init__(self, extractor: ArticleExtractor, storage: LocalJobStorage):
        self.extractor = extractor
        self.storage = storage

    def process(self, job: Job) -> StageOutcome:
        job.progress(status.EXTRACTING)
        workdir = self.storage.ensure_job_dir(job.key)
        try:
            if job.content:
                document = self.extractor.normalize(job.url, job.content, workdir)
            else:
                document = self.extractor.extract(job.url, workdir)
        except FetchError as exc:
            logger.warning("Extraction failed for job %s (%s): %s", job.key, job.url, exc)
            return Divert(job, status.EXTRACTION_FAILED)
        logger.info("Extracted %r for job %s", document.title, job.key)
        return Forward(job.with_document(document))


class ConversionStage(Stage):
    name = StageName.CONVERSION

    def __init__(self, generator: EbookGenerator, storage: LocalJobStorage):
        self.generator = generator
        self.storage = storage

    def process(self, job: Job) -> StageOutcome:
        if job.document is None:
            logger.error("Job %s reached conversion without a document", job.key)
            return Divert(job, status.CONVERSION_FAILED)
        job.progress(status.CONVERTING)
        workdir = self.storage.ensure_job_dir(job.key)
        try:
            ebook_path = self.generator.convert(job.document, workdir)
        except GenerationError as exc:
            logger.warning("Conversion failed for job %s: %s", job.key, exc)
            return Divert(job, status.CONVERSION_FAILED)
        return Forward(job.with_ebook(ebook_path))


class EmailStage(Stage):
    """
    Last forward stage. Success and failure both lead to cleanup; success is
    a Forward whose next hop is the cleanup queue.
    """

    name = StageName.EMAIL

    def __init__(self, mailer: Mailer):
        self.mailer = mailer

    def process(self, job: Job) -> StageOutcome:
        if job.ebook_path is None:
            logger.error("Job %s reached email without an e-book", job.key)
            return Divert(job, status.DELIVERY_FAILED)
        job.progress(status.SENDING)
        try:
            self.mailer.send(job.email, job.ebook_path, job.title)
        except DeliveryError as exc:
            logger.warning("Delivery failed for job %s: %s", job.key, exc)
            return Divert(job, status.DELIVERY_FAILED)
        return Forward(job, status.DONE)


class CleanupStage:
    """
    Convergence point for every job. Removes the job's temporary files and
    makes sure a terminal status exists without overwriting one that an
    earlier stage already published.
    """

    name = StageName.CLEANUP

    def __init__(self, storage: LocalJobStorage, cache: StatusCache):
        self.storage = storage
        self.cache = cache

    def process(self, job: Job) -> None:
        try:
            self.storage.remove_job_dir(job.key)
        except CleanupError as exc:
            logger.warning("Cleanup failed for job %s: %s", job.key, exc)

        current = self.cache.get(job.key)
        if current is None or not status.is_done(current):
            logger.warning("Job %s finished without a terminal status (last: %r)", job.key, current)
            self.cache.set(job.key, status.NO_RESULT)

        age = (datetime.now(timezone.utc) - job.submitted_at).total_seconds()
        logger.info("Job %s finished %.1fs after submission", job.key, age)
