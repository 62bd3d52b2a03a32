"""
Pipeline subsystem exports.
"""

from .config import PipelineConfig, load_config
from .delivery import Mailer, SmtpMailer
from .errors import CleanupError, DeliveryError, FetchError, GenerationError, PipelineError, ValidationError
from .extraction import ArticleExtractor, ReadabilityExtractor
from .generation import EbookGenerator, KindleGenerator
from .models import Divert, Forward, Job, NormalizedDocument, StageName, StatusReport
from .orchestrator import Pipeline, build_pipeline
from .stages import CleanupStage, ConversionStage, EmailStage, ExtractionStage
from .status import InMemoryStatusCache, RedisStatusCache, StatusCache, is_done, lookup
from .storage import LocalJobStorage, StoragePaths
from .validation import validate

__all__ = [
    "ArticleExtractor",
    "CleanupError",
    "CleanupStage",
    "ConversionStage",
    "DeliveryError",
    "Divert",
    "EbookGenerator",
    "EmailStage",
    "ExtractionStage",
    "FetchError",
    "Forward",
    "GenerationError",
    "InMemoryStatusCache",
    "Job",
    "KindleGenerator",
    "LocalJobStorage",
    "Mailer",
    "NormalizedDocument",
    "Pipeline",
    "PipelineConfig",
    "PipelineError",
    "ReadabilityExtractor",
    "RedisStatusCache",
    "SmtpMailer",
    "StageName",
    "StatusCache",
    "StatusReport",
    "StoragePaths",
    "ValidationError",
    "build_pipeline",
    "is_done",
    "load_config",
    "lookup",
    "validate",
]
