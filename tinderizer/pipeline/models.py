from __future__ import annotations

import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Union

if TYPE_CHECKING:
    from .status import StatusCache


class StageName(str, Enum):
    EXTRACTION = "extraction"
    CONVERSION = "conversion"
    EMAIL = "email"
    CLEANUP = "cleanup"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class NormalizedDocument:
    url: str
    title: str
    html: str
    domain: str
    author: Optional[str] = None
    images: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class Job:
    """
    One submission travelling through the pipeline.

    A job is never mutated: stages hand on augmented copies made with
    `with_document` / `with_ebook`, all sharing the same key. Progress is
    reported through the status cache, not stored on the job.
    """

    key: str
    email: str
    url: str
    content: Optional[str] = None
    submitted_at: datetime = field(default_factory=_utcnow)
    document: Optional[NormalizedDocument] = None
    ebook_path: Optional[Path] = None
    reporter: Optional["StatusCache"] = field(default=None, repr=False, compare=False)

    @classmethod
    def create(
        cls,
        email: str,
        url: str,
        content: Optional[str] = None,
        reporter: Optional["StatusCache"] = None,
    ) -> "Job":
        return cls(
            key=str(uuid.uuid4()),
            email=email.strip(),
            url=url.strip(),
            content=content or None,
            reporter=reporter,
        )

    @property
    def title(self) -> str:
        if self.document and self.document.title:
            return self.document.title
        return self.url

    def progress(self, message: str) -> None:
        if self.reporter is not None:
            self.reporter.set(self.key, message)

    def with_document(self, document: NormalizedDocument) -> "Job":
        return replace(self, document=document)

    def with_ebook(self, ebook_path: Path) -> "Job":
        return replace(self, ebook_path=ebook_path)


@dataclass(frozen=True)
class Forward:
    """
    The stage succeeded; hand the job to the next queue. An optional message
    is published for the job before it moves on.
    """

    job: Job
    message: Optional[str] = None


@dataclass(frozen=True)
class Divert:
    """
    The stage failed; publish the terminal message and send the job straight
    to cleanup.
    """

    job: Job
    message: str


StageOutcome = Union[Forward, Divert]


@dataclass
class StatusReport:
    message: str
    done: bool

    def to_dict(self) -> Dict[str, Any]:
        return {"message": self.message, "done": self.done}
