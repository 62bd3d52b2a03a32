from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass
from pathlib import Path

from .errors import CleanupError

logger = logging.getLogger(__name__)


@dataclass
class StoragePaths:
    root: Path

    def job_dir(self, key: str) -> Path:
        return self.root / str(key)


class LocalJobStorage:
    """
    Manages the per-job temporary work directory. Extraction and conversion
    write everything for a job under `root/<key>/`, so cleanup only has to
    remove that one directory.
    """

    def __init__(self, storage_paths: StoragePaths):
        self.paths = storage_paths

    def ensure_job_dir(self, key: str) -> Path:
        path = self.paths.job_dir(key)
        path.mkdir(parents=True, exist_ok=True)
        return path

    def job_dir_exists(self, key: str) -> bool:
        return self.paths.job_dir(key).exists()

    def remove_job_dir(self, key: str) -> None:
        path = self.paths.job_dir(key)
        if not path.exists():
            return
        try:
            shutil.rmtree(path)
        except OSError as exc:
            raise CleanupError(f"Failed to remove {path}: {exc}") from exc
        logger.debug("Removed work directory %s", path)


def friendly_filename(title: str, extension: str = ".mobi", max_length: int = 80) -> str:
    normalized = (title or "").strip().lower()
    slug = "".join(ch if ch.isalnum() else "-" for ch in normalized)
    while "--" in slug:
        slug = slug.replace("--", "-")
    slug = slug.strip("-")[:max_length].strip("-") or "article"
    return f"{slug}{extension}"
