from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Optional, Tuple


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_list(name: str) -> Tuple[str, ...]:
    raw = os.getenv(name, "")
    return tuple(item.strip() for item in raw.split(",") if item.strip())


@dataclass
class PipelineConfig:
    work_root: str = "./data/jobs"
    queue_size: int = 10
    workers_per_stage: int = 1
    status_ttl_seconds: float = 3600
    blacklist: Tuple[str, ...] = field(default_factory=tuple)
    fetch_timeout_seconds: float = 15.0
    user_agent: str = "Tinderizer/1.0"
    generation_timeout_seconds: Optional[float] = 120.0
    kindlegen_path: str = "kindlegen"
    smtp_host: str = "localhost"
    smtp_port: int = 587
    smtp_username: Optional[str] = None
    smtp_password: Optional[str] = None
    smtp_sender: str = "tinderizer@localhost"
    smtp_starttls: bool = True
    smtp_timeout_seconds: float = 30.0
    redis_url: Optional[str] = None


def load_config() -> PipelineConfig:
    """
    Build the pipeline configuration from environment variables.
    A generation timeout of 0 disables the limit.
    """
    generation_timeout = float(os.getenv("GENERATION_TIMEOUT_SECONDS", "120"))
    return PipelineConfig(
        work_root=os.getenv("WORK_ROOT", "./data/jobs"),
        queue_size=int(os.getenv("QUEUE_SIZE", "10")),
        workers_per_stage=int(os.getenv("WORKERS_PER_STAGE", "1")),
        status_ttl_seconds=float(os.getenv("STATUS_TTL_SECONDS", "3600")),
        blacklist=_env_list("BLACKLIST"),
        fetch_timeout_seconds=float(os.getenv("FETCH_TIMEOUT_SECONDS", "15")),
        user_agent=os.getenv("USER_AGENT", "Tinderizer/1.0"),
        generation_timeout_seconds=generation_timeout or None,
        kindlegen_path=os.getenv("KINDLEGEN_PATH", "kindlegen"),
        smtp_host=os.getenv("SMTP_HOST", "localhost"),
        smtp_port=int(os.getenv("SMTP_PORT", "587")),
        smtp_username=os.getenv("SMTP_USERNAME") or None,
        smtp_password=os.getenv("SMTP_PASSWORD") or None,
        smtp_sender=os.getenv("SMTP_SENDER", "tinderizer@localhost"),
        smtp_starttls=_env_bool("SMTP_STARTTLS", True),
        smtp_timeout_seconds=float(os.getenv("SMTP_TIMEOUT_SECONDS", "30")),
        redis_url=os.getenv("REDIS_URL") or None,
    )
