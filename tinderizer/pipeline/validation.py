from __future__ import annotations

import re
from typing import Iterable
from urllib.parse import urlparse

from .errors import ValidationError

INVALID_EMAIL = "Invalid email address. Please check it and try again."
INVALID_URL = "Invalid URL. Please submit a full http:// or https:// link."
BLACKLISTED = "Sorry, articles from that site can't be converted."

_EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def validate(email: str, url: str, blacklist: Iterable[str] = ()) -> None:
    """
    Check a submission before it becomes a job. Raises `ValidationError`
    carrying the user-facing message for the first rule that fails.
    """
    email = (email or "").strip()
    url = (url or "").strip()

    if not email or not _EMAIL_PATTERN.match(email):
        raise ValidationError(INVALID_EMAIL)

    if not url:
        raise ValidationError(INVALID_URL)
    try:
        parsed = urlparse(url)
        host = parsed.hostname
        parsed.port
    except ValueError as exc:
        raise ValidationError(INVALID_URL) from exc
    if parsed.scheme.lower() not in ("http", "https") or not host:
        raise ValidationError(INVALID_URL)
    if any(ch.isspace() for ch in parsed.netloc):
        raise ValidationError(INVALID_URL)

    if is_blacklisted(host, blacklist):
        raise ValidationError(BLACKLISTED)


def is_blacklisted(host: str, blacklist: Iterable[str]) -> bool:
    host = host.lower().rstrip(".")
    for entry in blacklist:
        domain = entry.strip().lower().rstrip(".")
        if not domain:
            continue
        if host == domain or host.endswith("." + domain):
            return True
    return False
