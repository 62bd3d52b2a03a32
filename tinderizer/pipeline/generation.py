from __future__ import annotations

import html
import logging
import subprocess
from pathlib import Path
from typing import Optional, Sequence

from .errors import GenerationError
from .models import NormalizedDocument
from .storage import friendly_filename

logger = logging.getLogger(__name__)

ARTICLE_TEMPLATE = """<!DOCTYPE html>
<html>
<head>
<meta http-equiv="Content-Type" content="text/html; charset=utf-8" />
<title>{title}</title>
{author_meta}
</head>
<body>
<h1>{title}</h1>
<p><em>{byline}</em></p>
{body}
</body>
</html>
"""


class EbookGenerator:
    """
    Abstract e-book generator. `convert` writes its output into `workdir`
    and returns the path of the generated file.
    """

    def convert(self, document: NormalizedDocument, workdir: Path) -> Path:
        raise NotImplementedError


class KindleGenerator(EbookGenerator):
    """
    Runs kindlegen (or any command with the same calling convention:
    `<command> <input.html> -o <output.mobi>`, output written beside the input)
    against a standalone HTML rendering of the article.

    The external process gets a hard timeout; a hung generator fails the
    job instead of stalling the conversion worker.
    """

    def __init__(self, command: Sequence[str] = ("kindlegen",), timeout: Optional[float] = 120.0):
        self.command = list(command)
        self.timeout = timeout

    def render_html(self, document: NormalizedDocument) -> str:
        title = html.escape(document.title)
        author = html.escape(document.author) if document.author else ""
        byline = " - ".join(part for part in (author, html.escape(document.domain)) if part)
        author_meta = f'<meta name="author" content="{author}" />' if author else ""
        return ARTICLE_TEMPLATE.format(title=title, author_meta=author_meta, byline=byline, body=document.html)

    def convert(self, document: NormalizedDocument, workdir: Path) -> Path:
        source = workdir / "article.html"
        output = workdir / "article.mobi"
        source.write_text(self.render_html(document), encoding="utf-8")

        args = self.command + [source.name, "-o", output.name]
        try:
            proc = subprocess.run(
                args,
                cwd=str(workdir),
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired as exc:
            raise GenerationError(f"Generator timed out after {self.timeout}s") from exc
        except OSError as exc:
            raise GenerationError(f"Generator could not be started: {exc}") from exc

        # kindlegen exits 1 when it only emitted warnings; the output file decides.
        if not output.exists():
            stderr = proc.stderr.decode("utf-8", "replace").strip()
            stdout = proc.stdout.decode("utf-8", "replace").strip()
            detail = stderr or stdout[-500:]
            raise GenerationError(f"Generator exited {proc.returncode} without output: {detail}")
        if proc.returncode not in (0, 1):
            logger.warning("Generator exited %s but produced %s", proc.returncode, output)

        target = workdir / friendly_filename(document.title, extension=output.suffix)
        if target != output:
            output.replace(target)
        return target
