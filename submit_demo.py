"""
Example: run the whole pipeline in-process for a single article.

Usage:
    python3 submit_demo.py --url https://example.com/post --email me@kindle.com

SMTP and kindlegen settings are read from the same environment variables the
API uses (SMTP_HOST, SMTP_SENDER, KINDLEGEN_PATH, ...).
"""

import argparse
import logging
import time
from pathlib import Path

from tinderizer.pipeline import ValidationError, build_pipeline, load_config


def setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(threadName)s %(name)s: %(message)s",
        force=True,
    )


def main():
    parser = argparse.ArgumentParser()
    parser.add_argument("--url", required=True, help="Article URL")
    parser.add_argument("--email", required=True, help="Destination (Kindle) address")
    parser.add_argument("--html", default=None, type=Path, help="Use this saved page instead of fetching the URL")
    parser.add_argument("--poll-interval", default=0.5, type=float, help="Seconds between status polls")
    parser.add_argument("--verbose", action="store_true", help="Debug logging")
    args = parser.parse_args()

    setup_logging(args.verbose)
    content = args.html.read_text(encoding="utf-8") if args.html else None

    pipeline = build_pipeline(load_config()).start()
    try:
        job = pipeline.submit(args.email, args.url, content)
    except ValidationError as exc:
        print(f"Rejected: {exc}")
        pipeline.stop()
        return

    print(f"Submitted job {job.key}")
    last = None
    while True:
        report = pipeline.lookup(job.key)
        if report.message != last:
            print(f"  {report.message}")
            last = report.message
        if report.done:
            break
        time.sleep(args.poll_interval)

    pipeline.join()
    pipeline.stop()


if __name__ == "__main__":
    main()
