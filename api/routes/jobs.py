from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Request
from starlette.concurrency import run_in_threadpool

from tinderizer.pipeline import Pipeline, ValidationError
from tinderizer.pipeline import status

from api.dependencies import get_pipeline

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/ajax", tags=["jobs"])


def _field(payload: dict, name: str) -> str:
    value = payload.get(name)
    return value if isinstance(value, str) else ""


def _submit(pipeline: Pipeline, email: str, url: str, content: Optional[str] = None) -> dict:
    logger.info("Submission of %r to %r", url, email)
    try:
        job = pipeline.submit(email, url, content)
    except ValidationError as exc:
        logger.info("Rejected submission of %r: %s", url, exc)
        return {"message": str(exc)}
    return {"message": status.SUBMITTED, "id": job.key}


@router.post("/submit.json")
async def submit(request: Request, pipeline: Pipeline = Depends(get_pipeline)):
    # Errors travel in the body; a malformed submission just fails validation.
    try:
        payload = await request.json()
    except ValueError as exc:
        logger.warning("Failed decoding submission: %s", exc)
        payload = {}
    if not isinstance(payload, dict):
        payload = {}
    # submit() blocks while the input queue is full.
    return await run_in_threadpool(
        _submit,
        pipeline,
        _field(payload, "email"),
        _field(payload, "url"),
        _field(payload, "content") or None,
    )


@router.get("/submit.json")
def submit_legacy(email: str = "", url: str = "", pipeline: Pipeline = Depends(get_pipeline)):
    return _submit(pipeline, email, url)


@router.get("/status/{job_id}.json")
def job_status(job_id: str, pipeline: Pipeline = Depends(get_pipeline)):
    return pipeline.lookup(job_id).to_dict()
