from __future__ import annotations

import asyncio
import logging
from typing import List, Optional, Protocol, Sequence

from fastapi.concurrency import run_in_threadpool

from cv_matcher.ai import (
    build_comparison_prompt,
    build_search_query_prompt,
    interpret_comparison,
    sanitize_search_query,
)
from cv_matcher.errors import MissingInputError
from cv_matcher.models import ComparisonOutcome, UploadedFile
from cv_matcher.services.parse import extract_text

logger = logging.getLogger(__name__)


class CompletionModel(Protocol):
    async def complete(self, prompt: str) -> str: ...


async def extract_upload(upload: UploadedFile) -> str:
    return await run_in_threadpool(extract_text, upload.content, upload.name, upload.mime_type)


async def compare_batch(
    job_description: Optional[UploadedFile],
    cv_files: Sequence[UploadedFile],
    llm: CompletionModel,
) -> ComparisonOutcome:
    """
    Score every CV against the job description with a single model call.

    Extractions run concurrently but the prompt always lists resumes in
    batch order. Any extraction or model failure aborts the whole batch.
    """
    if job_description is None:
        raise MissingInputError("No job description file received")
    if not cv_files:
        raise MissingInputError("No CV files received")

    jd_text = await extract_upload(job_description)
    # gather() returns results in argument order regardless of completion order
    resume_texts: List[str] = list(await asyncio.gather(*(extract_upload(f) for f in cv_files)))

    prompt = build_comparison_prompt(jd_text, resume_texts)
    logger.info("Comparing %d CVs against %s", len(cv_files), job_description.name)
    raw = await llm.complete(prompt)

    return interpret_comparison(raw, expected=len(cv_files))


async def generate_search_query(job_description: Optional[UploadedFile], llm: CompletionModel) -> str:
    if job_description is None:
        raise MissingInputError("No job description file received")

    jd_text = await extract_upload(job_description)
    raw = await llm.complete(build_search_query_prompt(jd_text))
    return sanitize_search_query(raw)
