from __future__ import annotations

import asyncio
import json
import logging
import re
from typing import Any, List, Optional, Sequence

from openai import AsyncOpenAI, OpenAIError
from pydantic import ValidationError

from cv_matcher.core import CandidateResult, LLM_TIMEOUT_SECONDS, OPENAI_MODEL
from cv_matcher.errors import ModelInvocationError
from cv_matcher.models import ComparisonOutcome

logger = logging.getLogger(__name__)


_COMPARISON_HEADER = """You are an expert IT HR consultant. Compare the following resumes with the job description
and provide a score from 1 to 100 for each resume based on how well it matches the job description.
Provide a brief explanation for each score.
Return one entry per resume, in the same order the resumes are listed.
Return the results in JSON format with the following structure:
[
    {
        "fullName": "John Doe",
        "score": 85,
        "explanation": "The candidate has relevant experience and skills."
    },
    ...
]"""

_SEARCH_HEADER = """You are an expert technical recruiter. Read the job description below and write a single
boolean search string (using AND, OR, NOT, quotes and parentheses) that finds candidates with the
key qualifications on a professional networking site.
Return ONLY the search string, with no explanation, no label and no surrounding prose."""

# a word right after the fence is a language tag only when the line ends there
_FENCE_RE = re.compile(r"```[a-zA-Z0-9_-]*(?=[ \t]*\r?\n)|```")
_SEARCH_LABEL_RE = re.compile(r"boolean search:", re.IGNORECASE)
_SITE_RE = re.compile(r"linkedin", re.IGNORECASE)


def build_comparison_prompt(job_description: str, resumes: Sequence[str]) -> str:
    labelled = "\n\n".join(f"Resume {i}:\n{text}" for i, text in enumerate(resumes, start=1))
    return (
        f"{_COMPARISON_HEADER}\n\n"
        f"Job Description:\n{job_description}\n\n"
        f"Resumes:\n{labelled}\n"
    )


def build_search_query_prompt(job_description: str) -> str:
    return f"{_SEARCH_HEADER}\n\nJob Description:\n{job_description}\n"


def _sanitize_once(s: str) -> str:
    s = _FENCE_RE.sub("", s)
    s = _SEARCH_LABEL_RE.sub("", s)
    s = _SITE_RE.sub("", s)
    return s.strip()


def sanitize_search_query(raw: str) -> str:
    """Best-effort cleanup of a model's boolean search answer.

    Runs until nothing changes, so removing one marker can never expose
    another one on a second pass.
    """
    s = (raw or "").strip()
    while True:
        cleaned = _sanitize_once(s)
        if cleaned == s:
            return cleaned
        s = cleaned


def _strip_fences(raw: str) -> str:
    raw = raw.strip()
    raw = re.sub(r"^```(?:json)?\s*", "", raw)
    raw = re.sub(r"\s*```$", "", raw)
    return raw.strip()


def _load_json_array(raw: str) -> Any:
    text = _strip_fences(raw)
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        pass
    # models like to wrap the array in a sentence
    start, end = text.find("["), text.rfind("]")
    if start == -1 or end <= start:
        raise ValueError("no JSON array in model output")
    return json.loads(text[start:end + 1])


def interpret_comparison(raw: str, expected: int) -> ComparisonOutcome:
    """
    Parse the model's answer into one CandidateResult per submitted resume.

    The answer is accepted only as a whole: a list of objects whose length
    equals `expected`. Anything else falls back to the raw text.
    """
    try:
        data = _load_json_array(raw or "")
    except (ValueError, RecursionError) as e:  # deeply nested arrays hit the recursion limit
        logger.warning("Model output is not JSON, returning raw text: %s", e)
        return ComparisonOutcome.fallback(raw or "")

    if not isinstance(data, list) or len(data) != expected:
        got = len(data) if isinstance(data, list) else type(data).__name__
        logger.warning("Model output has wrong shape (expected %d entries, got %s)", expected, got)
        return ComparisonOutcome.fallback(raw)

    candidates: List[CandidateResult] = []
    for i, item in enumerate(data):
        if not isinstance(item, dict):
            logger.warning("Model output entry %d is not an object", i)
            return ComparisonOutcome.fallback(raw)
        try:
            candidates.append(CandidateResult.model_validate(item))
        except ValidationError as e:
            logger.warning("Model output entry %d failed validation: %s", i, e)
            return ComparisonOutcome.fallback(raw)

    return ComparisonOutcome.structured(candidates, raw_text=raw)


class LLMClient:
    """Thin wrapper over the OpenAI Responses API: one attempt, bounded by a timeout."""

    def __init__(
        self,
        model: str = OPENAI_MODEL,
        timeout: float = LLM_TIMEOUT_SECONDS,
        api_key: Optional[str] = None,
        client: Optional[AsyncOpenAI] = None,
    ):
        self.model = model
        self.timeout = timeout
        self._api_key = api_key
        self._client = client

    def _sdk(self) -> AsyncOpenAI:
        if self._client is None:
            # api_key=None lets the SDK read OPENAI_API_KEY
            self._client = AsyncOpenAI(api_key=self._api_key, timeout=self.timeout, max_retries=0)
        return self._client

    async def complete(self, prompt: str) -> str:
        try:
            sdk = self._sdk()
            response = await asyncio.wait_for(
                sdk.responses.create(model=self.model, input=prompt),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError as e:
            raise ModelInvocationError(f"Model call timed out after {self.timeout}s") from e
        except OpenAIError as e:
            raise ModelInvocationError(f"Model call failed: {e}") from e
        return response.output_text or ""

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.close()
            self._client = None
