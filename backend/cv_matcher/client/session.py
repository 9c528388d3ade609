from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, List, Optional, Tuple

import httpx

from cv_matcher.client.intake import FileIntake
from cv_matcher.core import CV_FILES_FIELD, JOB_DESCRIPTION_FIELD, MAX_CV_FILES, MAX_FILE_MB
from cv_matcher.errors import AnalysisError, MissingInputError
from cv_matcher.models import UploadedFile

logger = logging.getLogger(__name__)

CV_ACCEPTED_TYPES = ["application/pdf", ".doc", ".docx"]
JD_ACCEPTED_TYPES = [".pdf", ".doc", ".docx", ".txt"]


class AnalysisState(str, Enum):
    UPLOAD = "upload"
    ANALYZING = "analyzing"
    RESULTS = "results"


@dataclass
class RankedCandidate:
    file_name: str
    size_bytes: int
    full_name: str
    score: int
    explanation: str
    position: int


def format_file_size(n: int) -> str:
    if n == 0:
        return "0 Bytes"
    sizes = ["Bytes", "KB", "MB", "GB"]
    value, i = float(n), 0
    while value >= 1024 and i < len(sizes) - 1:
        value /= 1024
        i += 1
    return f"{round(value, 2):g} {sizes[i]}"


def _as_int(v: Any) -> int:
    try:
        return int(v)
    except (TypeError, ValueError):
        return 0


def rank_results(results: List[dict], files: List[UploadedFile]) -> List[RankedCandidate]:
    """Pair each result with the file at the same position and sort best first.

    sorted() is stable, so equal scores keep batch order.
    """
    ranked = []
    for i, r in enumerate(results):
        f = files[i] if i < len(files) else None
        ranked.append(
            RankedCandidate(
                file_name=f.name if f else f"CV_{i + 1}",
                size_bytes=f.size_bytes if f else 0,
                full_name=r.get("fullName") or f"Candidate {i + 1}",
                score=_as_int(r.get("score")),
                explanation=r.get("explanation") or "No explanation provided",
                position=i,
            )
        )
    return sorted(ranked, key=lambda c: c.score, reverse=True)


def _part(f: UploadedFile) -> Tuple[str, bytes, str]:
    return (f.name, f.content, f.mime_type or "application/octet-stream")


class AnalysisSession:
    """
    Upload -> analyzing -> results, driven against the matcher API.

    `http` is any httpx.Client pointed at the service (FastAPI's TestClient
    works too).
    """

    def __init__(self, http: httpx.Client, intake: Optional[FileIntake] = None):
        self.http = http
        self.intake = intake or FileIntake(
            accepted_types=CV_ACCEPTED_TYPES,
            max_files=MAX_CV_FILES,
            max_size_mb=MAX_FILE_MB,
        )
        self.jd_intake = FileIntake(accepted_types=JD_ACCEPTED_TYPES, max_files=1, max_size_mb=MAX_FILE_MB)
        self.state = AnalysisState.UPLOAD
        self.results: List[RankedCandidate] = []

    @property
    def cv_files(self) -> List[UploadedFile]:
        return self.intake.files

    @property
    def job_description(self) -> Optional[UploadedFile]:
        files = self.jd_intake.files
        return files[0] if files else None

    def set_job_description(self, f: UploadedFile) -> bool:
        """Stage `f` as the job description, replacing any previous one.

        A file of the wrong type or over the size limit is refused and the
        current job description stays.
        """
        if not self.jd_intake.validate(f):
            logger.warning("Refused job description %s (%d bytes)", f.name, f.size_bytes)
            return False
        self.jd_intake.clear()
        self.jd_intake.add([f])
        return True

    def remove_job_description(self) -> None:
        self.jd_intake.clear()

    @property
    def can_analyze(self) -> bool:
        return self.job_description is not None and len(self.intake) > 0

    def _post(self, path: str, files: List[Tuple[str, Tuple[str, bytes, str]]]) -> dict:
        try:
            response = self.http.post(path, files=files)
        except httpx.HTTPError as e:
            raise AnalysisError(f"Request failed: {e}") from e

        try:
            body = response.json()
        except ValueError:
            body = {}

        if not response.is_success:
            message = body.get("error") if isinstance(body, dict) else None
            raise AnalysisError(message or f"Request failed with status {response.status_code}")
        if not isinstance(body, dict):
            raise AnalysisError("Unexpected response body")
        return body

    def start_analysis(self) -> List[RankedCandidate]:
        if self.state is not AnalysisState.UPLOAD or not self.can_analyze:
            return []

        # captured once: the request sees this batch even if staging changes later
        cv_files = self.intake.files
        files = [(JOB_DESCRIPTION_FIELD, _part(self.job_description))]
        files += [(f"{CV_FILES_FIELD}[{i}]", _part(f)) for i, f in enumerate(cv_files)]

        self.state = AnalysisState.ANALYZING
        try:
            body = self._post("/api/compare", files)
            result = body.get("result")
            if not body.get("parsed", True) or not isinstance(result, list):
                raise AnalysisError("The model returned an unstructured answer")
            if not all(isinstance(r, dict) for r in result):
                raise AnalysisError("The model returned malformed results")
        except AnalysisError as e:
            logger.error("Analysis failed: %s", e)
            self.state = AnalysisState.UPLOAD
            raise

        self.results = rank_results(result, cv_files)
        self.state = AnalysisState.RESULTS
        return self.results

    def reset(self) -> None:
        self.results = []
        self.state = AnalysisState.UPLOAD

    def generate_search_query(self) -> str:
        if self.job_description is None:
            raise MissingInputError("No job description file received")
        body = self._post("/api/search-query", [(JOB_DESCRIPTION_FIELD, _part(self.job_description))])
        return body.get("search") or ""
