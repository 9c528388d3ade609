import mimetypes
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Union

from cv_matcher.core import CandidateResult


@dataclass
class UploadedFile:
    name: str
    size_bytes: int
    mime_type: str
    content: bytes = field(repr=False)

    @property
    def extension(self) -> str:
        return Path(self.name).suffix.lower()

    @classmethod
    def from_bytes(cls, name: str, content: bytes, mime_type: Optional[str] = None) -> "UploadedFile":
        if not mime_type:
            mime_type = mimetypes.guess_type(name)[0] or ""
        return cls(name=name, size_bytes=len(content), mime_type=mime_type, content=content)

    @classmethod
    def from_path(cls, path: Union[str, Path]) -> "UploadedFile":
        p = Path(path)
        return cls.from_bytes(p.name, p.read_bytes())


@dataclass
class ComparisonOutcome:
    """Either a full, validated result list or the raw model text it came from."""

    parsed: bool
    candidates: List[CandidateResult] = field(default_factory=list)
    raw_text: Optional[str] = None

    @classmethod
    def structured(cls, candidates: List[CandidateResult], raw_text: Optional[str] = None) -> "ComparisonOutcome":
        return cls(parsed=True, candidates=list(candidates), raw_text=raw_text)

    @classmethod
    def fallback(cls, raw_text: str) -> "ComparisonOutcome":
        return cls(parsed=False, raw_text=raw_text)

    def payload(self) -> Union[List[dict], str]:
        if self.parsed:
            return [c.model_dump(by_alias=True) for c in self.candidates]
        return self.raw_text or ""
