import math
import os
from typing import List, Union

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, field_validator

load_dotenv()

ENV = os.getenv("ENV", "dev").lower()
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

OPENAI_MODEL = os.getenv("OPENAI_MODEL", "gpt-5")
LLM_TIMEOUT_SECONDS = float(os.getenv("LLM_TIMEOUT_SECONDS", "120"))

MAX_FILE_MB = int(os.getenv("MAX_FILE_MB", "10"))
MAX_FILE_BYTES = MAX_FILE_MB * 1024 * 1024
MAX_CV_FILES = int(os.getenv("MAX_CV_FILES", "20"))

CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "http://localhost:3000").split(",") if o.strip()]

JOB_DESCRIPTION_FIELD = "jobDescription"
CV_FILES_FIELD = "cvFiles"


class CandidateResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    full_name: str = Field(default="", alias="fullName")
    score: int = Field(default=0, ge=0, le=100)
    explanation: str = ""

    @field_validator("full_name", "explanation", mode="before")
    @classmethod
    def _none_to_empty(cls, v):
        return "" if v is None else v

    @field_validator("score", mode="before")
    @classmethod
    def _coerce_score(cls, v):
        # models answer with "88", 88.0 or 88.5 as often as with 88
        if v is None:
            return 0
        if isinstance(v, bool):
            raise ValueError("score must be a number")
        try:
            x = float(v)
        except TypeError:
            raise ValueError("score must be a number")
        if math.isnan(x) or math.isinf(x):
            raise ValueError("score must be finite")
        return int(max(0, min(100, round(x))))


class CompareResponse(BaseModel):
    message: str
    result: Union[List[CandidateResult], str]
    parsed: bool = True


class SearchQueryResponse(BaseModel):
    message: str
    search: str


class ErrorResponse(BaseModel):
    error: str
