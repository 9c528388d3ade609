import logging
from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.datastructures import FormData, UploadFile
from starlette.exceptions import HTTPException

from cv_matcher.ai import LLMClient
from cv_matcher.core import (
    CORS_ORIGINS,
    CV_FILES_FIELD,
    ENV,
    JOB_DESCRIPTION_FIELD,
    LOG_LEVEL,
    MAX_CV_FILES,
    MAX_FILE_BYTES,
    MAX_FILE_MB,
    OPENAI_MODEL,
    CompareResponse,
    ErrorResponse,
    SearchQueryResponse,
)
from cv_matcher.errors import CVMatcherError, MissingInputError, UploadRejectedError
from cv_matcher.models import UploadedFile
from cv_matcher.services.compare import compare_batch, generate_search_query

logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s - %(levelname)s - %(message)s")
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    app.state.llm = LLMClient()
    yield
    await app.state.llm.aclose()


app = FastAPI(title="CV Matcher", version="0.1.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def get_llm(request: Request) -> LLMClient:
    llm = getattr(request.app.state, "llm", None)
    if llm is None:
        # lifespan did not run (e.g. mounted under a bare ASGI transport)
        llm = request.app.state.llm = LLMClient()
    return llm


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=ErrorResponse(error=message).model_dump())


@app.exception_handler(CVMatcherError)
def matcher_error_handler(request: Request, exc: CVMatcherError):
    return _error(exc.status_code, str(exc))


@app.exception_handler(HTTPException)
def http_error_handler(request: Request, exc: HTTPException):
    return _error(exc.status_code, str(exc.detail))


async def _read_upload(part: UploadFile) -> UploadedFile:
    contents = await part.read()
    await part.close()
    name = part.filename or "upload"
    if len(contents) > MAX_FILE_BYTES:
        raise UploadRejectedError(f"{name} is too large (max {MAX_FILE_MB}MB).")
    return UploadedFile.from_bytes(name, contents, part.content_type)


def _job_description_part(form: FormData) -> Optional[UploadFile]:
    part = form.get(JOB_DESCRIPTION_FIELD)
    return part if isinstance(part, UploadFile) else None


def _cv_parts(form: FormData) -> List[UploadFile]:
    repeated = [v for v in form.getlist(CV_FILES_FIELD) if isinstance(v, UploadFile)]
    if repeated:
        return repeated

    # indexed fields: cvFiles[0], cvFiles[1], ... the first gap ends the list
    parts: List[UploadFile] = []
    while True:
        part = form.get(f"{CV_FILES_FIELD}[{len(parts)}]")
        if not isinstance(part, UploadFile):
            break
        parts.append(part)
    return parts


@app.get("/", tags=["default"])
def root():
    return {"status": "ok", "service": "CV Matcher", "docs": "/docs"}


@app.get("/health", tags=["default"])
def health():
    return {"ok": True, "env": ENV, "model": OPENAI_MODEL}


@app.post("/api/compare", response_model=None, tags=["default"])
async def compare(request: Request, llm: LLMClient = Depends(get_llm)):
    form = await request.form()
    try:
        jd_part = _job_description_part(form)
        if jd_part is None:
            raise MissingInputError("No job description file received")

        cv_parts = _cv_parts(form)
        if len(cv_parts) > MAX_CV_FILES:
            raise UploadRejectedError(f"Too many CV files (max {MAX_CV_FILES}).")

        job_description = await _read_upload(jd_part)
        cv_files = []
        for i, part in enumerate(cv_parts):
            cv = await _read_upload(part)
            logger.info("CV %d: %s - Size: %d bytes", i + 1, cv.name, cv.size_bytes)
            cv_files.append(cv)

        outcome = await compare_batch(job_description, cv_files, llm)
    except (MissingInputError, UploadRejectedError):
        raise
    except Exception:
        logger.exception("Comparison request failed")
        return _error(500, "Failed to process upload")
    finally:
        await form.close()

    return CompareResponse(
        message="Files received successfully",
        result=outcome.payload(),
        parsed=outcome.parsed,
    ).model_dump(by_alias=True)


@app.post("/api/search-query", response_model=None, tags=["default"])
async def search_query(request: Request, llm: LLMClient = Depends(get_llm)):
    form = await request.form()
    try:
        jd_part = _job_description_part(form)
        if jd_part is None:
            raise MissingInputError("No job description file received")

        job_description = await _read_upload(jd_part)
        search = await generate_search_query(job_description, llm)
    except (MissingInputError, UploadRejectedError):
        raise
    except Exception:
        logger.exception("Search query generation failed")
        return _error(500, "Failed to generate search query")
    finally:
        await form.close()

    return SearchQueryResponse(message="Search query generated successfully", search=search).model_dump()
