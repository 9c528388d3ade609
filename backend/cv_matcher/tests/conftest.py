import io
import json

import fitz  # pymupdf
import pytest
from docx import Document
from httpx import ASGITransport, AsyncClient

from cv_matcher.errors import ModelInvocationError
from cv_matcher.main import app, get_llm


class FakeLLM:
    """Stands in for LLMClient: records prompts, replays a canned answer."""

    def __init__(self, reply: str = "[]"):
        self.reply = reply
        self.error = None
        self.prompts = []

    async def complete(self, prompt: str) -> str:
        self.prompts.append(prompt)
        if self.error is not None:
            raise self.error
        return self.reply

    def answer_with(self, results) -> None:
        self.reply = json.dumps(results)

    def fail(self, message: str = "quota exceeded") -> None:
        self.error = ModelInvocationError(message)


def make_pdf(text: str) -> bytes:
    doc = fitz.open()
    page = doc.new_page()
    page.insert_text((72, 72), text)
    data = doc.tobytes()
    doc.close()
    return data


def make_docx(*paragraphs: str) -> bytes:
    doc = Document()
    for p in paragraphs:
        doc.add_paragraph(p)
    buf = io.BytesIO()
    doc.save(buf)
    return buf.getvalue()


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def fake_llm():
    llm = FakeLLM()
    app.dependency_overrides[get_llm] = lambda: llm
    yield llm
    app.dependency_overrides.pop(get_llm, None)


@pytest.fixture
async def client(fake_llm):
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c


@pytest.fixture
def jd_pdf():
    return make_pdf("Seeking a backend engineer with 5 years Go experience")
