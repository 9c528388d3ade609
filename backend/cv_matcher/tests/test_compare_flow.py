import pytest

from conftest import make_docx, make_pdf

PDF = "application/pdf"


def _cv_fields(*pdfs):
    return {f"cvFiles[{i}]": (f"cv{i + 1}.pdf", data, PDF) for i, data in enumerate(pdfs)}


@pytest.mark.anyio
async def test_compare_returns_parsed_results(client, fake_llm, jd_pdf):
    fake_llm.answer_with([
        {"fullName": "Alice", "score": 88, "explanation": "Solid Go background"},
        {"fullName": "Bob", "score": 95, "explanation": "Eight years of Go"},
    ])
    files = {"jobDescription": ("jd.pdf", jd_pdf, PDF)}
    files.update(_cv_fields(make_pdf("Alice Smith - Go developer"), make_pdf("Bob Jones - Go and Kafka")))

    r = await client.post("/api/compare", files=files)
    assert r.status_code == 200, r.text
    body = r.json()

    assert body["message"] == "Files received successfully"
    assert body["parsed"] is True
    assert [c["fullName"] for c in body["result"]] == ["Alice", "Bob"]
    assert [c["score"] for c in body["result"]] == [88, 95]

    prompt = fake_llm.prompts[0]
    assert "5 years Go experience" in prompt
    assert prompt.index("Resume 1:") < prompt.index("Alice Smith") < prompt.index("Resume 2:") < prompt.index("Bob Jones")


@pytest.mark.anyio
async def test_missing_job_description_is_400(client, fake_llm):
    r = await client.post("/api/compare", files=_cv_fields(make_pdf("Alice")))
    assert r.status_code == 400
    assert r.json() == {"error": "No job description file received"}
    assert fake_llm.prompts == []


@pytest.mark.anyio
async def test_no_cv_files_is_400(client, fake_llm, jd_pdf):
    r = await client.post("/api/compare", files={"jobDescription": ("jd.pdf", jd_pdf, PDF)})
    assert r.status_code == 400
    assert r.json() == {"error": "No CV files received"}


@pytest.mark.anyio
async def test_one_bad_cv_fails_the_whole_batch(client, fake_llm, jd_pdf):
    fake_llm.answer_with([{"fullName": "x", "score": 1, "explanation": ""}] * 3)
    files = {"jobDescription": ("jd.pdf", jd_pdf, PDF)}
    files.update(_cv_fields(make_pdf("Alice"), b"this is not a pdf", make_pdf("Carol")))

    r = await client.post("/api/compare", files=files)
    assert r.status_code == 500
    assert r.json() == {"error": "Failed to process upload"}
    assert fake_llm.prompts == []


@pytest.mark.anyio
async def test_model_failure_is_500(client, fake_llm, jd_pdf):
    fake_llm.fail()
    files = {"jobDescription": ("jd.pdf", jd_pdf, PDF)}
    files.update(_cv_fields(make_pdf("Alice")))

    r = await client.post("/api/compare", files=files)
    assert r.status_code == 500
    assert r.json() == {"error": "Failed to process upload"}


@pytest.mark.anyio
async def test_unparseable_answer_degrades_to_raw_text(client, fake_llm, jd_pdf):
    fake_llm.reply = "Sorry, I cannot rank these candidates."
    files = {"jobDescription": ("jd.pdf", jd_pdf, PDF)}
    files.update(_cv_fields(make_pdf("Alice"), make_pdf("Bob")))

    r = await client.post("/api/compare", files=files)
    assert r.status_code == 200
    body = r.json()
    assert body["parsed"] is False
    assert body["result"] == "Sorry, I cannot rank these candidates."


@pytest.mark.anyio
async def test_short_answer_is_never_returned_as_partial_list(client, fake_llm, jd_pdf):
    fake_llm.answer_with([{"fullName": "Alice", "score": 70, "explanation": "ok"}])
    files = {"jobDescription": ("jd.pdf", jd_pdf, PDF)}
    files.update(_cv_fields(make_pdf("Alice"), make_pdf("Bob"), make_pdf("Carol")))

    r = await client.post("/api/compare", files=files)
    assert r.status_code == 200
    body = r.json()
    assert body["parsed"] is False
    assert isinstance(body["result"], str)


@pytest.mark.anyio
async def test_indexed_fields_stop_at_first_gap(client, fake_llm, jd_pdf):
    fake_llm.answer_with([{"fullName": "Alice", "score": 50, "explanation": "ok"}])
    files = {
        "jobDescription": ("jd.pdf", jd_pdf, PDF),
        "cvFiles[0]": ("a.pdf", make_pdf("Alice"), PDF),
        "cvFiles[2]": ("c.pdf", make_pdf("Carol"), PDF),
    }

    r = await client.post("/api/compare", files=files)
    assert r.status_code == 200
    assert r.json()["parsed"] is True
    prompt = fake_llm.prompts[0]
    assert "Resume 1:" in prompt
    assert "Resume 2:" not in prompt
    assert "Carol" not in prompt


@pytest.mark.anyio
async def test_repeated_cv_field_keeps_order(client, fake_llm, jd_pdf):
    fake_llm.answer_with([
        {"fullName": "Alice", "score": 60, "explanation": ""},
        {"fullName": "Bob", "score": 61, "explanation": ""},
    ])
    files = [
        ("jobDescription", ("jd.pdf", jd_pdf, PDF)),
        ("cvFiles", ("a.pdf", make_pdf("Alice"), PDF)),
        ("cvFiles", ("b.pdf", make_pdf("Bob"), PDF)),
    ]

    r = await client.post("/api/compare", files=files)
    assert r.status_code == 200
    prompt = fake_llm.prompts[0]
    assert prompt.index("Alice") < prompt.index("Bob")


@pytest.mark.anyio
async def test_docx_and_txt_uploads_are_read(client, fake_llm):
    fake_llm.answer_with([
        {"fullName": "Dana", "score": 77, "explanation": ""},
        {"fullName": "Eve", "score": 12, "explanation": ""},
    ])
    docx_mime = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
    files = {
        "jobDescription": ("jd.txt", b"Platform engineer, Terraform and AWS", "text/plain"),
        "cvFiles[0]": ("dana.docx", make_docx("Dana Lee", "Terraform modules for AWS"), docx_mime),
        "cvFiles[1]": ("eve.txt", b"Eve - pastry chef", "text/plain"),
    }

    r = await client.post("/api/compare", files=files)
    assert r.status_code == 200
    prompt = fake_llm.prompts[0]
    assert "Platform engineer, Terraform and AWS" in prompt
    assert "Terraform modules for AWS" in prompt
    assert "pastry chef" in prompt


@pytest.mark.anyio
async def test_too_many_cv_files_is_rejected(client, fake_llm, jd_pdf, monkeypatch):
    monkeypatch.setattr("cv_matcher.main.MAX_CV_FILES", 2)
    files = {"jobDescription": ("jd.pdf", jd_pdf, PDF)}
    files.update(_cv_fields(*(make_pdf(n) for n in ("A", "B", "C"))))

    r = await client.post("/api/compare", files=files)
    assert r.status_code == 400
    assert "Too many CV files" in r.json()["error"]
    assert fake_llm.prompts == []


@pytest.mark.anyio
async def test_deeply_nested_answer_degrades_instead_of_failing(client, fake_llm, jd_pdf):
    fake_llm.reply = "[" * 100000 + "]" * 100000
    files = {"jobDescription": ("jd.pdf", jd_pdf, PDF)}
    files.update(_cv_fields(make_pdf("Alice")))

    r = await client.post("/api/compare", files=files)
    assert r.status_code == 200
    assert r.json()["parsed"] is False
