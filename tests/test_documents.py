import io
import sys
from pathlib import Path

import fitz
import pytest

sys.path.append(str(Path(__file__).resolve().parents[1]))

from rulecheck.core.config import Settings
from rulecheck.core.errors import DocumentReadError, ValidationError
from rulecheck.core.uploads import DEFAULT_RULES, parse_rules, save_upload, validate_content_type
from rulecheck.infrastructure.cache import RecognitionCache
from rulecheck.infrastructure.ocr import OCRExtractionResult
from rulecheck.infrastructure.pdf import PdfDocumentReader


def _make_pdf(path: Path, pages: list[str]) -> Path:
    doc = fitz.open()
    for text in pages:
        page = doc.new_page()
        if text:
            page.insert_text((72, 72), text)
    doc.save(str(path))
    doc.close()
    return path


def test_reader_extracts_text_per_page(tmp_path):
    pdf = _make_pdf(tmp_path / "text.pdf", ["Published 12 March 2024", "", "Term: widget"])

    texts = PdfDocumentReader().extract_page_texts(pdf)

    assert len(texts) == 3
    assert "Published 12 March 2024" in texts[0]
    assert texts[1].strip() == ""
    assert "widget" in texts[2]


def test_reader_renders_png_pages(tmp_path):
    pdf = _make_pdf(tmp_path / "scan.pdf", ["one", "two", "three"])

    rendered = PdfDocumentReader().render_pages(pdf, scale=1.0, page_numbers=[3, 1, 9])

    assert [number for number, _ in rendered] == [1, 3]
    assert all(image.startswith(b"\x89PNG") for _, image in rendered)


def test_render_scale_increases_resolution(tmp_path):
    pdf = _make_pdf(tmp_path / "scan.pdf", ["page"])
    reader = PdfDocumentReader()

    (_, small), = reader.render_pages(pdf, scale=1.0)
    (_, large), = reader.render_pages(pdf, scale=2.0)

    small_pix = fitz.Pixmap(small)
    large_pix = fitz.Pixmap(large)
    assert large_pix.width == pytest.approx(small_pix.width * 2, abs=1)


def test_reader_rejects_unreadable_file(tmp_path):
    broken = tmp_path / "broken.pdf"
    broken.write_bytes(b"%PDF-1.7\nthis is not really a pdf")

    with pytest.raises(DocumentReadError):
        PdfDocumentReader().extract_page_texts(broken)


def test_save_upload_writes_unique_file(tmp_path):
    data = b"%PDF-1.4\n" + b"0" * 100

    first = save_upload(tmp_path, "report.pdf", io.BytesIO(data), max_bytes=1024)
    second = save_upload(tmp_path, "report.pdf", io.BytesIO(data), max_bytes=1024)

    assert first != second
    assert first.name.endswith("-report.pdf")
    assert first.read_bytes() == data


def test_save_upload_strips_directories_from_name(tmp_path):
    stored = save_upload(tmp_path / "uploads", "../../etc/evil.pdf", io.BytesIO(b"%PDF-1.4"), max_bytes=1024)

    assert stored.parent == tmp_path / "uploads"
    assert stored.name.endswith("-evil.pdf")


def test_save_upload_rejects_oversized_stream(tmp_path):
    with pytest.raises(ValidationError) as excinfo:
        save_upload(tmp_path, "big.pdf", io.BytesIO(b"%PDF" + b"0" * 2048), max_bytes=1024)

    assert excinfo.value.status_code == 413
    assert list(tmp_path.iterdir()) == []


def test_save_upload_requires_pdf_signature(tmp_path):
    with pytest.raises(ValidationError) as excinfo:
        save_upload(tmp_path, "fake.pdf", io.BytesIO(b"PK\x03\x04zip"), max_bytes=1024)

    assert excinfo.value.status_code == 400
    assert list(tmp_path.iterdir()) == []


def test_content_type_check():
    validate_content_type("application/pdf")
    validate_content_type(None)
    with pytest.raises(ValidationError):
        validate_content_type("image/png")


@pytest.mark.parametrize(
    "raw,expected",
    [
        (None, DEFAULT_RULES),
        ("   ", DEFAULT_RULES),
        ("Must mention a date.", ["Must mention a date."]),
        ('["a", " b "]', ["a", "b"]),
    ],
)
def test_parse_rules(raw, expected):
    assert parse_rules(raw) == expected


@pytest.mark.parametrize("raw", ["[", "[]", '["ok", 3]', '[""]'])
def test_parse_rules_rejects_bad_arrays(raw):
    with pytest.raises(ValidationError):
        parse_rules(raw)


def test_settings_from_env(monkeypatch, tmp_path):
    monkeypatch.setenv("TEXT_THRESHOLD", "42")
    monkeypatch.setenv("CONCURRENT_OCR", "5")
    monkeypatch.setenv("OCR_LANGUAGES", "eng, deu")
    monkeypatch.setenv("UPLOADS_ROOT", str(tmp_path))
    monkeypatch.setenv("LOG_LEVEL", "debug")
    monkeypatch.delenv("GEMINI_API_KEY", raising=False)

    settings = Settings.from_env()

    assert settings.text_threshold == 42
    assert settings.ocr_concurrency == 5
    assert settings.ocr_languages == ("eng", "deu")
    assert settings.uploads_root == tmp_path.resolve()
    assert settings.log_level == "DEBUG"
    assert settings.gemini_api_key is None
    assert settings.max_upload_bytes == 5 * 1024 * 1024


def test_settings_reject_invalid_values(monkeypatch):
    monkeypatch.setenv("CONCURRENT_OCR", "0")
    with pytest.raises(ValueError):
        Settings.from_env()

    monkeypatch.setenv("CONCURRENT_OCR", "many")
    with pytest.raises(ValueError, match="CONCURRENT_OCR"):
        Settings.from_env()


def test_cache_evicts_least_recently_used():
    cache = RecognitionCache(max_entries=2)
    cache.set("a", OCRExtractionResult(text="A"))
    cache.set("b", OCRExtractionResult(text="B"))
    assert cache.get("a").text == "A"

    cache.set("c", OCRExtractionResult(text="C"))

    assert cache.get("b") is None
    assert cache.get("a").text == "A"
    assert cache.get("c").text == "C"
    assert len(cache) == 2
    assert (cache.hits, cache.misses) == (3, 1)
