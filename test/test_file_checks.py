import pytest

from conftest import make_document
from doc_prescreen.tools.file_checks import (
    MISSING_ISSUE,
    SIZE_ISSUE,
    TYPE_ISSUE,
    check_file_basics,
    resolve_media_type,
)

MB = 1024 * 1024


def _sized(filename, size, media_type=None):
    doc = make_document(filename, b"", media_type)
    doc.size = size
    return doc


@pytest.mark.parametrize(
    "filename,declared,expected",
    [
        ("photo.png", "image/png", "image/png"),
        ("photo.png", "IMAGE/JPEG", "image/jpeg"),           # declared wins when specific
        ("scan.JPG", "application/octet-stream", "image/jpeg"),
        ("bill.pdf", None, "application/pdf"),
        ("notes.txt", "application/octet-stream", "application/octet-stream"),
    ],
)
def test_resolve_media_type(filename, declared, expected):
    assert resolve_media_type(make_document(filename, b"x", declared)) == expected


def test_missing_document_reports_issue(registry):
    issues, ok = check_file_basics(None, registry.get("passportPhoto"))
    assert issues == [MISSING_ISSUE]
    assert ok is False


def test_oversized_png_yields_exactly_one_issue(registry):
    doc = _sized("photo.png", 6 * MB, "image/png")
    issues, ok = check_file_basics(doc, registry.get("passportPhoto"))
    assert issues == [SIZE_ISSUE]
    assert "exceeds maximum size" in issues[0]
    assert ok is False


def test_wrong_type_and_size_are_both_reported(registry):
    doc = _sized("resume.pdf", 6 * MB, "application/pdf")
    issues, _ = check_file_basics(doc, registry.get("passportPhoto"))
    assert issues == [TYPE_ISSUE, SIZE_ISSUE]


def test_pdf_is_fine_for_address_proof(registry):
    doc = _sized("bill.pdf", 2 * MB, "application/octet-stream")
    issues, ok = check_file_basics(doc, registry.get("addressProof"))
    assert issues == []
    assert ok is True


def test_exact_limit_is_allowed(registry):
    doc = _sized("photo.jpeg", 5 * MB, "image/jpeg")
    assert check_file_basics(doc, registry.get("passportPhoto")) == ([], True)
