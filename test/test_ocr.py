import fitz
import numpy as np
import pytest

from conftest import encode_image
from doc_prescreen.errors import DecodeError
from doc_prescreen.tools.ocr import ocr_extract_bytes, sanitize_ocr_text


def _blank_pdf(pages: int = 1) -> bytes:
    doc = fitz.open()
    for _ in range(pages):
        page = doc.new_page(width=200, height=100)
        page.insert_text((20, 50), "Rahul Sharma")
    data = doc.tobytes()
    doc.close()
    return data


@pytest.fixture
def fake_tesseract(monkeypatch):
    seen = []

    def fake(img, lang=None):
        seen.append((img.size, lang))
        return "Hello\t World\n\x00"

    monkeypatch.setattr("doc_prescreen.tools.ocr.pytesseract.image_to_string", fake)
    return seen


def test_sanitize_collapses_control_and_spaces():
    assert sanitize_ocr_text("  A\x00B\t\tC \n") == "A B C"
    assert sanitize_ocr_text(None) == ""


def test_png_is_binarised_and_read(fake_tesseract):
    img = np.full((40, 60, 3), 255, dtype=np.uint8)
    assert ocr_extract_bytes(encode_image(img), "image/png") == "Hello World"
    assert fake_tesseract == [((60, 40), "eng")]


def test_pdf_first_page_is_rendered_at_2x(fake_tesseract):
    assert ocr_extract_bytes(_blank_pdf(pages=2), "application/pdf") == "Hello World"
    assert fake_tesseract[0][0] == (400, 200)
    assert len(fake_tesseract) == 1


@pytest.mark.parametrize(
    "data,mime",
    [
        (b"", "image/png"),
        (b"not an image", "image/jpeg"),
        (b"%PDF-broken", "application/pdf"),
    ],
)
def test_unreadable_content_raises_decode_error(fake_tesseract, data, mime):
    with pytest.raises(DecodeError):
        ocr_extract_bytes(data, mime)
    assert fake_tesseract == []
