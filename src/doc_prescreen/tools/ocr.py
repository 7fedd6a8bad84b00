import re

import cv2
import fitz  # PyMuPDF
import numpy as np
import pytesseract
from PIL import Image

from doc_prescreen.errors import DecodeError


def _preprocess_for_ocr(img_bgr) -> str:
    """
    Preprocess with OpenCV and run Tesseract. Returns raw OCR text (str).
    """
    gray = cv2.cvtColor(img_bgr, cv2.COLOR_BGR2GRAY)
    # Otsu binarization
    _, bw = cv2.threshold(gray, 0, 255, cv2.THRESH_BINARY | cv2.THRESH_OTSU)
    return pytesseract.image_to_string(Image.fromarray(bw), lang="eng")


def _render_pdf_first_page_to_bgr(data: bytes):
    """
    Render first page of a PDF to an OpenCV BGR image using PyMuPDF.
    """
    try:
        doc = fitz.open(stream=data, filetype="pdf")
    except Exception as exc:  # PyMuPDF raises its own error types
        raise DecodeError(f"Unable to open PDF: {exc}") from exc
    with doc:
        if doc.page_count == 0:
            raise DecodeError("PDF has no pages.")
        page = doc.load_page(0)
        # 2x for a higher-res raster, better OCR
        pix = page.get_pixmap(matrix=fitz.Matrix(2, 2), alpha=False)
        img = np.frombuffer(pix.samples, dtype=np.uint8).reshape(pix.height, pix.width, pix.n)
        return cv2.cvtColor(img, cv2.COLOR_RGB2BGR)


def sanitize_ocr_text(text: str) -> str:
    """
    Remove control/invisible chars and collapse runs of whitespace.
    """
    sanitized = re.sub(r"[\x00-\x1F\x7F]", " ", text or "")
    sanitized = re.sub(r"\s+", " ", sanitized)
    return sanitized.strip()


def ocr_extract_bytes(data: bytes, mime_type: str) -> str:
    """
    OCR an image (JPEG/PNG) or the first page of a PDF held in memory.
    Raises DecodeError when the content cannot be turned into pixels.
    """
    if not data:
        raise DecodeError("Empty document content")
    if mime_type == "application/pdf":
        img_bgr = _render_pdf_first_page_to_bgr(data)
    else:
        img_bgr = cv2.imdecode(np.frombuffer(data, dtype=np.uint8), cv2.IMREAD_COLOR)
        if img_bgr is None:
            raise DecodeError("Unable to read image (possibly corrupted or unsupported).")

    return sanitize_ocr_text(_preprocess_for_ocr(img_bgr))
