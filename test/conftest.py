from typing import Optional

import cv2
import numpy as np
import pytest

from doc_prescreen.models import ApplicantData, UploadedDocument
from doc_prescreen.tools.extraction import LocalHeuristicExtractor
from doc_prescreen.tools.registry import default_registry


def encode_image(img: np.ndarray, ext: str = ".png") -> bytes:
    ok, buf = cv2.imencode(ext, img)
    assert ok, "Failed to encode test image"
    return buf.tobytes()


def flat_image(width: int, height: int, value: int = 128) -> np.ndarray:
    return np.full((height, width, 3), value, dtype=np.uint8)


def checker_image(width: int, height: int, square: int = 20, low: int = 60, high: int = 200) -> np.ndarray:
    """Sharp, mid-brightness, high-contrast pattern that passes the photo quality rules."""
    ys, xs = np.indices((height, width))
    board = ((ys // square + xs // square) % 2).astype(bool)
    img = np.where(board, high, low).astype(np.uint8)
    return np.dstack([img, img, img])


def make_document(filename: str, data: bytes, media_type: Optional[str] = None) -> UploadedDocument:
    return UploadedDocument.from_bytes(filename, data, media_type)


@pytest.fixture
def registry():
    return default_registry()


@pytest.fixture
def local_extractor(registry):
    return LocalHeuristicExtractor(registry)


@pytest.fixture
def applicant():
    return ApplicantData(
        first_name="Rahul",
        last_name="Sharma",
        dob="1995-01-01",
        address="221B Baker Street",
        city="Delhi",
        state="Delhi",
        pincode="110001",
    )


@pytest.fixture
def good_photo_bytes():
    return encode_image(checker_image(400, 500))
