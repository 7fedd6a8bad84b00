from __future__ import annotations

from pathlib import Path
from typing import List, Optional, Tuple

from doc_prescreen.models import GENERIC_MEDIA_TYPE, DocumentRule, UploadedDocument

MISSING_ISSUE = "No file selected."
TYPE_ISSUE = "File type not allowed for this document."
SIZE_ISSUE = "File size exceeds maximum size for upload."

EXT_TO_MIME = {
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "png": "image/png",
    "pdf": "application/pdf",
}

# Declared types that say nothing about the content
_PLACEHOLDER_TYPES = {"", GENERIC_MEDIA_TYPE, "binary/octet-stream", "application/unknown"}


def resolve_media_type(document: UploadedDocument) -> str:
    """Prefer the declared type; fall back to the extension when it is a placeholder."""
    declared = (document.media_type or "").strip().lower()
    if declared not in _PLACEHOLDER_TYPES:
        return declared
    ext = Path(document.filename or "").suffix.lstrip(".").lower()
    return EXT_TO_MIME.get(ext, declared)


def check_file_basics(document: Optional[UploadedDocument], rule: DocumentRule) -> Tuple[List[str], bool]:
    """
    Presence, type and size checks. Returns (issues, is_valid).

    Whether a missing file is "missing" or "optional-missing" is decided by the
    caller from the rule; this only reports that nothing was supplied.
    """
    issues: List[str] = []

    if document is None:
        issues.append(MISSING_ISSUE)
        return issues, False

    mime = resolve_media_type(document)
    if rule.allowed_types and mime not in rule.allowed_types:
        issues.append(TYPE_ISSUE)

    if rule.max_size_bytes and document.size > rule.max_size_bytes:
        issues.append(SIZE_ISSUE)

    return issues, not issues
