"""
Scoring used by the verification service behind POST /api/verify-document.

The score starts at 100 and loses points for each declared detail that cannot be
found in the OCR text. Matching here is a loose "contains" check on lower-cased
alphanumerics, since OCR text is noisy and long.
"""
from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from doc_prescreen.models import ApplicantData

LARGE_FILE_BYTES = 4 * 1024 * 1024
SMALL_FILE_BYTES = 10 * 1024
SNIPPET_LENGTH = 100

UNSUPPORTED_FORMAT_REASON = "OCR only supported for image and PDF formats currently. Skipping text verification."
UNREADABLE_REASON = "Document could not be read for text verification. Skipping text verification."

# (field, penalty, issue) checked against address proofs
_ADDRESS_PROOF_CHECKS = (
    ("first_name", 20, "Warning: First name not clearly found in document text."),
    ("last_name", 10, "Warning: Last name not clearly found in document text."),
    ("city", 20, "Warning: City name not found in document text."),
    ("pincode", 20, "Warning: PIN Code not found in document text."),
)


def _squash(text: str) -> str:
    return re.sub(r"[^a-z0-9]", "", (text or "").lower())


def loose_contains(extracted_text: str, target: Optional[str]) -> bool:
    if not target:
        return False
    return _squash(target) in _squash(extracted_text)


def _iso_utc_now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def score_document(
    document_type: str,
    extracted_text: str,
    applicant: ApplicantData,
    size: int,
    skipped_reason: Optional[str] = None,
) -> Dict[str, Any]:
    """Build the service response body for one document."""
    issues: List[str] = []
    status = "Valid"
    score = 100

    if skipped_reason:
        issues.append(skipped_reason)
    elif document_type == "addressProof":
        for field, penalty, message in _ADDRESS_PROOF_CHECKS:
            value = getattr(applicant, field)
            if value and not loose_contains(extracted_text, value):
                issues.append(message)
                score -= penalty
    elif document_type == "dobProof" and applicant.dob:
        year = applicant.dob.split("-")[0]
        if year not in extracted_text:
            issues.append(f"Warning: Year of birth ({year}) not detected in text.")
            score -= 30

    if size > LARGE_FILE_BYTES:
        issues.append("File size is quite large, might cause slow uploads on portal.")
    elif size < SMALL_FILE_BYTES:
        issues.append("File size is very small. Suspected low quality/resolution.")
        score -= 20
        status = "Warning"

    score = max(0, score)
    if score < 50:
        status = "High Risk"
    elif score < 80 or issues:
        status = "Warning"

    snippet = extracted_text[:SNIPPET_LENGTH] + ("..." if len(extracted_text) > SNIPPET_LENGTH else "")
    return {
        "status": status,
        "score": score,
        "issues": issues,
        "extractedTextSnippet": snippet,
        "timestamp": _iso_utc_now(),
    }
