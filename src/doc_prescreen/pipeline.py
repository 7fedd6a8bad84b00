"""
Per-document orchestration and the multi-document join.

validate_document() runs the stages for one document and always returns a
ValidationResult; content problems become issues, never exceptions.
validate_documents() fans the registry's documents out over a thread pool and
joins them. ValidationSession adds supersession: replacing a document while its
previous validation is still running discards the stale result.
"""
from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor, wait
from typing import Dict, List, Mapping, Optional, Tuple

from doc_prescreen.errors import ConfigurationError
from doc_prescreen.models import (
    ApplicantData,
    DocumentStatus,
    ExtractionResult,
    RiskAssessment,
    UploadedDocument,
    ValidationResult,
)
from doc_prescreen.tools.consistency import check_consistency
from doc_prescreen.tools.extraction import UNAVAILABLE_ISSUE, TextExtractor
from doc_prescreen.tools.file_checks import check_file_basics, resolve_media_type
from doc_prescreen.tools.image_quality import analyze_image
from doc_prescreen.tools.registry import RuleRegistry
from doc_prescreen.tools.risk import compute_risk

LOGGER = logging.getLogger(__name__)

UNKNOWN_TYPE_ISSUE = "Document type is not configured; treated as missing."
EXTRACTION_FAILED_ISSUE = "Text could not be extracted; consistency with the form was not verified."
MATCHING_FAILED_ISSUE = "Consistency check could not be completed; proceeding with caution."
REMOTE_HIGH_RISK_ISSUE = "High risk score detected by verification service."

REMOTE_HIGH_RISK_SCORE = 50
SNIPPET_LENGTH = 100

_ADVISORIES = {UNAVAILABLE_ISSUE, EXTRACTION_FAILED_ISSUE, MATCHING_FAILED_ISSUE}


def _snippet(text: Optional[str]) -> Optional[str]:
    if not text:
        return None
    return text[:SNIPPET_LENGTH] + ("..." if len(text) > SNIPPET_LENGTH else "")


def _local_text(extraction: ExtractionResult) -> Optional[str]:
    parts = [
        extraction.full_name_text,
        extraction.date_of_birth_text,
        extraction.address_text,
        extraction.raw_text,
    ]
    return " ".join(p for p in parts if p) or None


def _final_status(
    basic: List[str],
    quality: List[str],
    consistency: List[str],
    remote_status: Optional[DocumentStatus],
) -> DocumentStatus:
    issues = [*basic, *quality, *consistency]
    if remote_status is not None:
        if remote_status == "valid" and issues:
            return "warning"
        return remote_status
    if not issues:
        return "valid"
    if all(i in _ADVISORIES for i in issues):
        return "warning"
    return "invalid"


def validate_document(
    key: str,
    document: Optional[UploadedDocument],
    applicant: Optional[ApplicantData],
    registry: RuleRegistry,
    extractor: TextExtractor,
) -> ValidationResult:
    """Run every applicable check for one document and summarise it."""
    try:
        rule = registry.get(key)
    except ConfigurationError as exc:
        LOGGER.warning("%s", exc)
        return ValidationResult(key=key, label=key, status="missing", basic_issues=[UNKNOWN_TYPE_ISSUE])

    basic_issues, ok = check_file_basics(document, rule)
    if document is None:
        status: DocumentStatus = "missing" if rule.required else "optional-missing"
        return ValidationResult(key=key, label=rule.label, status=status, basic_issues=basic_issues)
    if not ok:
        LOGGER.info("%s: failed file checks: %s", key, basic_issues)
        return ValidationResult(
            key=key, label=rule.label, status=registry.basic_failure_status, basic_issues=basic_issues,
        )

    metrics = None
    quality_issues: List[str] = []
    if rule.needs_image_checks and resolve_media_type(document).startswith("image/"):
        metrics, quality_issues = analyze_image(document, rule, registry.analysis)

    consistency_issues: List[str] = []
    details: Dict[str, float] = {}
    snippet = None
    backend_score = None
    remote_status: Optional[DocumentStatus] = None

    try:
        extraction = extractor.extract(document, key, applicant)
    except Exception:  # extraction is best-effort
        LOGGER.exception("%s: text extraction failed", key)
        extraction = None
        consistency_issues.append(EXTRACTION_FAILED_ISSUE)

    if extraction is not None and extraction.degraded:
        consistency_issues.append(UNAVAILABLE_ISSUE)
    elif extraction is not None:
        verdict = extraction.verdict
        if verdict is not None:
            backend_score = verdict.score
            snippet = _snippet(verdict.snippet)
            consistency_issues.extend(verdict.issues)
            if verdict.score < REMOTE_HIGH_RISK_SCORE:
                basic_issues.append(REMOTE_HIGH_RISK_ISSUE)
            remote_status = verdict.status
        else:
            snippet = _snippet(_local_text(extraction))

        try:
            matched, details = check_consistency(applicant, key, extraction, registry)
            consistency_issues.extend(matched)
        except Exception:  # matching is best-effort
            LOGGER.exception("%s: consistency check failed", key)
            consistency_issues.append(MATCHING_FAILED_ISSUE)

    status = _final_status(basic_issues, quality_issues, consistency_issues, remote_status)
    LOGGER.info(
        "%s: %s (basic=%d quality=%d consistency=%d)",
        key, status, len(basic_issues), len(quality_issues), len(consistency_issues),
    )
    return ValidationResult(
        key=key,
        label=rule.label,
        status=status,
        basic_issues=basic_issues,
        quality_issues=quality_issues,
        consistency_issues=consistency_issues,
        metrics=metrics,
        extracted_text_snippet=snippet,
        backend_score=backend_score,
        details=details,
    )


def _ordered_keys(registry: RuleRegistry, extra: Mapping[str, object]) -> List[str]:
    keys = list(registry.keys())
    keys.extend(k for k in extra if k not in registry)
    return keys


def validate_documents(
    documents: Mapping[str, Optional[UploadedDocument]],
    applicant: Optional[ApplicantData],
    registry: RuleRegistry,
    extractor: TextExtractor,
    max_workers: int = 4,
) -> Dict[str, ValidationResult]:
    """Validate every registry document (plus any extra keys supplied) concurrently."""
    keys = _ordered_keys(registry, documents)
    with ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="prescreen") as pool:
        futures = {
            key: pool.submit(validate_document, key, documents.get(key), applicant, registry, extractor)
            for key in keys
        }
        return {key: futures[key].result() for key in keys}


def assess_documents(
    documents: Mapping[str, Optional[UploadedDocument]],
    applicant: Optional[ApplicantData],
    registry: RuleRegistry,
    extractor: TextExtractor,
    max_workers: int = 4,
) -> Tuple[Dict[str, ValidationResult], RiskAssessment]:
    results = validate_documents(documents, applicant, registry, extractor, max_workers)
    return results, compute_risk(results, registry.risk)


class ValidationSession:
    """
    Tracks the current document per key and validates in the background.

    Every set_document() bumps the key's generation. A run only stores its
    result if its generation is still current when it finishes, so a replaced
    document can never overwrite the state of its replacement.
    """

    def __init__(
        self,
        registry: RuleRegistry,
        extractor: TextExtractor,
        applicant: Optional[ApplicantData] = None,
        max_workers: int = 4,
    ) -> None:
        self.registry = registry
        self.extractor = extractor
        self.applicant = applicant
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="prescreen")
        self._lock = threading.Lock()
        self._generation: Dict[str, int] = {}
        self._pending: Dict[str, Future] = {}
        self._results: Dict[str, ValidationResult] = {}

    def __enter__(self) -> "ValidationSession":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        self._executor.shutdown(wait=True, cancel_futures=True)

    def _run(self, key: str, generation: int, document: Optional[UploadedDocument]) -> Optional[ValidationResult]:
        result = validate_document(key, document, self.applicant, self.registry, self.extractor)
        with self._lock:
            if self._generation.get(key) != generation:
                LOGGER.debug("Discarding stale result for %s (generation %d)", key, generation)
                return None
            self._results[key] = result
        return result

    def set_document(self, key: str, document: Optional[UploadedDocument]) -> Future:
        """Replace the document for `key` and start validating it."""
        with self._lock:
            generation = self._generation.get(key, 0) + 1
            self._generation[key] = generation
            self._results.pop(key, None)
            previous = self._pending.pop(key, None)
            if previous is not None and previous.cancel():
                LOGGER.debug("Cancelled queued validation for %s", key)
            future = self._executor.submit(self._run, key, generation, document)
            self._pending[key] = future
        return future

    def results(self, timeout: Optional[float] = None) -> Dict[str, ValidationResult]:
        """Wait for every current validation (unset keys count as no file) and return them."""
        with self._lock:
            unset = [k for k in self.registry.keys() if k not in self._generation]
        for key in unset:
            self.set_document(key, None)

        while True:
            with self._lock:
                pending = list(self._pending.values())
            running = [f for f in pending if not f.done()]
            if running:
                _, not_done = wait(running, timeout=timeout)
                if not_done:
                    raise TimeoutError(f"{len(not_done)} document validations still running")
                continue

            for future in pending:
                # unexpected internal faults are not document issues
                future.result()

            with self._lock:
                if any(not f.done() for f in self._pending.values()):
                    continue
                keys = _ordered_keys(self.registry, self._results)
                return {k: self._results[k] for k in keys if k in self._results}

    def assess(self, timeout: Optional[float] = None) -> Tuple[Dict[str, ValidationResult], RiskAssessment]:
        results = self.results(timeout)
        return results, compute_risk(results, self.registry.risk)
