"""
Text extraction strategies.

Both strategies expose ``extract(document, document_type, applicant=None)`` and
return an ExtractionResult:

- LocalHeuristicExtractor derives a name, a date of birth or address text from
  the filename. It is a deterministic stand-in for OCR, not OCR.
- RemoteVerificationExtractor posts the document to the verification service
  and carries back its verdict. Any network or protocol failure gives a
  degraded result instead of an exception, so sibling documents are unaffected.
"""
from __future__ import annotations

import json
import logging
import re
from abc import ABC, abstractmethod
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List, Optional

import requests
from jsonschema import ValidationError as SchemaError
from jsonschema import validate as json_validate

from doc_prescreen.errors import ServiceError
from doc_prescreen.models import (
    ApplicantData,
    DocumentStatus,
    ExtractionResult,
    RemoteVerdict,
    UploadedDocument,
)
from doc_prescreen.settings import Settings
from doc_prescreen.tools.file_checks import resolve_media_type
from doc_prescreen.tools.fuzzy import find_date
from doc_prescreen.tools.registry import RuleRegistry

LOGGER = logging.getLogger(__name__)

UNAVAILABLE_ISSUE = "Verification service unavailable; proceeding with caution."

# Wire statuses are case-sensitive
WIRE_STATUS: Dict[str, DocumentStatus] = {
    "Valid": "valid",
    "Warning": "warning",
    "High Risk": "rejected",
}

_SEPARATORS = re.compile(r"[_\-\s.,]+")
_DATE_SHAPES = re.compile(r"(?<!\d)(?:\d{4}[-/]\d{2}[-/]\d{2}|\d{2}[-/]\d{2}[-/]\d{4})(?!\d)")


class TextExtractor(ABC):
    """One capability, two interchangeable implementations."""

    source: str = ""

    @abstractmethod
    def extract(
        self,
        document: UploadedDocument,
        document_type: str,
        applicant: Optional[ApplicantData] = None,
    ) -> ExtractionResult:
        raise NotImplementedError


# ------------------------------ Local heuristic ------------------------------

class LocalHeuristicExtractor(TextExtractor):
    source = "local-heuristic"

    def __init__(self, registry: RuleRegistry) -> None:
        self.registry = registry

    def _tokens(self, basename: str) -> List[str]:
        stop = self.registry.extraction.stop_tokens
        without_dates = _DATE_SHAPES.sub(" ", basename)
        return [t for t in _SEPARATORS.split(without_dates) if t and t.lower() not in stop]

    def extract(
        self,
        document: UploadedDocument,
        document_type: str,
        applicant: Optional[ApplicantData] = None,
    ) -> ExtractionResult:
        rule = self.registry.get(document_type)
        basename = Path(document.filename or "").stem
        tokens = self._tokens(basename)

        if rule.content == "identity":
            count = self.registry.extraction.name_token_count
            name_tokens = [t for t in tokens if not t.isdigit()][:count]
            return ExtractionResult(
                source="local-heuristic",
                full_name_text=" ".join(name_tokens) or None,
                date_of_birth_text=find_date(basename),
            )

        if rule.content == "address":
            return ExtractionResult(
                source="local-heuristic",
                address_text=" ".join(tokens) or None,
            )

        return ExtractionResult(source="local-heuristic", raw_text=" ".join(tokens) or basename)


# ------------------------------ Remote service -------------------------------

@lru_cache(maxsize=1)
def _response_schema() -> Dict[str, Any]:
    return {
        "type": "object",
        "properties": {
            "status": {"enum": list(WIRE_STATUS)},
            "score": {"type": "integer", "minimum": 0, "maximum": 100},
            "issues": {"type": "array", "items": {"type": "string"}},
            "extractedTextSnippet": {"type": "string"},
            "timestamp": {"type": "string"},
        },
        "required": ["status", "score"],
    }


def parse_verdict(payload: Any) -> RemoteVerdict:
    """Validate a service response and map it to the internal vocabulary."""
    try:
        json_validate(instance=payload, schema=_response_schema())
    except SchemaError as exc:
        raise ServiceError(f"Malformed verification response: {exc.message}") from exc

    return RemoteVerdict(
        status=WIRE_STATUS[payload["status"]],
        score=payload["score"],
        issues=list(payload.get("issues") or []),
        snippet=payload.get("extractedTextSnippet") or "",
        timestamp=payload.get("timestamp"),
    )


class RemoteVerificationExtractor(TextExtractor):
    source = "remote-service"

    def __init__(self, url: str, timeout: float = 15.0, session: Optional[requests.Session] = None) -> None:
        self.url = url
        self.timeout = timeout
        self.session = session

    def _post(self, **kwargs: Any) -> requests.Response:
        client = self.session if self.session is not None else requests
        return client.post(self.url, timeout=self.timeout, **kwargs)

    def extract(
        self,
        document: UploadedDocument,
        document_type: str,
        applicant: Optional[ApplicantData] = None,
    ) -> ExtractionResult:
        applicant_json = json.dumps(applicant.model_dump(by_alias=True) if applicant else {})
        files = {"document": (document.filename, document.read(), resolve_media_type(document))}
        data = {"documentType": document_type, "applicantData": applicant_json}

        try:
            resp = self._post(files=files, data=data)
            resp.raise_for_status()
            verdict = parse_verdict(resp.json())
        except (requests.RequestException, ValueError, ServiceError) as exc:
            LOGGER.warning("Verification service failed for %s (%s): %s", document_type, self.url, exc)
            return ExtractionResult(source="remote-service", degraded=True)

        LOGGER.info("Verification service: %s -> %s (score %d)", document_type, verdict.status, verdict.score)
        return ExtractionResult(source="remote-service", raw_text=verdict.snippet or None, verdict=verdict)


def build_extractor(registry: RuleRegistry, settings: Optional[Settings] = None) -> TextExtractor:
    """Pick the strategy named by EXTRACTION_STRATEGY."""
    settings = settings or Settings.from_env()
    if settings.extraction_strategy == "remote":
        return RemoteVerificationExtractor(settings.verify_service_url, settings.verify_timeout_s)
    return LocalHeuristicExtractor(registry)
