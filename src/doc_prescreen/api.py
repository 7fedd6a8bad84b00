import json
import logging
from functools import lru_cache
from typing import Optional

from fastapi import FastAPI, File, Form, Request, UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from starlette.datastructures import UploadFile as StarletteUploadFile

from .errors import DecodeError
from .models import ApplicantData, UploadedDocument
from .pipeline import assess_documents
from .settings import Settings
from .tools.extraction import LocalHeuristicExtractor
from .tools.file_checks import resolve_media_type
from .tools.ocr import ocr_extract_bytes
from .tools.registry import RuleRegistry, load_registry
from .tools.snapshot import build_snapshot
from .tools.verification import UNREADABLE_REASON, UNSUPPORTED_FORMAT_REASON, score_document

LOGGER = logging.getLogger(__name__)

app = FastAPI(title="Document Pre-screening API")

SERVICES = [
    {"id": "passport", "name": "Passport Renewal", "icon": "Passport"},
    {"id": "income", "name": "Income Certificate", "icon": "FileText"},
    {"id": "birth", "name": "Birth Certificate", "icon": "Baby"},
]


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings.from_env()


@lru_cache(maxsize=1)
def get_registry() -> RuleRegistry:
    return load_registry(get_settings().rules_path)


def _parse_applicant(raw: Optional[str]) -> ApplicantData:
    if not raw:
        return ApplicantData()
    try:
        return ApplicantData.model_validate(json.loads(raw))
    except (json.JSONDecodeError, ValidationError) as exc:
        LOGGER.warning("Failed to parse applicant data: %s", exc)
        return ApplicantData()


@app.get("/ping")
def ping():
    return {"pong": True}


@app.get("/api/services")
def list_services():
    return SERVICES


@app.post("/api/verify-document")
async def verify_document(
    document: Optional[UploadFile] = File(None),
    documentType: str = Form(""),
    applicantData: Optional[str] = Form(None),
):
    """
    OCR one document and check it against the declared applicant data.

    Form fields:
        - document: the file (JPEG, PNG or PDF)
        - documentType: document key, e.g. addressProof or dobProof
        - applicantData: JSON object with firstName, lastName, dob, address, city, state, pincode

    Returns:
        {status, score, issues, extractedTextSnippet, timestamp}
    """
    if document is None:
        return JSONResponse(status_code=400, content={"error": "No document file provided."})

    try:
        data = await document.read()
        applicant = _parse_applicant(applicantData)
        upload = UploadedDocument.from_bytes(document.filename or "", data, document.content_type)
        mime = resolve_media_type(upload)

        text = ""
        skipped_reason = None
        if mime.startswith("image/") or mime == "application/pdf":
            LOGGER.info("Starting OCR for %s...", documentType)
            try:
                text = await run_in_threadpool(ocr_extract_bytes, data, mime)
                LOGGER.info("OCR complete. Extracted %d characters.", len(text))
            except DecodeError as exc:
                LOGGER.warning("OCR skipped for %s: %s", documentType, exc)
                skipped_reason = UNREADABLE_REASON
        else:
            skipped_reason = UNSUPPORTED_FORMAT_REASON

        return score_document(documentType, text, applicant, len(data), skipped_reason=skipped_reason)

    except Exception:
        LOGGER.exception("Error during document verification")
        return JSONResponse(status_code=500, content={"error": "Failed to process document verification."})


@app.post("/api/prescreen")
async def prescreen(request: Request):
    """
    Run the local pre-screening pipeline over every uploaded document.

    Form fields are named by document key (passportPhoto, addressProof, ...);
    applicantData carries the declared form values as JSON.
    """
    form = await request.form()
    registry = get_registry()
    raw_applicant = form.get("applicantData")
    applicant = _parse_applicant(raw_applicant if isinstance(raw_applicant, str) else None)

    documents = {}
    for key, value in form.multi_items():
        if key != "applicantData" and isinstance(value, StarletteUploadFile):
            data = await value.read()
            documents[key] = UploadedDocument.from_bytes(value.filename or key, data, value.content_type)

    results, risk = await run_in_threadpool(
        assess_documents,
        documents,
        applicant,
        registry,
        LocalHeuristicExtractor(registry),
        get_settings().max_workers,
    )
    return build_snapshot(results, risk)
