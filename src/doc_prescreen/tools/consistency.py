from __future__ import annotations

from typing import Dict, List, Optional, Tuple

from doc_prescreen.models import ApplicantData, ExtractionResult
from doc_prescreen.tools.fuzzy import normalize_dob, similarity
from doc_prescreen.tools.registry import RuleRegistry

NAME_ISSUE = "Name on document may not closely match the name entered in the form."
DOB_ISSUE = "Date of birth on document appears different from the date entered in the form."
ADDRESS_ISSUE = "Address on document may not closely match the address entered in the form."


def check_consistency(
    applicant: Optional[ApplicantData],
    document_type: str,
    extraction: ExtractionResult,
    registry: RuleRegistry,
) -> Tuple[List[str], Dict[str, float]]:
    """Compare declared form data with extracted text. Returns (issues, similarity details)."""
    issues: List[str] = []
    details: Dict[str, float] = {}
    if applicant is None:
        return issues, details

    rule = registry.get(document_type)
    thresholds = registry.matching

    if rule.content == "identity":
        if extraction.full_name_text:
            score = similarity(applicant.full_name(), extraction.full_name_text)
            details["nameSimilarity"] = round(score, 4)
            if score < thresholds.name_threshold:
                issues.append(NAME_ISSUE)

        if extraction.date_of_birth_text and applicant.dob:
            declared = normalize_dob(applicant.dob)
            extracted = normalize_dob(extraction.date_of_birth_text)
            if declared and extracted and declared != extracted:
                issues.append(DOB_ISSUE)

    elif rule.content == "address":
        if extraction.address_text and applicant.address:
            score = similarity(applicant.combined_address(), extraction.address_text.lower())
            details["addressSimilarity"] = round(score, 4)
            if score < thresholds.address_threshold:
                issues.append(ADDRESS_ISSUE)

    return issues, details
