from __future__ import annotations

import logging
from typing import List, Mapping, Tuple

from doc_prescreen.models import RiskAssessment, RiskLevel, RiskPolicy, ValidationResult

LOGGER = logging.getLogger(__name__)


def risk_level(score: int, policy: RiskPolicy) -> RiskLevel:
    """low <= low_max < medium <= medium_max < high."""
    if score > policy.medium_max:
        return "high"
    if score > policy.low_max:
        return "medium"
    return "low"


def document_penalty(key: str, result: ValidationResult, policy: RiskPolicy) -> Tuple[int, List[str]]:
    """Capped penalty and reasons for one document."""
    if result.status == "optional-missing":
        return 0, []

    name = result.label or key
    points = 0
    reasons: List[str] = []

    if result.status == "missing":
        # the basic-issue list only restates the absence here
        points += policy.missing_weight
        reasons.append(f"{name} is missing but expected by the application.")
    elif result.basic_issues:
        points += policy.basic_weight
        reasons.append(f"{name} has file-level issues (format/size).")

    if result.quality_issues:
        points += policy.quality_weight
        reasons.append(f"{name} has potential image quality concerns.")

    if result.consistency_issues:
        points += policy.consistency_weight
        reasons.append(f"{name} appears inconsistent with the form details.")

    return min(points, policy.per_document_cap), reasons


def compute_risk(results: Mapping[str, ValidationResult], policy: RiskPolicy) -> RiskAssessment:
    """Join point over all per-document results; iteration order gives reason order."""
    total = 0
    reasons: List[str] = []
    for key, result in results.items():
        if result is None:
            continue
        points, doc_reasons = document_penalty(key, result, policy)
        total += points
        reasons.extend(doc_reasons)

    score = max(0, min(100, total))
    level = risk_level(score, policy)
    LOGGER.info("Rejection risk: %d (%s) from %d documents", score, level, len(results))
    return RiskAssessment(score=score, level=level, reasons=reasons)
