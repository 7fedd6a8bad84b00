# -*- coding: utf-8 -*-
"""
Rule registry (YAML-driven) for document pre-screening.

- Rules live in YAML; the packaged default is <package>/config/document_rules.yaml.
  A different file can be selected with DOC_RULES_PATH or an explicit path.
- The file is validated against a JSON Schema (unknown keys rejected) before any
  model is built, so a typo in the rules fails loudly at load time.
- The loaded registry is immutable and is passed explicitly into every stage.
"""
from __future__ import annotations

import logging
import os
from functools import lru_cache
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, Iterator, Mapping, Optional

import yaml
from jsonschema import ValidationError as SchemaError
from jsonschema import validate as json_validate

from doc_prescreen.errors import ConfigurationError
from doc_prescreen.models import (
    AnalysisPolicy,
    DocumentRule,
    DocumentStatus,
    ExtractionPolicy,
    ImageConstraints,
    MatchingPolicy,
    QualityThresholds,
    RiskPolicy,
)

LOGGER = logging.getLogger(__name__)

_DEFAULT_RULES_PATH: Path = Path(__file__).resolve().parents[1] / "config" / "document_rules.yaml"

_MB = 1024 * 1024

_NUMBER = {"type": "number", "minimum": 0}


@lru_cache(maxsize=1)
def _json_schema() -> Dict[str, Any]:
    """Return the static JSON schema for the rules file (cached)."""
    rule = {
        "type": "object",
        "properties": {
            "label": {"type": "string", "minLength": 1},
            "required": {"type": "boolean"},
            "content": {"enum": ["identity", "address", "none"]},
            "allowed_types": {"type": "array", "items": {"type": "string"}, "minItems": 1},
            "max_size_bytes": {"type": "integer", "minimum": 1},
            "max_size_mb": {"type": "number", "exclusiveMinimum": 0},
            "image": {
                "type": "object",
                "properties": {
                    "min_width": {"type": "integer", "minimum": 0},
                    "min_height": {"type": "integer", "minimum": 0},
                    "min_aspect_ratio": _NUMBER,
                    "max_aspect_ratio": _NUMBER,
                },
                "additionalProperties": False,
            },
            "quality": {
                "type": "object",
                "properties": {
                    "min_blur_score": _NUMBER,
                    "min_brightness": _NUMBER,
                    "max_brightness": _NUMBER,
                    "min_contrast": _NUMBER,
                },
                "additionalProperties": False,
            },
        },
        "required": ["label", "allowed_types"],
        "oneOf": [{"required": ["max_size_bytes"]}, {"required": ["max_size_mb"]}],
        "additionalProperties": False,
    }
    return {
        "type": "object",
        "properties": {
            "documents": {"type": "object", "additionalProperties": rule, "minProperties": 1},
            "matching": {
                "type": "object",
                "properties": {
                    "name_threshold": {"type": "number", "minimum": 0, "maximum": 1},
                    "address_threshold": {"type": "number", "minimum": 0, "maximum": 1},
                },
                "additionalProperties": False,
            },
            "risk": {
                "type": "object",
                "properties": {
                    k: {"type": "integer", "minimum": 0}
                    for k in (
                        "missing_weight", "basic_weight", "quality_weight", "consistency_weight",
                        "per_document_cap", "low_max", "medium_max",
                    )
                },
                "additionalProperties": False,
            },
            "analysis": {
                "type": "object",
                "properties": {
                    "max_dimension": {"type": "integer", "minimum": 16},
                    "min_grid_step": {"type": "integer", "minimum": 1},
                },
                "additionalProperties": False,
            },
            "extraction": {
                "type": "object",
                "properties": {
                    "name_token_count": {"type": "integer", "minimum": 1},
                    "stop_tokens": {"type": "array", "items": {"type": "string"}},
                },
                "additionalProperties": False,
            },
            "basic_failure_status": {"enum": ["invalid", "rejected"]},
        },
        "required": ["documents"],
        "additionalProperties": False,
    }


class RuleRegistry:
    """Immutable per-document-type configuration plus the shared policies."""

    def __init__(
        self,
        rules: Mapping[str, DocumentRule],
        matching: MatchingPolicy,
        risk: RiskPolicy,
        analysis: AnalysisPolicy,
        extraction: ExtractionPolicy,
        basic_failure_status: DocumentStatus = "invalid",
        source: Optional[str] = None,
    ) -> None:
        if risk.low_max > risk.medium_max:
            raise ConfigurationError("risk.low_max must not exceed risk.medium_max")
        self._rules = MappingProxyType(dict(rules))
        self.matching = matching
        self.risk = risk
        self.analysis = analysis
        self.extraction = extraction
        self.basic_failure_status = basic_failure_status
        self.source = source

    @property
    def rules(self) -> Mapping[str, DocumentRule]:
        return self._rules

    def get(self, key: str) -> DocumentRule:
        try:
            return self._rules[key]
        except KeyError:
            raise ConfigurationError(f"Unknown document type: {key!r}") from None

    def keys(self) -> Iterator[str]:
        return iter(self._rules)

    def __contains__(self, key: object) -> bool:
        return key in self._rules

    def __len__(self) -> int:
        return len(self._rules)

    def __repr__(self) -> str:
        return f"RuleRegistry(keys={list(self._rules)}, source={self.source!r})"


def _build_rule(key: str, raw: Dict[str, Any]) -> DocumentRule:
    if "max_size_bytes" in raw:
        max_bytes = int(raw["max_size_bytes"])
    else:
        max_bytes = int(round(float(raw["max_size_mb"]) * _MB))

    image = raw.get("image")
    quality = raw.get("quality")
    return DocumentRule(
        id=key,
        label=raw["label"],
        required=bool(raw.get("required", False)),
        content=raw.get("content", "none"),
        allowed_types=frozenset(t.lower() for t in raw["allowed_types"]),
        max_size_bytes=max_bytes,
        image=ImageConstraints(**image) if image is not None else None,
        quality=QualityThresholds(**quality) if quality is not None else None,
    )


def build_registry(data: Dict[str, Any], source: Optional[str] = None) -> RuleRegistry:
    """Validate a parsed rules document and freeze it into a RuleRegistry."""
    try:
        json_validate(instance=data, schema=_json_schema())
    except SchemaError as exc:
        where = "/".join(str(p) for p in exc.absolute_path) or "<root>"
        raise ConfigurationError(f"Invalid rules ({where}): {exc.message}") from exc

    rules = {key: _build_rule(key, raw) for key, raw in data["documents"].items()}
    extraction = dict(data.get("extraction") or {})
    if "stop_tokens" in extraction:
        extraction["stop_tokens"] = frozenset(t.lower() for t in extraction["stop_tokens"])

    return RuleRegistry(
        rules,
        matching=MatchingPolicy(**(data.get("matching") or {})),
        risk=RiskPolicy(**(data.get("risk") or {})),
        analysis=AnalysisPolicy(**(data.get("analysis") or {})),
        extraction=ExtractionPolicy(**extraction),
        basic_failure_status=data.get("basic_failure_status", "invalid"),
        source=source,
    )


def load_registry(path: Optional[str | os.PathLike[str]] = None) -> RuleRegistry:
    """
    Load rules from `path`, else DOC_RULES_PATH, else the packaged default.
    Raises ConfigurationError when the file is missing, unreadable or invalid.
    """
    resolved = Path(path or os.getenv("DOC_RULES_PATH") or _DEFAULT_RULES_PATH)
    try:
        with resolved.open("r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except OSError as exc:
        raise ConfigurationError(f"Rules file not readable: {resolved}: {exc}") from exc
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"Rules file is not valid YAML: {resolved}: {exc}") from exc

    if not isinstance(data, dict):
        raise ConfigurationError(f"Rules file must contain a mapping: {resolved}")

    registry = build_registry(data, source=str(resolved))
    LOGGER.debug("Loaded %d document rules from %s", len(registry), resolved)
    return registry


@lru_cache(maxsize=1)
def default_registry() -> RuleRegistry:
    """The packaged rules (cached; the registry is immutable)."""
    return load_registry(_DEFAULT_RULES_PATH)
