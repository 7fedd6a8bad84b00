from __future__ import annotations

import mimetypes
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, FrozenSet, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

DocumentStatus = Literal["missing", "optional-missing", "valid", "invalid", "warning", "rejected"]
RiskLevel = Literal["low", "medium", "high"]
ContentKind = Literal["identity", "address", "none"]
ExtractionSource = Literal["local-heuristic", "remote-service"]

GENERIC_MEDIA_TYPE = "application/octet-stream"


# ------------------------------ Rules ----------------------------------------

class ImageConstraints(BaseModel):
    model_config = ConfigDict(frozen=True)

    min_width: Optional[int] = None
    min_height: Optional[int] = None
    min_aspect_ratio: Optional[float] = None
    max_aspect_ratio: Optional[float] = None


class QualityThresholds(BaseModel):
    model_config = ConfigDict(frozen=True)

    min_blur_score: Optional[float] = None
    min_brightness: Optional[float] = None
    max_brightness: Optional[float] = None
    min_contrast: Optional[float] = None


class DocumentRule(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    label: str
    required: bool = False
    content: ContentKind = "none"
    allowed_types: FrozenSet[str]
    max_size_bytes: int
    image: Optional[ImageConstraints] = None
    quality: Optional[QualityThresholds] = None

    @property
    def needs_image_checks(self) -> bool:
        return self.image is not None or self.quality is not None


class MatchingPolicy(BaseModel):
    model_config = ConfigDict(frozen=True)

    name_threshold: float = 0.7
    address_threshold: float = 0.6


class RiskPolicy(BaseModel):
    model_config = ConfigDict(frozen=True)

    missing_weight: int = 35
    basic_weight: int = 20
    quality_weight: int = 15
    consistency_weight: int = 20
    per_document_cap: int = 50
    low_max: int = 30
    medium_max: int = 70


class AnalysisPolicy(BaseModel):
    model_config = ConfigDict(frozen=True)

    max_dimension: int = 1024
    min_grid_step: int = 4


class ExtractionPolicy(BaseModel):
    model_config = ConfigDict(frozen=True)

    name_token_count: int = 2
    stop_tokens: FrozenSet[str] = frozenset({"photo", "image", "document", "proof"})


# ------------------------------ Inputs ---------------------------------------

class ApplicantData(BaseModel):
    """Subset of the applicant's form used for consistency checks."""

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    first_name: Optional[str] = None
    last_name: Optional[str] = None
    dob: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    pincode: Optional[str] = None

    def full_name(self) -> str:
        return " ".join(p for p in (self.first_name, self.last_name) if p)

    def combined_address(self) -> str:
        parts = (self.address, self.city, self.state, self.pincode)
        return " ".join(p for p in parts if p).lower()


@dataclass
class UploadedDocument:
    """A selected file. Content is read lazily and cached on first access."""

    filename: str
    media_type: str
    size: int
    reader: Callable[[], bytes] = field(repr=False)
    _content: Optional[bytes] = field(default=None, init=False, repr=False)

    def read(self) -> bytes:
        if self._content is None:
            self._content = self.reader()
        return self._content

    @classmethod
    def from_bytes(cls, filename: str, data: bytes, media_type: Optional[str] = None) -> "UploadedDocument":
        return cls(
            filename=filename,
            media_type=media_type or GENERIC_MEDIA_TYPE,
            size=len(data),
            reader=lambda: data,
        )

    @classmethod
    def from_path(cls, path: str | Path, media_type: Optional[str] = None) -> "UploadedDocument":
        p = Path(path)
        if media_type is None:
            media_type, _ = mimetypes.guess_type(p.name)
        return cls(
            filename=p.name,
            media_type=media_type or GENERIC_MEDIA_TYPE,
            size=p.stat().st_size,
            reader=p.read_bytes,
        )


# ------------------------------ Outputs --------------------------------------

class ImageMetrics(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    width: int
    height: int
    brightness: float
    contrast: float
    blur_score: float


class RemoteVerdict(BaseModel):
    status: DocumentStatus
    score: int
    issues: List[str] = Field(default_factory=list)
    snippet: str = ""
    timestamp: Optional[str] = None


class ExtractionResult(BaseModel):
    source: ExtractionSource
    full_name_text: Optional[str] = None
    date_of_birth_text: Optional[str] = None
    address_text: Optional[str] = None
    raw_text: Optional[str] = None
    verdict: Optional[RemoteVerdict] = None
    degraded: bool = False


class ValidationResult(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    key: str
    label: str
    status: DocumentStatus
    basic_issues: List[str] = Field(default_factory=list)
    quality_issues: List[str] = Field(default_factory=list)
    consistency_issues: List[str] = Field(default_factory=list)
    metrics: Optional[ImageMetrics] = None
    extracted_text_snippet: Optional[str] = None
    backend_score: Optional[int] = None
    details: Dict[str, float] = Field(default_factory=dict)

    @property
    def issues(self) -> List[str]:
        return [*self.basic_issues, *self.quality_issues, *self.consistency_issues]


class RiskAssessment(BaseModel):
    score: int = Field(ge=0, le=100)
    level: RiskLevel
    reasons: List[str] = Field(default_factory=list)
