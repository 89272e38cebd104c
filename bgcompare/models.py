"""Data model shared by the API, the orchestrator and the record store."""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator


class ModelSpec(BaseModel):
    id: str
    name: str
    # Anything Replicate accepts as `version`: "owner/name", "owner/name:hash" or a bare hash.
    version: str
    description: str = ""
    bestFor: str = ""
    inputKey: str = "image"


MODELS: List[ModelSpec] = [
    ModelSpec(
        id="bg-remover",
        name="BG Remover",
        version="851-labs/background-remover",
        description="Transparent-background based remover",
        bestFor="Products, clean studio shots",
    ),
    ModelSpec(
        id="rembg",
        name="Rembg",
        version="cjwbw/rembg",
        description="U2-Net general purpose segmentation",
        bestFor="General photos",
    ),
    ModelSpec(
        id="remove-bg",
        name="Remove BG",
        version="lucataco/remove-bg",
        description="BRIA-style salient object removal",
        bestFor="E-commerce, portraits",
    ),
    ModelSpec(
        id="birefnet",
        name="BiRefNet",
        version="men1scus/birefnet",
        description="Bilateral reference high resolution matting",
        bestFor="Fine details, hair, fur",
    ),
    ModelSpec(
        id="modnet",
        name="MODNet",
        version="pollinations/modnet",
        description="Trimap-free portrait matting",
        bestFor="Portraits",
    ),
]


def get_model(model_id: str) -> Optional[ModelSpec]:
    for spec in MODELS:
        if spec.id == model_id:
            return spec
    return None


class RecordCategory(BaseModel):
    id: str
    name: str
    icon: str = ""


CATEGORIES: List[RecordCategory] = [
    RecordCategory(id="portrait", name="Portrait", icon="👤"),
    RecordCategory(id="ecommerce", name="E-commerce", icon="🛍️"),
    RecordCategory(id="cartoon", name="Cartoon", icon="🎨"),
    RecordCategory(id="animals", name="Animals", icon="🐾"),
    RecordCategory(id="complex", name="Complex", icon="🧩"),
    RecordCategory(id="fine-details", name="Fine Details", icon="🔍"),
    RecordCategory(id="vfx", name="VFX", icon="✨"),
    RecordCategory(id="transparent", name="Transparent", icon="🫧"),
    RecordCategory(id="challenging", name="Challenging", icon="⚠️"),
]
CATEGORY_IDS = {c.id for c in CATEGORIES}


class JobStatus(str, Enum):
    IDLE = "idle"
    STARTING = "starting"
    PROCESSING = "processing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"

    @classmethod
    def from_upstream(cls, status: Optional[str]) -> "JobStatus":
        """Map a Replicate prediction status onto the job lifecycle."""
        if status == "succeeded":
            return cls.SUCCEEDED
        if status in ("failed", "canceled"):
            return cls.FAILED
        if status == "processing":
            return cls.PROCESSING
        return cls.STARTING

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.SUCCEEDED, JobStatus.FAILED)


def normalize_output(raw: Any) -> List[str]:
    """Replicate returns a single URL, a list of URLs, or nothing."""
    if raw is None:
        return []
    if isinstance(raw, (list, tuple)):
        return [str(item) for item in raw if item]
    return [str(raw)]


class ModelJob(BaseModel):
    modelId: str
    name: str = ""
    status: JobStatus = JobStatus.IDLE
    output: List[str] = Field(default_factory=list)
    error: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def trusted_output(self) -> List[str]:
        """Result URLs, only once the job has succeeded."""
        if self.status is JobStatus.SUCCEEDED:
            return list(self.output)
        return []


class ReferenceColor(BaseModel):
    r: int = Field(ge=0, le=255)
    g: int = Field(ge=0, le=255)
    b: int = Field(ge=0, le=255)

    def as_tuple(self) -> tuple[int, int, int]:
        return (self.r, self.g, self.b)


SCORE_METRICS = ("edgeAccuracy", "detailPreservation", "transparency")


class Score(BaseModel):
    # 0 means "not scored yet"
    edgeAccuracy: int = Field(0, ge=0, le=10)
    detailPreservation: int = Field(0, ge=0, le=10)
    transparency: int = Field(0, ge=0, le=10)
    overall: int = 0

    @model_validator(mode="after")
    def derive_overall(self) -> "Score":
        self.overall = calculate_overall(self)
        return self


def calculate_overall(score: Score) -> int:
    values = [getattr(score, m) for m in SCORE_METRICS if getattr(score, m) > 0]
    if not values:
        return 0
    # round half up
    return int(sum(values) / len(values) + 0.5)


class Record(BaseModel):
    category: str
    name: str
    notes: str = ""
    imageAnalysis: str = ""
    scores: Dict[str, Score] = Field(default_factory=dict)
    results: Dict[str, ModelJob] = Field(default_factory=dict)
    imageUrl: str = ""
    timestamp: Optional[str] = None
    id: Optional[str] = None

    @field_validator("category")
    @classmethod
    def category_must_be_known(cls, v: str) -> str:
        if v not in CATEGORY_IDS:
            raise ValueError(f"unknown category '{v}'")
        return v

    @field_validator("name")
    @classmethod
    def name_required(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("name must not be empty")
        return v
