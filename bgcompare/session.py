"""
State of one comparison session.

Holds what the user is working on (source image, manual removal settings,
model jobs, scores). Each group of fields is changed only through its own
method, so every transition is explicit and easy to test.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import logging
from typing import Dict, Optional

from . import config
from .image_io import decode_image, encode_png_data_uri
from .manual_removal import apply_removal, pick_reference
from .models import ModelJob, Record, ReferenceColor, Score
from .pixels import PixelBuffer

logger = logging.getLogger(__name__)


@dataclass
class ComparisonSession:
    image_url: str = ""
    image: Optional[PixelBuffer] = None
    reference: Optional[ReferenceColor] = None
    tolerance: int = 30
    manual_result: Optional[PixelBuffer] = None
    results: Dict[str, ModelJob] = field(default_factory=dict)
    scores: Dict[str, Score] = field(default_factory=dict)
    is_saved: bool = True

    # image

    def load_image(self, image_url: str, image_bytes: bytes) -> None:
        """Start over with a new source image."""
        self.image = decode_image(image_bytes)
        self.image_url = image_url
        self.reference = None
        self.manual_result = None
        self.results = {}
        self.scores = {}
        self.is_saved = True

    def clear_image(self) -> None:
        self.image = None
        self.image_url = ""
        self.reference = None
        self.manual_result = None
        self.results = {}
        self.scores = {}
        self.is_saved = True

    # manual removal

    def pick_color(self, click_x: float, click_y: float, display_width: float, display_height: float) -> Optional[ReferenceColor]:
        if self.image is None:
            return None
        picked = pick_reference(self.image, click_x, click_y, display_width, display_height)
        if picked is not None:
            self.reference = picked
        return picked

    def set_reference(self, reference: Optional[ReferenceColor]) -> None:
        self.reference = reference

    def set_tolerance(self, tolerance: int) -> None:
        self.tolerance = config.validate_tolerance(tolerance)

    def apply_manual_removal(self) -> Optional[PixelBuffer]:
        if self.image is None or self.reference is None:
            return None
        self.manual_result = apply_removal(self.image, self.reference, self.tolerance)
        return self.manual_result

    def manual_result_data_uri(self) -> Optional[str]:
        if self.manual_result is None:
            return None
        return encode_png_data_uri(self.manual_result)

    # model jobs

    def start_run(self) -> None:
        self.results = {}

    def update_job(self, model_id: str, job: ModelJob) -> None:
        self.results = {**self.results, model_id: job}

    def finish_run(self) -> None:
        self.is_saved = False

    # scoring

    def set_score(self, model_id: str, score: Score) -> None:
        # revalidate so that `overall` is always derived from the metrics
        self.scores = {**self.scores, model_id: Score.model_validate(score.model_dump())}

    # persistence

    def has_unsaved_results(self) -> bool:
        return not self.is_saved and any(job.trusted_output() for job in self.results.values())

    def to_record(self, category: str, name: str, notes: str = "", image_analysis: str = "") -> Record:
        return Record(
            category=category,
            name=name,
            notes=notes,
            imageAnalysis=image_analysis,
            scores=dict(self.scores),
            results=dict(self.results),
            imageUrl=self.image_url,
        )

    def mark_saved(self) -> None:
        self.scores = {}
        self.is_saved = True
        logger.debug("session marked saved")
