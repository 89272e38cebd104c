"""Describe an input image with a vision model to help categorize a comparison."""

from __future__ import annotations

import logging
import threading
from typing import Optional

from .errors import JobFailed
from .replicate_client import PredictionClient

logger = logging.getLogger(__name__)

ANALYSIS_PROMPT = """Analyze this image for background removal purposes. Provide:

**Subject**: What's the main subject?
**Style**: Photo/cartoon/illustration/3D?
**Background**: Simple/complex/gradient/textured?
**Details**: Hair, fur, transparency, glow effects?
**Challenges**: What makes BG removal difficult?
**Recommended Category**: Portrait/E-commerce/Cartoon/Animals/Complex/Fine-Details/VFX/Transparent/Challenging

Keep under 150 words, be concise and specific."""


def analyze_image(
    client: PredictionClient,
    image_url: str,
    version: str,
    max_tokens: int = 500,
    cancel: Optional[threading.Event] = None,
) -> str:
    """
    Run the analysis prompt against `image_url` and return the model's text.

    Raises:
        CreationError: the prediction could not be started.
        PollError / PollTimeout / PollCancelled: polling did not complete.
        JobFailed: the vision model reported a failure.
    """
    prediction = client.create_prediction(
        version,
        image_url,
        input_key="image",
        extra_input={"prompt": ANALYSIS_PROMPT, "max_tokens": max_tokens},
    )
    final = client.poll_prediction(prediction, cancel=cancel)
    if final.status != "succeeded":
        raise JobFailed(f"Analysis {final.status}", details={"error": final.error})

    output = final.output
    if isinstance(output, list):
        # streamed models return tokens
        return "".join(str(part) for part in output)
    return "" if output is None else str(output)
