"""
Manual color removal (chroma key) pipeline.

`remove_color_from_bytes` is the main entry point used by both the HTTP API
and the local script. It keeps orchestration simple:
bytes in -> decode -> alpha cutoff against a reference color -> PNG bytes out.

The cutoff is hard: a pixel is either fully transparent or left untouched.
"""

from __future__ import annotations

import logging
import math
from typing import Optional

import numpy as np

from . import config
from .image_io import decode_image, encode_png
from .models import ReferenceColor
from .pixels import PixelBuffer

logger = logging.getLogger(__name__)


def to_native_coordinates(
    click_x: float,
    click_y: float,
    display_width: float,
    display_height: float,
    natural_width: int,
    natural_height: int,
) -> tuple[int, int]:
    """Scale a click on a resized preview back to the image's own resolution."""
    native_x = click_x / display_width * natural_width
    native_y = click_y / display_height * natural_height
    return int(native_x), int(native_y)


def pick_reference(
    buffer: PixelBuffer,
    click_x: float,
    click_y: float,
    display_width: float,
    display_height: float,
) -> Optional[ReferenceColor]:
    """
    Sample the reference color under a display-space click.

    Returns None (and logs) instead of raising when the click cannot be
    mapped onto a pixel.
    """
    if not all(math.isfinite(v) for v in (click_x, click_y, display_width, display_height)):
        logger.warning(
            "pick_reference: non-finite click (%s, %s) on %sx%s display",
            click_x,
            click_y,
            display_width,
            display_height,
        )
        return None
    if display_width <= 0 or display_height <= 0:
        logger.warning(
            "pick_reference: invalid display size %sx%s", display_width, display_height
        )
        return None
    if click_x < 0 or click_y < 0:
        logger.warning("pick_reference: click (%s, %s) outside image", click_x, click_y)
        return None

    x, y = to_native_coordinates(
        click_x, click_y, display_width, display_height, buffer.width, buffer.height
    )
    if not buffer.in_bounds(x, y):
        logger.warning(
            "pick_reference: native pixel (%d, %d) outside %dx%d image",
            x,
            y,
            buffer.width,
            buffer.height,
        )
        return None

    r, g, b, _ = buffer.get(x, y)
    logger.debug("pick_reference: (%d, %d) -> rgb(%d, %d, %d)", x, y, r, g, b)
    return ReferenceColor(r=r, g=g, b=b)


def apply_removal(buffer: PixelBuffer, reference: ReferenceColor, tolerance: int) -> PixelBuffer:
    """
    Return a copy of `buffer` with every background pixel made transparent.

    A pixel is background when `pixels.matches` holds for it. RGB is never
    modified and the source buffer is left untouched.
    """
    tolerance = config.validate_tolerance(tolerance)
    result = buffer.copy()
    data = result.array

    rgb = data[..., :3].astype(np.int32)
    ref = np.array(reference.as_tuple(), dtype=np.int32)
    # squared distances stay integral, so `d < t` is exact as `d^2 < t^2`
    dist_sq = np.sum((rgb - ref) ** 2, axis=-1)
    background = dist_sq < tolerance * tolerance
    data[background, 3] = 0

    logger.debug(
        "apply_removal: ref=%s tolerance=%d cleared=%d/%d pixels",
        reference.as_tuple(),
        tolerance,
        int(np.count_nonzero(background)),
        background.size,
    )
    return result


def remove_color_from_bytes(
    image_bytes: bytes,
    reference: ReferenceColor,
    tolerance: Optional[int] = None,
) -> bytes:
    """
    Full pipeline from raw bytes to RGBA PNG bytes.

    Raises:
        ValueError: when the image cannot be decoded or tolerance is out of range.
    """
    if tolerance is None:
        tolerance = config.get_settings().default_tolerance
    buffer = decode_image(image_bytes)
    return encode_png(apply_removal(buffer, reference, tolerance))
