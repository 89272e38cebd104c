"""
Image loading and encoding.

Images reach the service as data URIs (uploaded from the browser), remote
URLs, or raw bytes from disk. Everything is decoded into a `PixelBuffer`
in RGBA so that the manual remover always has an alpha channel to write.
"""

from __future__ import annotations

import base64
import binascii
from io import BytesIO
import logging
from typing import Optional, Tuple

from PIL import Image
import requests

from .pixels import PixelBuffer

logger = logging.getLogger(__name__)

DATA_URI_PREFIX = "data:"


def is_data_uri(value: str) -> bool:
    return value.startswith(DATA_URI_PREFIX)


def decode_data_uri(uri: str) -> Tuple[str, bytes]:
    """Split a base64 data URI into (mime type, payload bytes)."""
    if not is_data_uri(uri):
        raise ValueError("Not a data URI")
    header, sep, payload = uri.partition(",")
    if not sep:
        raise ValueError("Malformed data URI")
    meta = header[len(DATA_URI_PREFIX):]
    if not meta.endswith(";base64"):
        raise ValueError("Only base64 data URIs are supported")
    mime = meta[: -len(";base64")] or "application/octet-stream"
    try:
        return mime, base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ValueError("Invalid base64 payload in data URI") from exc


def encode_data_uri(payload: bytes, mime: str = "image/png") -> str:
    return f"data:{mime};base64,{base64.b64encode(payload).decode('ascii')}"


def download_image(
    url: str,
    timeout_seconds: int = 30,
    session: Optional[requests.Session] = None,
) -> bytes:
    http = session or requests
    resp = http.get(url, timeout=(5, timeout_seconds))
    resp.raise_for_status()
    return resp.content


def load_image_bytes(
    source: str,
    timeout_seconds: int = 30,
    session: Optional[requests.Session] = None,
) -> bytes:
    """Resolve a data URI or an http(s) URL to raw image bytes."""
    if is_data_uri(source):
        _, payload = decode_data_uri(source)
        return payload
    if source.startswith(("http://", "https://")):
        return download_image(source, timeout_seconds=timeout_seconds, session=session)
    raise ValueError("imageUrl must be a data URI or an http(s) URL")


def decode_image(image_bytes: bytes) -> PixelBuffer:
    """Decode encoded image bytes into an RGBA pixel buffer."""
    try:
        image = Image.open(BytesIO(image_bytes))
        image.load()
    except Exception as exc:  # noqa: BLE001
        raise ValueError("Invalid image data") from exc
    logger.debug("decoded image size=%sx%s mode=%s", image.width, image.height, image.mode)
    return PixelBuffer.from_image(image)


def encode_png(buffer: PixelBuffer) -> bytes:
    out = BytesIO()
    buffer.to_image().save(out, format="PNG")
    return out.getvalue()


def encode_png_data_uri(buffer: PixelBuffer) -> str:
    return encode_data_uri(encode_png(buffer), "image/png")
