"""
Helpers for the base64 PNG snapshots the editor add-on posts with a commit.
"""
from __future__ import annotations

import base64
import binascii
from io import BytesIO

from PIL import Image, UnidentifiedImageError

from designvc.services.storage import UploadFailed

_DATA_URL_PREFIX = "data:"


def strip_data_url(data: str) -> str:
    """`data:image/png;base64,AAAA` -> `AAAA`; plain base64 passes through."""
    data = data.strip()
    if data.startswith(_DATA_URL_PREFIX) and "," in data:
        return data.split(",", 1)[1]
    return data


def decode_png_base64(data: str) -> bytes:
    """Decode a base64 (or data-URL) PNG and make sure Pillow reads it as PNG."""
    try:
        raw = base64.b64decode(strip_data_url(data), validate=True)
    except (binascii.Error, ValueError) as exc:
        raise UploadFailed(f"pngBase64 is not valid base64: {exc}") from exc

    if not raw:
        raise UploadFailed("pngBase64 decoded to an empty payload")

    try:
        with Image.open(BytesIO(raw)) as img:
            fmt = img.format
            img.verify()
    except (UnidentifiedImageError, OSError, SyntaxError) as exc:
        raise UploadFailed(f"payload is not a readable image: {exc}") from exc

    if fmt != "PNG":
        raise UploadFailed(f"expected a PNG payload, got {fmt}")
    return raw
