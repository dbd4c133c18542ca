"""
Image re-encoding for uploads.

Avatars and listing photos arrive as data URLs or raw bytes in any format
Pillow can read and are stored as WebP.
"""

import base64
import binascii
import re
import time
from io import BytesIO
from uuid import uuid4

from PIL import Image, UnidentifiedImageError

from marketplace.core.exceptions import ValidationError
from marketplace.interfaces.storage_provider import IStorageProvider

_DATA_URL_HEADER = re.compile(r"^data:([^;,]+)((?:;[^;,]+)*);base64$")


def is_data_url(value: str) -> bool:
    return value.startswith("data:image")


def decode_data_url(data_url: str) -> tuple[str, bytes]:
    """
    Split a base64 data URL into (mime_type, bytes).

    Raises:
        ValidationError: Not a base64 data URL, or payload is not valid base64
    """
    header, sep, payload = data_url.partition(",")
    if not sep:
        raise ValidationError("Invalid data URL")

    match = _DATA_URL_HEADER.match(header)
    if not match:
        raise ValidationError("Could not find MIME type in data URL")

    try:
        return match.group(1), base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValidationError(f"Invalid base64 payload in data URL: {e}")


def convert_to_webp(data: bytes, quality: int = 80) -> bytes:
    """Re-encode image bytes as WebP, keeping transparency."""
    try:
        image = Image.open(BytesIO(data))
        image.load()
    except (UnidentifiedImageError, OSError) as e:
        raise ValidationError(f"Invalid image file: {e}")

    if image.mode not in ("RGB", "RGBA"):
        has_alpha = "A" in image.getbands() or "transparency" in image.info
        image = image.convert("RGBA" if has_alpha else "RGB")

    output = BytesIO()
    image.save(output, format="WEBP", quality=quality)
    return output.getvalue()


async def store_webp(
    storage: IStorageProvider,
    prefix: str,
    data: bytes,
    quality: int = 80,
    max_bytes: int = 5 * 1024 * 1024,
) -> str:
    """
    Re-encode and upload an image under {prefix}/{millis}_{suffix}.webp.

    Returns:
        Public URL of the stored file
    """
    if len(data) > max_bytes:
        raise ValidationError(f"Image too large. Max {max_bytes // (1024 * 1024)}MB.")

    webp = convert_to_webp(data, quality=quality)
    path = f"{prefix.strip('/')}/{int(time.time() * 1000)}_{uuid4().hex[:8]}.webp"
    await storage.upload(path, webp, content_type="image/webp")
    return storage.get_public_url(path)
