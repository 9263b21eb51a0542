"""
Inline image handling for chat messages.

Clients may send an image either as a URL (already uploaded) or inline as a
base64 data URI. Inline payloads are written through Django's
``default_storage`` (local filesystem in development, any configured storage
backend in production) and replaced by the stored file's URL.

The declared ``data:image/<type>`` is never trusted: the decoded bytes are
opened with Pillow, only formats in ALLOWED_FORMATS are stored, and the file
extension comes from the detected format.
"""

from __future__ import annotations

import base64
import binascii
import logging
import re
import uuid
from io import BytesIO

from django.core.exceptions import ValidationError as DjangoValidationError
from django.core.files.base import ContentFile
from django.core.files.storage import default_storage
from django.core.validators import URLValidator
from PIL import Image

from core.exceptions import ValidationError

from chat.constants import MESSAGE_CONFIG

logger = logging.getLogger(__name__)

DATA_URI_RE = re.compile(
    r"^data:image/[a-zA-Z0-9.+-]+;base64,(?P<data>.+)$", re.DOTALL
)

# Pillow format name -> stored file extension
ALLOWED_FORMATS = {
    "JPEG": "jpg",
    "PNG": "png",
    "GIF": "gif",
    "WEBP": "webp",
}

_url_validator = URLValidator(schemes=["http", "https"])


def is_remote(image: str) -> bool:
    return image.startswith("http")


def validate_image_url(url: str) -> str:
    """
    Check a client-supplied image URL before it is persisted.

    Raises:
        ValidationError: URL is longer than the image column or malformed
    """
    if len(url) > MESSAGE_CONFIG.MAX_IMAGE_URL_LENGTH:
        raise ValidationError(
            f"Image URL cannot exceed {MESSAGE_CONFIG.MAX_IMAGE_URL_LENGTH} characters",
            error_code="INVALID_IMAGE_URL",
        )
    try:
        _url_validator(url)
    except DjangoValidationError:
        raise ValidationError("Image URL is not valid", error_code="INVALID_IMAGE_URL")
    return url


def detect_image_format(raw: bytes) -> str:
    """
    Return the stored extension for ``raw`` after checking it is an image.

    Raises:
        ValidationError: bytes are not a readable image of an allowed format
    """
    try:
        with Image.open(BytesIO(raw)) as img:
            image_format = img.format
            img.verify()
    except Image.DecompressionBombError:
        raise ValidationError("Image is too large", error_code="INVALID_IMAGE")
    except Image.UnidentifiedImageError:
        raise ValidationError("Payload is not an image", error_code="INVALID_IMAGE")
    except (OSError, SyntaxError, ValueError) as e:
        logger.debug(f"Rejected corrupt inline image: {e}")
        raise ValidationError("Image data is corrupt", error_code="INVALID_IMAGE")

    ext = ALLOWED_FORMATS.get(image_format)
    if ext is None:
        raise ValidationError(
            f"Image type '{image_format}' is not allowed",
            error_code="INVALID_IMAGE",
        )
    return ext


def store_inline_image(image: str, folder: str = MESSAGE_CONFIG.IMAGE_UPLOAD_FOLDER) -> str:
    """
    Return a URL for ``image``, uploading it first if it is inline.

    Args:
        image: URL or ``data:image/<ext>;base64,<payload>`` string
        folder: storage folder for uploaded files

    Returns:
        The URL unchanged, or the URL of the stored upload

    Raises:
        ValidationError: invalid URL, undecodable data URI, or bytes that
            are not a JPEG, PNG, GIF or WebP image
    """
    if is_remote(image):
        return validate_image_url(image)

    match = DATA_URI_RE.match(image.strip())
    if not match:
        raise ValidationError("Unsupported image payload", error_code="INVALID_IMAGE")

    try:
        raw = base64.b64decode(match.group("data"), validate=True)
    except (binascii.Error, ValueError):
        raise ValidationError("Image payload is not valid base64", error_code="INVALID_IMAGE")

    if not raw:
        raise ValidationError("Image payload is empty", error_code="INVALID_IMAGE")
    if len(raw) > MESSAGE_CONFIG.MAX_IMAGE_BYTES:
        raise ValidationError("Image is too large", error_code="INVALID_IMAGE")

    ext = detect_image_format(raw)
    name = default_storage.save(f"{folder}/{uuid.uuid4().hex}.{ext}", ContentFile(raw))
    logger.info(f"Stored inline chat image {name} ({len(raw)} bytes)")
    return default_storage.url(name)
