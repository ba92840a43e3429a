"""
File utilities
Decoding and validation of base64 reference images
"""
import base64
import binascii
import io

from PIL import Image, UnidentifiedImageError

from config import MAX_IMAGE_BYTES, MIN_IMAGE_BYTES, SUPPORTED_IMAGE_FORMATS


def decode_base64_image(image_data):
    """Decode a base64 payload, with or without a ``data:image/...;base64,`` prefix."""
    if not image_data or not isinstance(image_data, str):
        raise ValueError('referenceImage must be a base64 encoded image')

    if ',' in image_data:
        image_data = image_data.split(',', 1)[1]
    try:
        return base64.b64decode(image_data, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ValueError('referenceImage is not valid base64 data') from exc


def validate_image_bytes(img_bytes):
    """
    Check size and format of raw image bytes.
    Returns: the Pillow format name (JPEG, PNG, WEBP)
    """
    size = len(img_bytes)
    if size < MIN_IMAGE_BYTES:
        raise ValueError(f"Image too small (minimum {MIN_IMAGE_BYTES} bytes)")
    if size > MAX_IMAGE_BYTES:
        raise ValueError(f"Image too large (maximum {MAX_IMAGE_BYTES} bytes)")

    try:
        with Image.open(io.BytesIO(img_bytes)) as img:
            image_format = img.format
            img.verify()
    except (UnidentifiedImageError, OSError, SyntaxError) as exc:
        raise ValueError(f"Invalid image: {exc}") from exc

    if image_format not in SUPPORTED_IMAGE_FORMATS:
        allowed = ', '.join(sorted(SUPPORTED_IMAGE_FORMATS))
        raise ValueError(f"Unsupported image format {image_format}. Allowed: {allowed}")
    return image_format


def validate_reference_image(image_data):
    """Validate a base64 reference image and return it as a data URL ready for storage."""
    image_format = validate_image_bytes(decode_base64_image(image_data))
    if image_data.startswith('data:'):
        return image_data
    return f"data:image/{image_format.lower()};base64,{image_data}"
