"""
Reference image handling: validate an uploaded jewelry photo and normalize it for
vision analysis and storage.
"""
import base64
import io
import logging
from dataclasses import dataclass
from typing import Optional

from PIL import Image, ImageOps, UnidentifiedImageError

from core.config import settings
from core.exceptions import InputError

logger = logging.getLogger(__name__)


@dataclass
class ReferenceImageContext:
    """One uploaded reference image, alive for a single request"""

    raw_bytes: bytes
    normalized_bytes: bytes
    mime_type: str = "image/jpeg"
    analysis_text: str = ""
    stored_url: Optional[str] = None
    filename: Optional[str] = None

    @property
    def base64_data(self) -> str:
        return base64.b64encode(self.normalized_bytes).decode()

    @property
    def data_url(self) -> str:
        return f"data:{self.mime_type};base64,{self.base64_data}"

    def to_response(self) -> dict:
        return {"publicUrl": self.stored_url, "filename": self.filename, "analysis": self.analysis_text}


def validate_upload(data: bytes, content_type: Optional[str]) -> None:
    """Reject empty, oversized or non-image uploads before decoding."""
    if not data:
        raise InputError("Reference image is empty")
    if content_type and not content_type.startswith("image/"):
        raise InputError("Only image files are allowed", details={"contentType": content_type})
    if len(data) > settings.max_upload_size:
        raise InputError(
            "Reference image is too large",
            details={"size": len(data), "maxSize": settings.max_upload_size},
        )


def normalize_reference_image(
    data: bytes,
    max_dimension: Optional[int] = None,
    quality: Optional[int] = None,
) -> bytes:
    """
    Decode, orient, flatten to RGB and re-encode as JPEG no larger than max_dimension.

    Raises:
        InputError: if the bytes are not a decodable image
    """
    max_dimension = max_dimension or settings.max_reference_dimension
    quality = quality or settings.reference_jpeg_quality

    try:
        image = Image.open(io.BytesIO(data))
        # Smartphone photos carry their rotation in EXIF
        image = ImageOps.exif_transpose(image)
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError) as e:
        logger.error(f"Error processing reference image: {e}")
        raise InputError("Failed to process reference image", details={"reason": str(e)}) from e

    if image.mode != "RGB":
        image = image.convert("RGB")

    # Shrink only; never enlarge
    if image.width > max_dimension or image.height > max_dimension:
        image.thumbnail((max_dimension, max_dimension), Image.Resampling.LANCZOS)

    buffer = io.BytesIO()
    image.save(buffer, format="JPEG", quality=quality, optimize=True)
    return buffer.getvalue()


def build_reference_context(data: bytes, content_type: Optional[str] = None) -> ReferenceImageContext:
    validate_upload(data, content_type)
    normalized = normalize_reference_image(data)
    logger.info(f"Reference image normalized: {len(data)} -> {len(normalized)} bytes")
    return ReferenceImageContext(raw_bytes=data, normalized_bytes=normalized)
