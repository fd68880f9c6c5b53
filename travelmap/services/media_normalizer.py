"""Re-encode uploads into something every browser and the face pipeline can decode."""

from __future__ import annotations

import io
import logging
import re

from PIL import Image, ImageOps

from travelmap import config
from travelmap.utils.image_utils import UploadedImage

logger = logging.getLogger(__name__)

HEIF_TYPES = {"image/heic", "image/heif"}
HEIF_EXTENSIONS = {".heic", ".heif"}
WEBP_TYPES = {"image/webp"}
WEBP_EXTENSIONS = {".webp"}

_heif_registered = False


def _register_heif() -> None:
    global _heif_registered
    if _heif_registered:
        return
    from pillow_heif import register_heif_opener

    register_heif_opener()
    _heif_registered = True


def is_heif(upload: UploadedImage) -> bool:
    return (upload.content_type or "").lower() in HEIF_TYPES or upload.extension in HEIF_EXTENSIONS


def is_webp(upload: UploadedImage) -> bool:
    return (upload.content_type or "").lower() in WEBP_TYPES or upload.extension in WEBP_EXTENSIONS


def needs_conversion(upload: UploadedImage) -> bool:
    return is_heif(upload) or is_webp(upload)


def scaled_size(width: int, height: int, max_dim: int = config.MAX_IMAGE_DIMENSION) -> tuple[int, int]:
    """Fit (width, height) inside max_dim on the longest side, never upscaling."""
    scale = min(1.0, max_dim / max(width, height))
    return max(1, round(width * scale)), max(1, round(height * scale))


def jpeg_name(name: str) -> str:
    renamed = re.sub(r"\.(heic|heif|webp)$", ".jpg", name or "", flags=re.IGNORECASE)
    return renamed or "photo.jpg"


def _encode_jpeg(image: Image.Image, max_dim: int, quality: float) -> bytes:
    image = ImageOps.exif_transpose(image)
    if image.mode != "RGB":
        image = image.convert("RGB")
    target = scaled_size(image.width, image.height, max_dim)
    if target != image.size:
        image = image.resize(target, Image.Resampling.LANCZOS)
    buffer = io.BytesIO()
    image.save(buffer, format="JPEG", quality=int(round(quality * 100)))
    return buffer.getvalue()


def normalize_upload(
    upload: UploadedImage,
    max_dim: int = config.MAX_IMAGE_DIMENSION,
    quality: float = config.JPEG_QUALITY,
) -> UploadedImage:
    """Convert HEIC/HEIF and WEBP uploads to JPEG, downscaling huge images.

    Everything else is returned as is. If conversion fails the original
    upload is returned so the upload itself still goes through.
    """
    if not needs_conversion(upload):
        return upload

    try:
        if is_heif(upload):
            _register_heif()
        with Image.open(io.BytesIO(upload.data)) as image:
            image.load()
            data = _encode_jpeg(image, max_dim, quality)
    except Exception as exc:
        logger.warning("Conversion of %s failed, uploading original file: %s", upload.name, exc)
        return upload

    logger.info("Converted %s to JPEG (%d -> %d bytes)", upload.name, len(upload.data), len(data))
    return UploadedImage(name=jpeg_name(upload.name), content_type="image/jpeg", data=data)
