"""Image loading and processing utilities."""

from __future__ import annotations

import base64
import binascii
import io
from dataclasses import dataclass
from pathlib import PurePath
from typing import Optional, Union

import numpy as np
from PIL import Image, ImageOps


@dataclass
class UploadedImage:
    """An uploaded file as received from the browser."""

    name: str
    content_type: str
    data: bytes

    @property
    def extension(self) -> str:
        return PurePath(self.name or "").suffix.lower()

    def is_image(self) -> bool:
        content_type = (self.content_type or "").lower()
        if content_type.startswith("image/"):
            return True
        return self.extension in {".jpg", ".jpeg", ".png", ".gif", ".webp", ".heic", ".heif", ".bmp", ".tiff"}


def load_image_as_array(image_data: Union[bytes, Image.Image, np.ndarray]) -> np.ndarray:
    """Load an image and return as RGB float32 array normalized to [0, 1].

    EXIF orientation is applied so face boxes line up with what the browser shows.
    """
    if isinstance(image_data, np.ndarray):
        if image_data.dtype == np.uint8:
            return image_data.astype(np.float32) / 255.0
        elif image_data.max() > 1.0:
            return image_data.astype(np.float32) / 255.0
        return image_data.astype(np.float32)

    if isinstance(image_data, bytes):
        with Image.open(io.BytesIO(image_data)) as img:
            img = ImageOps.exif_transpose(img)
            rgb = img.convert("RGB")
    else:
        rgb = ImageOps.exif_transpose(image_data).convert("RGB")

    return np.array(rgb, dtype=np.float32) / 255.0


def to_uint8(image: np.ndarray) -> np.ndarray:
    if image.dtype == np.uint8:
        return image
    if image.max() <= 1.0:
        return (image * 255).clip(0, 255).astype(np.uint8)
    return image.clip(0, 255).astype(np.uint8)


def crop_face_region(
    image: np.ndarray,
    x: int,
    y: int,
    width: int,
    height: int,
    margin: float = 0.2,
) -> np.ndarray:
    """Crop a face region from an image with optional margin.

    Args:
        image: Source image as numpy array (H, W, 3).
        x, y: Top-left corner of face bounding box.
        width, height: Size of face bounding box.
        margin: Relative margin to add around the face (0.2 = 20%).

    Returns:
        Cropped face region as numpy array.
    """
    img_h, img_w = image.shape[:2]

    margin_x = int(width * margin)
    margin_y = int(height * margin)

    x1 = max(0, x - margin_x)
    y1 = max(0, y - margin_y)
    x2 = min(img_w, x + width + margin_x)
    y2 = min(img_h, y + height + margin_y)

    return image[y1:y2, x1:x2]


def resize_image(image: np.ndarray, target_size: tuple[int, int]) -> np.ndarray:
    """Resize an image to (width, height), returning float32 in [0, 1]."""
    pil_img = Image.fromarray(to_uint8(image))
    resized = pil_img.resize(target_size, Image.Resampling.LANCZOS)
    return np.array(resized, dtype=np.float32) / 255.0


def data_url_bytes(data_url: str) -> Optional[bytes]:
    """Payload of a base64 data URL, or None when it is missing or corrupted."""
    if not data_url or "," not in data_url:
        return None
    try:
        return base64.b64decode(data_url.split(",", 1)[1], validate=True)
    except binascii.Error:
        return None
