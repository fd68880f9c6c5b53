"""Face extraction: boxes plus descriptors for every face in a photo."""

from __future__ import annotations

import base64
import io
import logging
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Generic, List, Optional, TypeVar

import numpy as np
from PIL import Image

from travelmap import config
from travelmap.storage.schemas import Box
from travelmap.utils.image_utils import to_uint8

logger = logging.getLogger(__name__)

T = TypeVar("T")

FACE_CROP_SIZE = (160, 160)


class FaceModelHandle(Generic[T]):
    """Lazily initialised, process-lifetime handle to loaded models.

    The loader runs at most once successfully; concurrent callers wait for the
    first load instead of starting their own. A failed load is not cached, so
    the next call tries again.
    """

    def __init__(self, loader: Callable[[], T]) -> None:
        self._loader = loader
        self._value: Optional[T] = None
        self._lock = threading.Lock()

    @property
    def loaded(self) -> bool:
        return self._value is not None

    def get(self) -> T:
        if self._value is not None:
            return self._value
        with self._lock:
            if self._value is None:
                self._value = self._loader()
                logger.info("Face recognition models loaded")
        return self._value


@dataclass
class FaceModels:
    """Detector and embedder pair used by the extractor."""

    detector: object
    embedder: object


def load_default_models(
    model_dir: Optional[Path] = None,
    embedding_dim: Optional[int] = None,
) -> FaceModels:
    """Build the MediaPipe detector and FaceNet embedder from the model directory."""
    from travelmap.services.embedding_service import FaceNetEmbeddingService
    from travelmap.services.face_detection import FaceDetector

    detector = FaceDetector(
        min_confidence=config.DETECTION_MIN_CONFIDENCE,
        min_face_size=config.DETECTION_MIN_FACE_SIZE,
    )
    embedder = FaceNetEmbeddingService(
        backbone_dir=model_dir or config.BACKBONE_MODEL_DIR,
        embedding_dim=embedding_dim or config.EMBEDDING_DIM,
        batch_size=config.EMBEDDING_BATCH_SIZE,
    )
    return FaceModels(detector=detector, embedder=embedder)


@dataclass
class Detection:
    """One face found in a photo."""

    box: Box
    descriptor: np.ndarray


class FaceExtractor:
    """Runs detection and embedding through a shared model handle."""

    def __init__(self, handle: FaceModelHandle[FaceModels]) -> None:
        self._handle = handle

    def preload(self) -> None:
        self._handle.get()

    def detect(self, image: np.ndarray) -> List[Detection]:
        models = self._handle.get()
        regions = models.detector.detect_faces(image)
        if not regions:
            return []
        crops = [models.detector.crop_face(image, region, target_size=FACE_CROP_SIZE) for region in regions]
        descriptors = models.embedder.embed(crops)
        return [Detection(box=region.to_box(), descriptor=descriptor) for region, descriptor in zip(regions, descriptors)]

    def detect_safely(self, image: np.ndarray) -> List[Detection]:
        """Like ``detect`` but any failure counts as "no faces"."""
        try:
            return self.detect(image)
        except Exception:
            logger.exception("Face detection failed; treating photo as having no faces")
            return []


def extract_face_thumbnail(
    image: np.ndarray,
    box: Box,
    padding: float = config.THUMBNAIL_PADDING,
    size: int = config.THUMBNAIL_SIZE,
    quality: float = config.THUMBNAIL_QUALITY,
) -> str:
    """Crop a padded square-ish thumbnail around a face as a JPEG data URL."""
    img_h, img_w = image.shape[:2]

    padding_x = box.width * padding
    padding_y = box.height * padding

    x = max(0.0, box.x - padding_x)
    y = max(0.0, box.y - padding_y)
    width = min(img_w - x, box.width + padding_x * 2)
    height = min(img_h - y, box.height + padding_y * 2)

    left, top = int(round(x)), int(round(y))
    right = max(left + 1, int(round(x + width)))
    bottom = max(top + 1, int(round(y + height)))

    pil_image = Image.fromarray(to_uint8(image)).convert("RGB")
    thumb = pil_image.crop((left, top, right, bottom)).resize((size, size), Image.Resampling.LANCZOS)

    buffer = io.BytesIO()
    thumb.save(buffer, format="JPEG", quality=int(round(quality * 100)))
    return "data:image/jpeg;base64," + base64.b64encode(buffer.getvalue()).decode("ascii")
