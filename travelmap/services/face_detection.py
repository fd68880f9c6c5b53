"""Face detection using MediaPipe."""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional

import numpy as np

from travelmap.storage.schemas import Box
from travelmap.utils.image_utils import crop_face_region, resize_image, to_uint8

try:
    import mediapipe as mp
    MEDIAPIPE_AVAILABLE = True
except ImportError:
    MEDIAPIPE_AVAILABLE = False
    mp = None


@dataclass
class FaceRegion:
    """Represents a detected face region in pixel coordinates."""
    x: int
    y: int
    width: int
    height: int
    confidence: float

    def to_box(self) -> Box:
        return Box(x=float(self.x), y=float(self.y), width=float(self.width), height=float(self.height))


class FaceDetector:
    """Face detector using MediaPipe Face Detection."""

    def __init__(
        self,
        min_confidence: float = 0.5,
        min_face_size: int = 20,
        margin: float = 0.2,
        model_selection: int = 1,
    ) -> None:
        """Initialize the face detector.

        Args:
            min_confidence: Minimum confidence threshold for detections.
            min_face_size: Minimum face size in pixels to consider.
            margin: Relative margin added around faces before embedding.
            model_selection: 0 for short-range (2m), 1 for full-range (5m).
                Travel photos are mostly group shots, hence full-range.
        """
        self.min_confidence = min_confidence
        self.min_face_size = min_face_size
        self.margin = margin

        if not MEDIAPIPE_AVAILABLE:
            raise ImportError("MediaPipe is required for face detection. Install with: pip install mediapipe")

        self._face_detection = mp.solutions.face_detection.FaceDetection(
            min_detection_confidence=min_confidence,
            model_selection=model_selection,
        )

    def detect_faces(self, image: np.ndarray) -> List[FaceRegion]:
        """Detect all faces in an RGB image (float32 [0,1] or uint8)."""
        image_uint8 = to_uint8(image)
        img_h, img_w = image_uint8.shape[:2]

        results = self._face_detection.process(image_uint8)

        faces: List[FaceRegion] = []
        if not results.detections:
            return faces

        for detection in results.detections:
            bbox = detection.location_data.relative_bounding_box

            x = max(0, int(bbox.xmin * img_w))
            y = max(0, int(bbox.ymin * img_h))
            width = min(img_w - x, int(bbox.width * img_w))
            height = min(img_h - y, int(bbox.height * img_h))

            if width < self.min_face_size or height < self.min_face_size:
                continue

            confidence = detection.score[0] if detection.score else 0.0
            faces.append(FaceRegion(x=x, y=y, width=width, height=height, confidence=confidence))

        # Left to right, so tagger rows follow the people in the photo.
        faces.sort(key=lambda face: (face.x, face.y))
        return faces

    def crop_face(
        self,
        image: np.ndarray,
        face: FaceRegion,
        target_size: Optional[tuple[int, int]] = None,
    ) -> np.ndarray:
        """Crop a face with the detector margin, optionally resized to (width, height)."""
        crop = crop_face_region(image, face.x, face.y, face.width, face.height, margin=self.margin)
        if target_size is not None:
            crop = resize_image(crop, target_size)
        return crop

    def close(self) -> None:
        self._face_detection.close()

    def __del__(self):
        """Clean up MediaPipe resources."""
        if hasattr(self, '_face_detection'):
            self.close()
