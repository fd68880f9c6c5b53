import io
from typing import List, Sequence, Tuple

import numpy as np
import pytest
from PIL import Image

from travelmap.services.face_extraction import FaceExtractor, FaceModelHandle, FaceModels
from travelmap.services.photo_uploads import PhotoUploadService
from travelmap.services.recognizer import IdentityMatcher
from travelmap.services.tagging import TaggingService
from travelmap.storage.document_store import JsonDocumentStore
from travelmap.storage.family_store import FamilyStore
from travelmap.storage.object_store import LocalObjectStore
from travelmap.storage.photo_store import PhotoStore
from travelmap.storage.schemas import Box
from travelmap.storage.trips_store import TripsStore
from travelmap.utils.image_utils import UploadedImage

ALICE = [1.0, 0.0, 0.0, 0.0]
BOB = [0.0, 1.0, 0.0, 0.0]
STRANGER = [0.0, 0.0, 1.0, 0.0]


class FakeRegion:
    def __init__(self, x: float, y: float, width: float, height: float) -> None:
        self.box = Box(x, y, width, height)

    def to_box(self) -> Box:
        return self.box


class FakeDetector:
    """Returns the configured boxes for every image."""

    def __init__(self, boxes: Sequence[Tuple[float, float, float, float]] = ()) -> None:
        self.boxes = list(boxes)
        self.calls = 0
        self.fail = False

    def detect_faces(self, image: np.ndarray) -> List[FakeRegion]:
        self.calls += 1
        if self.fail:
            raise RuntimeError("detector exploded")
        return [FakeRegion(*box) for box in self.boxes]

    def crop_face(self, image, region, target_size=(160, 160)) -> np.ndarray:
        return np.zeros((target_size[1], target_size[0], 3), dtype=np.float32)


class FakeEmbedder:
    """Hands out the configured descriptors in order, one per crop."""

    def __init__(self, descriptors: Sequence[Sequence[float]] = ()) -> None:
        self.descriptors = [np.asarray(d, dtype=np.float32) for d in descriptors]
        self.calls = 0

    def embed(self, face_crops) -> List[np.ndarray]:
        self.calls += 1
        return [np.asarray(d, dtype=np.float32) for d in self.descriptors[: len(face_crops)]]


def make_image_bytes(width: int = 64, height: int = 48, fmt: str = "JPEG", color=(200, 120, 40)) -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", (width, height), color).save(buffer, format=fmt)
    return buffer.getvalue()


def make_upload(name: str = "beach.jpg", content_type: str = "image/jpeg", **kwargs) -> UploadedImage:
    fmt = {"image/png": "PNG", "image/webp": "WEBP"}.get(content_type, "JPEG")
    return UploadedImage(name=name, content_type=content_type, data=make_image_bytes(fmt=fmt, **kwargs))


@pytest.fixture
def documents(tmp_path):
    return JsonDocumentStore(tmp_path / "documents")


@pytest.fixture
def objects(tmp_path):
    return LocalObjectStore(tmp_path / "objects")


@pytest.fixture
def photo_store(documents, objects):
    return PhotoStore(documents, objects)


@pytest.fixture
def family_store(documents):
    return FamilyStore(documents)


@pytest.fixture
def trips_store(documents):
    return TripsStore(documents)


@pytest.fixture
def detector():
    return FakeDetector()


@pytest.fixture
def embedder():
    return FakeEmbedder()


@pytest.fixture
def extractor(detector, embedder):
    return FaceExtractor(FaceModelHandle(lambda: FaceModels(detector=detector, embedder=embedder)))


@pytest.fixture
def matcher():
    return IdentityMatcher(threshold=0.55)


@pytest.fixture
def upload_service(photo_store, family_store, extractor, matcher):
    return PhotoUploadService(photo_store, family_store, extractor, matcher, auto_assign=True)


@pytest.fixture
def tagging_service(photo_store, family_store, extractor, matcher):
    return TaggingService(photo_store, family_store, extractor, matcher)
