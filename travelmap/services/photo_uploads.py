"""Upload pipeline: normalise, detect, match, persist."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence

import numpy as np

from travelmap.errors import TravelMapError
from travelmap.services.face_extraction import FaceExtractor, extract_face_thumbnail
from travelmap.services.media_normalizer import normalize_upload
from travelmap.services.recognizer import IdentityMatcher, MatchedFace
from travelmap.storage.family_store import FamilyStore
from travelmap.storage.photo_store import PhotoStore
from travelmap.storage.schemas import DetectedFace, FaceTag, Photo, descriptor_to_string, now_ms
from travelmap.utils.image_utils import UploadedImage, load_image_as_array

logger = logging.getLogger(__name__)


def new_face_id(index: int) -> str:
    return f"{now_ms()}-{index}-{uuid.uuid4().hex[:5]}"


def detected_face_records(
    image: np.ndarray,
    faces: Sequence[MatchedFace],
    assign_suggestions: bool,
) -> List[DetectedFace]:
    """Stored detection records, with suggestions and optionally pre-filled assignments."""
    records = []
    for index, face in enumerate(faces):
        member = face.matched_member
        records.append(
            DetectedFace(
                id=new_face_id(index),
                thumbnail=extract_face_thumbnail(image, face.box),
                box=face.box,
                descriptor_string=descriptor_to_string(face.descriptor),
                suggested_member_id=member.id if member else None,
                suggested_member_name=member.name if member else None,
                confidence=face.confidence,
                assigned_member_id=member.id if member and assign_suggestions else None,
                assigned_member_name=member.name if member and assign_suggestions else None,
            )
        )
    return records


def face_tags_for_matches(faces: Sequence[MatchedFace]) -> List[FaceTag]:
    return [
        FaceTag(
            member_id=face.matched_member.id,
            member_name=face.matched_member.name,
            box=face.box,
            confidence=face.confidence,
        )
        for face in faces
        if face.matched_member is not None
    ]


@dataclass
class UploadFailure:
    name: str
    error: str


@dataclass
class UploadBatchResult:
    photos: List[Photo] = field(default_factory=list)
    failures: List[UploadFailure] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)

    def notices(self) -> List[tuple[str, str]]:
        """(streamlit level, message) pairs, one per failure, then skips and successes."""
        notices = [("error", f"Не удалось загрузить {f.name}: {f.error}") for f in self.failures]
        if self.skipped:
            notices.append(("warning", "Пропущены файлы, не являющиеся изображениями: " + ", ".join(self.skipped)))
        if self.photos:
            notices.append(("success", f"Загружено фотографий: {len(self.photos)}"))
        return notices


class PhotoUploadService:
    """Processes uploaded files one at a time, in order."""

    def __init__(
        self,
        photos: PhotoStore,
        family: FamilyStore,
        extractor: FaceExtractor,
        matcher: IdentityMatcher,
        auto_assign: bool = True,
    ) -> None:
        self._photos = photos
        self._family = family
        self._extractor = extractor
        self._matcher = matcher
        self._auto_assign = auto_assign

    def _analyse(self, upload: UploadedImage) -> tuple[List[FaceTag], List[DetectedFace]]:
        """Faces of one upload; any failure here means "no faces"."""
        try:
            image = load_image_as_array(upload.data)
        except Exception:
            logger.exception("Could not decode %s for face detection", upload.name)
            return [], []

        detections = self._extractor.detect_safely(image)
        if not detections:
            return [], []

        members = self._family.list_members()
        if members:
            matched = self._matcher.match_faces(detections, members, self._photos.training_descriptors())
            face_tags = face_tags_for_matches(matched) if self._auto_assign else []
            return face_tags, detected_face_records(image, matched, self._auto_assign)

        unmatched = [MatchedFace(detection=d) for d in detections]
        return [], detected_face_records(image, unmatched, False)

    def upload_one(self, country_iso: str, upload: UploadedImage) -> Photo:
        prepared = normalize_upload(upload)
        face_tags, detected_faces = self._analyse(prepared)
        return self._photos.save_photo(country_iso, prepared, "", face_tags, detected_faces)

    def upload_batch(
        self,
        country_iso: str,
        uploads: Sequence[UploadedImage],
        on_photo: Optional[Callable[[Photo], None]] = None,
    ) -> UploadBatchResult:
        """Upload every image file; failures are collected, not raised."""
        result = UploadBatchResult()
        for upload in uploads:
            if not upload.is_image():
                logger.info("Skipping non-image upload %s (%s)", upload.name, upload.content_type)
                result.skipped.append(upload.name)
                continue
            try:
                photo = self.upload_one(country_iso, upload)
            except (TravelMapError, ValueError, OSError) as exc:
                logger.error("Failed to upload %s: %s", upload.name, exc)
                result.failures.append(UploadFailure(name=upload.name, error=str(exc)))
                continue
            except Exception as exc:
                logger.exception("Unexpected error uploading %s", upload.name)
                result.failures.append(UploadFailure(name=upload.name, error=str(exc)))
                continue
            result.photos.append(photo)
            if on_photo is not None:
                on_photo(photo)
        return result
