"""Photo metadata documents plus their backing blobs."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import Iterable, List, Optional

import numpy as np

from travelmap.storage.document_store import PHOTOS_COLLECTION, JsonDocumentStore, sanitize
from travelmap.storage.object_store import LocalObjectStore, photo_key
from travelmap.storage.schemas import (
    DetectedFace,
    FaceTag,
    Photo,
    normalize_iso2,
    now_ms,
    parse_descriptor,
)
from travelmap.utils.image_utils import UploadedImage

logger = logging.getLogger(__name__)


@dataclass
class TrainingDescriptor:
    """A descriptor confirmed as belonging to a member by tagging a photo."""

    member_id: str
    descriptor: np.ndarray


def new_photo_id(country_iso: str) -> str:
    return f"{normalize_iso2(country_iso)}-{now_ms()}-{uuid.uuid4().hex[:9]}"


class PhotoStore:
    """CRUD over photo documents and the blobs they point at."""

    def __init__(self, documents: JsonDocumentStore, objects: LocalObjectStore) -> None:
        self._documents = documents
        self._objects = objects

    def save_photo(
        self,
        country_iso: str,
        upload: UploadedImage,
        caption: str = "",
        face_tags: Optional[List[FaceTag]] = None,
        detected_faces: Optional[List[DetectedFace]] = None,
    ) -> Photo:
        """Upload the blob, then write the metadata document.

        If the metadata write fails the blob stays behind; nothing is rolled back.
        """
        iso = normalize_iso2(country_iso)
        if not iso:
            raise ValueError("Country code must not be empty")
        photo_id = new_photo_id(iso)
        url = self._objects.put(photo_key(photo_id), upload.data, upload.content_type)
        photo = Photo(
            id=photo_id,
            country_iso=iso,
            url=url,
            name=upload.name,
            caption=caption,
            face_tags=list(face_tags or []),
            detected_faces=list(detected_faces or []),
            created_at=now_ms(),
        )
        self._documents.set(PHOTOS_COLLECTION, photo_id, sanitize(photo.as_dict()))
        logger.info(
            "Saved photo %s for %s (%d faces, %d tags)",
            photo_id,
            iso,
            len(photo.detected_faces),
            len(photo.face_tags),
        )
        return photo

    def get_photo(self, photo_id: str) -> Optional[Photo]:
        payload = self._documents.get(PHOTOS_COLLECTION, photo_id)
        return Photo.from_dict(payload) if payload else None

    def photo_bytes(self, photo_id: str) -> bytes:
        return self._objects.get(photo_key(photo_id))

    def update_caption(self, photo_id: str, caption: str) -> None:
        self._documents.update(PHOTOS_COLLECTION, photo_id, sanitize({"caption": caption}))

    def update_face_tags(self, photo_id: str, face_tags: Iterable[FaceTag]) -> None:
        payload = {"faceTags": [tag.as_dict() for tag in face_tags]}
        self._documents.update(PHOTOS_COLLECTION, photo_id, sanitize(payload))

    def update_detected_faces(self, photo_id: str, detected_faces: Iterable[DetectedFace]) -> None:
        payload = {"detectedFaces": [face.as_dict() for face in detected_faces]}
        self._documents.update(PHOTOS_COLLECTION, photo_id, sanitize(payload))

    def photos_for_country(self, country_iso: str) -> List[Photo]:
        """Photos of one country, oldest first."""
        iso = normalize_iso2(country_iso)
        photos = [Photo.from_dict(doc) for doc in self._documents.where(PHOTOS_COLLECTION, "countryIso", iso)]
        return sorted(photos, key=lambda p: p.created_at)

    def all_photos(self) -> List[Photo]:
        return [Photo.from_dict(doc) for doc in self._documents.list(PHOTOS_COLLECTION)]

    def delete_photo(self, photo_id: str) -> None:
        """Remove the blob, then the document. A failure in either propagates."""
        self._objects.delete(photo_key(photo_id))
        self._documents.delete(PHOTOS_COLLECTION, photo_id)
        logger.info("Deleted photo %s", photo_id)

    def training_descriptors(self) -> List[TrainingDescriptor]:
        """Every descriptor a user has assigned to a member, across all photos."""
        out: List[TrainingDescriptor] = []
        for photo in self.all_photos():
            for face in photo.detected_faces:
                if not face.assigned_member_id or not face.descriptor_string:
                    continue
                try:
                    out.append(TrainingDescriptor(face.assigned_member_id, parse_descriptor(face.descriptor_string)))
                except ValueError as exc:
                    logger.warning("Ignoring malformed descriptor on face %s of photo %s: %s", face.id, photo.id, exc)
        return out
