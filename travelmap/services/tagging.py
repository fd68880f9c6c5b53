"""Tagging people on photos.

A photo records who appears in it twice: ``face_tags`` (what the collage and
detail view display) and ``DetectedFace.assigned_member_id`` (what the
matcher learns from). Each operation here writes both lists, as two separate
store updates, and recomputes one from the other where they may have drifted.
"""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass, replace
from typing import Dict, Iterable, List, Optional, Sequence

from travelmap.errors import TravelMapError
from travelmap.services.face_extraction import Detection, FaceExtractor
from travelmap.services.photo_uploads import detected_face_records
from travelmap.services.recognizer import IdentityMatcher, MatchedFace
from travelmap.storage.family_store import FamilyStore
from travelmap.storage.photo_store import PhotoStore
from travelmap.storage.schemas import Box, DetectedFace, FaceTag, FamilyMember, Photo, parse_descriptor
from travelmap.utils.image_utils import load_image_as_array

logger = logging.getLogger(__name__)

NEW_MEMBER = "new"
UNKNOWN_NAME = "Unknown"


@dataclass
class TaggerFace:
    """Editable row of the "who is this?" dialog."""

    face_id: str
    thumbnail: str
    box: Box
    matched_id: Optional[str] = None
    confidence: Optional[float] = None
    selected_id: str = ""
    new_name: str = ""


def people_count(photo: Photo) -> int:
    """Detected faces, or tagged people if someone was tagged that the detector missed."""
    tagged = {tag.member_id for tag in photo.face_tags}
    return max(len(photo.detected_faces), len(tagged))


def tile_size(photo: Photo) -> str:
    """Collage tile size, from detections only so tagging never reflows the layout."""
    detected = len(photo.detected_faces)
    if detected >= 5:
        return "xl"
    if detected >= 3:
        return "lg"
    if detected >= 2:
        return "md"
    return "sm"


def tagged_names(photo: Photo) -> List[str]:
    names: List[str] = []
    for tag in photo.face_tags:
        if tag.member_name not in names:
            names.append(tag.member_name)
    return names


def merge_tags(existing: Iterable[FaceTag], updates: Iterable[FaceTag]) -> List[FaceTag]:
    """One tag per member; later entries replace earlier ones in place."""
    by_member: Dict[str, FaceTag] = {}
    for tag in existing:
        by_member[tag.member_id] = tag
    for tag in updates:
        by_member[tag.member_id] = tag
    return list(by_member.values())


def tags_from_assignments(existing: Iterable[FaceTag], detected: Iterable[DetectedFace]) -> List[FaceTag]:
    """Repair pass: make sure every assigned detection has a tag."""
    from_faces = [
        FaceTag(member_id=df.assigned_member_id, member_name=df.assigned_member_name or UNKNOWN_NAME, box=df.box)
        for df in detected
        if df.assigned_member_id
    ]
    return merge_tags(existing, from_faces)


def tagger_rows(detected: Sequence[DetectedFace]) -> List[TaggerFace]:
    return [
        TaggerFace(
            face_id=df.id,
            thumbnail=df.thumbnail,
            box=df.box,
            matched_id=df.suggested_member_id,
            confidence=df.confidence,
            selected_id=df.assigned_member_id or df.suggested_member_id or "",
        )
        for df in detected
    ]


def member_appearances(photos: Iterable[Photo]) -> Dict[str, int]:
    """Photos per member, counting both assignments and tags once per photo."""
    counts: Dict[str, int] = {}
    for photo in photos:
        ids = {df.assigned_member_id for df in photo.detected_faces if df.assigned_member_id}
        ids.update(tag.member_id for tag in photo.face_tags if tag.member_id)
        for member_id in ids:
            counts[member_id] = counts.get(member_id, 0) + 1
    return counts


def member_avatars(photos: Iterable[Photo], rng: Optional[random.Random] = None) -> Dict[str, str]:
    """A face thumbnail per member, picked at random among their assigned faces."""
    rng = rng or random.Random()
    thumbs: Dict[str, List[str]] = {}
    for photo in photos:
        for df in photo.detected_faces:
            if df.assigned_member_id and df.thumbnail:
                thumbs.setdefault(df.assigned_member_id, []).append(df.thumbnail)
    return {member_id: rng.choice(options) for member_id, options in thumbs.items()}


class TaggingService:
    def __init__(
        self,
        photos: PhotoStore,
        family: FamilyStore,
        extractor: FaceExtractor,
        matcher: IdentityMatcher,
    ) -> None:
        self._photos = photos
        self._family = family
        self._extractor = extractor
        self._matcher = matcher

    def _write(self, photo: Photo, face_tags: Optional[List[FaceTag]], detected: Optional[List[DetectedFace]]) -> Photo:
        # Two independent writes; a failure in the second leaves the first applied.
        if face_tags is not None:
            self._photos.update_face_tags(photo.id, face_tags)
            photo = replace(photo, face_tags=face_tags)
        if detected is not None:
            self._photos.update_detected_faces(photo.id, detected)
            photo = replace(photo, detected_faces=detected)
        return photo

    def _remember_descriptors(self, photo: Photo, confirmed: Iterable[DetectedFace]) -> None:
        """Append confirmed descriptors to the members' reference sets."""
        for df in confirmed:
            if not df.assigned_member_id or not df.descriptor_string:
                continue
            member = self._family.get_member(df.assigned_member_id)
            if member is None or df.descriptor_string in member.descriptor_strings:
                continue
            try:
                descriptor = parse_descriptor(df.descriptor_string)
            except ValueError as exc:
                logger.warning("Not learning from face %s: %s", df.id, exc)
                continue
            self._family.add_member_descriptor(member.id, descriptor, photo.url)

    def _suggest(self, photo: Photo, members: Sequence[FamilyMember]) -> Photo:
        """Fill in missing suggestions on stored detections."""
        indexed = []
        for index, df in enumerate(photo.detected_faces):
            if not df.descriptor_string or df.suggested_member_id:
                continue
            try:
                indexed.append((index, Detection(box=df.box, descriptor=parse_descriptor(df.descriptor_string))))
            except ValueError as exc:
                logger.warning("Skipping malformed descriptor on face %s: %s", df.id, exc)
        if not indexed:
            return photo

        matched = self._matcher.match_faces(
            [detection for _, detection in indexed], members, self._photos.training_descriptors()
        )
        updated = list(photo.detected_faces)
        for (index, _), pick in zip(indexed, matched):
            if pick.matched_member is None:
                continue
            updated[index] = replace(
                updated[index],
                suggested_member_id=pick.matched_member.id,
                suggested_member_name=pick.matched_member.name,
                confidence=pick.confidence,
            )
        return self._write(photo, None, updated)

    def _detect_stored_photo(self, photo: Photo, members: Sequence[FamilyMember]) -> Photo:
        """First tagging attempt on a photo uploaded before detection existed."""
        data = self._photos.photo_bytes(photo.id)
        try:
            image = load_image_as_array(data)
            detections = self._extractor.detect(image)
        except Exception as exc:
            logger.exception("Face detection failed for photo %s", photo.id)
            raise TravelMapError(f"Face detection failed: {exc}") from exc
        if members and detections:
            faces = self._matcher.match_faces(detections, members, self._photos.training_descriptors())
        else:
            faces = [MatchedFace(detection=d) for d in detections]
        records = detected_face_records(image, faces, assign_suggestions=False)
        if not records:
            return photo
        logger.info("Stored %d lazily detected faces for photo %s", len(records), photo.id)
        return self._write(photo, None, records)

    def prepare_tagger(self, photo: Photo) -> tuple[Photo, List[TaggerFace]]:
        members = self._family.list_members()
        if photo.detected_faces:
            if members:
                try:
                    photo = self._suggest(photo, members)
                except Exception:
                    logger.warning("Failed to compute suggestions for photo %s", photo.id, exc_info=True)
        else:
            photo = self._detect_stored_photo(photo, members)
        return photo, tagger_rows(photo.detected_faces)

    def save_tagger(self, photo: Photo, rows: Sequence[TaggerFace]) -> Photo:
        names = {m.id: m.name for m in self._family.list_members()}
        rows = [replace(row) for row in rows]

        for row in rows:
            if row.selected_id == NEW_MEMBER and row.new_name.strip():
                created = self._family.create_member(row.new_name)
                names[created.id] = created.name
                row.selected_id = created.id

        chosen = [row for row in rows if row.selected_id and row.selected_id != NEW_MEMBER]
        from_faces = [
            FaceTag(
                member_id=row.selected_id,
                member_name=names.get(row.selected_id, UNKNOWN_NAME),
                box=row.box,
                confidence=row.confidence if row.matched_id == row.selected_id else None,
            )
            for row in chosen
        ]
        face_tags = merge_tags(photo.face_tags, from_faces)

        by_face = {row.face_id: row for row in chosen}
        detected = [
            replace(
                df,
                assigned_member_id=by_face[df.id].selected_id,
                assigned_member_name=names.get(by_face[df.id].selected_id, df.assigned_member_name),
            )
            if df.id in by_face
            else df
            for df in photo.detected_faces
        ]

        photo = self._write(photo, face_tags, detected if detected else None)
        self._remember_descriptors(photo, (df for df in detected if df.id in by_face))
        return photo

    def auto_apply_suggestions(self, photo: Photo) -> Photo:
        """Turn every pending suggestion into an assignment, then rebuild tags."""
        if not photo.detected_faces:
            return photo
        names = {m.id: m.name for m in self._family.list_members()}

        newly_assigned = []
        detected = []
        for df in photo.detected_faces:
            if df.assigned_member_id or not df.suggested_member_id:
                detected.append(df)
                continue
            assigned = replace(
                df,
                assigned_member_id=df.suggested_member_id,
                assigned_member_name=df.suggested_member_name or names.get(df.suggested_member_id, UNKNOWN_NAME),
            )
            newly_assigned.append(assigned)
            detected.append(assigned)

        face_tags = tags_from_assignments(photo.face_tags, detected)
        self._photos.update_detected_faces(photo.id, detected)
        self._photos.update_face_tags(photo.id, face_tags)
        photo = replace(photo, detected_faces=detected, face_tags=face_tags)
        self._remember_descriptors(photo, newly_assigned)
        return photo

    def add_person_manual(self, photo: Photo, member_id: str) -> Photo:
        member = self._family.get_member(member_id)
        if member is None:
            logger.warning("Cannot tag unknown member %s", member_id)
            return photo
        if any(tag.member_id == member.id for tag in photo.face_tags):
            return photo

        unassigned = next((df for df in photo.detected_faces if not df.assigned_member_id), None)
        face_tags = photo.face_tags + [
            FaceTag(member_id=member.id, member_name=member.name, box=unassigned.box if unassigned else Box())
        ]
        detected = None
        if unassigned is not None:
            detected = [
                replace(df, assigned_member_id=member.id, assigned_member_name=member.name) if df.id == unassigned.id else df
                for df in photo.detected_faces
            ]

        photo = self._write(photo, face_tags, detected)
        if unassigned is not None:
            self._remember_descriptors(photo, (df for df in photo.detected_faces if df.id == unassigned.id))
        return photo

    def remove_person(self, photo: Photo, member_id: str) -> Photo:
        face_tags = [tag for tag in photo.face_tags if tag.member_id != member_id]
        detected = [
            replace(df, assigned_member_id=None, assigned_member_name=None) if df.assigned_member_id == member_id else df
            for df in photo.detected_faces
        ]
        return self._write(photo, face_tags, detected if detected else None)
