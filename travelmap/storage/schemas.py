"""Typed documents stored in the document database.

Each dataclass mirrors one stored document (or an embedded record) and knows
how to serialise itself to the camelCase layout the stores have always used.
Documents carry a ``schemaVersion`` field; anything older is migrated on read,
so the rest of the code only ever sees the current shape.
"""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

import numpy as np

from travelmap.storage.document_store import ABSENT

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 2


def now_ms() -> int:
    return int(time.time() * 1000)


def normalize_iso2(value: Optional[str]) -> str:
    return (value or "").strip().upper()


def _optional(value: Any) -> Any:
    return ABSENT if value is None else value


def descriptor_to_string(descriptor: Sequence[float]) -> str:
    """Serialise a descriptor as a JSON list of floats."""
    return json.dumps([float(x) for x in np.asarray(descriptor, dtype=np.float32).ravel()])


def parse_descriptor(payload: Any) -> np.ndarray:
    """Parse a descriptor from a JSON string or a plain list.

    Raises ``ValueError`` for anything that is not a non-empty flat vector.
    """
    if isinstance(payload, str):
        payload = json.loads(payload)
    try:
        vector = np.asarray(payload, dtype=np.float32)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Malformed descriptor: {exc}") from exc
    if vector.ndim != 1 or vector.size == 0:
        raise ValueError(f"Descriptor must be a non-empty vector, got shape {vector.shape}")
    return vector


@dataclass
class Box:
    x: float = 0.0
    y: float = 0.0
    width: float = 0.0
    height: float = 0.0

    def as_dict(self) -> Dict[str, float]:
        return {"x": float(self.x), "y": float(self.y), "width": float(self.width), "height": float(self.height)}

    @classmethod
    def from_dict(cls, payload: Optional[Dict[str, Any]]) -> "Box":
        payload = payload or {}
        return cls(
            x=float(payload.get("x", 0.0)),
            y=float(payload.get("y", 0.0)),
            width=float(payload.get("width", 0.0)),
            height=float(payload.get("height", 0.0)),
        )


# ---------------------------------------------------------------------------
# Trips
# ---------------------------------------------------------------------------


@dataclass
class Trip:
    iso2: str
    country_name: str
    continent: str
    year: str = ""
    cities: List[str] = field(default_factory=list)
    notes: str = ""
    photos: List[str] = field(default_factory=list)
    is_home: Optional[bool] = None

    def as_dict(self) -> Dict[str, Any]:
        return {
            "countryName": self.country_name,
            "iso2": self.iso2,
            "continent": self.continent,
            "year": self.year,
            "cities": list(self.cities),
            "notes": self.notes,
            "photos": list(self.photos),
            "isHome": _optional(self.is_home),
        }

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "Trip":
        return cls(
            iso2=normalize_iso2(payload.get("iso2")),
            country_name=payload.get("countryName") or "",
            continent=payload.get("continent") or "",
            year=str(payload.get("year") or ""),
            cities=[str(c) for c in payload.get("cities") or []],
            notes=payload.get("notes") or "",
            photos=[str(p) for p in payload.get("photos") or []],
            is_home=payload.get("isHome"),
        )


@dataclass
class Profile:
    title: str = ""
    subtitle: str = ""

    def as_dict(self) -> Dict[str, str]:
        return {"title": self.title, "subtitle": self.subtitle}

    @classmethod
    def from_dict(cls, payload: Optional[Dict[str, Any]]) -> "Profile":
        payload = payload or {}
        return cls(title=payload.get("title") or "", subtitle=payload.get("subtitle") or "")


@dataclass
class TripsDocument:
    """The config/profile singleton holding every visited place."""

    profile: Profile = field(default_factory=Profile)
    visited: List[Trip] = field(default_factory=list)
    home_country: Optional[str] = None

    def as_dict(self) -> Dict[str, Any]:
        return {
            "schemaVersion": SCHEMA_VERSION,
            "profile": self.profile.as_dict(),
            "homeCountry": _optional(self.home_country),
            "visited": [trip.as_dict() for trip in self.visited],
        }

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "TripsDocument":
        payload = migrate_trips_document(payload)
        home = normalize_iso2(payload.get("homeCountry"))
        return cls(
            profile=Profile.from_dict(payload.get("profile")),
            visited=[Trip.from_dict(entry) for entry in payload.get("visited") or []],
            home_country=home or None,
        )


def migrate_trips_document(payload: Dict[str, Any]) -> Dict[str, Any]:
    version = payload.get("schemaVersion", 1)
    if version >= SCHEMA_VERSION:
        return payload
    migrated = dict(payload)
    # v1 seed files had no profile block and free-form country codes.
    migrated.setdefault("profile", {"title": "", "subtitle": ""})
    migrated["visited"] = [
        {**entry, "iso2": normalize_iso2(entry.get("iso2"))}
        for entry in payload.get("visited") or []
        if normalize_iso2(entry.get("iso2"))
    ]
    migrated["schemaVersion"] = SCHEMA_VERSION
    return migrated


# ---------------------------------------------------------------------------
# Photos
# ---------------------------------------------------------------------------


@dataclass
class FaceTag:
    """Human-visible "person X appears in this photo" summary."""

    member_id: str
    member_name: str
    box: Box = field(default_factory=Box)
    confidence: Optional[float] = None

    def as_dict(self) -> Dict[str, Any]:
        return {
            "memberId": self.member_id,
            "memberName": self.member_name,
            "box": self.box.as_dict(),
            "confidence": _optional(self.confidence),
        }

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "FaceTag":
        confidence = payload.get("confidence")
        return cls(
            member_id=payload["memberId"],
            member_name=payload.get("memberName") or "",
            box=Box.from_dict(payload.get("box")),
            confidence=float(confidence) if confidence is not None else None,
        )


@dataclass
class DetectedFace:
    """One face found on a photo, with its descriptor and tagging state."""

    id: str
    thumbnail: str
    box: Box
    descriptor_string: str
    assigned_member_id: Optional[str] = None
    assigned_member_name: Optional[str] = None
    suggested_member_id: Optional[str] = None
    suggested_member_name: Optional[str] = None
    confidence: Optional[float] = None

    def descriptor(self) -> Optional[np.ndarray]:
        if not self.descriptor_string:
            return None
        return parse_descriptor(self.descriptor_string)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "thumbnail": self.thumbnail,
            "box": self.box.as_dict(),
            "descriptorString": self.descriptor_string,
            "assignedMemberId": _optional(self.assigned_member_id),
            "assignedMemberName": _optional(self.assigned_member_name),
            "suggestedMemberId": _optional(self.suggested_member_id),
            "suggestedMemberName": _optional(self.suggested_member_name),
            "confidence": _optional(self.confidence),
        }

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "DetectedFace":
        confidence = payload.get("confidence")
        return cls(
            id=payload["id"],
            thumbnail=payload.get("thumbnail") or "",
            box=Box.from_dict(payload.get("box")),
            descriptor_string=payload.get("descriptorString") or "",
            assigned_member_id=payload.get("assignedMemberId") or None,
            assigned_member_name=payload.get("assignedMemberName") or None,
            suggested_member_id=payload.get("suggestedMemberId") or None,
            suggested_member_name=payload.get("suggestedMemberName") or None,
            confidence=float(confidence) if confidence is not None else None,
        )


@dataclass
class Photo:
    id: str
    country_iso: str
    url: str
    name: str
    caption: str = ""
    face_tags: List[FaceTag] = field(default_factory=list)
    detected_faces: List[DetectedFace] = field(default_factory=list)
    created_at: int = field(default_factory=now_ms)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "schemaVersion": SCHEMA_VERSION,
            "id": self.id,
            "countryIso": self.country_iso,
            "url": self.url,
            "name": self.name,
            "caption": self.caption,
            "faceTags": [tag.as_dict() for tag in self.face_tags],
            "detectedFaces": [face.as_dict() for face in self.detected_faces],
            "createdAt": self.created_at,
        }

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "Photo":
        payload = migrate_photo(payload)
        return cls(
            id=payload["id"],
            country_iso=payload["countryIso"],
            url=payload.get("url") or "",
            name=payload.get("name") or "",
            caption=payload.get("caption") or "",
            face_tags=[FaceTag.from_dict(tag) for tag in payload["faceTags"]],
            detected_faces=[DetectedFace.from_dict(face) for face in payload["detectedFaces"]],
            created_at=int(payload.get("createdAt") or 0),
        )


def migrate_photo(payload: Dict[str, Any]) -> Dict[str, Any]:
    version = payload.get("schemaVersion", 1)
    if version >= SCHEMA_VERSION:
        return payload
    migrated = dict(payload)
    # v1 photos predate face detection; tags could be missing too.
    migrated["countryIso"] = normalize_iso2(payload.get("countryIso"))
    migrated["faceTags"] = [t for t in payload.get("faceTags") or [] if t and t.get("memberId")]
    migrated["detectedFaces"] = [f for f in payload.get("detectedFaces") or [] if f and f.get("id")]
    migrated["schemaVersion"] = SCHEMA_VERSION
    return migrated


# ---------------------------------------------------------------------------
# Family members
# ---------------------------------------------------------------------------


@dataclass
class FamilyMember:
    id: str
    name: str
    descriptor_strings: List[str] = field(default_factory=list)
    photo_urls: List[str] = field(default_factory=list)
    created_at: int = field(default_factory=now_ms)

    def descriptors(self) -> List[np.ndarray]:
        return decode_member_descriptors(self.as_dict())

    def as_dict(self) -> Dict[str, Any]:
        return {
            "schemaVersion": SCHEMA_VERSION,
            "id": self.id,
            "name": self.name,
            "descriptorStrings": list(self.descriptor_strings),
            "photoUrls": list(self.photo_urls),
            "createdAt": self.created_at,
        }

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "FamilyMember":
        payload = migrate_family_member(payload)
        return cls(
            id=payload["id"],
            name=payload.get("name") or "",
            descriptor_strings=list(payload.get("descriptorStrings") or []),
            photo_urls=list(payload.get("photoUrls") or []),
            created_at=int(payload.get("createdAt") or 0),
        )


def _descriptor_payloads(record: Dict[str, Any]) -> List[Any]:
    """Pick the raw descriptor entries out of any historical member shape.

    Shapes, newest first:
      * ``descriptorStrings``: list of JSON-encoded vectors
      * ``descriptors``: list of nested number lists
      * ``descriptor``: a single number list
    """
    if record.get("descriptorStrings"):
        return list(record["descriptorStrings"])
    if record.get("descriptors"):
        return list(record["descriptors"])
    if record.get("descriptor"):
        return [record["descriptor"]]
    return []


def decode_member_descriptors(record: Dict[str, Any]) -> List[np.ndarray]:
    """Return the reference descriptors of a stored member record.

    Malformed entries are skipped one by one.
    """
    vectors: List[np.ndarray] = []
    for payload in _descriptor_payloads(record):
        try:
            vectors.append(parse_descriptor(payload))
        except ValueError as exc:
            logger.warning("Skipping malformed descriptor for member %s: %s", record.get("id"), exc)
    return vectors


def migrate_family_member(payload: Dict[str, Any]) -> Dict[str, Any]:
    version = payload.get("schemaVersion", 1)
    if version >= SCHEMA_VERSION:
        return payload
    strings = []
    for raw in _descriptor_payloads(payload):
        if isinstance(raw, str):
            strings.append(raw)
        elif isinstance(raw, (list, tuple)):
            strings.append(json.dumps(list(raw)))
        else:
            logger.warning("Skipping malformed legacy descriptor for member %s: %r", payload.get("id"), raw)
    photo_urls = payload.get("photoUrls") or ([payload["photoUrl"]] if payload.get("photoUrl") else [])
    return {
        "schemaVersion": SCHEMA_VERSION,
        "id": payload["id"],
        "name": payload.get("name") or "",
        "descriptorStrings": strings,
        "photoUrls": photo_urls,
        "createdAt": payload.get("createdAt") or 0,
    }
