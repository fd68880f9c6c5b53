"""Persistent storage of family members and their reference descriptors."""

from __future__ import annotations

import logging
import uuid
from typing import List, Optional, Sequence

from travelmap.errors import PersistenceError
from travelmap.storage.document_store import FAMILY_COLLECTION, JsonDocumentStore, sanitize
from travelmap.storage.schemas import FamilyMember, descriptor_to_string, now_ms

logger = logging.getLogger(__name__)


def new_member_id() -> str:
    return f"family-{now_ms()}-{uuid.uuid4().hex[:9]}"


class FamilyStore:
    """Family member documents backed by the document database."""

    def __init__(self, documents: JsonDocumentStore) -> None:
        self._documents = documents

    def _write(self, member: FamilyMember) -> None:
        self._documents.set(FAMILY_COLLECTION, member.id, sanitize(member.as_dict()))

    def create_member(self, name: str) -> FamilyMember:
        """Create a name-only member; descriptors accumulate from tagging."""
        clean = name.strip()
        if not clean:
            raise ValueError("Name must not be empty")
        member = FamilyMember(id=new_member_id(), name=clean, created_at=now_ms())
        self._write(member)
        logger.info("Created family member %s (%s)", member.id, clean)
        return member

    def save_member(
        self,
        name: str,
        descriptor: Sequence[float],
        photo_url: Optional[str] = None,
    ) -> FamilyMember:
        """Enroll a member with an initial reference descriptor."""
        clean = name.strip()
        if not clean:
            raise ValueError("Name must not be empty")
        member = FamilyMember(
            id=new_member_id(),
            name=clean,
            descriptor_strings=[descriptor_to_string(descriptor)],
            photo_urls=[photo_url] if photo_url else [],
            created_at=now_ms(),
        )
        self._write(member)
        return member

    def add_member_descriptor(self, member_id: str, descriptor: Sequence[float], photo_url: str) -> None:
        """Append one more reference descriptor (glasses, other angles, ...)."""
        member = self.get_member(member_id)
        if member is None:
            logger.warning("Cannot add descriptor: family member %s does not exist", member_id)
            return
        member.descriptor_strings.append(descriptor_to_string(descriptor))
        member.photo_urls.append(photo_url)
        self._write(member)

    def get_member(self, member_id: str) -> Optional[FamilyMember]:
        payload = self._documents.get(FAMILY_COLLECTION, member_id)
        return FamilyMember.from_dict(payload) if payload else None

    def list_members(self) -> List[FamilyMember]:
        """All members sorted by name; a failed read yields an empty list."""
        try:
            documents = self._documents.list(FAMILY_COLLECTION)
        except (OSError, ValueError, PersistenceError):
            logger.exception("Error getting family members")
            return []
        members = []
        for doc in documents:
            try:
                members.append(FamilyMember.from_dict(doc))
            except (KeyError, TypeError, ValueError):
                logger.warning("Skipping unreadable family member %s", doc.get("id"), exc_info=True)
        return sorted(members, key=lambda m: m.name.casefold())

    def rename_member(self, member_id: str, new_name: str) -> None:
        clean = new_name.strip()
        if not clean:
            raise ValueError("Name must not be empty")
        member = self.get_member(member_id)
        if member is None:
            return
        member.name = clean
        self._write(member)

    def delete_member(self, member_id: str) -> None:
        """Delete a member. Tags referencing it are left as they are."""
        self._documents.delete(FAMILY_COLLECTION, member_id)
        logger.info("Deleted family member %s", member_id)
