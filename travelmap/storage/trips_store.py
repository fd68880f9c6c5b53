"""The trips config document and the JSON data export."""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Optional

from travelmap.storage.document_store import TRIPS_COLLECTION, JsonDocumentStore, sanitize
from travelmap.storage.photo_store import PhotoStore
from travelmap.storage.schemas import TripsDocument, normalize_iso2

logger = logging.getLogger(__name__)

CONFIG_DOC = "config"
EXPORT_VERSION = 1


class TripsStore:
    """Reads and overwrites the single trips document."""

    def __init__(self, documents: JsonDocumentStore) -> None:
        self._documents = documents

    def get_trips_data(self) -> Optional[TripsDocument]:
        payload = self._documents.get(TRIPS_COLLECTION, CONFIG_DOC)
        if payload is None:
            return None
        return TripsDocument.from_dict(payload)

    def save_trips_data(self, data: TripsDocument) -> None:
        self._documents.set(TRIPS_COLLECTION, CONFIG_DOC, sanitize(data.as_dict()))
        logger.debug("Saved trips document with %d places", len(data.visited))

    def update_trip_notes(self, iso2: str, notes: str) -> None:
        data = self.get_trips_data()
        if data is None:
            return
        code = normalize_iso2(iso2)
        for trip in data.visited:
            if trip.iso2 == code:
                trip.notes = notes
        self.save_trips_data(data)


def export_all_data(trips: TripsStore, photos: PhotoStore) -> str:
    """Serialise the trips document and photo metadata (URLs, not image bytes)."""
    data = trips.get_trips_data()
    payload = {
        "version": EXPORT_VERSION,
        "exportedAt": datetime.now(timezone.utc).isoformat(),
        "trips": sanitize(data.as_dict()) if data else None,
        "photos": [sanitize(photo.as_dict()) for photo in photos.all_photos()],
    }
    return json.dumps(payload, indent=2, ensure_ascii=False)
