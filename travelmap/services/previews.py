"""Per-country preview image and photo count for the map and country list."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable

from travelmap.storage.schemas import Photo, normalize_iso2


@dataclass
class PreviewEntry:
    url: str
    created_at: int
    count: int


class PhotoPreviews:
    def __init__(self) -> None:
        self._by_iso: Dict[str, PreviewEntry] = {}

    def rebuild(self, photos: Iterable[Photo]) -> None:
        by_iso: Dict[str, PreviewEntry] = {}
        for photo in photos:
            iso = normalize_iso2(photo.country_iso)
            if not iso:
                continue
            current = by_iso.get(iso)
            if current is None:
                by_iso[iso] = PreviewEntry(photo.url, photo.created_at, 1)
                continue
            current.count += 1
            if photo.created_at > current.created_at:
                current.url = photo.url
                current.created_at = photo.created_at
        self._by_iso = by_iso

    def register(self, photo: Photo) -> None:
        """Account for a freshly uploaded photo without reloading everything."""
        iso = normalize_iso2(photo.country_iso)
        if not iso:
            return
        current = self._by_iso.get(iso)
        if current is None:
            self._by_iso[iso] = PreviewEntry(photo.url, photo.created_at, 1)
            return
        current.count += 1
        if photo.created_at >= current.created_at:
            current.url = photo.url
            current.created_at = photo.created_at

    def previews(self) -> Dict[str, str]:
        return {iso: entry.url for iso, entry in self._by_iso.items()}

    def counts(self) -> Dict[str, int]:
        return {iso: entry.count for iso, entry in self._by_iso.items()}
