#!/usr/bin/env python3
"""
Detect faces on stored photos that were uploaded before face detection existed.

This script:
1. Lists every stored photo (optionally for one country)
2. Skips photos that already have detected faces
3. Runs MediaPipe detection and FaceNet descriptors on the stored image
4. Stores the detections with suggestions, without assigning anyone

Usage:
    python backfill_faces.py
    python backfill_faces.py --country GE --limit 20
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Optional

from tqdm import tqdm

# Add project directory to path
PROJECT_DIR = Path(__file__).resolve().parent
if str(PROJECT_DIR) not in sys.path:
    sys.path.insert(0, str(PROJECT_DIR))

from travelmap import config
from travelmap.errors import TravelMapError
from travelmap.services.face_extraction import FaceExtractor, FaceModelHandle, load_default_models
from travelmap.services.recognizer import IdentityMatcher
from travelmap.services.tagging import TaggingService
from travelmap.storage.document_store import JsonDocumentStore
from travelmap.storage.family_store import FamilyStore
from travelmap.storage.object_store import LocalObjectStore
from travelmap.storage.photo_store import PhotoStore


def backfill_faces(
    data_dir: Path,
    model_dir: Path,
    country: Optional[str] = None,
    limit: Optional[int] = None,
    threshold: float = config.MATCH_THRESHOLD,
) -> None:
    documents = JsonDocumentStore(data_dir / "documents")
    photos = PhotoStore(documents, LocalObjectStore(data_dir / "objects"))
    family = FamilyStore(documents)

    extractor = FaceExtractor(FaceModelHandle(lambda: load_default_models(model_dir=model_dir)))
    tagging = TaggingService(photos, family, extractor, IdentityMatcher(threshold=threshold))

    candidates = photos.photos_for_country(country) if country else photos.all_photos()
    pending = [photo for photo in candidates if not photo.detected_faces]
    print(f"Photos total: {len(candidates)}, without detections: {len(pending)}")
    if limit:
        pending = pending[:limit]
        print(f"Limited to {len(pending)} photos")
    if not pending:
        return

    print("Loading face models...")
    extractor.preload()

    stats = {"updated": 0, "no_face": 0, "failed": 0}
    for photo in tqdm(pending, desc="Photos"):
        try:
            _, rows = tagging.prepare_tagger(photo)
        except (TravelMapError, OSError, ValueError) as e:
            tqdm.write(f"Error processing {photo.id}: {e}")
            stats["failed"] += 1
            continue
        if rows:
            stats["updated"] += 1
        else:
            stats["no_face"] += 1

    print("\n" + "=" * 60)
    print("COMPLETED")
    print("=" * 60)
    print(f"Photos with new detections: {stats['updated']}")
    print(f"Photos with no face detected: {stats['no_face']}")
    print(f"Photos failed: {stats['failed']}")
    print("=" * 60)


def main():
    parser = argparse.ArgumentParser(
        description="Detect faces on stored photos that have no detections yet.",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument(
        "--data-dir",
        type=Path,
        default=config.APP_DATA_DIR,
        help="Application data directory (documents and objects)",
    )
    parser.add_argument(
        "--model-dir",
        type=Path,
        default=config.BACKBONE_MODEL_DIR,
        help="Path to FaceNet model directory",
    )
    parser.add_argument(
        "--country",
        type=str,
        default=None,
        help="Only process photos of this ISO country code",
    )
    parser.add_argument(
        "--limit",
        type=int,
        default=None,
        help="Maximum number of photos to process (None = all)",
    )
    parser.add_argument(
        "--threshold",
        type=float,
        default=config.MATCH_THRESHOLD,
        help="Maximum descriptor distance for a suggestion",
    )
    args = parser.parse_args()

    logging.basicConfig(level=config.LOG_LEVEL, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    if not args.model_dir.exists():
        print(f"ERROR: Model directory not found: {args.model_dir}")
        sys.exit(1)

    backfill_faces(
        data_dir=args.data_dir,
        model_dir=args.model_dir,
        country=args.country,
        limit=args.limit,
        threshold=args.threshold,
    )


if __name__ == "__main__":
    main()
