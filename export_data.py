#!/usr/bin/env python3
"""Write the trips document and photo metadata to a JSON file.

Usage:
    python export_data.py --output travel-map-export.json
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

# Add project directory to path
PROJECT_DIR = Path(__file__).resolve().parent
if str(PROJECT_DIR) not in sys.path:
    sys.path.insert(0, str(PROJECT_DIR))

from travelmap import config
from travelmap.storage.document_store import JsonDocumentStore
from travelmap.storage.object_store import LocalObjectStore
from travelmap.storage.photo_store import PhotoStore
from travelmap.storage.trips_store import TripsStore, export_all_data


def main():
    parser = argparse.ArgumentParser(
        description="Export trips and photo metadata as JSON.",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument(
        "--data-dir",
        type=Path,
        default=config.APP_DATA_DIR,
        help="Application data directory (documents and objects)",
    )
    parser.add_argument(
        "--output",
        type=Path,
        default=Path("travel-map-export.json"),
        help="Output JSON file path",
    )
    args = parser.parse_args()

    documents = JsonDocumentStore(args.data_dir / "documents")
    photos = PhotoStore(documents, LocalObjectStore(args.data_dir / "objects"))
    payload = export_all_data(TripsStore(documents), photos)

    args.output.write_text(payload, encoding="utf-8")
    print(f"✅ Exported {len(photos.all_photos())} photos to {args.output}")


if __name__ == "__main__":
    main()
