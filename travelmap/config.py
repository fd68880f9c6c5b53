"""Shared configuration for the Streamlit travel map app."""

import os
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parent.parent
PACKAGE_DIR = Path(__file__).resolve().parent
APP_DATA_DIR = Path(os.getenv("TRAVELMAP_DATA_DIR", PROJECT_ROOT / "app_data"))
DOCUMENTS_DIR = APP_DATA_DIR / "documents"
OBJECTS_DIR = APP_DATA_DIR / "objects"
OBJECTS_BASE_URL = os.getenv("TRAVELMAP_OBJECTS_BASE_URL") or None
SEED_TRIPS_PATH = Path(os.getenv("TRAVELMAP_SEED_PATH", PACKAGE_DIR / "data" / "trips.json"))

# Face models
BACKBONE_MODEL_DIR = Path(os.getenv("TRAVELMAP_MODEL_DIR", PROJECT_ROOT / "models" / "facenet"))
EMBEDDING_DIM = int(os.getenv("TRAVELMAP_EMBEDDING_DIM", "128"))
EMBEDDING_BATCH_SIZE = 32
DETECTION_MIN_CONFIDENCE = float(os.getenv("TRAVELMAP_DETECTION_MIN_CONFIDENCE", "0.5"))
DETECTION_MIN_FACE_SIZE = 20
MATCH_THRESHOLD = float(os.getenv("TRAVELMAP_MATCH_THRESHOLD", "0.55"))
AUTO_ASSIGN_ON_UPLOAD = os.getenv("TRAVELMAP_AUTO_ASSIGN_ON_UPLOAD", "1") not in ("0", "false", "no")

# Media normalisation
MAX_IMAGE_DIMENSION = 2200
JPEG_QUALITY = 0.92
THUMBNAIL_SIZE = 80
THUMBNAIL_QUALITY = 0.5
THUMBNAIL_PADDING = 0.3

TOTAL_COUNTRIES_IN_WORLD = 195
DISPLAY_LANGUAGE = os.getenv("TRAVELMAP_LANGUAGE", "ru")

# Access gate
SITE_PASSWORD = os.getenv("SITE_PASSWORD", "").strip()
SITE_PASSWORD_HASH = os.getenv("SITE_PASSWORD_HASH", "").strip()
SESSION_AUTH_KEY = "travelmap_authed_v1"

LOG_LEVEL = os.getenv("TRAVELMAP_LOG_LEVEL", "INFO")

APP_DATA_DIR.mkdir(parents=True, exist_ok=True)
