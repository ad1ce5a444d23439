"""
Configuration constants for the photo catalog.
"""

# --- File Type Definitions ---
# Only these extensions are tracked by the catalog and the duplicate analyzer.
IMAGE_EXTS = {
    '.jpg', '.jpeg', '.png', '.bmp', '.gif', '.tiff', '.tif', '.webp',
    '.raw', '.cr2', '.nef', '.arw',
}

# EXIF tags carrying pixel dimensions, in priority order (exifread naming)
DIMENSION_TAGS = [
    ('EXIF ExifImageWidth', 'EXIF ExifImageLength'),
    ('Image ImageWidth', 'Image ImageLength'),
]

# --- Hashing & Performance ---
HASH_CHUNK_SIZE = 64 * 1024  # 64 KB chunks for full reads
PARTIAL_HASH_SIZE = 16 * 1024  # Head and tail sample for the partial fingerprint

# --- Scanning ---
# Upper bound on directory nesting; deeper trees are logged and pruned.
MAX_SCAN_DEPTH = 64

# --- Duplicate Folder Analysis ---
PARTIAL_DUPLICATE_THRESHOLD = 0.90
CACHE_MTIME_TOLERANCE_SEC = 1.0
CACHE_FILENAME = ".folder_analysis_cache"
CACHE_VERSION = "FolderContentCache_v3.0"

# Progress bands (percent) for the three analysis phases
PROGRESS_COUNT_END = 10
PROGRESS_FINGERPRINT_END = 70
PROGRESS_TOTAL = 100

# --- Project Files ---
DB_FILENAME = "catalog.db"
PROJECT_FILENAME = "project.json"
PROJECT_VERSION = "1.0"
LOG_FILENAME = "catalog.log"
