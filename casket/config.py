"""
Configuration constants for casket.
"""

# --- File Type Definitions ---
RAW_EXTS = {'.cr2', '.cr3', '.nef', '.nrw', '.arw', '.orf', '.rw2', '.raf', '.pef', '.srw', '.dng'}
HEIC_EXTS = {'.heic', '.heif'}
IMAGE_EXTS = {'.jpg', '.jpeg', '.jpe', '.png', '.gif', '.tif', '.tiff', '.webp', '.bmp', '.psd', '.psb'}
VIDEO_EXTS = {'.mp4', '.mov', '.m4v', '.avi', '.mts', '.m2ts', '.3gp', '.mpg', '.mpeg', '.mkv'}

# Extensions that only the external converter should be asked to rescue
EXTERNAL_RAW_EXTS = {'.dng'}

PSD_EXTS = {'.psd', '.psb'}

# Extension to Kind Mapping
EXT_TO_KIND = {}
for ext in RAW_EXTS: EXT_TO_KIND[ext] = 'raw'
for ext in HEIC_EXTS: EXT_TO_KIND[ext] = 'heic'
for ext in IMAGE_EXTS: EXT_TO_KIND[ext] = 'image'
for ext in VIDEO_EXTS: EXT_TO_KIND[ext] = 'video'

FILE_KINDS = ('raw', 'heic', 'image', 'video')

# --- Metadata Parsing ---
DATE_TAGS = [
    'EXIF DateTimeOriginal',
    'EXIF DateTimeDigitized',
    'Image DateTime',
]
ORIENTATION_TAG = 'Image Orientation'

# --- Thumbnails ---
DEFAULT_MAX_DIMENSION = 2048
DEFAULT_QUALITY_LEVEL = 6   # level n -> JPEG quality n * 10
MIN_QUALITY_LEVEL = 1
MAX_QUALITY_LEVEL = 10
THUMBNAIL_SUFFIX = '.jpg'

# Seconds into a clip to grab the representative frame
VIDEO_FRAME_OFFSET_SEC = 1.0

# External image conversion (sips / ImageMagick)
CONVERTER_TIMEOUT_SEC = 120

# --- Archive ---
FOLDER_PATTERN = "{year:04d}/{month:02d}/{day:02d}"
HASH_CHUNK_SIZE = 64 * 1024

# --- Catalog ---
DB_FILENAME = "casket.db"
LOG_FILENAME = "casket.log"
CONFIG_ENV_VAR = "CASKET_CONFIG"
DEFAULT_WORKERS = 4
DEFAULT_BATCH_SIZE = 1
