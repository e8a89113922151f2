STANDARD_EXTENSIONS = {".jpg", ".jpeg", ".png", ".webp", ".bmp", ".gif", ".tif", ".tiff"}
HEIF_EXTENSIONS = {".heic", ".heif", ".hif"}
SUPPORTED_EXTENSIONS = STANDARD_EXTENSIONS | HEIF_EXTENSIONS

IMAGE_MIME_PREFIX = "image/"

# 9:16 poster
POSTER_WIDTH = 1080
POSTER_HEIGHT = 1920
POSTER_SIZE = (POSTER_WIDTH, POSTER_HEIGHT)

VIEWPORT_SIZE = 300
MIN_SCALE = 0.5
MAX_SCALE = 5.0
ZOOM_STEP = 0.1
CROP_JPEG_QUALITY = 80
CROP_FILL_COLOR = "#000000"

POSTER_MIME_TYPE = "image/png"
CROP_MIME_TYPE = "image/jpeg"

DEFAULT_TEMPLATE = "poster1"
DEFAULT_EVENT_ID = "poster"
