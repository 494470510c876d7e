APP_NAME = "PhotSpot"
VERSION = "1.0.0"
SCHEMA_VERSION = "1"

DB_FILENAME = "favorites.db"

# Hard ceiling on stored favorites.
MAX_ITEMS = 256

# Label given to every new item; never shown as a real label.
UNDEFINED_LABEL = "undefined"

THUMBNAIL_FORMAT = "JPEG"
THUMBNAIL_QUALITY = 60
THUMBNAIL_MAX_EDGE = 256

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 8189
