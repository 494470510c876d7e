import logging

from .constants import APP_NAME, MAX_ITEMS, SCHEMA_VERSION, UNDEFINED_LABEL, VERSION
from .db import PhotSpotCatalog
from .errors import (
    CapacityExceeded,
    CatalogError,
    DuplicateItem,
    EncodingFailure,
    InvariantViolation,
    NotFound,
    StorageFailure,
)

logger = logging.getLogger("PhotSpot")

logger.debug(f"{APP_NAME} {VERSION} (schema {SCHEMA_VERSION}, capacity {MAX_ITEMS})")

__all__ = [
    "PhotSpotCatalog",
    "CatalogError",
    "NotFound",
    "DuplicateItem",
    "CapacityExceeded",
    "EncodingFailure",
    "StorageFailure",
    "InvariantViolation",
    "UNDEFINED_LABEL",
    "VERSION",
]
