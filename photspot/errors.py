"""Error taxonomy for catalog operations.

``NotFound``, ``DuplicateItem``, ``CapacityExceeded`` and ``EncodingFailure``
are ordinary outcomes a caller is expected to handle. ``StorageFailure`` wraps
a ``sqlite3.Error`` raised by the medium. ``InvariantViolation`` means the
engine's own bookkeeping has drifted and should be treated as a defect.
"""


class CatalogError(Exception):
    code = "catalog_error"


class NotFound(CatalogError, LookupError):
    code = "not_found"


class DuplicateItem(CatalogError):
    code = "duplicate_item"


class CapacityExceeded(CatalogError):
    code = "capacity_exceeded"


class EncodingFailure(CatalogError):
    code = "encoding_failure"


class StorageFailure(CatalogError):
    code = "storage_failure"


class InvariantViolation(CatalogError):
    code = "invariant_violation"
