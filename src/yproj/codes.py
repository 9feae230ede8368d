"""Error code constants for yproj.

These constants prevent stringly-typed error codes and give every
library error a stable identifier for reporting.
"""

from enum import Enum


class ErrorCode(str, Enum):
    """Error codes carried by every YprojError."""

    # Field mapping
    UNBOUND_FIELD = "UNBOUND_FIELD"
    UNKNOWN_FIELD = "UNKNOWN_FIELD"
    DUPLICATE_REGISTRATION = "DUPLICATE_REGISTRATION"
    FIELD_KIND_MISMATCH = "FIELD_KIND_MISMATCH"

    # Document loading
    STRUCTURE_ERROR = "STRUCTURE_ERROR"
    UNRESOLVED_INCLUDE = "UNRESOLVED_INCLUDE"
    INVALID_DOCUMENT = "INVALID_DOCUMENT"
