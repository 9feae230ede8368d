"""Exception types raised by yproj.

Every exception carries an ErrorCode in ``code``. Field-level errors
keep the field name; structural errors keep the offending event and the
builder's stack depth.
"""

from typing import Any, Optional

from yproj.codes import ErrorCode


class YprojError(Exception):
    """Base class for all yproj errors."""
    code: ErrorCode = ErrorCode.INVALID_DOCUMENT

    def __str__(self) -> str:
        return self.args[0] if self.args else self.code.value


class FieldError(YprojError):
    """A failure tied to one named field."""

    def __init__(self, field: str, message: str):
        super().__init__(message)
        self.field = field


class UnboundFieldError(FieldError):
    """No accessor could resolve a value for the field on the instance."""
    code = ErrorCode.UNBOUND_FIELD

    def __init__(self, field: str, instance: Any, message: Optional[str] = None):
        super().__init__(field, message or f"Unbound field {field!r} in {instance!r}")
        self.instance = instance


class FieldBridgeNotFound(FieldError, KeyError):
    """No bridge is registered for the field name and no fallback was given."""
    code = ErrorCode.UNKNOWN_FIELD

    def __init__(self, field: str, context: Any, message: Optional[str] = None):
        super().__init__(field, message or f"Found no field bridge for {field!r} in {context!r}")
        self.context = context


class DuplicateFieldError(FieldError):
    """A second, different bridge was registered under an existing name."""
    code = ErrorCode.DUPLICATE_REGISTRATION

    def __init__(self, field: str, context: Any, message: Optional[str] = None):
        super().__init__(field, message or f"Field {field!r} is already defined in {context!r}")
        self.context = context


class FieldKindError(FieldError, TypeError):
    """A value does not have the shape its field kind declares."""
    code = ErrorCode.FIELD_KIND_MISMATCH

    def __init__(self, field: str, kind: str, value: Any):
        super().__init__(
            field,
            f"Value for {kind} field {field!r} has unsupported type "
            f"{type(value).__name__}: {value!r}"
        )
        self.kind = kind
        self.value = value


class StructureError(YprojError):
    """The tree builder received an event inconsistent with its frame stack."""
    code = ErrorCode.STRUCTURE_ERROR

    def __init__(self, event: str, depth: int, message: Optional[str] = None):
        super().__init__(message or f"Unexpected {event} event at frame depth {depth}")
        self.event = event
        self.depth = depth


class FinalizedStructError(StructureError):
    """A new field reached a struct descriptor that is already finalized."""

    def __init__(self, type_name: Optional[str], field: str, depth: int):
        super().__init__(
            "scalar",
            depth,
            f"Cannot add field {field!r} to finalized record type "
            f"{type_name or '(anonymous)'}"
        )
        self.type_name = type_name
        self.field = field


class UnresolvedIncludeError(YprojError):
    """An include directive names a file that does not exist or cannot be read."""
    code = ErrorCode.UNRESOLVED_INCLUDE

    def __init__(self, target: Any, source: Any, reason: Optional[str] = None):
        message = f"Cannot resolve include {str(target)!r} from {str(source)!r}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)
        self.target = target
        self.source = source


class DocumentError(YprojError):
    """A document could not be parsed or is not a top-level mapping."""
    code = ErrorCode.INVALID_DOCUMENT

    def __init__(self, path: Any, reason: str):
        super().__init__(f"Invalid document {str(path)!r}: {reason}")
        self.path = path
        self.reason = reason
