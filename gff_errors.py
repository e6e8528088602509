"""
GFF Errors - Exception hierarchy for the GFF container codec
============================================================

Decode errors are raised by gff_parser, encode errors by gff_serializer.
Everything derives from GffError, a ValueError subclass.
"""


class GffError(ValueError):
    """Base class for all GFF codec errors."""
    pass


# =============================================================================
# Decoding
# =============================================================================

class GffDecodeError(GffError):
    """Base class for errors raised while reading a container."""
    pass


class UnsupportedFormat(GffDecodeError):
    """Raised when the file type or version tag is not supported."""
    pass


class TruncatedBuffer(GffDecodeError):
    """Raised when an offset/length pair runs past the end of its region."""

    def __init__(self, offset: int, length: int, limit: int, what: str = "data"):
        self.offset = offset
        self.length = length
        self.limit = limit
        self.what = what
        super().__init__(
            f"{what} at 0x{offset:X} ({length} bytes) exceeds limit 0x{limit:X}")


class UnknownFieldType(GffDecodeError):
    """Raised when a field record carries a type tag outside 0-15."""

    def __init__(self, type_tag: int, field_index: int):
        self.type_tag = type_tag
        self.field_index = field_index
        super().__init__(f"Unknown field type {type_tag} in field {field_index}")


class InvalidStructReference(GffDecodeError):
    """Raised when a struct index points outside the struct array."""
    pass


class InvalidFieldReference(GffDecodeError):
    """Raised when a struct names a field index outside the field array."""
    pass


class InvalidListReference(GffDecodeError):
    """Raised when a list offset or list element index is out of range."""
    pass


# =============================================================================
# Encoding
# =============================================================================

class GffEncodeError(GffError):
    """Base class for errors raised while writing a container."""
    pass


class MalformedGraph(GffEncodeError):
    """Raised when the struct graph cannot be flattened (e.g. a cycle)."""
    pass


class FieldValueError(GffEncodeError):
    """Raised when a field value does not fit its type tag."""
    pass
