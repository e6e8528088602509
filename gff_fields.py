"""
GFF Fields - Field type table and per-type storage rules
========================================================

Every field record in a GFF container is 12 bytes:

    | Offset | Size | Meaning                                    |
    |--------|------|--------------------------------------------|
    | 0x00   | 4    | Type tag (0-15)                            |
    | 0x04   | 4    | Label index into the label table           |
    | 0x08   | 4    | Value, data offset, struct index or list   |

How the value slot is interpreted depends on the type tag. FIELD_SPECS below
is the only place that knows this; gff_parser and gff_serializer both go
through decode_inline/encode_inline and read_payload/pack_payload.

Type Table:
----------
| Tag | Name          | Storage        | Payload in field-data block          |
|-----|---------------|----------------|--------------------------------------|
| 0   | BYTE          | inline         | -                                    |
| 1   | CHAR          | inline         | -                                    |
| 2   | WORD          | inline         | -                                    |
| 3   | SHORT         | inline         | -                                    |
| 4   | DWORD         | inline         | -                                    |
| 5   | INT           | inline         | -                                    |
| 6   | DWORD64       | fixed          | u64                                  |
| 7   | INT64         | fixed          | i64                                  |
| 8   | FLOAT         | inline         | -                                    |
| 9   | DOUBLE        | fixed          | f64                                  |
| 10  | CEXOSTRING    | length         | u32 size + bytes                     |
| 11  | RESREF        | length         | u8 size + bytes (max 16)             |
| 12  | CEXOLOCSTRING | length         | u32 size, u32 strref, u32 count, ... |
| 13  | VOID          | length         | u32 size + bytes                     |
| 14  | STRUCT        | struct         | - (value is a struct index)          |
| 15  | LIST          | list           | - (value is a list-indices offset)   |
"""

import math
import struct
from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Any, Callable, Dict, Mapping, Optional, Tuple, Union

from gff_errors import FieldValueError, TruncatedBuffer


# =============================================================================
# Constants
# =============================================================================

DEFAULT_ENCODING = 'cp1252'
# Undecodable bytes survive a decode/encode cycle unchanged
TEXT_ERRORS = 'surrogateescape'

RESREF_MAX_LENGTH = 16
NO_STRREF = 0xFFFFFFFF


class FieldType(IntEnum):
    """The 16 GFF field type tags"""
    BYTE = 0
    CHAR = 1
    WORD = 2
    SHORT = 3
    DWORD = 4
    INT = 5
    DWORD64 = 6
    INT64 = 7
    FLOAT = 8
    DOUBLE = 9
    CEXOSTRING = 10
    RESREF = 11
    CEXOLOCSTRING = 12
    VOID = 13
    STRUCT = 14
    LIST = 15


class Storage(Enum):
    """Where a field's value lives on disk"""
    INLINE = 'inline'           # in the 4-byte value slot
    FIXED = 'fixed'             # fixed-width payload in the field-data block
    LENGTH = 'length'           # length-prefixed payload in the field-data block
    STRUCT = 'struct'           # index into the struct array
    LIST = 'list'               # offset into the list-indices block


# =============================================================================
# Localized Strings
# =============================================================================

@dataclass
class LocString:
    """
    CExoLocString value.

    A localized string is either a reference into the game's string table
    (strref), a set of inline substrings keyed by string id, or both. The
    string id packs language and gender as ``language * 2 + gender``.
    """
    strref: int = NO_STRREF
    strings: Dict[int, str] = field(default_factory=dict)

    @staticmethod
    def string_id(language: int = 0, gender: int = 0) -> int:
        return language * 2 + gender

    def text(self, language: int = 0, gender: int = 0) -> Optional[str]:
        """Return the inline substring for a language/gender, if any."""
        return self.strings.get(self.string_id(language, gender))

    def resolve(self, lookup: Union[Callable[[int], Optional[str]], Mapping[int, str], None] = None,
                language: int = 0, gender: int = 0) -> Optional[str]:
        """
        Return display text for this string.

        Inline substrings win. Otherwise the strref is handed to ``lookup``,
        the caller's string table (a callable or a mapping).
        """
        text = self.text(language, gender)
        if text is not None:
            return text
        if self.strref == NO_STRREF or lookup is None:
            return None
        if callable(lookup):
            return lookup(self.strref)
        return lookup.get(self.strref)


# =============================================================================
# Byte Helpers
# =============================================================================

def take(data: bytes, offset: int, length: int, limit: int, what: str = "data") -> bytes:
    """Slice ``length`` bytes at ``offset``, refusing to read past ``limit``."""
    if offset < 0 or length < 0 or offset + length > limit:
        raise TruncatedBuffer(offset, length, limit, what)
    return data[offset:offset + length]


def encode_text(text: str, encoding: str = DEFAULT_ENCODING) -> bytes:
    if not isinstance(text, str):
        raise FieldValueError(f"Expected str, got {type(text).__name__}")
    try:
        return text.encode(encoding, TEXT_ERRORS)
    except UnicodeEncodeError as e:
        raise FieldValueError(f"Cannot encode {text!r} as {encoding}: {e}") from e


def decode_text(raw: bytes, encoding: str = DEFAULT_ENCODING) -> str:
    return raw.decode(encoding, TEXT_ERRORS)


# =============================================================================
# Length-Prefixed Payloads
# =============================================================================

def _read_exostring(data: bytes, pos: int, limit: int, encoding: str) -> str:
    size = struct.unpack('<I', take(data, pos, 4, limit, "CExoString size"))[0]
    return decode_text(take(data, pos + 4, size, limit, "CExoString"), encoding)


def _pack_exostring(value: str, encoding: str) -> bytes:
    raw = encode_text(value, encoding)
    return struct.pack('<I', len(raw)) + raw


def _read_resref(data: bytes, pos: int, limit: int, encoding: str) -> str:
    size = take(data, pos, 1, limit, "ResRef size")[0]
    return decode_text(take(data, pos + 1, size, limit, "ResRef"), encoding)


def _pack_resref(value: str, encoding: str) -> bytes:
    raw = encode_text(value, encoding)
    if len(raw) > RESREF_MAX_LENGTH:
        raise FieldValueError(
            f"ResRef {value!r} is {len(raw)} bytes, limit is {RESREF_MAX_LENGTH}")
    return bytes([len(raw)]) + raw


def _read_locstring(data: bytes, pos: int, limit: int, encoding: str) -> LocString:
    total_size, strref, count = struct.unpack(
        '<3I', take(data, pos, 12, limit, "CExoLocString header"))
    # total_size excludes its own 4 bytes
    end = pos + 4 + total_size
    if end > limit:
        raise TruncatedBuffer(pos, 4 + total_size, limit, "CExoLocString")
    strings = {}
    cursor = pos + 12
    for _ in range(count):
        string_id, size = struct.unpack('<2I', take(data, cursor, 8, end, "CExoLocString substring"))
        strings[string_id] = decode_text(take(data, cursor + 8, size, end, "CExoLocString substring"),
                                         encoding)
        cursor += 8 + size
    return LocString(strref=strref, strings=strings)


def _pack_locstring(value: LocString, encoding: str) -> bytes:
    if not isinstance(value, LocString):
        raise FieldValueError(f"Expected LocString, got {type(value).__name__}")
    body = bytearray()
    try:
        for string_id, text in value.strings.items():
            raw = encode_text(text, encoding)
            body.extend(struct.pack('<2I', string_id, len(raw)))
            body.extend(raw)
        head = struct.pack('<3I', 8 + len(body), value.strref, len(value.strings))
    except struct.error as e:
        raise FieldValueError(f"Invalid CExoLocString: {e}") from e
    return head + bytes(body)


def _read_void(data: bytes, pos: int, limit: int, encoding: str) -> bytes:
    size = struct.unpack('<I', take(data, pos, 4, limit, "Void size"))[0]
    return bytes(take(data, pos + 4, size, limit, "Void"))


def _pack_void(value: bytes, encoding: str) -> bytes:
    if not isinstance(value, (bytes, bytearray, memoryview)):
        raise FieldValueError(f"Expected bytes, got {type(value).__name__}")
    raw = bytes(value)
    return struct.pack('<I', len(raw)) + raw


# =============================================================================
# Type Table
# =============================================================================

@dataclass(frozen=True)
class FieldSpec:
    """Storage rule for one type tag"""
    field_type: FieldType
    storage: Storage
    fmt: Optional[str] = None           # struct format for inline/fixed values
    reader: Optional[Callable] = None   # length-prefixed payload reader
    packer: Optional[Callable] = None   # length-prefixed payload packer

    @property
    def name(self) -> str:
        return self.field_type.name

    @property
    def in_field_data(self) -> bool:
        return self.storage in (Storage.FIXED, Storage.LENGTH)


FIELD_SPECS: Dict[FieldType, FieldSpec] = {
    FieldType.BYTE: FieldSpec(FieldType.BYTE, Storage.INLINE, '<B'),
    FieldType.CHAR: FieldSpec(FieldType.CHAR, Storage.INLINE, '<b'),
    FieldType.WORD: FieldSpec(FieldType.WORD, Storage.INLINE, '<H'),
    FieldType.SHORT: FieldSpec(FieldType.SHORT, Storage.INLINE, '<h'),
    FieldType.DWORD: FieldSpec(FieldType.DWORD, Storage.INLINE, '<I'),
    FieldType.INT: FieldSpec(FieldType.INT, Storage.INLINE, '<i'),
    FieldType.DWORD64: FieldSpec(FieldType.DWORD64, Storage.FIXED, '<Q'),
    FieldType.INT64: FieldSpec(FieldType.INT64, Storage.FIXED, '<q'),
    FieldType.FLOAT: FieldSpec(FieldType.FLOAT, Storage.INLINE, '<f'),
    FieldType.DOUBLE: FieldSpec(FieldType.DOUBLE, Storage.FIXED, '<d'),
    FieldType.CEXOSTRING: FieldSpec(FieldType.CEXOSTRING, Storage.LENGTH,
                                    reader=_read_exostring, packer=_pack_exostring),
    FieldType.RESREF: FieldSpec(FieldType.RESREF, Storage.LENGTH,
                                reader=_read_resref, packer=_pack_resref),
    FieldType.CEXOLOCSTRING: FieldSpec(FieldType.CEXOLOCSTRING, Storage.LENGTH,
                                       reader=_read_locstring, packer=_pack_locstring),
    FieldType.VOID: FieldSpec(FieldType.VOID, Storage.LENGTH,
                              reader=_read_void, packer=_pack_void),
    FieldType.STRUCT: FieldSpec(FieldType.STRUCT, Storage.STRUCT),
    FieldType.LIST: FieldSpec(FieldType.LIST, Storage.LIST),
}

INTEGER_TYPES = frozenset({
    FieldType.BYTE, FieldType.CHAR, FieldType.WORD, FieldType.SHORT,
    FieldType.DWORD, FieldType.INT, FieldType.DWORD64, FieldType.INT64,
})
FLOAT_TYPES = frozenset({FieldType.FLOAT, FieldType.DOUBLE})
TEXT_TYPES = frozenset({FieldType.CEXOSTRING, FieldType.RESREF})


def get_spec(type_tag: int) -> Optional[FieldSpec]:
    """Look up the storage rule for a raw type tag, None if unknown."""
    try:
        return FIELD_SPECS[FieldType(type_tag)]
    except ValueError:
        return None


def default_value(field_type: FieldType) -> Any:
    """Zero value for a type tag (used when building fields programmatically)."""
    if field_type in INTEGER_TYPES:
        return 0
    if field_type in FLOAT_TYPES:
        return 0.0
    if field_type in TEXT_TYPES:
        return ''
    if field_type == FieldType.CEXOLOCSTRING:
        return LocString()
    if field_type == FieldType.VOID:
        return b''
    return None


# =============================================================================
# Value Codecs
# =============================================================================

class Float32Bits(float):
    """
    Decoded FLOAT that remembers its 4-byte slot.

    Widening a float32 NaN to a Python float sets the quiet bit, so NaN
    payloads are written back from ``raw`` instead of being re-packed.
    """

    def __new__(cls, value: float, raw: bytes):
        obj = super().__new__(cls, value)
        obj.raw = bytes(raw[:4])
        return obj


def _scalar(spec: FieldSpec, value: Any) -> Union[int, float]:
    if spec.field_type in FLOAT_TYPES:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise FieldValueError(f"{spec.name} needs a number, got {type(value).__name__}")
        return float(value)
    if isinstance(value, bool) or not isinstance(value, int):
        raise FieldValueError(f"{spec.name} needs an int, got {type(value).__name__}")
    return value


def decode_inline(field_type: FieldType, raw: bytes) -> Union[int, float]:
    """Decode the 4-byte value slot of an inline field."""
    spec = FIELD_SPECS[field_type]
    value = struct.unpack_from(spec.fmt, raw, 0)[0]
    if field_type == FieldType.FLOAT and math.isnan(value):
        return Float32Bits(value, raw)
    return value


def encode_inline(field_type: FieldType, value: Any) -> bytes:
    """Encode an inline value into a zero-padded 4-byte value slot."""
    spec = FIELD_SPECS[field_type]
    if field_type == FieldType.FLOAT and isinstance(value, Float32Bits) and math.isnan(value):
        return value.raw
    try:
        packed = struct.pack(spec.fmt, _scalar(spec, value))
    except (struct.error, OverflowError) as e:
        raise FieldValueError(f"{spec.name} value {value!r} out of range: {e}") from e
    return packed.ljust(4, b'\x00')


def read_payload(field_type: FieldType, data: bytes, pos: int, limit: int,
                 encoding: str = DEFAULT_ENCODING) -> Any:
    """
    Read an indirect field value at absolute position ``pos``.

    Args:
        field_type: FIXED or LENGTH type tag
        data: Whole container buffer
        pos: field_data_offset + the field's value slot
        limit: End of the field-data block

    Returns:
        Decoded Python value
    """
    spec = FIELD_SPECS[field_type]
    if spec.storage == Storage.FIXED:
        size = struct.calcsize(spec.fmt)
        return struct.unpack(spec.fmt, take(data, pos, size, limit, spec.name))[0]
    return spec.reader(data, pos, limit, encoding)


def pack_payload(field_type: FieldType, value: Any, encoding: str = DEFAULT_ENCODING) -> bytes:
    """Encode an indirect field value into its field-data bytes."""
    spec = FIELD_SPECS[field_type]
    if spec.storage == Storage.FIXED:
        try:
            return struct.pack(spec.fmt, _scalar(spec, value))
        except (struct.error, OverflowError) as e:
            raise FieldValueError(f"{spec.name} value {value!r} out of range: {e}") from e
    if spec.storage == Storage.LENGTH:
        return spec.packer(value, encoding)
    raise FieldValueError(f"{spec.name} has no field-data payload")


def type_summary() -> Tuple[Tuple[int, str, str], ...]:
    """(tag, name, storage) rows for display."""
    return tuple((int(t), s.name, s.storage.value) for t, s in FIELD_SPECS.items())
