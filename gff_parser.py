#!/usr/bin/env python3
"""
GFF Parser - Decoder for BioWare Generic File Format (V3.2) containers
=====================================================================

Decodes a complete GFF buffer (UTC, UTI, IFO, ARE, DLG, ... resources) into
a GffContainer graph.

File Structure:
--------------
| Section        | Record size | Header count means      |
|----------------|-------------|-------------------------|
| Header         | 56 bytes    | -                       |
| Structs        | 12 bytes    | number of structs       |
| Fields         | 12 bytes    | number of fields        |
| Labels         | 16 bytes    | number of labels        |
| Field data     | variable    | size in bytes           |
| Field indices  | 4 bytes     | size in bytes           |
| List indices   | 4 bytes     | size in bytes           |

Header Structure (56 bytes):
---------------------------
0x00: File type (4 ASCII chars, e.g. "UTC ")
0x04: File version ("V3.2")
0x08: Struct offset / count
0x10: Field offset / count
0x18: Label offset / count
0x20: Field data offset / byte count
0x28: Field indices offset / byte count
0x30: List indices offset / byte count

Struct record: (kind, data_or_index, field_count). With one field,
data_or_index is that field's index; with more, it is a byte offset into the
field-indices block holding field_count u32 field indices.

Decoding order:
    structs -> fields (struct fields alias structs[i], lists are deferred)
    -> struct membership from field indices -> list membership from list indices

Unknown type tags abort the decode (UnknownFieldType) unless the parser is
created with strict=False, in which case the field is skipped, a warning is
recorded, and it is left out of its struct.

Usage:
------
    python gff_parser.py creature.utc
    python gff_parser.py module.ifo --verbose
    python gff_parser.py broken.dlg --lenient
    python gff_parser.py --types
"""

import sys
import os
import struct
import argparse
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Tuple

from gff_errors import (
    GffDecodeError, GffError, InvalidFieldReference, InvalidListReference,
    InvalidStructReference, TruncatedBuffer, UnknownFieldType, UnsupportedFormat,
)
from gff_fields import (
    DEFAULT_ENCODING, FieldType, LocString, Storage, decode_inline, decode_text,
    get_spec, read_payload, take, type_summary,
)
from gff_structs import GFF_VERSION, GffContainer, GffField, GffList, GffStruct


# =============================================================================
# Constants
# =============================================================================

HEADER_SIZE = 56
STRUCT_SIZE = 12
FIELD_SIZE = 12
LABEL_SIZE = 16

SUPPORTED_VERSIONS = (GFF_VERSION,)


# =============================================================================
# Header
# =============================================================================

@dataclass
class GffHeader:
    """56-byte GFF header"""
    file_type: str
    file_version: str
    struct_offset: int = HEADER_SIZE
    struct_count: int = 0
    field_offset: int = HEADER_SIZE
    field_count: int = 0
    label_offset: int = HEADER_SIZE
    label_count: int = 0
    field_data_offset: int = HEADER_SIZE
    field_data_count: int = 0
    field_indices_offset: int = HEADER_SIZE
    field_indices_count: int = 0
    list_indices_offset: int = HEADER_SIZE
    list_indices_count: int = 0

    @classmethod
    def parse(cls, data: bytes, file_types: Optional[Iterable[str]] = None) -> 'GffHeader':
        """
        Parse and validate the header.

        The type and version tags are checked before anything else is read,
        so an unsupported file fails with UnsupportedFormat as soon as its
        first 8 bytes are available.
        """
        if len(data) < 8:
            raise TruncatedBuffer(0, 8, len(data), "header tags")

        raw_type = data[0:4]
        if any(b < 0x20 or b > 0x7E for b in raw_type):
            raise UnsupportedFormat(f"Not a GFF file: bad type tag {bytes(raw_type)!r}")
        file_type = raw_type.decode('ascii')
        if file_types is not None and file_type not in file_types:
            raise UnsupportedFormat(f"Unsupported GFF type: {file_type!r}")

        file_version = data[4:8].decode('ascii', 'replace')
        if file_version.upper() not in SUPPORTED_VERSIONS:
            raise UnsupportedFormat(f"Unsupported GFF version: {file_version!r}")

        if len(data) < HEADER_SIZE:
            raise TruncatedBuffer(0, HEADER_SIZE, len(data), "header")

        values = struct.unpack_from('<12I', data, 8)
        return cls(file_type, file_version, *values)

    def pack(self) -> bytes:
        return (self.file_type.encode('ascii')[:4].ljust(4, b' ')
                + self.file_version.encode('ascii')[:4].ljust(4, b' ')
                + struct.pack('<12I',
                              self.struct_offset, self.struct_count,
                              self.field_offset, self.field_count,
                              self.label_offset, self.label_count,
                              self.field_data_offset, self.field_data_count,
                              self.field_indices_offset, self.field_indices_count,
                              self.list_indices_offset, self.list_indices_count))

    def sections(self) -> List[Tuple[str, int, int]]:
        """(name, offset, size in bytes) for the six sections, in file order."""
        return [
            ('structs', self.struct_offset, self.struct_count * STRUCT_SIZE),
            ('fields', self.field_offset, self.field_count * FIELD_SIZE),
            ('labels', self.label_offset, self.label_count * LABEL_SIZE),
            ('field_data', self.field_data_offset, self.field_data_count),
            ('field_indices', self.field_indices_offset, self.field_indices_count),
            ('list_indices', self.list_indices_offset, self.list_indices_count),
        ]

    def __str__(self):
        return (f"Header(type={self.file_type!r}, version={self.file_version!r}, "
                f"structs={self.struct_count}, fields={self.field_count}, labels={self.label_count})")


# =============================================================================
# Parser Class
# =============================================================================

class GffParser:
    """Decoder for GFF V3.2 containers"""

    def __init__(self, strict: bool = True, verbose: bool = False,
                 encoding: str = DEFAULT_ENCODING, file_types: Optional[Iterable[str]] = None):
        self.strict = strict
        self.verbose = verbose
        self.encoding = encoding
        self.file_types = set(file_types) if file_types is not None else None
        self.header: Optional[GffHeader] = None
        self.warnings: List[str] = []
        self.stats: Dict[str, object] = {}
        self._reset_stats()

    def _reset_stats(self):
        self.warnings = []
        self.stats = {
            'structs': 0,
            'fields': 0,
            'labels': 0,
            'lists': 0,
            'skipped': 0,
            'types': {},
        }

    def _warn(self, message: str):
        self.warnings.append(message)
        if self.verbose:
            print(f"  WARNING: {message}")

    # -------------------------------------------------------------------------
    # Entry point
    # -------------------------------------------------------------------------

    def parse(self, data: bytes) -> GffContainer:
        """
        Decode a complete GFF buffer.

        Args:
            data: Whole resource, random access required

        Returns:
            GffContainer whose ``structs`` list is the decoded struct array
        """
        self._reset_stats()
        data = bytes(data)
        header = GffHeader.parse(data, self.file_types)
        self.header = header
        self._check_sections(header, len(data))

        if self.verbose:
            print(f"{header}")
            for name, offset, size in header.sections():
                print(f"  {name:14s} 0x{offset:06X} {size:8d} bytes")

        if header.struct_count == 0:
            raise InvalidStructReference("Container has no top-level struct")

        labels = self._read_labels(data, header)
        records = self._read_structs(data, header)
        structs = [GffStruct(kind=kind) for kind, _, _ in records]
        fields, pending_lists = self._read_fields(data, header, structs, labels)
        self._resolve_struct_fields(data, header, structs, records, fields)
        self._resolve_lists(data, header, structs, pending_lists)

        self.stats['structs'] = len(structs)
        self.stats['fields'] = sum(1 for f in fields if f is not None)
        self.stats['labels'] = len(labels)
        self.stats['lists'] = len(pending_lists)

        if self.verbose:
            print(f"Decoded {self.stats['structs']} structs, {self.stats['fields']} fields, "
                  f"{self.stats['lists']} lists")

        return GffContainer(header.file_type, structs[0],
                            file_version=header.file_version, structs=structs)

    # -------------------------------------------------------------------------
    # Sections
    # -------------------------------------------------------------------------

    def _check_sections(self, header: GffHeader, size: int):
        for name, offset, length in header.sections():
            if offset + length > size:
                raise TruncatedBuffer(offset, length, size, name)
        if header.field_indices_count % 4:
            raise GffDecodeError(
                f"Field indices size {header.field_indices_count} is not a multiple of 4")
        if header.list_indices_count % 4:
            raise GffDecodeError(
                f"List indices size {header.list_indices_count} is not a multiple of 4")

    def _read_labels(self, data: bytes, header: GffHeader) -> List[str]:
        labels = []
        for i in range(header.label_count):
            offset = header.label_offset + LABEL_SIZE * i
            raw = data[offset:offset + LABEL_SIZE]
            labels.append(decode_text(raw.split(b'\x00', 1)[0], self.encoding))
        return labels

    def _read_structs(self, data: bytes, header: GffHeader) -> List[Tuple[int, int, int]]:
        """Raw (kind, data_or_index, field_count) records"""
        return [struct.unpack_from('<3I', data, header.struct_offset + STRUCT_SIZE * i)
                for i in range(header.struct_count)]

    def _read_fields(self, data: bytes, header: GffHeader, structs: List[GffStruct],
                     labels: List[str]) -> Tuple[List[Optional[GffField]], List[Tuple[GffList, int, int]]]:
        fields: List[Optional[GffField]] = []
        pending_lists: List[Tuple[GffList, int, int]] = []
        type_counts = self.stats['types']
        data_start = header.field_data_offset
        data_end = data_start + header.field_data_count

        for i in range(header.field_count):
            offset = header.field_offset + FIELD_SIZE * i
            type_tag, label_index = struct.unpack_from('<2I', data, offset)
            raw_value = data[offset + 8:offset + 12]

            spec = get_spec(type_tag)
            if spec is None:
                if self.strict:
                    raise UnknownFieldType(type_tag, i)
                self._warn(f"Unknown type {type_tag} in field {i}, skipped")
                self.stats['skipped'] += 1
                fields.append(None)
                continue

            if label_index >= len(labels):
                raise GffDecodeError(
                    f"Field {i} label index {label_index} out of range ({len(labels)} labels)")
            label = labels[label_index]
            field_type = spec.field_type
            slot = struct.unpack('<I', raw_value)[0]

            if spec.storage == Storage.INLINE:
                value = decode_inline(field_type, raw_value)
            elif spec.storage in (Storage.FIXED, Storage.LENGTH):
                value = read_payload(field_type, data, data_start + slot, data_end, self.encoding)
            elif spec.storage == Storage.STRUCT:
                if slot >= len(structs):
                    raise InvalidStructReference(
                        f"Field {i} ({label!r}) references struct {slot} of {len(structs)}")
                value = structs[slot]
            else:
                value = GffList()
                pending_lists.append((value, slot, i))

            fields.append(GffField(label, field_type, value))
            type_counts[spec.name] = type_counts.get(spec.name, 0) + 1

        return fields, pending_lists

    def _resolve_struct_fields(self, data: bytes, header: GffHeader, structs: List[GffStruct],
                               records: List[Tuple[int, int, int]], fields: List[Optional[GffField]]):
        indices_end = header.field_indices_offset + header.field_indices_count
        for i, (s, (kind, data_or_index, field_count)) in enumerate(zip(structs, records)):
            if field_count == 0:
                continue
            if field_count == 1:
                members = [data_or_index]
            else:
                raw = take(data, header.field_indices_offset + data_or_index, 4 * field_count,
                           indices_end, f"field indices of struct {i}")
                members = struct.unpack(f'<{field_count}I', raw)
            for index in members:
                if index >= len(fields):
                    raise InvalidFieldReference(
                        f"Struct {i} references field {index} of {len(fields)}")
                f = fields[index]
                if f is None:
                    continue
                s.fields.append(f)

    def _resolve_lists(self, data: bytes, header: GffHeader, structs: List[GffStruct],
                       pending_lists: List[Tuple[GffList, int, int]]):
        list_end = header.list_indices_offset + header.list_indices_count
        for lst, offset, field_index in pending_lists:
            pos = header.list_indices_offset + offset
            if offset + 4 > header.list_indices_count:
                raise InvalidListReference(
                    f"Field {field_index} list offset 0x{offset:X} outside list indices "
                    f"({header.list_indices_count} bytes)")
            count = struct.unpack('<I', data[pos:pos + 4])[0]
            raw = take(data, pos + 4, 4 * count, list_end, f"list of field {field_index}")
            for index in struct.unpack(f'<{count}I', raw):
                if index >= len(structs):
                    raise InvalidListReference(
                        f"Field {field_index} list element references struct {index} of {len(structs)}")
                lst.append(structs[index])

    def print_stats(self):
        print("\nParse statistics:")
        print(f"  Structs:  {self.stats['structs']}")
        print(f"  Fields:   {self.stats['fields']}")
        print(f"  Labels:   {self.stats['labels']}")
        print(f"  Lists:    {self.stats['lists']}")
        if self.stats['skipped']:
            print(f"  Skipped:  {self.stats['skipped']}")
        for name, count in sorted(self.stats['types'].items(), key=lambda x: -x[1]):
            print(f"    {name:14s} {count}")


# =============================================================================
# Convenience Functions
# =============================================================================

def parse_gff(data: bytes, **options) -> GffContainer:
    """Decode a GFF buffer with a one-off GffParser."""
    return GffParser(**options).parse(data)


def load_gff(source, **options) -> GffContainer:
    """
    Decode a GFF resource from a file path or a byte provider.

    Args:
        source: Filesystem path, or any object exposing get_resource_data()
                (archive entries, in-memory resources)
    """
    if hasattr(source, 'get_resource_data'):
        data = source.get_resource_data()
    else:
        with open(source, 'rb') as f:
            data = f.read()
    return parse_gff(data, **options)


def format_value(f: GffField, max_len: int = 60) -> str:
    """Short display form of a field value"""
    if f.field_type == FieldType.STRUCT:
        return f"struct kind={f.value.kind} ({len(f.value)} fields)"
    if f.field_type == FieldType.LIST:
        return f"list ({len(f.value)} structs)"
    if f.field_type == FieldType.VOID:
        shown = f.value.hex()
    elif f.field_type == FieldType.CEXOLOCSTRING:
        loc: LocString = f.value
        ref = 'none' if loc.strref == 0xFFFFFFFF else str(loc.strref)
        shown = f"strref={ref} {dict(loc.strings)!r}"
    else:
        shown = repr(f.value)
    if len(shown) > max_len:
        shown = shown[:max_len - 3] + '...'
    return shown


def print_tree(container: GffContainer):
    print(f"\n[{container.file_type.strip()}] top struct kind=0x{container.root.kind:08X}")
    for path, f in container.root.walk():
        depth = path.count('.')
        indent = '  ' * (depth + 1)
        print(f"{indent}{f.label:16s} {f.field_type.name:14s} {format_value(f)}")


def print_types():
    print("=" * 50)
    print("GFF Field Types")
    print("=" * 50)
    for tag, name, storage in type_summary():
        print(f"  {tag:2d}  {name:14s} {storage}")


# =============================================================================
# Main
# =============================================================================

def main():
    parser = argparse.ArgumentParser(
        description='Decode and display a GFF V3.2 resource',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python gff_parser.py creature.utc
  python gff_parser.py module.ifo --verbose
  python gff_parser.py broken.dlg --lenient
  python gff_parser.py --types
"""
    )

    parser.add_argument('input', nargs='?', help='Input GFF file')
    parser.add_argument('--verbose', '-v', action='store_true',
                        help='Print section layout and parse progress')
    parser.add_argument('--lenient', '-l', action='store_true',
                        help='Skip fields with unknown type tags instead of failing')
    parser.add_argument('--encoding', default=DEFAULT_ENCODING,
                        help=f'Text encoding (default: {DEFAULT_ENCODING})')
    parser.add_argument('--types', action='store_true',
                        help='Print the field type table and exit')

    args = parser.parse_args()

    if args.types:
        print_types()
        return 0

    if not args.input:
        parser.error('input file is required')

    if not os.path.exists(args.input):
        print(f"Error: File not found: {args.input}")
        return 1

    with open(args.input, 'rb') as f:
        data = f.read()

    print("=" * 60)
    print("GFF Parser")
    print("=" * 60)
    print(f"\nInput: {args.input}")
    print(f"Size: {len(data):,} bytes")

    gff_parser = GffParser(strict=not args.lenient, verbose=args.verbose, encoding=args.encoding)
    try:
        container = gff_parser.parse(data)
    except GffError as e:
        print(f"Error: {e}")
        return 1

    print_tree(container)
    gff_parser.print_stats()

    for warning in gff_parser.warnings:
        print(f"WARNING: {warning}")

    return 0


if __name__ == "__main__":
    sys.exit(main())
