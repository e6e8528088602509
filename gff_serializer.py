#!/usr/bin/env python3
"""
GFF Serializer - Encoder for BioWare Generic File Format (V3.2) containers
=========================================================================

Flattens a GffContainer graph back into a single GFF buffer that gff_parser
decodes to an equivalent graph.

Encoding steps:
    1. Flatten depth-first from the root struct (root is struct 0). Structs,
       fields and lists are collected once each, by object identity.
    2. Deduplicate labels into the label table (fresh table per call).
    3. Size every section from the collected counts.
    4. Lay sections out in file order after the 56-byte header.
    5. Emit header, structs, fields, labels, field data, field indices,
       list indices.

Section Layout:
--------------
| Section        | Size                                   |
|----------------|----------------------------------------|
| Header         | 56                                     |
| Structs        | 12 x structs                           |
| Fields         | 12 x fields                            |
| Labels         | 16 x labels                            |
| Field data     | sum of indirect payloads               |
| Field indices  | 4 x fields, for structs with 2+ fields |
| List indices   | 4 x (1 + elements), per list           |

Labels are stored in 16-byte slots; longer labels are truncated, which cannot
be undone when the file is read back.

Usage:
    python gff_serializer.py creature.utc -o creature_new.utc
    python gff_serializer.py creature.utc -o creature_new.utc --compare
"""

import sys
import os
import struct
import argparse
from typing import Dict, List, Optional, Set, Tuple

from gff_errors import FieldValueError, GffEncodeError, GffError, MalformedGraph
from gff_fields import (
    DEFAULT_ENCODING, FIELD_SPECS, FieldType, Storage, encode_inline, encode_text,
    pack_payload,
)
from gff_parser import (
    FIELD_SIZE, HEADER_SIZE, LABEL_SIZE, STRUCT_SIZE, GffHeader, GffParser,
)
from gff_structs import GffContainer, GffField, GffList, GffStruct

# data_or_index of a struct without fields
EMPTY_STRUCT_DATA = 0xFFFFFFFF


class GffSerializer:
    """Serializer for GFF V3.2 containers."""

    def __init__(self, encoding: str = DEFAULT_ENCODING, verbose: bool = False):
        self.encoding = encoding
        self.verbose = verbose
        self.header: Optional[GffHeader] = None

    # -------------------------------------------------------------------------
    # Flattening
    # -------------------------------------------------------------------------

    def _flatten(self, root: GffStruct):
        """Collect structs, fields and lists reachable from the root, each once."""
        structs: List[GffStruct] = []
        fields: List[GffField] = []
        lists: List[GffList] = []
        self._struct_index: Dict[int, int] = {}
        self._field_index: Dict[int, int] = {}
        self._list_seen: Set[int] = set()

        def visit(node: GffStruct, ancestors: Set[int]):
            self._struct_index[id(node)] = len(structs)
            structs.append(node)
            ancestors.add(id(node))
            for f in node.fields:
                if not isinstance(f, GffField):
                    raise MalformedGraph(f"Struct kind={node.kind} holds a non-field: {f!r}")
                children = self._children(f)
                for child in children:
                    if id(child) in ancestors:
                        raise MalformedGraph(
                            f"Cycle: field {f.label!r} leads back to an enclosing struct")
                if id(f) in self._field_index:
                    continue
                self._field_index[id(f)] = len(fields)
                fields.append(f)
                if f.field_type == FieldType.LIST and id(f.value) not in self._list_seen:
                    self._list_seen.add(id(f.value))
                    lists.append(f.value)
                for child in children:
                    if id(child) not in self._struct_index:
                        visit(child, ancestors)
            ancestors.discard(id(node))

        visit(root, set())
        return structs, fields, lists

    @staticmethod
    def _children(f: GffField) -> List[GffStruct]:
        if f.field_type == FieldType.STRUCT:
            if not isinstance(f.value, GffStruct):
                raise FieldValueError(f"Field {f.label!r} is STRUCT but holds {type(f.value).__name__}")
            return [f.value]
        if f.field_type == FieldType.LIST:
            if not isinstance(f.value, GffList):
                raise FieldValueError(f"Field {f.label!r} is LIST but holds {type(f.value).__name__}")
            for element in f.value:
                if not isinstance(element, GffStruct):
                    raise FieldValueError(
                        f"List {f.label!r} holds {type(element).__name__}, not GffStruct")
            return list(f.value)
        return []

    def _collect_labels(self, fields: List[GffField]) -> Dict[bytes, int]:
        labels: Dict[bytes, int] = {}
        for f in fields:
            if not isinstance(f.label, str):
                raise FieldValueError(f"Label must be str, got {type(f.label).__name__}")
            slot = self._label_slot(f.label)
            if slot not in labels:
                labels[slot] = len(labels)
        return labels

    def _label_slot(self, label: str) -> bytes:
        return encode_text(label, self.encoding)[:LABEL_SIZE]

    # -------------------------------------------------------------------------
    # Encoding
    # -------------------------------------------------------------------------

    def serialize(self, container: GffContainer) -> bytes:
        """
        Encode a container into a complete GFF buffer.

        Args:
            container: Graph to encode; it is not modified

        Returns:
            Encoded bytes. self.header holds the section layout used.
        """
        try:
            file_type = container.file_type.encode('ascii')
            file_version = container.file_version.encode('ascii')
        except UnicodeEncodeError as e:
            raise GffEncodeError(f"Header tags must be ASCII: {e}") from e
        if len(file_type) > 4 or len(file_version) > 4:
            raise GffEncodeError(
                f"Header tags must be at most 4 characters: {container.file_type!r}, "
                f"{container.file_version!r}")

        structs, fields, lists = self._flatten(container.root)
        labels = self._collect_labels(fields)

        payloads: Dict[int, bytes] = {}
        for i, f in enumerate(fields):
            if FIELD_SPECS[f.field_type].in_field_data:
                try:
                    payloads[i] = pack_payload(f.field_type, f.value, self.encoding)
                except FieldValueError as e:
                    raise FieldValueError(f"Field {f.label!r}: {e}") from e

        field_data_size = sum(len(p) for p in payloads.values())
        field_indices_size = sum(4 * len(s.fields) for s in structs if len(s.fields) > 1)
        list_indices_size = sum(4 * (1 + len(lst)) for lst in lists)

        header = GffHeader(container.file_type, container.file_version)
        header.struct_offset = HEADER_SIZE
        header.struct_count = len(structs)
        header.field_offset = header.struct_offset + STRUCT_SIZE * len(structs)
        header.field_count = len(fields)
        header.label_offset = header.field_offset + FIELD_SIZE * len(fields)
        header.label_count = len(labels)
        header.field_data_offset = header.label_offset + LABEL_SIZE * len(labels)
        header.field_data_count = field_data_size
        header.field_indices_offset = header.field_data_offset + field_data_size
        header.field_indices_count = field_indices_size
        header.list_indices_offset = header.field_indices_offset + field_indices_size
        header.list_indices_count = list_indices_size
        self.header = header

        if self.verbose:
            print(f"Flattened {len(structs)} structs, {len(fields)} fields, "
                  f"{len(lists)} lists, {len(labels)} labels")
            for name, offset, size in header.sections():
                print(f"  {name:14s} 0x{offset:06X} {size:8d} bytes")

        output = bytearray(header.pack())

        # Struct array, filling the field indices block as we go
        field_indices = bytearray()
        for s in structs:
            count = len(s.fields)
            if count == 0:
                data_or_index = EMPTY_STRUCT_DATA
            elif count == 1:
                data_or_index = self._field_index[id(s.fields[0])]
            else:
                data_or_index = len(field_indices)
                for f in s.fields:
                    field_indices.extend(struct.pack('<I', self._field_index[id(f)]))
            try:
                output.extend(struct.pack('<3I', s.kind, data_or_index, count))
            except struct.error as e:
                raise FieldValueError(f"Struct kind {s.kind!r} is not a u32: {e}") from e

        # Field array, filling field data and list indices
        field_data = bytearray()
        list_indices = bytearray()
        list_offsets: Dict[int, int] = {}
        for i, f in enumerate(fields):
            storage = FIELD_SPECS[f.field_type].storage
            if storage == Storage.INLINE:
                try:
                    slot = encode_inline(f.field_type, f.value)
                except FieldValueError as e:
                    raise FieldValueError(f"Field {f.label!r}: {e}") from e
            elif storage == Storage.STRUCT:
                slot = struct.pack('<I', self._struct_index[id(f.value)])
            elif storage == Storage.LIST:
                offset = list_offsets.get(id(f.value))
                if offset is None:
                    offset = len(list_indices)
                    list_offsets[id(f.value)] = offset
                    list_indices.extend(struct.pack('<I', len(f.value)))
                    for element in f.value:
                        list_indices.extend(struct.pack('<I', self._struct_index[id(element)]))
                slot = struct.pack('<I', offset)
            else:
                slot = struct.pack('<I', len(field_data))
                field_data.extend(payloads[i])
            output.extend(struct.pack('<2I', int(f.field_type), labels[self._label_slot(f.label)]))
            output.extend(slot)

        # Label array
        for label in labels:
            output.extend(label.ljust(LABEL_SIZE, b'\x00'))

        if (len(field_data) != field_data_size or len(field_indices) != field_indices_size
                or len(list_indices) != list_indices_size):
            raise GffEncodeError("Section sizes changed while encoding")

        output.extend(field_data)
        output.extend(field_indices)
        output.extend(list_indices)

        if self.verbose:
            print(f"Total size: {len(output)} bytes")

        return bytes(output)


# =============================================================================
# Convenience Functions
# =============================================================================

def serialize_gff(container: GffContainer, **options) -> bytes:
    """Encode a container with a one-off GffSerializer."""
    return GffSerializer(**options).serialize(container)


def write_gff(container: GffContainer, path: str, **options) -> int:
    """Encode a container to a file, returning the number of bytes written."""
    data = serialize_gff(container, **options)
    with open(path, 'wb') as f:
        f.write(data)
    return len(data)


def _regions(data: bytes) -> List[Tuple[str, int, int]]:
    """(name, start, end) of the header and six sections, per data's own header."""
    regions = [('header', 0, HEADER_SIZE)]
    try:
        header = GffHeader.parse(data)
    except GffError:
        return regions
    regions.extend((name, offset, offset + size) for name, offset, size in header.sections())
    return regions


def compare_files(file1: bytes, file2: bytes, label1: str = "File 1", label2: str = "File 2") -> bool:
    """
    Compare two GFF buffers byte by byte.

    Differing bytes are grouped by the section of ``file1`` they fall in,
    with the first differing offset of each section shown.
    """
    print(f"\nComparing {label1} vs {label2}:")
    if len(file1) != len(file2):
        print(f"  Size: {len(file1)} vs {len(file2)} bytes ({len(file1) - len(file2):+d})")

    if file1 == file2:
        print(f"  Byte-identical ({len(file1)} bytes)")
        return True

    regions = _regions(file1)
    per_section: Dict[str, List] = {}
    for i in range(min(len(file1), len(file2))):
        if file1[i] == file2[i]:
            continue
        name = next((n for n, start, end in regions if start <= i < end), 'outside sections')
        entry = per_section.setdefault(name, [0, i, file1[i], file2[i]])
        entry[0] += 1

    for name, (count, first, b1, b2) in per_section.items():
        print(f"  {name:16s} {count:6d} byte(s) differ, first at 0x{first:06X}: {b1:02X} vs {b2:02X}")
    if len(file1) != len(file2):
        print(f"  {abs(len(file1) - len(file2))} trailing byte(s) only in the longer buffer")

    return False


# =============================================================================
# Main
# =============================================================================

def main():
    parser = argparse.ArgumentParser(description='Re-encode a GFF V3.2 resource')
    parser.add_argument('input', help='Input GFF file')
    parser.add_argument('--output', '-o', required=True, help='Output GFF file')
    parser.add_argument('--compare', '-c', action='store_true',
                        help='Compare the re-encoded file against the input')
    parser.add_argument('--encoding', default=DEFAULT_ENCODING,
                        help=f'Text encoding (default: {DEFAULT_ENCODING})')
    parser.add_argument('--verbose', '-v', action='store_true',
                        help='Print section layout')

    args = parser.parse_args()

    if not os.path.exists(args.input):
        print(f"ERROR: File not found: {args.input}")
        return 1

    with open(args.input, 'rb') as f:
        original = f.read()

    try:
        container = GffParser(encoding=args.encoding).parse(original)
        serializer = GffSerializer(encoding=args.encoding, verbose=args.verbose)
        output_data = serializer.serialize(container)
    except GffError as e:
        print(f"ERROR: {e}")
        return 1

    with open(args.output, 'wb') as f:
        f.write(output_data)
    print(f"Wrote: {args.output} ({len(output_data)} bytes)")

    if args.compare:
        if not compare_files(output_data, original, "Generated", "Original"):
            reparsed = GffParser(encoding=args.encoding).parse(output_data)
            diffs = container.root.compare(reparsed.root)
            if diffs:
                print(f"  Structural differences: {len(diffs)}")
                for line in diffs[:20]:
                    print(f"    {line}")
            else:
                print("  Structurally identical (layout differs only)")

    return 0


if __name__ == "__main__":
    sys.exit(main())
