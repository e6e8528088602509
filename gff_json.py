#!/usr/bin/env python3
"""
GFF JSON Serializer
===================

Converts GFF binary files to JSON and back.

JSON Layout:
    {
      "file_type": "UTC ",
      "file_version": "V3.2",
      "root": {
        "kind": 4294967295,
        "fields": [
          {"label": "FirstName", "type": "CEXOLOCSTRING",
           "value": {"strref": 4294967295, "strings": {"0": "Nordom"}}},
          {"label": "ItemList", "type": "LIST", "value": [{"kind": 0, "fields": [...]}]}
        ]
      }
    }

Structs are numbered in the order they first appear. A struct that is
referenced a second time is written as {"$ref": n} instead of being copied,
so shared structs stay shared after conversion back to binary. VOID data is
stored as hex.

Usage:
    # Convert GFF to JSON
    python gff_json.py creature.utc -o creature.json --pretty

    # Convert JSON back to GFF
    python gff_json.py creature.json -o creature.utc --to-binary
"""

import sys
import os
import json
import argparse
from typing import Any, Dict, List

from gff_errors import GffError
from gff_fields import DEFAULT_ENCODING, FieldType, LocString
from gff_parser import GffParser
from gff_serializer import GffSerializer
from gff_structs import GFF_VERSION, GffContainer, GffField, GffList, GffStruct


# =============================================================================
# GFF TO JSON
# =============================================================================

def _value_to_json(f: GffField, seen: Dict[int, int]) -> Any:
    if f.field_type == FieldType.STRUCT:
        return _struct_to_json(f.value, seen)
    if f.field_type == FieldType.LIST:
        return [_struct_to_json(s, seen) for s in f.value]
    if f.field_type == FieldType.CEXOLOCSTRING:
        return {
            'strref': f.value.strref,
            'strings': {str(k): v for k, v in f.value.strings.items()},
        }
    if f.field_type == FieldType.VOID:
        return bytes(f.value).hex()
    return f.value


def _struct_to_json(s: GffStruct, seen: Dict[int, int]) -> Dict[str, Any]:
    if id(s) in seen:
        return {'$ref': seen[id(s)]}
    seen[id(s)] = len(seen)
    return {
        'kind': s.kind,
        'fields': [
            {'label': f.label, 'type': f.field_type.name, 'value': _value_to_json(f, seen)}
            for f in s.fields
        ],
    }


def container_to_dict(container: GffContainer) -> Dict[str, Any]:
    """Convert a container to a JSON-ready dictionary."""
    return {
        'file_type': container.file_type,
        'file_version': container.file_version,
        'root': _struct_to_json(container.root, {}),
    }


# =============================================================================
# JSON TO GFF
# =============================================================================

def _value_from_json(field_type: FieldType, value: Any, structs: List[GffStruct]) -> Any:
    if field_type == FieldType.STRUCT:
        return _struct_from_json(value, structs)
    if field_type == FieldType.LIST:
        return GffList([_struct_from_json(item, structs) for item in value])
    if field_type == FieldType.CEXOLOCSTRING:
        return LocString(strref=value.get('strref', 0xFFFFFFFF),
                         strings={int(k): v for k, v in value.get('strings', {}).items()})
    if field_type == FieldType.VOID:
        return bytes.fromhex(value)
    if field_type in (FieldType.FLOAT, FieldType.DOUBLE):
        return float(value)
    return value


def _struct_from_json(data: Dict[str, Any], structs: List[GffStruct]) -> GffStruct:
    if '$ref' in data:
        ref = data['$ref']
        if not 0 <= ref < len(structs):
            raise ValueError(f"Struct reference {ref} does not point to an earlier struct")
        return structs[ref]
    s = GffStruct(kind=data.get('kind', 0))
    structs.append(s)
    for entry in data.get('fields', []):
        try:
            field_type = FieldType[entry['type']]
        except KeyError:
            raise ValueError(f"Unknown field type in JSON: {entry.get('type')!r}")
        s.fields.append(GffField(entry['label'], field_type,
                                 _value_from_json(field_type, entry['value'], structs)))
    return s


def dict_to_container(data: Dict[str, Any]) -> GffContainer:
    """Rebuild a container from container_to_dict output."""
    structs: List[GffStruct] = []
    root = _struct_from_json(data['root'], structs)
    return GffContainer(data['file_type'], root,
                        file_version=data.get('file_version', GFF_VERSION), structs=structs)


# =============================================================================
# FILE CONVERSION
# =============================================================================

def gff_to_json(input_file: str, encoding: str = DEFAULT_ENCODING) -> Dict[str, Any]:
    with open(input_file, 'rb') as f:
        data = f.read()
    return container_to_dict(GffParser(encoding=encoding).parse(data))


def json_to_gff(json_data: Dict[str, Any], output_file: str, encoding: str = DEFAULT_ENCODING) -> int:
    """
    Convert a JSON structure back to a GFF binary file.

    Returns:
        Size of output file in bytes
    """
    output = GffSerializer(encoding=encoding).serialize(dict_to_container(json_data))
    with open(output_file, 'wb') as f:
        f.write(output)
    return len(output)


# =============================================================================
# MAIN
# =============================================================================

def main():
    parser = argparse.ArgumentParser(
        description='Convert GFF V3.2 files to/from JSON',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Convert GFF to JSON
  python gff_json.py creature.utc -o creature.json --pretty

  # Convert JSON back to binary
  python gff_json.py creature.json --to-binary -o creature_new.utc
        """
    )

    parser.add_argument('input', help='Input file (GFF binary or JSON)')
    parser.add_argument('-o', '--output', required=True, help='Output file')
    parser.add_argument('--to-binary', action='store_true',
                        help='Convert JSON to binary GFF file')
    parser.add_argument('--pretty', action='store_true',
                        help='Pretty-print JSON output with indentation')
    parser.add_argument('--encoding', default=DEFAULT_ENCODING,
                        help=f'Text encoding (default: {DEFAULT_ENCODING})')

    args = parser.parse_args()

    if not os.path.exists(args.input):
        print(f"Error: File not found: {args.input}")
        return 1

    try:
        if args.to_binary:
            print("Converting JSON to GFF binary")
            print(f"  Input: {args.input}")

            with open(args.input, 'r', encoding='utf-8') as f:
                json_data = json.load(f)

            output_size = json_to_gff(json_data, args.output, args.encoding)

            print(f"  Type: {json_data['file_type']!r}")
            print(f"  Output: {args.output}")
            print(f"  Size: {output_size} bytes")
        else:
            print("Converting GFF to JSON")
            print(f"  Input: {args.input}")

            json_data = gff_to_json(args.input, args.encoding)

            print(f"  Type: {json_data['file_type']!r}")
            print(f"  Top-level fields: {len(json_data['root']['fields'])}")

            with open(args.output, 'w', encoding='utf-8') as f:
                if args.pretty:
                    json.dump(json_data, f, indent=2)
                else:
                    json.dump(json_data, f)

            print(f"  Output: {args.output}")
    except (GffError, ValueError, KeyError) as e:
        print(f"Error: {e}")
        return 1

    print("Done!")
    return 0


if __name__ == "__main__":
    sys.exit(main())
