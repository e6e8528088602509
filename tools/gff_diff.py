#!/usr/bin/env python3
"""
GFF Diff - Structural comparison of two GFF files
=================================================

Loads two GFF resources and compares their top-level structs field by field
(kinds, labels, types, values, list lengths). Byte layout is ignored, so a
file and its re-encoded copy compare equal.

Usage:
------
    python gff_diff.py original.utc modified.utc
    python gff_diff.py a.dlg b.dlg --limit 50

Exit status is 0 when the files are equivalent, 1 when they differ or could
not be read.
"""

import sys
import os
import argparse

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from gff_errors import GffError
from gff_fields import DEFAULT_ENCODING
from gff_parser import load_gff


def diff_files(path1: str, path2: str, encoding: str = DEFAULT_ENCODING) -> list:
    """Return the list of differences between two GFF files."""
    first = load_gff(path1, encoding=encoding)
    second = load_gff(path2, encoding=encoding)

    diffs = []
    if first.file_type != second.file_type:
        diffs.append(f"file type {first.file_type!r} != {second.file_type!r}")
    diffs.extend(first.root.compare(second.root))
    return diffs


def main(argv=None):
    parser = argparse.ArgumentParser(description='Compare two GFF files structurally')
    parser.add_argument('first', help='First GFF file')
    parser.add_argument('second', help='Second GFF file')
    parser.add_argument('--limit', type=int, default=100,
                        help='Maximum number of differences to print (default: 100)')
    parser.add_argument('--encoding', default=DEFAULT_ENCODING,
                        help=f'Text encoding (default: {DEFAULT_ENCODING})')

    args = parser.parse_args(argv)

    for path in (args.first, args.second):
        if not os.path.exists(path):
            print(f"Error: File not found: {path}")
            return 1

    try:
        diffs = diff_files(args.first, args.second, args.encoding)
    except GffError as e:
        print(f"Error: {e}")
        return 1

    if not diffs:
        print("Files are equivalent")
        return 0

    print(f"{len(diffs)} difference(s):")
    for line in diffs[:args.limit]:
        print(f"  {line}")
    if len(diffs) > args.limit:
        print(f"  ... and {len(diffs) - args.limit} more")
    return 1


if __name__ == "__main__":
    sys.exit(main())
