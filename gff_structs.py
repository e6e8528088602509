"""
GFF Structs - In-memory graph of structs, fields and lists
==========================================================

A decoded container is a tree (occasionally a DAG) of GffStruct nodes:

    GffContainer
      └── root: GffStruct(kind)
            ├── GffField(label, BYTE..VOID, value)
            ├── GffField(label, STRUCT, GffStruct)   -> nested struct
            └── GffField(label, LIST, GffList)       -> [GffStruct, ...]

Struct-typed fields reference struct objects, they never copy them. After
decoding, GffContainer.structs holds every struct in file order and a struct
field's value is the very object stored there, so ``is`` tells aliasing apart
from structural equality (``==``).
"""

import re
from typing import Any, Callable, Iterator, List, Mapping, Optional, Tuple, Union

from gff_fields import (
    FLOAT_TYPES, INTEGER_TYPES, TEXT_TYPES, FieldType, LocString, default_value,
)

GFF_VERSION = 'V3.2'

_MISSING = object()
_PATH_PART = re.compile(r'^([^\[\]]+)((?:\[\d+\])*)$')


# =============================================================================
# Field
# =============================================================================

class GffField:
    """A labelled, typed value owned by a struct"""

    __slots__ = ('label', 'field_type', 'value')

    def __init__(self, label: str, field_type: Union[FieldType, int], value: Any = None):
        self.label = label
        self.field_type = FieldType(field_type)
        if value is None:
            if self.field_type == FieldType.STRUCT:
                value = GffStruct()
            elif self.field_type == FieldType.LIST:
                value = GffList()
            else:
                value = default_value(self.field_type)
        elif self.field_type == FieldType.LIST and isinstance(value, list):
            value = GffList(value)
        self.value = value

    def __eq__(self, other):
        if not isinstance(other, GffField):
            return NotImplemented
        return (self.label == other.label and self.field_type == other.field_type
                and self.value == other.value)

    __hash__ = None

    def __repr__(self):
        if self.field_type == FieldType.STRUCT:
            shown = f"<struct kind={self.value.kind}>"
        elif self.field_type == FieldType.LIST:
            shown = f"<list len={len(self.value)}>"
        else:
            shown = repr(self.value)
        return f"GffField({self.label!r}, {self.field_type.name}, {shown})"

    def _expect(self, allowed, what: str):
        if self.field_type not in allowed:
            raise TypeError(f"Field {self.label!r} is {self.field_type.name}, not {what}")

    def as_int(self) -> int:
        self._expect(INTEGER_TYPES, "an integer")
        return self.value

    def as_float(self) -> float:
        self._expect(FLOAT_TYPES | INTEGER_TYPES, "a number")
        return float(self.value)

    def as_string(self, lookup: Union[Callable[[int], Optional[str]], Mapping[int, str], None] = None,
                  language: int = 0, gender: int = 0) -> Optional[str]:
        """
        Text of a CExoString or ResRef field.

        For CExoLocString fields the inline substring is returned, falling
        back to ``lookup`` (the caller's string table) for the strref.
        """
        if self.field_type == FieldType.CEXOLOCSTRING:
            return self.value.resolve(lookup, language, gender)
        self._expect(TEXT_TYPES, "a string")
        return self.value

    def as_locstring(self) -> LocString:
        self._expect({FieldType.CEXOLOCSTRING}, "a localized string")
        return self.value

    def as_bytes(self) -> bytes:
        self._expect({FieldType.VOID}, "binary data")
        return self.value

    def as_struct(self) -> 'GffStruct':
        self._expect({FieldType.STRUCT}, "a struct")
        return self.value

    def as_list(self) -> 'GffList':
        self._expect({FieldType.LIST}, "a list")
        return self.value


# =============================================================================
# Struct
# =============================================================================

class GffStruct:
    """
    Ordered collection of named fields.

    ``kind`` is the struct id stored on disk; the codec carries it through
    without interpreting it. Field order is significant and is preserved on
    re-encoding.
    """

    def __init__(self, kind: int = 0, fields: Optional[List[GffField]] = None):
        self.kind = kind
        self.fields: List[GffField] = list(fields) if fields else []

    def __eq__(self, other):
        if not isinstance(other, GffStruct):
            return NotImplemented
        return self._equal(other, set())

    __hash__ = None

    def _equal(self, other: 'GffStruct', active: set) -> bool:
        # A pair already being compared further up is assumed equal
        key = (id(self), id(other))
        if key in active:
            return True
        if self.kind != other.kind or len(self.fields) != len(other.fields):
            return False
        active.add(key)
        try:
            for mine, theirs in zip(self.fields, other.fields):
                if mine.label != theirs.label or mine.field_type != theirs.field_type:
                    return False
                if mine.field_type == FieldType.STRUCT:
                    if not _same_struct(mine.value, theirs.value, active):
                        return False
                elif mine.field_type == FieldType.LIST:
                    if len(mine.value) != len(theirs.value):
                        return False
                    for a, b in zip(mine.value, theirs.value):
                        if not _same_struct(a, b, active):
                            return False
                elif mine.value != theirs.value:
                    return False
        finally:
            active.discard(key)
        return True

    def __repr__(self):
        return f"GffStruct(kind={self.kind}, fields={self.labels()})"

    def __len__(self):
        return len(self.fields)

    def __iter__(self) -> Iterator[GffField]:
        return iter(self.fields)

    def __contains__(self, label: str) -> bool:
        return self.get(label) is not None

    def __getitem__(self, label: str) -> Any:
        return self.field(label).value

    def labels(self) -> List[str]:
        return [f.label for f in self.fields]

    def get(self, label: str, default: Optional[GffField] = None) -> Optional[GffField]:
        for f in self.fields:
            if f.label == label:
                return f
        return default

    def field(self, label: str) -> GffField:
        """Return the first field with this label, KeyError if absent."""
        f = self.get(label)
        if f is None:
            raise KeyError(label)
        return f

    def value(self, label: str, default: Any = _MISSING) -> Any:
        f = self.get(label)
        if f is None:
            if default is _MISSING:
                raise KeyError(label)
            return default
        return f.value

    def add_field(self, f: GffField) -> GffField:
        self.fields.append(f)
        return f

    def set(self, label: str, field_type: Union[FieldType, int], value: Any = None) -> GffField:
        """Replace the field with this label in place, or append a new one."""
        new = GffField(label, field_type, value)
        for i, f in enumerate(self.fields):
            if f.label == label:
                self.fields[i] = new
                return new
        self.fields.append(new)
        return new

    def remove(self, label: str) -> GffField:
        f = self.field(label)
        self.fields.remove(f)
        return f

    def find(self, path: str) -> Union[GffField, 'GffStruct']:
        """
        Follow a dotted path such as ``"Items[0].Tag"``.

        Each part names a field; ``[n]`` picks element n of a list field.
        Returns the field named by the last part, or the list element when
        the last part ends with an index.
        """
        current: Union[GffField, GffStruct] = self
        for part in path.split('.'):
            m = _PATH_PART.match(part)
            if not m:
                raise KeyError(path)
            if isinstance(current, GffField):
                current = current.as_struct()
            current = current.field(m.group(1))
            for index in re.findall(r'\[(\d+)\]', m.group(2)):
                items = current.as_list()
                i = int(index)
                if i >= len(items):
                    raise KeyError(f"{path}: index {i} out of range")
                current = items[i]
        return current

    def walk(self, prefix: str = '') -> Iterator[Tuple[str, GffField]]:
        """Yield (path, field) for every field below this struct, depth first."""
        yield from self._walk(prefix, set())

    def _walk(self, prefix: str, ancestors: set) -> Iterator[Tuple[str, GffField]]:
        ancestors.add(id(self))
        for f in self.fields:
            path = f"{prefix}.{f.label}" if prefix else f.label
            yield path, f
            if f.field_type == FieldType.STRUCT:
                if id(f.value) not in ancestors:
                    yield from f.value._walk(path, ancestors)
            elif f.field_type == FieldType.LIST:
                for i, element in enumerate(f.value):
                    if id(element) not in ancestors:
                        yield from element._walk(f"{path}[{i}]", ancestors)
        ancestors.discard(id(self))

    def compare(self, other: 'GffStruct', path: str = '') -> List[str]:
        """
        Structural diff against another struct.

        Returns one line per difference; an empty list means the two graphs
        carry the same kinds, labels, types and values. Fields are paired by
        label and occurrence, so a repeated label ``X`` is matched as
        ``X``, ``X#1``, ... in order. A struct pair that is reached again
        below itself (a cyclic file) is not descended into a second time.
        """
        return self._compare(other, path, set())

    def _compare(self, other: 'GffStruct', path: str, active: set) -> List[str]:
        key = (id(self), id(other))
        if key in active:
            return []
        active.add(key)

        where = path or '<root>'
        diffs = []
        if self.kind != other.kind:
            diffs.append(f"{where}: kind {self.kind} != {other.kind}")

        ours = _by_occurrence(self.fields)
        theirs = _by_occurrence(other.fields)
        for name in ours:
            if name not in theirs:
                diffs.append(f"{where}: field {name!r} only in first")
        for name in theirs:
            if name not in ours:
                diffs.append(f"{where}: field {name!r} only in second")

        for name, mine in ours.items():
            other_field = theirs.get(name)
            if other_field is None:
                continue
            sub = f"{path}.{name}" if path else name
            if mine.field_type != other_field.field_type:
                diffs.append(f"{sub}: type {mine.field_type.name} != {other_field.field_type.name}")
            elif mine.field_type == FieldType.STRUCT:
                diffs.extend(mine.value._compare(other_field.value, sub, active))
            elif mine.field_type == FieldType.LIST:
                if len(mine.value) != len(other_field.value):
                    diffs.append(f"{sub}: list length {len(mine.value)} != {len(other_field.value)}")
                for i, (a, b) in enumerate(zip(mine.value, other_field.value)):
                    diffs.extend(a._compare(b, f"{sub}[{i}]", active))
            elif mine.value != other_field.value:
                diffs.append(f"{sub}: {mine.value!r} != {other_field.value!r}")

        if not diffs and self.labels() != other.labels():
            diffs.append(f"{where}: field order differs")
        active.discard(key)
        return diffs


def _by_occurrence(fields: List[GffField]) -> dict:
    """Key fields by label, suffixing repeats as ``label#1``, ``label#2``..."""
    keyed = {}
    seen = {}
    for f in fields:
        n = seen.get(f.label, 0)
        seen[f.label] = n + 1
        keyed[f.label if n == 0 else f"{f.label}#{n}"] = f
    return keyed


def _same_struct(a: Any, b: Any, active: set) -> bool:
    if isinstance(a, GffStruct) and isinstance(b, GffStruct):
        return a._equal(b, active)
    return a == b


# =============================================================================
# List
# =============================================================================

class GffList:
    """Ordered sequence of struct references"""

    def __init__(self, structs: Optional[List[GffStruct]] = None):
        self.structs: List[GffStruct] = list(structs) if structs else []

    def __eq__(self, other):
        if not isinstance(other, GffList):
            return NotImplemented
        return self.structs == other.structs

    __hash__ = None

    def __repr__(self):
        return f"GffList({len(self.structs)} structs)"

    def __len__(self):
        return len(self.structs)

    def __iter__(self) -> Iterator[GffStruct]:
        return iter(self.structs)

    def __getitem__(self, index):
        return self.structs[index]

    def append(self, struct: GffStruct):
        self.structs.append(struct)


# =============================================================================
# Container
# =============================================================================

class GffContainer:
    """
    A whole GFF resource: header tags plus the root ("top") struct.

    ``structs`` is the struct array in file order when the container was
    decoded, and just ``[root]`` for containers built in code.
    """

    def __init__(self, file_type: str, root: Optional[GffStruct] = None,
                 file_version: str = GFF_VERSION, structs: Optional[List[GffStruct]] = None):
        self.file_type = file_type
        self.file_version = file_version
        self.root = root if root is not None else GffStruct(kind=0xFFFFFFFF)
        self.structs: List[GffStruct] = list(structs) if structs else [self.root]

    def __eq__(self, other):
        if not isinstance(other, GffContainer):
            return NotImplemented
        return self.file_type == other.file_type and self.root == other.root

    __hash__ = None

    def __repr__(self):
        return (f"GffContainer(type={self.file_type!r}, version={self.file_version!r}, "
                f"structs={len(self.structs)})")

    def field(self, label: str) -> GffField:
        return self.root.field(label)

    def struct_index(self, struct: GffStruct) -> int:
        """Position of a struct object in the struct array, by identity."""
        for i, s in enumerate(self.structs):
            if s is struct:
                return i
        raise ValueError("struct is not part of this container")
