import struct

from gff_fields import FieldType, LocString
from gff_parser import parse_gff
from gff_serializer import serialize_gff
from gff_structs import GffContainer, GffField, GffList, GffStruct
from tests.gff_helpers import build_gff, make_all_types, make_example


def test_example_end_to_end():
    decoded = parse_gff(serialize_gff(make_example()))
    assert decoded.file_type == 'UTC '
    assert decoded.file_version == 'V3.2'
    root = decoded.root
    assert root.kind == 0
    assert root.labels() == ['Name', 'Level', 'Items']
    assert root['Name'] == 'Nordom'
    assert root['Level'] == 7
    items = root['Items']
    assert len(items) == 1
    assert items[0].kind == 1
    assert items[0]['Tag'] == 'SW1H01'


def test_all_types_roundtrip():
    original = make_all_types()
    decoded = parse_gff(serialize_gff(original))
    assert decoded == original
    assert original.root.compare(decoded.root) == []

    root = decoded.root
    assert root['Float'] == 1.5
    assert root['Double'] == 0.1
    assert root['ExoString'] == 'Café \udc81'
    assert root['LocString'] == LocString(strref=1234, strings={0: 'Hello', 3: 'Bonjour'})
    assert root['Void'] == bytes(range(256))
    assert root.find('Struct').as_struct().kind == 42
    assert [s['Index'] for s in root['List']] == [0, 1, 2]


def test_reencoding_is_stable():
    first = serialize_gff(make_all_types())
    second = serialize_gff(parse_gff(first))
    assert first == second


def test_signalling_nan_float_is_bit_identical():
    data = build_gff(
        structs=[(0, 0, 1)],
        fields=[(FieldType.FLOAT, 0, struct.pack('<I', 0x7F800001))],
        labels=['F'],
    )
    output = serialize_gff(parse_gff(data))
    assert output[76:80] == b'\x01\x00\x80\x7f'
    assert output == data


def test_decoded_struct_array_follows_file_order():
    decoded = parse_gff(serialize_gff(make_all_types()))
    # root, nested struct, then the three list elements
    assert [s.kind for s in decoded.structs] == [0xFFFFFFFF, 42, 3, 3, 3]
    assert decoded.struct_index(decoded.root['Struct']) == 1


def test_shared_list_elements_stay_shared():
    shared = GffStruct(9, [GffField('V', FieldType.BYTE, 1)])
    root = GffStruct(0, [
        GffField('First', FieldType.LIST, GffList([shared, shared])),
        GffField('Second', FieldType.STRUCT, shared),
    ])
    decoded = parse_gff(serialize_gff(GffContainer('GFF ', root))).root
    first = decoded['First']
    assert first[0] is first[1]
    assert first[0] is decoded['Second']
    assert len(parse_gff(serialize_gff(GffContainer('GFF ', root))).structs) == 2


def test_shared_list_written_once():
    shared_list = GffList([GffStruct(1), GffStruct(2)])
    root = GffStruct(0, [
        GffField('A', FieldType.LIST, shared_list),
        GffField('B', FieldType.LIST, shared_list),
    ])
    data = serialize_gff(GffContainer('GFF ', root))
    decoded = parse_gff(data).root
    assert [s.kind for s in decoded['A']] == [1, 2]
    assert decoded['A'][0] is decoded['B'][0]
    # one list: count + two indices
    assert data[-12:-8] == b'\x02\x00\x00\x00'


def test_edited_graph_roundtrip():
    container = parse_gff(serialize_gff(make_example()))
    container.root.set('Level', FieldType.INT, 12)
    container.root['Items'].append(GffStruct(1, [GffField('Tag', FieldType.CEXOSTRING, 'ARMOR')]))
    decoded = parse_gff(serialize_gff(container))
    assert decoded.root['Level'] == 12
    assert [s['Tag'] for s in decoded.root['Items']] == ['SW1H01', 'ARMOR']
