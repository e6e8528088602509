import json
import sys

import pytest

from gff_fields import FieldType
from gff_json import container_to_dict, dict_to_container, main
from gff_parser import parse_gff
from gff_serializer import serialize_gff
from gff_structs import GffContainer, GffField, GffList, GffStruct
from tests.gff_helpers import make_all_types, make_example


def test_dict_layout():
    data = container_to_dict(make_example())
    assert data['file_type'] == 'UTC '
    assert data['file_version'] == 'V3.2'
    root = data['root']
    assert root['kind'] == 0
    assert root['fields'][0] == {'label': 'Name', 'type': 'CEXOSTRING', 'value': 'Nordom'}
    items = root['fields'][2]
    assert items['type'] == 'LIST'
    assert items['value'][0]['kind'] == 1


def test_special_values():
    fields = {f['label']: f for f in container_to_dict(make_all_types())['root']['fields']}
    assert fields['Void']['value'] == bytes(range(256)).hex()
    assert fields['LocString']['value'] == {'strref': 1234, 'strings': {'0': 'Hello', '3': 'Bonjour'}}
    assert fields['Struct']['value']['kind'] == 42


def test_dict_roundtrip_through_json_text():
    original = make_all_types()
    text = json.dumps(container_to_dict(original))
    assert dict_to_container(json.loads(text)) == original


def test_shared_struct_uses_ref():
    shared = GffStruct(5, [GffField('V', FieldType.INT, 1)])
    root = GffStruct(0, [
        GffField('A', FieldType.STRUCT, shared),
        GffField('B', FieldType.LIST, GffList([shared])),
    ])
    data = container_to_dict(GffContainer('GFF ', root))
    assert data['root']['fields'][1]['value'] == [{'$ref': 1}]

    rebuilt = dict_to_container(data)
    assert rebuilt.root['A'] is rebuilt.root['B'][0]
    assert len(rebuilt.structs) == 2


def test_bad_ref_and_type():
    with pytest.raises(ValueError):
        dict_to_container({'file_type': 'GFF ', 'root': {
            'kind': 0, 'fields': [{'label': 'S', 'type': 'STRUCT', 'value': {'$ref': 3}}]}})
    with pytest.raises(ValueError):
        dict_to_container({'file_type': 'GFF ', 'root': {
            'kind': 0, 'fields': [{'label': 'X', 'type': 'WIDGET', 'value': 1}]}})


def test_float_values_are_coerced():
    data = {'file_type': 'GFF ', 'root': {
        'kind': 0, 'fields': [{'label': 'F', 'type': 'FLOAT', 'value': 2}]}}
    f = dict_to_container(data).root.field('F')
    assert isinstance(f.value, float)


def test_main_both_directions(tmp_path, monkeypatch, capsys):
    binary = tmp_path / 'in.uti'
    as_json = tmp_path / 'out.json'
    back = tmp_path / 'back.uti'
    binary.write_bytes(serialize_gff(make_all_types()))

    monkeypatch.setattr(sys, 'argv', ['gff_json.py', str(binary), '-o', str(as_json), '--pretty'])
    assert main() == 0
    assert json.loads(as_json.read_text(encoding='utf-8'))['file_type'] == 'UTI '

    monkeypatch.setattr(sys, 'argv', ['gff_json.py', str(as_json), '-o', str(back), '--to-binary'])
    assert main() == 0
    assert back.read_bytes() == binary.read_bytes()
    assert parse_gff(back.read_bytes()) == make_all_types()
    assert 'Done!' in capsys.readouterr().out


def test_main_reports_bad_input(tmp_path, monkeypatch, capsys):
    bad = tmp_path / 'bad.uti'
    bad.write_bytes(b'NOPEV9.9')
    monkeypatch.setattr(sys, 'argv', ['gff_json.py', str(bad), '-o', str(tmp_path / 'x.json')])
    assert main() == 1
    assert 'Error' in capsys.readouterr().out
