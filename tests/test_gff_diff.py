import os
import sys

sys.path.insert(0, os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), 'tools'))

from gff_diff import diff_files, main  # noqa: E402
from gff_fields import FieldType  # noqa: E402
from gff_serializer import write_gff  # noqa: E402
from tests.gff_helpers import build_gff, make_example  # noqa: E402


def test_identical_files(tmp_path, capsys):
    first = tmp_path / 'a.utc'
    second = tmp_path / 'b.utc'
    write_gff(make_example(), str(first))
    write_gff(make_example(), str(second))
    assert diff_files(str(first), str(second)) == []
    assert main([str(first), str(second)]) == 0
    assert 'equivalent' in capsys.readouterr().out


def test_changed_value(tmp_path, capsys):
    changed = make_example()
    changed.root.set('Level', FieldType.INT, 8)
    changed.file_type = 'BIC '
    first = tmp_path / 'a.utc'
    second = tmp_path / 'b.bic'
    write_gff(make_example(), str(first))
    write_gff(changed, str(second))

    diffs = diff_files(str(first), str(second))
    assert len(diffs) == 2
    assert diffs[0].startswith('file type')
    assert main([str(first), str(second), '--limit', '1']) == 1
    out = capsys.readouterr().out
    assert '2 difference(s)' in out
    assert '1 more' in out


def test_missing_file(tmp_path, capsys):
    assert main([str(tmp_path / 'a'), str(tmp_path / 'b')]) == 1
    assert 'not found' in capsys.readouterr().out


def test_self_referencing_files(tmp_path, capsys):
    data = build_gff(structs=[(0, 0, 1)], fields=[(14, 0, 0)], labels=['Self'])
    first = tmp_path / 'a.gff'
    second = tmp_path / 'b.gff'
    first.write_bytes(data)
    second.write_bytes(data)
    assert main([str(first), str(second)]) == 0
    assert 'equivalent' in capsys.readouterr().out


def test_difference_in_repeated_label(tmp_path):
    first = tmp_path / 'a.gff'
    second = tmp_path / 'b.gff'
    first.write_bytes(build_gff(structs=[(0, 0, 2)], fields=[(0, 0, 1), (0, 0, 2)],
                                labels=['X'], field_indices=[0, 1]))
    second.write_bytes(build_gff(structs=[(0, 0, 2)], fields=[(0, 0, 99), (0, 0, 2)],
                                 labels=['X'], field_indices=[0, 1]))
    assert diff_files(str(first), str(second)) == ['X: 1 != 99']
    assert main([str(first), str(second)]) == 1
