import math
import struct

import pytest

from gff_errors import FieldValueError, TruncatedBuffer
from gff_fields import (
    FIELD_SPECS, NO_STRREF, FieldType, Float32Bits, LocString, Storage, decode_inline, default_value,
    encode_inline, get_spec, pack_payload, read_payload, take,
)


def test_type_table_covers_all_tags():
    assert len(FIELD_SPECS) == 16
    assert sorted(int(t) for t in FIELD_SPECS) == list(range(16))
    assert get_spec(16) is None
    assert get_spec(0xFFFFFFFF) is None


def test_storage_classes():
    inline = {t for t, s in FIELD_SPECS.items() if s.storage == Storage.INLINE}
    assert inline == {FieldType.BYTE, FieldType.CHAR, FieldType.WORD, FieldType.SHORT,
                      FieldType.DWORD, FieldType.INT, FieldType.FLOAT}
    assert get_spec(6).storage == Storage.FIXED
    assert get_spec(9).storage == Storage.FIXED
    assert get_spec(10).storage == Storage.LENGTH
    assert get_spec(13).storage == Storage.LENGTH
    assert get_spec(14).storage == Storage.STRUCT
    assert get_spec(15).storage == Storage.LIST
    assert get_spec(12).in_field_data
    assert not get_spec(4).in_field_data


@pytest.mark.parametrize("field_type, value, raw", [
    (FieldType.BYTE, 255, b'\xff\x00\x00\x00'),
    (FieldType.CHAR, -1, b'\xff\x00\x00\x00'),
    (FieldType.WORD, 0xABCD, b'\xcd\xab\x00\x00'),
    (FieldType.SHORT, -2, b'\xfe\xff\x00\x00'),
    (FieldType.DWORD, 0xFFFFFFFF, b'\xff\xff\xff\xff'),
    (FieldType.INT, -1, b'\xff\xff\xff\xff'),
    (FieldType.FLOAT, 1.5, struct.pack('<f', 1.5)),
])
def test_inline_layout(field_type, value, raw):
    assert encode_inline(field_type, value) == raw
    assert decode_inline(field_type, raw) == value


def test_inline_ignores_upper_bytes_of_narrow_types():
    assert decode_inline(FieldType.BYTE, b'\x07\xff\xff\xff') == 7
    assert decode_inline(FieldType.SHORT, b'\xff\x7f\x12\x34') == 32767


@pytest.mark.parametrize("field_type, value", [
    (FieldType.BYTE, 256),
    (FieldType.BYTE, -1),
    (FieldType.CHAR, 128),
    (FieldType.WORD, 70000),
    (FieldType.INT, 2 ** 31),
    (FieldType.DWORD, -1),
    (FieldType.INT, True),
    (FieldType.INT, '7'),
    (FieldType.FLOAT, 'x'),
])
def test_inline_rejects_bad_values(field_type, value):
    with pytest.raises(FieldValueError):
        encode_inline(field_type, value)


def test_float_accepts_int():
    assert decode_inline(FieldType.FLOAT, encode_inline(FieldType.FLOAT, 2)) == 2.0


@pytest.mark.parametrize("bits", [0x7F800001, 0xFFBFFFFF, 0x7FC00123])
def test_float_nan_payload_preserved(bits):
    raw = struct.pack('<I', bits)
    value = decode_inline(FieldType.FLOAT, raw)
    assert math.isnan(value)
    assert isinstance(value, Float32Bits)
    assert encode_inline(FieldType.FLOAT, value) == raw


def test_plain_floats_are_not_wrapped():
    assert type(decode_inline(FieldType.FLOAT, struct.pack('<f', 1.5))) is float
    assert encode_inline(FieldType.FLOAT, float('nan')) == struct.pack('<f', float('nan'))


def test_fixed_width_payloads():
    assert pack_payload(FieldType.DWORD64, 2 ** 64 - 1) == b'\xff' * 8
    assert pack_payload(FieldType.INT64, -1) == b'\xff' * 8
    assert pack_payload(FieldType.DOUBLE, 0.1) == struct.pack('<d', 0.1)
    with pytest.raises(FieldValueError):
        pack_payload(FieldType.DWORD64, -1)


def test_exostring_payload():
    raw = pack_payload(FieldType.CEXOSTRING, 'abc')
    assert raw == b'\x03\x00\x00\x00abc'
    assert read_payload(FieldType.CEXOSTRING, raw, 0, len(raw)) == 'abc'


def test_resref_payload():
    raw = pack_payload(FieldType.RESREF, 'nw_it')
    assert raw == b'\x05nw_it'
    assert read_payload(FieldType.RESREF, raw, 0, len(raw)) == 'nw_it'
    with pytest.raises(FieldValueError):
        pack_payload(FieldType.RESREF, 'a' * 17)


def test_void_payload():
    raw = pack_payload(FieldType.VOID, b'\x01\x02')
    assert raw == b'\x02\x00\x00\x00\x01\x02'
    assert read_payload(FieldType.VOID, raw, 0, len(raw)) == b'\x01\x02'
    with pytest.raises(FieldValueError):
        pack_payload(FieldType.VOID, 'not bytes')


def test_locstring_payload_layout():
    raw = pack_payload(FieldType.CEXOLOCSTRING, LocString(strref=5, strings={0: 'Hi'}))
    expected = struct.pack('<3I', 18, 5, 1) + struct.pack('<2I', 0, 2) + b'Hi'
    assert raw == expected
    decoded = read_payload(FieldType.CEXOLOCSTRING, raw, 0, len(raw))
    assert decoded == LocString(strref=5, strings={0: 'Hi'})


def test_locstring_without_substrings():
    raw = pack_payload(FieldType.CEXOLOCSTRING, LocString())
    assert raw == struct.pack('<3I', 8, NO_STRREF, 0)


def test_payload_read_respects_limit():
    raw = b'\x0a\x00\x00\x00abc'
    with pytest.raises(TruncatedBuffer):
        read_payload(FieldType.CEXOSTRING, raw, 0, len(raw))
    with pytest.raises(TruncatedBuffer):
        read_payload(FieldType.DOUBLE, b'\x00' * 8, 4, 8)


def test_undecodable_bytes_survive():
    raw = b'\x02\x00\x00\x00\xe9\x81'
    text = read_payload(FieldType.CEXOSTRING, raw, 0, len(raw))
    assert text == '\xe9\udc81'
    assert pack_payload(FieldType.CEXOSTRING, text) == raw


def test_take_bounds():
    assert take(b'abcdef', 1, 3, 6) == b'bcd'
    with pytest.raises(TruncatedBuffer):
        take(b'abcdef', 4, 3, 6)
    with pytest.raises(TruncatedBuffer):
        take(b'abcdef', 0, 4, 3)


def test_locstring_resolve():
    loc = LocString(strref=12)
    assert loc.resolve({12: 'Sword'}) == 'Sword'
    assert loc.resolve(lambda ref: f'#{ref}') == '#12'
    assert loc.resolve() is None

    inline = LocString(strref=12, strings={LocString.string_id(1, 1): 'Épée'})
    assert inline.text(language=1, gender=1) == 'Épée'
    assert inline.resolve({12: 'Sword'}, language=1, gender=1) == 'Épée'
    assert inline.resolve({12: 'Sword'}) == 'Sword'

    assert LocString(strings={}).resolve({NO_STRREF: 'bogus'}) is None


def test_default_values():
    assert default_value(FieldType.INT) == 0
    assert default_value(FieldType.DOUBLE) == 0.0
    assert default_value(FieldType.RESREF) == ''
    assert default_value(FieldType.VOID) == b''
    assert default_value(FieldType.CEXOLOCSTRING) == LocString()
    assert default_value(FieldType.STRUCT) is None
