import pytest

from amihunk.errors import HunkParseError, ErrorKind
from amihunk.reader import ByteReader, BytesProvider, FileProvider

from hunkdata import longs, name



def test_read_big_endian_values():
    reader = ByteReader(bytes.fromhex('000003F3 FFFE 80000000 ff'))
    assert reader.read_word() == 0x3f3
    assert reader.read_short() == 0xfffe
    assert reader.read_int() == -0x80000000
    assert reader.read_byte() == 0xff
    assert reader.at_end()


def test_peek_does_not_advance():
    reader = ByteReader(longs(1, 2))
    assert reader.peek_word() == 1
    assert reader.tell() == 0
    assert reader.read_word() == 1
    assert reader.remaining() == 4


def test_read_name_strips_padding():
    reader = ByteReader(name('hello') + name(''))
    assert reader.read_name() == 'hello'
    assert reader.tell() == 12
    assert reader.read_name() == ''


def test_read_name_size_ignores_symbol_type():
    reader = ByteReader(b'abcd')
    assert reader.read_name_size(0x81000001) == 'abcd'


def test_read_past_end():
    reader = ByteReader(b'\x00\x00')
    with pytest.raises(HunkParseError) as excinfo:
        reader.read_word()
    assert excinfo.value.kind == ErrorKind.UNEXPECTED_EOF
    # a failed read doesn't move the cursor
    assert reader.tell() == 0


def test_reader_window():
    reader = ByteReader(longs(1, 2, 3), offset=4, end=8)
    assert reader.read_word() == 2
    assert reader.at_end()
    with pytest.raises(HunkParseError):
        reader.read_byte()


def test_bytes_provider_range():
    provider = BytesProvider(b'\x11\x11abc')
    assert provider.length() == 5
    assert provider.read_range(2, 3) == b'abc'
    assert provider.read_byte(0) == 0x11
    assert provider.input_stream(2).read() == b'abc'
    with pytest.raises(HunkParseError):
        provider.read_range(4, 2)


def test_file_provider(tmp_path):
    fname = tmp_path / 'test.bin'
    fname.write_bytes(longs(0x3f3))
    provider = FileProvider(str(fname))
    assert ByteReader(provider).read_word() == 0x3f3
