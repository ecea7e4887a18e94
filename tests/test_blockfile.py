import pytest

from amihunk.blockfile import HunkBlockFile, peek_type, is_hunk_block_file
from amihunk.constants import BlockType, FileType
from amihunk.errors import HunkParseError, ErrorKind
from amihunk.reader import ByteReader

from hunkdata import longs, unit, hunk_name, code, end, minimal_exe



def test_peek_type():
    assert peek_type(minimal_exe()) == FileType.TYPE_LOADSEG
    assert peek_type(unit('test.o') + code(bytes(4)) + end()) == FileType.TYPE_UNIT
    assert peek_type(longs(BlockType.HUNK_LIB, 0)) == FileType.TYPE_LIB
    assert peek_type(code(bytes(4))) == FileType.TYPE_UNKNOWN
    assert peek_type(b'\x00\x00') == FileType.TYPE_UNKNOWN


def test_peek_type_does_not_consume():
    reader = ByteReader(minimal_exe())
    assert is_hunk_block_file(reader)
    assert reader.tell() == 0


def test_read_executable():
    bf = HunkBlockFile.from_reader(minimal_exe())
    assert bf.file_type == FileType.TYPE_LOADSEG
    assert bf.is_exe
    assert bf.get_block_type_names() == ['HUNK_HEADER', 'HUNK_CODE', 'HUNK_END']


def test_read_unit():
    bf = HunkBlockFile.from_reader(unit('test.o') + hunk_name('text') + code(bytes(4)) + end())
    assert bf.file_type == FileType.TYPE_UNIT
    assert not bf.is_exe
    assert bf.blocks[0].payload == 'test.o'
    assert bf.blocks[1].payload == 'text'


def test_trailing_garbage():
    with pytest.raises(HunkParseError) as excinfo:
        HunkBlockFile.from_reader(minimal_exe() + b'\x00\x00')
    assert excinfo.value.kind == ErrorKind.UNEXPECTED_EOF


def test_truncated_file():
    with pytest.raises(HunkParseError) as excinfo:
        HunkBlockFile.from_reader(minimal_exe()[:-8])
    assert excinfo.value.kind == ErrorKind.UNEXPECTED_EOF
