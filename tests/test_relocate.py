from struct import unpack_from

import pytest

from amihunk.constants import BlockType
from amihunk.errors import RelocationError, ErrorKind
from amihunk.image import load_image
from amihunk.relocate import Relocator, join_datas, write_value

from hunkdata import header, code, data, bss, reloc, end, minimal_exe, two_hunk_exe



def check_relocations(image, addrs, datas):
    formats = {1: '>B', 2: '>H', 4: '>L'}
    for seg in image.segments:
        assert len(datas[seg.id]) == seg.size
        assert seg.size % 4 == 0
        for r in seg.get_relocs():
            if r.pc_relative:
                continue
            value = unpack_from(formats[r.width], datas[seg.id], r.offset)[0]
            assert value == (addrs[r.target] + r.addend) % (1 << (8 * r.width))


def test_minimal_executable():
    image = load_image(minimal_exe())
    rel = Relocator(image)
    addrs = rel.get_seq_addrs(0x21f000)
    assert addrs == [0x21f000]
    assert rel.relocate(addrs) == [bytearray.fromhex('DEADBEEFCAFEBABE')]


def test_reloc_to_other_hunk():
    image = load_image(two_hunk_exe())
    rel = Relocator(image)
    addrs = rel.get_seq_addrs(0x1000)
    assert addrs == [0x1000, 0x1004]
    datas = rel.relocate(addrs)
    assert bytes(datas[0]) == bytes.fromhex('00001004')
    assert bytes(datas[1]) == bytes.fromhex('11223344')
    check_relocations(image, addrs, datas)


def test_relocations_are_applied_in_block_order():
    image = load_image(header(1, 1) + code(bytes(4)) + reloc(BlockType.HUNK_RELOC32, {1: [0], 0: [0]}) + end() +
                       data(bytes(4)) + end())
    datas = Relocator(image).relocate([0x1000, 0x2000])
    assert bytes(datas[0]) == bytes.fromhex('00001000')


def test_drel16():
    image = load_image(header(1) + code(bytes.fromhex('00000010')) + reloc(BlockType.HUNK_DREL16, {0: [2]}) + end())
    rel = Relocator(image)
    addrs = rel.get_seq_addrs(0x2000)
    datas = rel.relocate(addrs)
    assert unpack_from('>H', datas[0], 2)[0] == 0x2010
    assert bytes(datas[0][0:2]) == b'\x00\x00'
    check_relocations(image, addrs, datas)


def test_value_is_truncated_to_width():
    image = load_image(header(1, 1) + code(bytes.fromhex('00fe0000')) + reloc(BlockType.HUNK_RELOC8, {1: [1]}) + end() +
                       data(bytes(4)) + end())
    datas = Relocator(image).relocate([0x1000, 0x12345])
    assert datas[0][1] == (0x12345 - 2) & 0xff


def test_addresses_are_sequential():
    image = load_image(header(2, 1, 4) + code(bytes(8)) + end() + data(bytes(4)) + end() + bss(4) + end())
    rel = Relocator(image)
    assert rel.get_seq_addrs(0x1000) == [0x1000, 0x1008, 0x100c]
    assert rel.get_seq_addrs(0x1000, padding=4) == [0x1000, 0x100c, 0x1014]
    assert rel.get_total_size() == 28
    datas = rel.relocate(rel.get_seq_addrs(0x1000))
    assert bytes(datas[2]) == bytes(16)


def test_pc_relative_relocation():
    image = load_image(header(2, 1) + code(bytes(8)) + reloc(BlockType.HUNK_RELRELOC32, {1: [4]}) + end() +
                       data(bytes(4)) + end())
    datas = Relocator(image).relocate([0x1000, 0x1008])
    assert unpack_from('>l', datas[0], 4)[0] == 0x1008 - 0x1004


def test_branch26_relocation_keeps_opcode():
    image = load_image(header(2, 1) + code(bytes.fromhex('48000001 00000000')) +
                       reloc(BlockType.HUNK_RELRELOC26, {1: [0]}) + end() + data(bytes(4)) + end())
    datas = Relocator(image).relocate([0x1000, 0x1008])
    assert bytes(datas[0][0:4]) == bytes.fromhex('48000009')


def test_relocate_one_block():
    image = load_image(two_hunk_exe())
    blob = Relocator(image).relocate_one_block(0x1000)
    assert bytes(blob) == bytes.fromhex('00001004 11223344')


def test_join_datas():
    assert join_datas([bytearray(b'ab'), b'cd']) == bytearray(b'abcd')
    assert join_datas([b'ab', b'cd'], padding=2) == bytearray(b'ab\x00\x00cd\x00\x00')


def test_unknown_target_hunk():
    image = load_image(header(1) + code(bytes(4)) + reloc(BlockType.HUNK_RELOC32, {5: [0]}) + end())
    with pytest.raises(RelocationError) as excinfo:
        Relocator(image).relocate([0x1000])
    assert excinfo.value.kind == ErrorKind.UNKNOWN_TARGET_SEGMENT


def test_relocation_outside_of_hunk():
    image = load_image(header(1) + code(bytes(4)) + reloc(BlockType.HUNK_RELOC32, {0: [2]}) + end())
    with pytest.raises(RelocationError) as excinfo:
        Relocator(image).relocate([0x1000])
    assert excinfo.value.kind == ErrorKind.RELOC_OUT_OF_BOUNDS


def test_wrong_number_of_addresses():
    with pytest.raises(ValueError):
        Relocator(load_image(two_hunk_exe())).relocate([0x1000])


def test_write_value():
    buf = bytearray(4)
    write_value(buf, 0, -1, 2)
    write_value(buf, 2, 0x1234, 1)
    assert bytes(buf) == bytes.fromhex('ffff3400')
