from amihunk.blockfile import HunkBlockFile
from amihunk.constants import BlockType, ExtType
from amihunk.image import load_image
from amihunk.writer import HunkWriter, write_block_file

from hunkdata import (longs, shorts, header, unit, hunk_name, code, data, bss, reloc, symbols, ext, ext_def, ext_ref,
                      end, debug, two_hunk_exe)



def segment_summary(raw):
    image = load_image(raw)
    return [(seg.type, seg.size, sorted((r.target, r.offset, r.width) for r in seg.get_relocs()),
             sorted((d.name, d.offset) for d in seg.definitions), sorted((r.name, tuple(r.offsets)) for r in seg.references),
             [(s.name, s.offset) for s in seg.symbols]) for seg in image.segments]


def round_trip(raw):
    written = write_block_file(HunkBlockFile.from_reader(raw))
    assert written == raw
    assert segment_summary(written) == segment_summary(raw)


def test_executable_round_trip():
    round_trip(header(2, 1, 0x40000004, reslibs=('dos.library',)) +
               code(bytes(8)) + reloc(BlockType.HUNK_RELOC32, {1: [0], 0: [4]}) + symbols(('_start', 0)) + end() +
               data(bytes.fromhex('11223344')) + debug(longs(0) + b'LINE' + longs(1) + b'a.c\x00' + longs(1, 0)) + end() +
               bss(4) + end())


def test_short_relocations_round_trip():
    round_trip(header(1) + code(bytes(8)) + longs(BlockType.HUNK_DREL32) + shorts(2, 0, 0, 4, 0, 0) + end())
    round_trip(header(1) + code(bytes(8)) + longs(BlockType.HUNK_RELOC32SHORT) + shorts(1, 0, 4, 0) + end())


def test_memory_attributes_round_trip():
    round_trip(longs(BlockType.HUNK_HEADER, 0, 1, 0, 0, 0xc0000001, 0x00000004) +
               longs(0x400003e9, 1, 0x4e754e75) + end())


def test_unit_round_trip():
    round_trip(unit('test.o') + hunk_name('text') + code(bytes(12)) +
               ext(ext_def('_main', ExtType.EXT_DEF, 0),
                   ext_def('_abs', ExtType.EXT_ABS, 0x1234),
                   ext_ref('_printf', ExtType.EXT_REF32, [4, 8]),
                   ext_ref('_buf', ExtType.EXT_COMMON, [0], common_size=16)) + end())


def test_library_round_trip():
    nested = code(bytes(4)) + reloc(BlockType.HUNK_RELOC32, {0: [0]}) + ext(ext_def('_f', ExtType.EXT_DEF, 0)) + end()
    strtab = b'unit\x00_f\x00\x00\x00\x00'
    index = shorts(len(strtab)) + strtab + b'\x00' + shorts(0, 0, 1) + shorts(5, 1, 0x3e9, 0, 1) + shorts(5, 0, 1)
    index += bytes(-len(index) % 4)
    raw = (longs(BlockType.HUNK_LIB, len(nested) // 4) + nested +
           longs(BlockType.HUNK_INDEX, len(index) // 4) + index)
    bf = HunkBlockFile.from_reader(raw)
    unit_info, = bf.blocks[1].payload.units
    assert unit_info.hunks[0].defs[0].name_off == 5
    assert write_block_file(bf) == raw


def test_write_to_file(tmp_path):
    fname = tmp_path / 'out'
    write_block_file(HunkBlockFile.from_reader(two_hunk_exe()), str(fname))
    assert fname.read_bytes() == two_hunk_exe()


def test_writer_accumulates_blocks():
    blocks = HunkBlockFile.from_reader(two_hunk_exe()).blocks
    writer = HunkWriter()
    writer.write_block(blocks[0])
    assert writer.getvalue() == header(1, 1)
