import pytest

from amihunk.constants import ExtType, FileType, RefType, SegmentType
from amihunk.errors import ErrorKind, RelocationError
from amihunk.host import MemoryProgram
from amihunk.image import BinImage, Segment, XDefinition, XReference
from amihunk.linker import ExternalLinker, SlotStore



def make_image(size=8, definitions=(), references=()):
    image = BinImage(FileType.TYPE_UNIT)
    seg = Segment(SegmentType.SEGMENT_TYPE_CODE, size, bytes(size))
    seg.definitions = list(definitions)
    seg.references = list(references)
    image.add_segment(seg)
    return image


def ref(name, rtype, width, offsets, ext_type=ExtType.EXT_REF32):
    return XReference(name, rtype, width, list(offsets), ext_type, None)


def link(program, image, base=0x1000):
    addrs = [base]
    datas = [bytearray(image.segments[0].size)]
    last_sect_end = base + image.segments[0].size
    linker = ExternalLinker(program, base, last_sect_end)
    linker.link(image, addrs, datas)
    return linker, datas[0]


def test_unresolved_absolute_reference_gets_refs_slot():
    program = MemoryProgram()
    linker, data = link(program, make_image(references=[ref('foo', RefType.R_ABS, 4, [0])]))
    slot = linker.refs.lookup('foo')
    assert slot == 0x1008
    assert bytes(data[0:4]) == bytes.fromhex('00001008')
    assert program.lookup_global('foo') == slot
    assert len(linker.refs) == 1
    assert len(linker.defs) == 0


def test_pc_relative_reference():
    program = MemoryProgram()
    program.create_label(0x9000, 'bar')
    linker, data = link(program, make_image(references=[ref('bar', RefType.R_PC, 4, [0], ExtType.EXT_RELREF32)]))
    assert bytes(data[0:4]) == bytes.fromhex('00008000')
    assert len(linker.refs) == 0


def test_small_data_reference():
    program = MemoryProgram()
    program.create_label(0x1010, 'baz')
    linker, data = link(program, make_image(references=[ref('baz', RefType.R_SD, 2, [2], ExtType.EXT_DEXT16)]))
    # relative to the end of the image at 0x1008
    assert bytes(data[2:4]) == bytes.fromhex('0008')


def test_references_share_slot():
    program = MemoryProgram()
    image = make_image(size=12, references=[ref('foo', RefType.R_ABS, 4, [0, 8]), ref('qux', RefType.R_ABS, 4, [4])])
    linker, data = link(program, image)
    assert bytes(data) == bytes.fromhex('0000100c 00001010 0000100c')
    assert [slot.name for slot in linker.refs.slots] == ['foo', 'qux']


def test_absolute_definition_gets_defs_slot():
    program = MemoryProgram()
    linker, data = link(program, make_image(definitions=[XDefinition('ABSVAL', 0x1234, True, ExtType.EXT_ABS)]))
    assert linker.defs.base == 0x11000
    assert linker.defs.lookup('ABSVAL') == 0x11000
    assert program.lookup_global('ABSVAL') == 0x11000
    assert bytes(linker.defs.content()) == bytes.fromhex('00001234')


def test_relative_definition_labels_address():
    program = MemoryProgram()
    image = make_image(definitions=[XDefinition('_main', 4, False, ExtType.EXT_DEF),
                                    XDefinition('___startup', 0, False, ExtType.EXT_DEF)])
    linker, data = link(program, image)
    assert program.lookup_global('_main') == 0x1004
    assert linker.entry_points == [0x1000]


def test_definition_resolves_reference_in_same_segment():
    program = MemoryProgram()
    image = make_image(definitions=[XDefinition('_func', 4, False, ExtType.EXT_DEF)],
                       references=[ref('_func', RefType.R_ABS, 4, [0])])
    linker, data = link(program, image)
    assert bytes(data[0:4]) == bytes.fromhex('00001004')
    assert len(linker.refs) == 0


def two_segment_image(first, second):
    image = BinImage(FileType.TYPE_UNIT)
    for definitions, references in (first, second):
        seg = Segment(SegmentType.SEGMENT_TYPE_CODE, 4, bytes(4))
        seg.definitions = list(definitions)
        seg.references = list(references)
        image.add_segment(seg)
    return image


def link_two(program, image):
    datas = [bytearray(4), bytearray(4)]
    linker = ExternalLinker(program, 0x1000, 0x1008)
    linker.link(image, [0x1000, 0x1004], datas)
    return linker, datas


def test_reference_to_later_segment_gets_refs_slot():
    program = MemoryProgram()
    image = two_segment_image(((), [ref('bar', RefType.R_ABS, 4, [0])]),
                              ([XDefinition('bar', 0, False, ExtType.EXT_DEF)], ()))
    linker, datas = link_two(program, image)
    assert [slot.name for slot in linker.refs.slots] == ['bar']
    assert bytes(datas[0]) == bytes.fromhex('00001008')
    # the later definition reuses the slot
    assert program.lookup_global('bar') == 0x1008


def test_reference_to_earlier_segment_is_resolved():
    program = MemoryProgram()
    image = two_segment_image(([XDefinition('bar', 0, False, ExtType.EXT_DEF)], ()),
                              ((), [ref('bar', RefType.R_ABS, 4, [0])]))
    linker, datas = link_two(program, image)
    assert len(linker.refs) == 0
    assert bytes(datas[1]) == bytes.fromhex('00001000')


def test_unresolved_reference_is_reported():
    linker, data = link(MemoryProgram(), make_image(references=[ref('foo', RefType.R_ABS, 4, [0, 4])]))
    diag, = linker.diagnostics
    assert (diag.kind, diag.subject, diag.address) == (ErrorKind.UNRESOLVED_EXTERNAL, 'foo', 0x1008)


def test_existing_name_is_not_redefined():
    program = MemoryProgram()
    program.create_label(0x5000, '_main')
    linker, data = link(program, make_image(definitions=[XDefinition('_main', 0, False, ExtType.EXT_DEF)]))
    assert program.lookup_global('_main') == 0x5000


def test_linking_twice_changes_nothing():
    program = MemoryProgram()
    image = make_image(size=12,
                       definitions=[XDefinition('ABSVAL', 0x1234, True, ExtType.EXT_ABS)],
                       references=[ref('foo', RefType.R_ABS, 4, [0]), ref('ABSVAL', RefType.R_ABS, 4, [4])])
    first, data1 = link(program, image)
    second, data2 = link(program, image)
    assert len(second.refs) == 0
    assert len(second.defs) == 0
    assert data1 == data2


def test_reference_outside_of_hunk():
    with pytest.raises(RelocationError):
        link(MemoryProgram(), make_image(references=[ref('foo', RefType.R_ABS, 4, [6])]))


def test_slot_store():
    store = SlotStore('REFS', 0x2000, False)
    assert store.add('a') == 0x2000
    assert store.add('b', 7) == 0x2004
    assert store.add('a') == 0x2000
    assert store.lookup('c') is None
    assert store.end == 0x2008
    store.reserve(2)
    assert store.add('c') == 0x2010
