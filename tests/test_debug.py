from struct import pack

from amihunk import debug

from hunkdata import longs



def test_line_info():
    info = debug.decode(longs(0x20) + b'LINE' + longs(1) + b'a.c\x00' + longs(0x01000005, 0x10, 6, 0x14))
    assert isinstance(info, debug.DebugLine)
    assert info.base_offset == 0x20
    assert [(e.src_line, e.offset, e.flags) for e in info.entries] == [(5, 0x10, 1), (6, 0x14, 0)]


def test_stabs():
    # first stab: N_UNDF with the size of the stab table in the description
    first = pack('>LBBHL', 0, 0, 0, 24, 8)
    stab = pack('>LBBHL', 1, 0x24, 0, 3, 0x100)
    strtab = b'\x00main\x00\x00\x00'
    info = debug.decode(first + stab + bytes(12) + strtab)
    assert isinstance(info, debug.DebugStabs)
    entry, = info.stabs
    assert (entry.type, entry.string, entry.desc, entry.value) == (0x24, 'main', 3, 0x100)


def test_head_and_unknown_formats():
    info = debug.decode(longs(0) + b'HEAD' + b'DBGV01\x00\x00' + b'data')
    assert (info.tag, info.data) == ('HEAD', b'data')
    info = debug.decode(longs(4) + b'ODDS' + longs(1, 2))
    assert isinstance(info, debug.DebugAny)
    assert (info.tag, info.base_offset, info.data) == ('ODDS', 4, longs(1, 2))


def test_short_data_is_kept():
    info = debug.decode(b'\x00' * 8)
    assert isinstance(info, debug.DebugAny)
    assert (info.tag, info.base_offset, info.data) == ('', 0, bytes(8))
