#
# debug.py - part of amihunk, a loader for AmigaOS Hunk executables, object files and ROMs
#            Decoding of the content of HUNK_DEBUG blocks
#


from logging import log, DEBUG
from struct import unpack_from
from ctypes import BigEndianStructure, c_ubyte, c_ushort, c_uint, sizeof
from recordclass import recordclass



DebugLine  = recordclass('DebugLine', ('base_offset', 'src_file', 'entries'))
LineEntry  = recordclass('LineEntry', ('src_line', 'offset', 'flags'))
DebugStabs = recordclass('DebugStabs', ('base_offset', 'stabs'))
StabEntry  = recordclass('StabEntry', ('type', 'string', 'other', 'desc', 'value'))
DebugAny   = recordclass('DebugAny', ('tag', 'base_offset', 'data'))


N_UNDF = 0x00
HEAD_SIGNATURE = b'DBGV01\x00\x00'


class Stab(BigEndianStructure):
    _fields_ = [
        ('st_offset', c_uint),
        ('st_type', c_ubyte),
        ('st_other', c_ubyte),
        ('st_desc', c_ushort),
        ('st_value', c_uint),
    ]


def get_string_from_buffer(buffer):
    idx = 0
    while idx < len(buffer) and buffer[idx] != 0:
        idx += 1
    if idx < len(buffer):
        return bytes(buffer[0:idx]).decode('latin-1')
    else:
        raise ValueError("no terminating NULL byte found in buffer")


def decode_line_info(data):
    # The LINE format used by SAS/C (also generated by VBCC / VLINK) only contains a line / offset
    # table: section offset, 'LINE', file name (as long word count + string), then pairs of
    # line number and offset. The upper 8 bits of the line number are flags.
    base_offset  = unpack_from('>L', data, 0)[0]
    nwords_fname = unpack_from('>L', data, 8)[0]
    offset = 12
    src_file = get_string_from_buffer(data[offset:offset + nwords_fname * 4] + b'\x00')
    offset += nwords_fname * 4
    entries = []
    while offset + 8 <= len(data):
        line, addr = unpack_from('>LL', data, offset)
        entries.append(LineEntry(line & 0x00ffffff, addr, line >> 24))
        offset += 8
    log(DEBUG, "line table for %s with %d entries", src_file, len(entries))
    return DebugLine(base_offset, src_file, entries)


def decode_stabs(data):
    # With GCC, the stab table starts with a stab of type N_UNDF. The description field
    # of this stab contains the size of the stabs table in bytes for this compilation unit
    # (including this first stab), the value field is the size of the string table.
    stab = Stab.from_buffer_copy(data[0:sizeof(Stab)])
    if stab.st_type != N_UNDF:
        raise ValueError("stabs table does not start with stab N_UNDF")
    nstabs  = stab.st_desc // sizeof(Stab)
    stabtab = data[sizeof(Stab):]
    strtab  = data[sizeof(Stab) * (nstabs + 1):]
    if nstabs == 0 or len(stabtab) < sizeof(Stab) * (nstabs - 1):
        raise ValueError("stabs table is truncated")
    log(DEBUG, "stab table contains %d entries", nstabs)

    stabs  = []
    offset = 0
    for i in range(0, nstabs - 1):
        stab = Stab.from_buffer_copy(stabtab[offset:offset + sizeof(Stab)])
        offset += sizeof(Stab)
        string = get_string_from_buffer(strtab[stab.st_offset:])
        stabs.append(StabEntry(stab.st_type, string, stab.st_other, stab.st_desc, stab.st_value))
    return DebugStabs(0, stabs)


def decode(data):
    """Decode the data of a HUNK_DEBUG block. Data in an unknown format is returned as DebugAny."""
    # The content of a HUNK_DEBUG block was not specified by Commodore. Different compilers
    # used different formats for the debug information.
    if len(data) < 12:
        return DebugAny('', 0, bytes(data))

    base_offset = unpack_from('>L', data, 0)[0]
    tag = data[4:8]
    if tag == b'LINE':
        return decode_line_info(data)
    elif tag == b'HEAD' and data[8:16] == HEAD_SIGNATURE:
        return DebugAny('HEAD', base_offset, data[16:])

    try:
        return decode_stabs(data)
    except ValueError as ex:
        log(DEBUG, "debug data is neither LINE nor STABS (%s), keeping it as is", ex)
        return DebugAny(tag.decode('latin-1'), base_offset, data[8:])
