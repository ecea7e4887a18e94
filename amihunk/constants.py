#
# constants.py - part of amihunk, a loader for AmigaOS Hunk executables, object files and ROMs
#                Block types, symbol types and other magic numbers from dos/doshunks.h and exec/resident.h
#


from enum import IntEnum, IntFlag



# block types from from dos/doshunks.h (NDK 3.9)
class BlockType(IntEnum):
    HUNK_UNIT         = 999
    HUNK_NAME         = 1000
    HUNK_CODE         = 1001
    HUNK_DATA         = 1002
    HUNK_BSS          = 1003
    HUNK_RELOC32      = 1004
    HUNK_RELOC16      = 1005
    HUNK_RELOC8       = 1006
    HUNK_EXT          = 1007
    HUNK_SYMBOL       = 1008
    HUNK_DEBUG        = 1009
    HUNK_END          = 1010
    HUNK_HEADER       = 1011
    HUNK_CONT         = 1012
    HUNK_OVERLAY      = 1013
    HUNK_BREAK        = 1014
    HUNK_DREL32       = 1015
    HUNK_DREL16       = 1016
    HUNK_DREL8        = 1017
    HUNK_LIB          = 1018
    HUNK_INDEX        = 1019
    HUNK_RELOC32SHORT = 1020
    HUNK_RELRELOC32   = 1021
    HUNK_ABSRELOC16   = 1022
    HUNK_RELRELOC26   = 1260
    # newer names for the same numbers
    HUNK_ABSRELOC32   = 1004
    HUNK_RELRELOC16   = 1005
    HUNK_RELRELOC8    = 1006


# symbol types from from dos/doshunks.h
class ExtType(IntEnum):
    EXT_SYMB      = 0
    EXT_DEF       = 1
    EXT_ABS       = 2
    EXT_RES       = 3
    EXT_REF32     = 129
    EXT_COMMON    = 130
    EXT_REF16     = 131
    EXT_REF8      = 132
    EXT_DEXT32    = 133
    EXT_DEXT16    = 134
    EXT_DEXT8     = 135
    EXT_RELREF32  = 136
    EXT_RELCOMMON = 137
    EXT_ABSREF16  = 138
    EXT_ABSREF8   = 139
    EXT_RELREF26  = 229


# kind of a reference to an external symbol
class RefType(IntEnum):
    R_ABS = 0
    R_SD  = 1
    R_PC  = 2


class FileType(IntEnum):
    TYPE_UNKNOWN = 0
    TYPE_LOADSEG = 1
    TYPE_UNIT    = 2
    TYPE_LIB     = 3


class SegmentType(IntEnum):
    SEGMENT_TYPE_CODE = 0
    SEGMENT_TYPE_DATA = 1
    SEGMENT_TYPE_BSS  = 2


# memory attributes in the upper two bits of hunk sizes and segment tags
class MemFlags(IntFlag):
    HUNKF_ANY  = 0
    HUNKF_CHIP = 1 << 30
    HUNKF_FAST = 1 << 31


HUNK_TYPE_MASK = 0x3fffffff
HUNKF_MASK     = 0xc0000000
HUNK_SIZE_MASK = 0x3fffffff
EXT_TYPE_SHIFT = 24
EXT_NAME_MASK  = 0x00ffffff


SEGMENT_BEGIN_BLOCKS = (BlockType.HUNK_CODE, BlockType.HUNK_DATA, BlockType.HUNK_BSS)

SEGMENT_TYPE_BY_BLOCK = {
    BlockType.HUNK_CODE: SegmentType.SEGMENT_TYPE_CODE,
    BlockType.HUNK_DATA: SegmentType.SEGMENT_TYPE_DATA,
    BlockType.HUNK_BSS:  SegmentType.SEGMENT_TYPE_BSS,
}

# relocation blocks and the width (in bytes) of the fields they patch
RELOC_WIDTH_BY_BLOCK = {
    BlockType.HUNK_RELOC32:      4,
    BlockType.HUNK_DREL32:       4,
    BlockType.HUNK_RELOC32SHORT: 4,
    BlockType.HUNK_RELRELOC32:   4,
    BlockType.HUNK_RELRELOC26:   4,
    BlockType.HUNK_RELOC16:      2,
    BlockType.HUNK_DREL16:       2,
    BlockType.HUNK_ABSRELOC16:   2,
    BlockType.HUNK_RELOC8:       1,
    BlockType.HUNK_DREL8:        1,
}

PC_RELATIVE_RELOC_BLOCKS = (BlockType.HUNK_RELRELOC32, BlockType.HUNK_RELRELOC26)

# blocks that are accepted but not used when loading an image
PASSIVE_BLOCKS = (
    BlockType.HUNK_HEADER,
    BlockType.HUNK_UNIT,
    BlockType.HUNK_LIB,
    BlockType.HUNK_INDEX,
    BlockType.HUNK_OVERLAY,
    BlockType.HUNK_BREAK,
    BlockType.HUNK_CONT,
)

EXT_DEFINITIONS = (ExtType.EXT_SYMB, ExtType.EXT_DEF, ExtType.EXT_ABS, ExtType.EXT_RES)
EXT_COMMONS     = (ExtType.EXT_COMMON, ExtType.EXT_RELCOMMON)

# reference type and width for each kind of external reference
EXT_REFERENCE_KINDS = {
    ExtType.EXT_REF32:     (RefType.R_ABS, 4),
    ExtType.EXT_COMMON:    (RefType.R_ABS, 4),
    ExtType.EXT_ABSREF16:  (RefType.R_ABS, 2),
    ExtType.EXT_ABSREF8:   (RefType.R_ABS, 1),
    ExtType.EXT_REF16:     (RefType.R_PC, 2),
    ExtType.EXT_REF8:      (RefType.R_PC, 1),
    ExtType.EXT_RELREF32:  (RefType.R_PC, 4),
    ExtType.EXT_RELCOMMON: (RefType.R_PC, 4),
    ExtType.EXT_DEXT32:    (RefType.R_SD, 4),
    ExtType.EXT_DEXT16:    (RefType.R_SD, 2),
    ExtType.EXT_DEXT8:     (RefType.R_SD, 1),
}


# load configuration
DEF_IMAGE_BASE         = 0x21f000
IMAGE_BASE_MIN         = 0x1000
IMAGE_BASE_MAX         = 0x80000000
DEFS_IMAGE_BASE_OFFSET = 0x10000
DEFS_SEGMENT_NAME      = 'DEFS'
REFS_SEGMENT_NAME      = 'REFS'
SLOT_SIZE              = 4

KICKSTART_MAGIC = b'\x11\x11'
KICKSTART_END   = 0x1000000
ROM_SEGMENT_NAME = 'ROM'

EXEC_BASE_ADDR  = 0x4
CUSTOM_BASE     = 0xdff000
CUSTOM_SIZE     = 0x200

STARTUP_SYMBOL  = '___startup'
ENTRY_SYMBOL    = 'start'


# resident modules from exec/resident.h
RTC_MATCHWORD = 0x4afc
RTF_AUTOINIT  = 0x80
RESIDENT_SIZE = 26

LIB_VECTOR_NAMES = ('LIB_OPEN', 'LIB_CLOSE', 'LIB_EXPUNGE', 'LIB_EXTFUNC')
LIB_FIRST_BIAS   = 30
LIB_VECTOR_SIZE  = 6
