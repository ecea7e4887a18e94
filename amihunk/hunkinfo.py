#
# hunkinfo.py - part of amihunk, a loader for AmigaOS Hunk executables, object files and ROMs
#               Dumping the blocks of a Hunk file
#


import logging
from argparse import ArgumentParser
from logging import log, DEBUG, INFO, ERROR

from . import debug
from .blockfile import HunkBlockFile
from .constants import BlockType
from .errors import HunkError
from .reader import FileProvider


# stab names from binutils-gdb/include/aout/stab.def
stab_type_to_name = {
    0x00: 'N_UNDF',
    0x01: 'N_EXT',
    0x02: 'N_ABS',
    0x04: 'N_TEXT',
    0x06: 'N_DATA',
    0x08: 'N_BSS',
    0x0a: 'N_INDR',
    0x0c: 'N_FN_SEQ',
    0x0d: 'N_WEAKU',
    0x0e: 'N_WEAKA',
    0x0f: 'N_WEAKT',
    0x10: 'N_WEAKD',
    0x11: 'N_WEAKB',
    0x12: 'N_COMM',
    0x14: 'N_SETA',
    0x16: 'N_SETT',
    0x18: 'N_SETD',
    0x1a: 'N_SETB',
    0x1c: 'N_SETV',
    0x1e: 'N_WARNING',
    0x1f: 'N_FN',
    0x20: 'N_GSYM',
    0x22: 'N_FNAME',
    0x24: 'N_FUN',
    0x26: 'N_STSYM',
    0x28: 'N_LCSYM',
    0x2a: 'N_MAIN',
    0x2c: 'N_ROSYM',
    0x2e: 'N_BNSYM',
    0x30: 'N_PC',
    0x32: 'N_NSYMS',
    0x34: 'N_NOMAP',
    0x38: 'N_OBJ',
    0x3c: 'N_OPT',
    0x40: 'N_RSYM',
    0x42: 'N_M2C',
    0x44: 'N_SLINE',
    0x46: 'N_DSLINE',
    0x48: 'N_BSLINE',
    0x4a: 'N_DEFD',
    0x4C: 'N_FLINE',
    0x4E: 'N_ENSYM',
    0x50: 'N_EHDECL',
    0x54: 'N_CATCH',
    0x60: 'N_SSYM',
    0x62: 'N_ENDM',
    0x64: 'N_SO',
    0x66: 'N_OSO',
    0x6c: 'N_ALIAS',
    0x80: 'N_LSYM',
    0x82: 'N_BINCL',
    0x84: 'N_SOL',
    0xa0: 'N_PSYM',
    0xa2: 'N_EINCL',
    0xa4: 'N_ENTRY',
    0xc0: 'N_LBRAC',
    0xc2: 'N_EXCL',
    0xc4: 'N_SCOPE',
    0xd0: 'N_PATCH',
    0xe0: 'N_RBRAC',
    0xe2: 'N_BCOMM',
    0xe4: 'N_ECOMM',
    0xe8: 'N_ECOML',
    0xea: 'N_WITH',
    0xF0: 'N_NBTEXT',
    0xF2: 'N_NBDATA',
    0xF4: 'N_NBBSS',
    0xF6: 'N_NBSTS',
    0xF8: 'N_NBLCS',
    0xfe: 'N_LENG',
}


def create_hexdump(buffer):
    dump = ''
    pos  = 0
    while pos < len(buffer):
        dump += '%04x  ' % pos
        line = ''
        for i in range(pos, min(pos + 16, len(buffer))):
            dump += '%02x ' % buffer[i]
            line += chr(buffer[i]) if 0x20 <= buffer[i] <= 0x7e else '.'
        if len(line) < 16:
            dump += ' ' * 3 * (16 - len(line))
        dump += '\t' + line + '\n'
        pos += 16
    return dump


def block_summary(block_file):
    """One line per block with its type and extent in the file."""
    return ["%-18s %8d %8d" % (block.kind.name, block.start, block.end) for block in block_file.blocks]



class HunkDumper(object):
    def __init__(self, block_file):
        self._block_file = block_file


    def dump(self):
        for block in self._block_file.blocks:
            self.dump_block(block)


    def dump_block(self, block):
        log(INFO, "%s block at offset %d (%d bytes)", block.kind.name, block.start, block.end - block.start)
        func = HunkDumper._dump_funcs.get(block.kind)
        if func is not None:
            func(self, block)


    def _dump_header_block(self, block):
        info = block.payload
        log(DEBUG, "resident libraries: %s", ', '.join(info.reslib_names) or 'none')
        log(DEBUG, "number of hunks: %d, first hunk: %d, last hunk: %d", info.table_size, info.first_hunk, info.last_hunk)
        for hnum, size, flags in zip(range(info.first_hunk, info.last_hunk + 1), info.hunk_sizes, info.mem_flags):
            log(DEBUG, "size (in bytes) of hunk #%d: %d, memory flags 0x%08x", hnum, size * 4, flags)


    def _dump_name_block(self, block):
        log(INFO, "name: %s", block.payload)


    def _dump_segment_block(self, block):
        seg = block.payload
        log(DEBUG, "size (in bytes) of %s block: %d, memory flags 0x%08x", block.kind.name, seg.size_longs * 4, seg.mem_flags)
        if seg.data:
            log(DEBUG, "hex dump of %s block:\n%s", block.kind.name, create_hexdump(seg.data))


    def _dump_reloc_block(self, block):
        for group in block.payload:
            log(DEBUG, "relocations referencing hunk #%d:", group.hunk_num)
            for offset in group.offsets:
                log(DEBUG, "position = 0x%08x", offset)


    def _dump_ext_block(self, block):
        for entry in block.payload:
            if entry.offsets is None:
                log(DEBUG, "definition of symbol (type = %s): %s = 0x%08x", entry.ext_type.name, entry.name, entry.value)
            else:
                for offset in entry.offsets:
                    log(DEBUG, "reference to symbol %s (type = %s): 0x%08x", entry.name, entry.ext_type.name, offset)


    def _dump_symbol_block(self, block):
        for symbol in block.payload:
            log(DEBUG, "%s = 0x%08x", symbol.name, symbol.value)


    def _dump_debug_block(self, block):
        log(DEBUG, "hexdump of HUNK_DEBUG block:\n%s", create_hexdump(block.payload))
        info = debug.decode(block.payload)
        if isinstance(info, debug.DebugLine):
            log(DEBUG, "format is LINE (SAS/C or VBCC), file name: %s, section offset: 0x%08x", info.src_file, info.base_offset)
            for entry in info.entries:
                log(DEBUG, "line #%d at address 0x%08x", entry.src_line, entry.offset)
        elif isinstance(info, debug.DebugStabs):
            log(DEBUG, "format is STABS (GCC), %d stabs:", len(info.stabs))
            for stab in info.stabs:
                log(DEBUG, "type = %s, string = %s, other = 0x%x, desc = 0x%x, value = 0x%08x",
                    stab_type_to_name.get(stab.type, f"0x{stab.type:02x}"), stab.string, stab.other, stab.desc, stab.value)
        else:
            log(DEBUG, "unknown format '%s', %d bytes", info.tag, len(info.data))


    def _dump_lib_block(self, block):
        for nested in block.payload:
            self.dump_block(nested)


    def _dump_index_block(self, block):
        for unit in block.payload.units:
            log(DEBUG, "unit at string offset %d with %d hunks", unit.name_off, len(unit.hunks))


    _dump_funcs = dict()
    _dump_funcs[BlockType.HUNK_HEADER] = _dump_header_block
    _dump_funcs[BlockType.HUNK_UNIT]   = _dump_name_block
    _dump_funcs[BlockType.HUNK_NAME]   = _dump_name_block
    _dump_funcs[BlockType.HUNK_CODE]   = _dump_segment_block
    _dump_funcs[BlockType.HUNK_DATA]   = _dump_segment_block
    _dump_funcs[BlockType.HUNK_BSS]    = _dump_segment_block
    _dump_funcs[BlockType.HUNK_EXT]    = _dump_ext_block
    _dump_funcs[BlockType.HUNK_SYMBOL] = _dump_symbol_block
    _dump_funcs[BlockType.HUNK_DEBUG]  = _dump_debug_block
    _dump_funcs[BlockType.HUNK_LIB]    = _dump_lib_block
    _dump_funcs[BlockType.HUNK_INDEX]  = _dump_index_block
    for _kind in (BlockType.HUNK_RELOC32, BlockType.HUNK_RELOC16, BlockType.HUNK_RELOC8, BlockType.HUNK_DREL32,
                  BlockType.HUNK_DREL16, BlockType.HUNK_DREL8, BlockType.HUNK_RELOC32SHORT, BlockType.HUNK_RELRELOC32,
                  BlockType.HUNK_ABSRELOC16, BlockType.HUNK_RELRELOC26):
        _dump_funcs[_kind] = _dump_reloc_block
    del _kind



def main(argv=None):
    parser = ArgumentParser(description = 'Dump the blocks of an AmigaOS Hunk file')
    parser.add_argument('-v', dest = 'verbose', action = 'store_true', help = 'verbose output (block contents)')
    parser.add_argument('-s', dest = 'summary', action = 'store_true', help = 'only print a summary of the blocks')
    parser.add_argument('file', help = 'executable or object file')
    args = parser.parse_args(argv)
    logging.basicConfig(level = DEBUG if args.verbose else INFO, format = '%(levelname)s: %(message)s')

    try:
        block_file = HunkBlockFile.from_reader(FileProvider(args.file))
    except (HunkError, OSError) as ex:
        log(ERROR, "can't read %s: %s", args.file, ex)
        return 1

    if args.summary:
        for line in block_summary(block_file):
            print(line)
    else:
        HunkDumper(block_file).dump()
    return 0


if __name__ == '__main__':
    raise SystemExit(main())
