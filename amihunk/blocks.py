#
# blocks.py - part of amihunk, a loader for AmigaOS Hunk executables, object files and ROMs
#             This file contains the parser for the individual blocks of a Hunk file
#


from logging import log, DEBUG, INFO, WARN
from recordclass import recordclass

from .constants import BlockType, ExtType, MemFlags, EXT_COMMONS, EXT_TYPE_SHIFT, HUNK_TYPE_MASK, HUNKF_MASK, HUNK_SIZE_MASK
from .errors import HunkParseError, ErrorKind



#
# data structures
#
# Every block is stored as a Block with its type, the raw tag as found in the file (which may contain
# memory flags), the extent of the block in the file and a payload depending on the type:
# HUNK_HEADER                    HeaderInfo
# HUNK_UNIT, HUNK_NAME           str
# HUNK_CODE, HUNK_DATA, HUNK_BSS SegmentData (data is None for HUNK_BSS)
# HUNK_RELOC*, HUNK_DREL*, ...   list of RelocGroup
# HUNK_SYMBOL                    list of SymbolEntry
# HUNK_DEBUG                     bytes
# HUNK_EXT                       list of ExtEntry
# HUNK_LIB                       list of Block
# HUNK_INDEX                     IndexInfo
# HUNK_OVERLAY, HUNK_CONT        bytes
# HUNK_END, HUNK_BREAK           None

Block       = recordclass('Block', ('kind', 'tag', 'start', 'end', 'payload'))
HeaderInfo  = recordclass('HeaderInfo', ('reslib_names', 'table_size', 'first_hunk', 'last_hunk', 'hunk_sizes', 'mem_flags', 'mem_attrs'))
SegmentData = recordclass('SegmentData', ('size_longs', 'mem_flags', 'data_offset', 'data'))
RelocGroup  = recordclass('RelocGroup', ('hunk_num', 'offsets'))
SymbolEntry = recordclass('SymbolEntry', ('name', 'value'))
ExtEntry    = recordclass('ExtEntry', ('name', 'ext_type', 'value', 'common_size', 'offsets'))
IndexInfo   = recordclass('IndexInfo', ('strtab', 'units'))
IndexUnit   = recordclass('IndexUnit', ('name_off', 'first_hunk_long_off', 'hunks'))
IndexHunk   = recordclass('IndexHunk', ('name_off', 'hunk_longs', 'hunk_ctype', 'refs', 'defs'))
IndexDef    = recordclass('IndexDef', ('name_off', 'value', 'sym_ctype'))


RELOC_LONG_BLOCKS = (
    BlockType.HUNK_RELOC32,
    BlockType.HUNK_RELOC16,
    BlockType.HUNK_RELOC8,
    BlockType.HUNK_DREL32,
    BlockType.HUNK_DREL16,
    BlockType.HUNK_DREL8,
    BlockType.HUNK_RELRELOC32,
    BlockType.HUNK_ABSRELOC16,
    BlockType.HUNK_RELRELOC26,
)



class BlockParser(object):
    """Reads one block after the other from a ByteReader."""

    def __init__(self, reader, is_exe=False):
        self._reader = reader
        self._is_exe = is_exe


    def read_block(self):
        start = self._reader.tell()
        tag   = self._reader.read_word()
        btype = tag & HUNK_TYPE_MASK
        try:
            kind = BlockType(btype)
        except ValueError:
            raise HunkParseError(f"block type {btype} (tag 0x{tag:08x}) at offset {start} not known",
                                 ErrorKind.UNKNOWN_BLOCK)

        # V37 LoadSeg() reads HUNK_DREL32 in executables as HUNK_RELOC32SHORT
        if self._is_exe and kind == BlockType.HUNK_DREL32:
            log(DEBUG, "treating HUNK_DREL32 at offset %d as HUNK_RELOC32SHORT", start)
            kind = BlockType.HUNK_RELOC32SHORT

        log(DEBUG, "reading block %s (%d) at offset %d", kind.name, kind, start)
        payload = BlockParser._read_funcs[kind](self, kind, tag)
        return Block(kind, tag, start, self._reader.tell(), payload)


    def _read_header_block(self, kind, tag):
        reslib_names = []
        while True:
            name = self._reader.read_name()
            if not name:
                break
            reslib_names.append(name)

        table_size = self._reader.read_word()
        first_hunk = self._reader.read_word()
        last_hunk  = self._reader.read_word()
        if last_hunk < first_hunk:
            raise HunkParseError(f"HUNK_HEADER with invalid hunk range {first_hunk}..{last_hunk}")
        log(DEBUG, "long words reserved for resident libraries: %d", len(reslib_names))
        log(DEBUG, "number of hunks: %d, first hunk: %d, last hunk: %d", table_size, first_hunk, last_hunk)

        sizes = []
        flags = []
        attrs = []
        for hnum in range(first_hunk, last_hunk + 1):
            size = self._reader.read_word()
            # both memory bits set => an extra long word with the memory attributes follows
            attr = None
            if size & HUNKF_MASK == HUNKF_MASK:
                attr = self._reader.read_word()
            sizes.append(size & HUNK_SIZE_MASK)
            flags.append(MemFlags(size & HUNKF_MASK))
            attrs.append(attr)
            log(DEBUG, "size (in bytes) of hunk #%d: %d", hnum, (size & HUNK_SIZE_MASK) * 4)

        return HeaderInfo(reslib_names, table_size, first_hunk, last_hunk, sizes, flags, attrs)


    def _read_name_block(self, kind, tag):
        name = self._reader.read_name()
        log(DEBUG, "%s: %s", 'unit name' if kind == BlockType.HUNK_UNIT else 'hunk name', name)
        return name


    def _read_segment_block(self, kind, tag):
        nwords = self._reader.read_word()
        size_longs = nwords & HUNK_SIZE_MASK
        mem_flags  = MemFlags((nwords | tag) & HUNKF_MASK)
        log(DEBUG, "size (in bytes) of %s block: %d", kind.name, size_longs * 4)
        if kind == BlockType.HUNK_BSS:
            return SegmentData(size_longs, mem_flags, None, None)
        data_offset = self._reader.tell()
        return SegmentData(size_longs, mem_flags, data_offset, self._reader.read_bytes(size_longs * 4))


    def _read_reloc_long_block(self, kind, tag):
        groups = []
        while True:
            noffsets = self._reader.read_word()
            if noffsets == 0:
                break

            refhnum = self._reader.read_word()
            offsets = [self._reader.read_word() for i in range(0, noffsets)]
            log(DEBUG, "%d relocations referencing hunk #%d", noffsets, refhnum)
            groups.append(RelocGroup(refhnum, offsets))
        return groups


    def _read_reloc_short_block(self, kind, tag):
        groups = []
        nshorts = 0
        while True:
            noffsets = self._reader.read_short()
            nshorts += 1
            if noffsets == 0:
                break

            refhnum = self._reader.read_short()
            offsets = [self._reader.read_short() for i in range(0, noffsets)]
            nshorts += noffsets + 1
            log(DEBUG, "%d short relocations referencing hunk #%d", noffsets, refhnum)
            groups.append(RelocGroup(refhnum, offsets))

        # block is padded to a long word
        if nshorts % 2 == 1:
            self._reader.read_short()
        return groups


    def _read_symbol_block(self, kind, tag):
        symbols = []
        while True:
            sname = self._reader.read_name()
            if not sname:
                break

            sval = self._reader.read_word()
            log(DEBUG, "symbol %s = 0x%08x", sname, sval)
            symbols.append(SymbolEntry(sname, sval))
        return symbols


    def _read_debug_block(self, kind, tag):
        nwords = self._reader.read_word()
        log(DEBUG, "size (in bytes) of debug block: %d", nwords * 4)
        return self._reader.read_bytes(nwords * 4)


    def _read_ext_block(self, kind, tag):
        entries = []
        while True:
            type_len = self._reader.read_word()
            if type_len == 0:
                break

            stype = type_len >> EXT_TYPE_SHIFT
            sname = self._reader.read_name_size(type_len)
            try:
                stype = ExtType(stype)
            except ValueError:
                raise HunkParseError(f"symbol type {stype} of symbol {sname} not supported")

            value       = None
            common_size = None
            offsets     = None
            if stype in EXT_COMMONS:
                common_size = self._reader.read_word()
            if stype >= 0x80:
                # reference(s)
                nrefs   = self._reader.read_word()
                offsets = [self._reader.read_word() for i in range(0, nrefs)]
                log(DEBUG, "%d references to symbol %s (type = %s)", nrefs, sname, stype.name)
            else:
                # definition
                value = self._reader.read_word()
                log(DEBUG, "definition of symbol (type = %s): %s = 0x%08x", stype.name, sname, value)
            entries.append(ExtEntry(sname, stype, value, common_size, offsets))
        return entries


    def _read_end_block(self, kind, tag):
        return None


    def _read_longs_block(self, kind, tag):
        nwords = self._reader.read_word()
        return self._reader.read_bytes(nwords * 4)


    def _read_lib_block(self, kind, tag):
        nwords = self._reader.read_word()
        end    = self._reader.tell() + nwords * 4
        log(INFO, "reading HUNK_LIB block with %d bytes", nwords * 4)
        blocks = []
        while self._reader.tell() < end:
            blocks.append(self.read_block())
        if self._reader.tell() != end:
            log(WARN, "blocks in HUNK_LIB overrun its size by %d bytes", self._reader.tell() - end)
        return blocks


    def _read_index_block(self, kind, tag):
        nwords = self._reader.read_word() * 2
        strtab_size = self._reader.read_short()
        strtab = self._reader.read_bytes(strtab_size)
        if strtab_size % 2:
            # string table is padded to a word boundary
            self._reader.read_bytes(1)
        nwords -= (strtab_size + 1) // 2 + 1

        units = []
        while nwords > 1:
            unit = IndexUnit(self._reader.read_short(), self._reader.read_short(), [])
            nhunks = self._reader.read_short()
            nwords -= 3
            for i in range(0, nhunks):
                hunk = IndexHunk(self._reader.read_short(), self._reader.read_short(), self._reader.read_short(), [], [])
                nrefs = self._reader.read_short()
                for j in range(0, nrefs):
                    hunk.refs.append(self._reader.read_short())
                ndefs = self._reader.read_short()
                for j in range(0, ndefs):
                    hunk.defs.append(IndexDef(self._reader.read_short(), self._reader.read_short(), self._reader.read_short()))
                unit.hunks.append(hunk)
                nwords -= 5 + nrefs + ndefs * 3
            units.append(unit)

        # alignment word
        if nwords == 1:
            self._reader.read_short()
        return IndexInfo(strtab, units)


    _read_funcs = dict()
    _read_funcs[BlockType.HUNK_HEADER]       = _read_header_block
    _read_funcs[BlockType.HUNK_UNIT]         = _read_name_block
    _read_funcs[BlockType.HUNK_NAME]         = _read_name_block
    _read_funcs[BlockType.HUNK_CODE]         = _read_segment_block
    _read_funcs[BlockType.HUNK_DATA]         = _read_segment_block
    _read_funcs[BlockType.HUNK_BSS]          = _read_segment_block
    _read_funcs[BlockType.HUNK_RELOC32SHORT] = _read_reloc_short_block
    _read_funcs[BlockType.HUNK_SYMBOL]       = _read_symbol_block
    _read_funcs[BlockType.HUNK_DEBUG]        = _read_debug_block
    _read_funcs[BlockType.HUNK_EXT]          = _read_ext_block
    _read_funcs[BlockType.HUNK_END]          = _read_end_block
    _read_funcs[BlockType.HUNK_BREAK]        = _read_end_block
    _read_funcs[BlockType.HUNK_OVERLAY]      = _read_longs_block
    _read_funcs[BlockType.HUNK_CONT]         = _read_longs_block
    _read_funcs[BlockType.HUNK_LIB]          = _read_lib_block
    _read_funcs[BlockType.HUNK_INDEX]        = _read_index_block
    for _kind in RELOC_LONG_BLOCKS:
        _read_funcs[_kind] = _read_reloc_long_block
    del _kind
