#
# writer.py - part of amihunk, a loader for AmigaOS Hunk executables, object files and ROMs
#             Serializing blocks back into the Hunk format
#


from logging import log, DEBUG, INFO
from struct import pack

from .blocks import RELOC_LONG_BLOCKS
from .constants import BlockType, EXT_COMMONS, EXT_TYPE_SHIFT, HUNKF_MASK



def _pad_long(data):
    return data + bytes(-len(data) % 4)



class HunkWriter(object):
    """Writes blocks as they are returned by BlockParser."""

    def __init__(self):
        self._buffer = bytearray()


    def getvalue(self):
        return bytes(self._buffer)


    def write_blocks(self, blocks):
        for block in blocks:
            self.write_block(block)
        return self


    def write_block(self, block):
        tag = block.tag if block.tag is not None else int(block.kind)
        log(DEBUG, "writing block %s at offset %d", block.kind.name, len(self._buffer))
        self._write_word(tag)
        HunkWriter._write_funcs[block.kind](self, block)


    def _write_word(self, value):
        self._buffer += pack('>L', value & 0xffffffff)


    def _write_short(self, value):
        self._buffer += pack('>H', value & 0xffff)


    def _write_name(self, name):
        raw = _pad_long(name.encode('latin-1'))
        self._write_word(len(raw) // 4)
        self._buffer += raw


    def _write_header_block(self, block):
        info = block.payload
        for name in info.reslib_names:
            self._write_name(name)
        self._write_word(0)
        self._write_word(info.table_size)
        self._write_word(info.first_hunk)
        self._write_word(info.last_hunk)
        for size, flags, attr in zip(info.hunk_sizes, info.mem_flags, info.mem_attrs):
            self._write_word(size | int(flags))
            if int(flags) & HUNKF_MASK == HUNKF_MASK:
                self._write_word(attr or 0)


    def _write_name_block(self, block):
        self._write_name(block.payload)


    def _write_segment_block(self, block):
        seg = block.payload
        # memory flags already part of the tag are not repeated in the size
        flags = int(seg.mem_flags) & ~block.tag & HUNKF_MASK
        self._write_word(seg.size_longs | flags)
        if block.kind != BlockType.HUNK_BSS:
            self._buffer += seg.data


    def _write_reloc_long_block(self, block):
        for group in block.payload:
            self._write_word(len(group.offsets))
            self._write_word(group.hunk_num)
            for offset in group.offsets:
                self._write_word(offset)
        self._write_word(0)


    def _write_reloc_short_block(self, block):
        nshorts = 1
        for group in block.payload:
            self._write_short(len(group.offsets))
            self._write_short(group.hunk_num)
            for offset in group.offsets:
                self._write_short(offset)
            nshorts += len(group.offsets) + 2
        self._write_short(0)
        if nshorts % 2 == 1:
            self._write_short(0)


    def _write_symbol_block(self, block):
        for symbol in block.payload:
            self._write_name(symbol.name)
            self._write_word(symbol.value)
        self._write_word(0)


    def _write_longs_block(self, block):
        data = _pad_long(bytes(block.payload))
        self._write_word(len(data) // 4)
        self._buffer += data


    def _write_ext_block(self, block):
        for entry in block.payload:
            raw = _pad_long(entry.name.encode('latin-1'))
            self._write_word((int(entry.ext_type) << EXT_TYPE_SHIFT) | (len(raw) // 4))
            self._buffer += raw
            if entry.ext_type in EXT_COMMONS:
                self._write_word(entry.common_size)
            if entry.ext_type >= 0x80:
                self._write_word(len(entry.offsets))
                for offset in entry.offsets:
                    self._write_word(offset)
            else:
                self._write_word(entry.value)
        self._write_word(0)


    def _write_end_block(self, block):
        pass


    def _write_lib_block(self, block):
        nested = HunkWriter().write_blocks(block.payload).getvalue()
        self._write_word(len(nested) // 4)
        self._buffer += nested


    def _write_index_block(self, block):
        info = block.payload
        body = bytearray(pack('>H', len(info.strtab)))
        body += info.strtab
        if len(info.strtab) % 2:
            body += b'\x00'
        for unit in info.units:
            body += pack('>HHH', unit.name_off, unit.first_hunk_long_off, len(unit.hunks))
            for hunk in unit.hunks:
                body += pack('>HHHH', hunk.name_off, hunk.hunk_longs, hunk.hunk_ctype, len(hunk.refs))
                for ref in hunk.refs:
                    body += pack('>H', ref)
                body += pack('>H', len(hunk.defs))
                for sdef in hunk.defs:
                    body += pack('>HHH', sdef.name_off, sdef.value, sdef.sym_ctype)
        body = _pad_long(bytes(body))
        self._write_word(len(body) // 4)
        self._buffer += body


    _write_funcs = dict()
    _write_funcs[BlockType.HUNK_HEADER]       = _write_header_block
    _write_funcs[BlockType.HUNK_UNIT]         = _write_name_block
    _write_funcs[BlockType.HUNK_NAME]         = _write_name_block
    _write_funcs[BlockType.HUNK_CODE]         = _write_segment_block
    _write_funcs[BlockType.HUNK_DATA]         = _write_segment_block
    _write_funcs[BlockType.HUNK_BSS]          = _write_segment_block
    _write_funcs[BlockType.HUNK_RELOC32SHORT] = _write_reloc_short_block
    _write_funcs[BlockType.HUNK_SYMBOL]       = _write_symbol_block
    _write_funcs[BlockType.HUNK_DEBUG]        = _write_longs_block
    _write_funcs[BlockType.HUNK_EXT]          = _write_ext_block
    _write_funcs[BlockType.HUNK_END]          = _write_end_block
    _write_funcs[BlockType.HUNK_BREAK]        = _write_end_block
    _write_funcs[BlockType.HUNK_OVERLAY]      = _write_longs_block
    _write_funcs[BlockType.HUNK_CONT]         = _write_longs_block
    _write_funcs[BlockType.HUNK_LIB]          = _write_lib_block
    _write_funcs[BlockType.HUNK_INDEX]        = _write_index_block
    for _kind in RELOC_LONG_BLOCKS:
        _write_funcs[_kind] = _write_reloc_long_block
    del _kind



def write_block_file(block_file, fname=None):
    """Serialize a HunkBlockFile, returning the bytes and writing them to fname if given."""
    data = HunkWriter().write_blocks(block_file.blocks).getvalue()
    if fname is not None:
        with open(fname, 'wb') as ofile:
            ofile.write(data)
        log(INFO, "wrote %d blocks (%d bytes) to %s", len(block_file.blocks), len(data), fname)
    return data
