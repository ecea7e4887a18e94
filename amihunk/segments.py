#
# segments.py - part of amihunk, a loader for AmigaOS Hunk executables, object files and ROMs
#               Grouping of the blocks of a Hunk file into segments
#


from logging import log, DEBUG, INFO

from . import debug
from .constants import BlockType, SEGMENT_BEGIN_BLOCKS, RELOC_WIDTH_BY_BLOCK, PASSIVE_BLOCKS
from .errors import HunkParseError, ErrorKind



class HunkSegment(object):
    """A segment block (code, data or BSS) with the blocks belonging to it."""

    def __init__(self):
        self.seg_blk     = None
        self.name        = ''
        self.symbol_blk  = None
        self.ext_blk     = None
        self.reloc_blks  = []
        self.debug_blks  = []
        self.debug_infos = []
        self.size_longs  = 0
        self.mem_flags   = 0
        self.mem_attr    = None


    def __repr__(self):
        return "[seg=%s,name=%s,symbol=%s,ext=%s,reloc=%s,debug=%d]" % (
            self.seg_blk.kind.name if self.seg_blk is not None else 'n/a',
            self.name,
            'yes' if self.symbol_blk is not None else 'n/a',
            'yes' if self.ext_blk is not None else 'n/a',
            ','.join(blk.kind.name for blk in self.reloc_blks) or 'n/a',
            len(self.debug_blks),
        )


    @property
    def kind(self):
        return self.seg_blk.kind


    def parse(self, blocks):
        for block in blocks:
            if block.kind in SEGMENT_BEGIN_BLOCKS:
                if self.seg_blk is not None:
                    raise HunkParseError("more than one segment block in hunk")
                self.seg_blk    = block
                self.size_longs = block.payload.size_longs
                self.mem_flags  = block.payload.mem_flags

            elif block.kind == BlockType.HUNK_NAME:
                if self.name:
                    raise HunkParseError("duplicate name in hunk")
                self.name = block.payload

            elif block.kind == BlockType.HUNK_SYMBOL:
                if self.symbol_blk is not None:
                    raise HunkParseError("duplicate symbols in hunk", ErrorKind.DUPLICATE_SYMBOLS_IN_HUNK)
                self.symbol_blk = block

            elif block.kind == BlockType.HUNK_EXT:
                if self.ext_blk is not None:
                    raise HunkParseError("duplicate EXT block in hunk", ErrorKind.DUPLICATE_EXT)
                self.ext_blk = block

            elif block.kind == BlockType.HUNK_DEBUG:
                self.debug_blks.append(block)
                self.debug_infos.append(debug.decode(block.payload))

            elif block.kind in RELOC_WIDTH_BY_BLOCK:
                self.reloc_blks.append(block)

            else:
                raise HunkParseError(f"invalid hunk block {block.kind.name} at offset {block.start}")

        if self.seg_blk is None:
            raise HunkParseError("no segment block in hunk")



def split_blocks(blocks):
    """Split the block list into per-segment slices.

    A slice starts with HUNK_CODE, HUNK_DATA or HUNK_BSS and ends before the next one of these,
    at HUNK_END or at the end of the file. A HUNK_NAME preceding the segment block (as found in
    object files) belongs to the following slice.
    """
    slices  = []
    current = None
    pending = []
    for block in blocks:
        if block.kind == BlockType.HUNK_END:
            if current is None:
                log(DEBUG, "HUNK_END at offset %d without segment", block.start)
            current = None

        elif block.kind in SEGMENT_BEGIN_BLOCKS:
            current = pending + [block]
            pending = []
            slices.append(current)

        elif current is not None:
            if block.kind in PASSIVE_BLOCKS:
                raise HunkParseError(f"invalid hunk block {block.kind.name} inside hunk at offset {block.start}")
            current.append(block)

        elif block.kind == BlockType.HUNK_NAME:
            pending.append(block)

        elif block.kind in PASSIVE_BLOCKS:
            log(DEBUG, "skipping block %s at offset %d", block.kind.name, block.start)

        else:
            raise HunkParseError(f"block {block.kind.name} at offset {block.start} outside of a hunk")

    if pending:
        raise HunkParseError("HUNK_NAME without following segment block")
    return slices


def assemble_segments(block_file):
    """Build the list of HunkSegments from a HunkBlockFile."""
    blocks = block_file.blocks
    if not blocks:
        raise HunkParseError("no hunk blocks found")

    header = None
    if block_file.is_exe:
        if blocks[0].kind != BlockType.HUNK_HEADER:
            raise HunkParseError("executable does not start with HUNK_HEADER")
        header = blocks[0].payload

    segments = []
    for blks in split_blocks(blocks):
        seg = HunkSegment()
        seg.parse(blks)
        log(DEBUG, "hunk #%d: %s", len(segments), seg)
        segments.append(seg)

    if header is not None:
        # the sizes in the header are the ones to allocate, the segment blocks may contain less data
        if len(header.hunk_sizes) != len(segments):
            raise HunkParseError(f"can't match {len(segments)} hunks to {len(header.hunk_sizes)} entries in header")
        for seg, size, flags, attr in zip(segments, header.hunk_sizes, header.mem_flags, header.mem_attrs):
            seg.size_longs = max(size, seg.size_longs)
            seg.mem_flags  = seg.mem_flags | flags
            seg.mem_attr   = attr

    log(INFO, "found %d hunks", len(segments))
    return segments
