#
# image.py - part of amihunk, a loader for AmigaOS Hunk executables, object files and ROMs
#            The binary image built from the segments of a Hunk file
#


from logging import log, DEBUG, INFO, WARN
from struct import unpack_from
from recordclass import recordclass

from .blockfile import HunkBlockFile
from .constants import (BlockType, ExtType, FileType, SEGMENT_TYPE_BY_BLOCK, RELOC_WIDTH_BY_BLOCK,
                        PC_RELATIVE_RELOC_BLOCKS, EXT_DEFINITIONS, EXT_REFERENCE_KINDS)
from .segments import assemble_segments



Relocation  = recordclass('Relocation', ('target', 'offset', 'width', 'addend', 'kind', 'pc_relative'))
XDefinition = recordclass('XDefinition', ('name', 'offset', 'absolute', 'ext_type'))
XReference  = recordclass('XReference', ('name', 'type', 'width', 'offsets', 'ext_type', 'common_size'))
Symbol      = recordclass('Symbol', ('name', 'offset'))


SIGNED_FORMATS = {1: '>b', 2: '>h', 4: '>l'}
BRANCH26_MASK  = 0x03fffffc



def read_signed(data, offset, width):
    return unpack_from(SIGNED_FORMATS[width], data, offset)[0]


def read_addend(data, offset, width, kind):
    """Value at the patch site, the part of the final value that does not depend on the load address."""
    if data is None or offset + width > len(data):
        # beyond the stored content the segment is filled with zeros
        return 0
    if kind == BlockType.HUNK_RELRELOC26:
        field = unpack_from('>L', data, offset)[0] & BRANCH26_MASK
        return field - (1 << 26) if field & (1 << 25) else field
    return read_signed(data, offset, width)



class Segment(object):
    """A code, data or BSS segment of a BinImage."""

    def __init__(self, seg_type, size, data=None, name='', mem_flags=0):
        self.id          = None
        self.type        = seg_type
        self.name        = name
        self.size        = size
        self.data        = data
        self.mem_flags   = mem_flags
        self.mem_attr    = None
        self.data_offset = 0
        self.relocs      = {}
        self.reloc_list  = []
        self.definitions = []
        self.references  = []
        self.symbols     = []
        self.debug_infos = []


    def __str__(self):
        relocs = ','.join(f"(#{to_id}:size={len(self.relocs[to_id])})" for to_id in self.get_reloc_targets())
        return "[#%d:%s:%s:size=%d,flags=0x%08x,relocs=%s,defs=%d,refs=%d,symbols=%d,debug=%d]" % (
            self.id, self.type.name[13:], self.name, self.size, self.mem_flags, relocs,
            len(self.definitions), len(self.references), len(self.symbols), len(self.debug_infos))


    def add_reloc(self, reloc):
        self.relocs.setdefault(reloc.target, []).append(reloc)
        self.reloc_list.append(reloc)


    def get_reloc_targets(self):
        return sorted(self.relocs.keys())


    def get_relocs(self, to_id=None):
        """Relocations referencing segment to_id, or all of them in the order of their blocks."""
        if to_id is not None:
            return self.relocs.get(to_id, [])
        return self.reloc_list


    def find_symbol(self, offset):
        for symbol in self.symbols:
            if symbol.offset == offset:
                return symbol.name
        return None



class BinImage(object):
    """All the segments of a program's binary image."""

    def __init__(self, file_type=FileType.TYPE_UNKNOWN):
        self.segments  = []
        self.file_type = file_type


    def __str__(self):
        return "<%s>" % ",".join(map(str, self.segments))


    @property
    def is_exe(self):
        return self.file_type == FileType.TYPE_LOADSEG


    def add_segment(self, seg):
        seg.id = len(self.segments)
        self.segments.append(seg)


    def get_size(self):
        return sum(seg.size for seg in self.segments)



def _add_relocs(seg, reloc_blks):
    # Relocations are applied in the order they appear in the blocks, which is also the order
    # within each target segment.
    for blk in reloc_blks:
        width = RELOC_WIDTH_BY_BLOCK[blk.kind]
        pc_relative = blk.kind in PC_RELATIVE_RELOC_BLOCKS
        for group in blk.payload:
            log(DEBUG, "hunk #%d: %d %s relocations referencing hunk #%d", seg.id, len(group.offsets), blk.kind.name, group.hunk_num)
            for offset in group.offsets:
                addend = read_addend(seg.data, offset, width, blk.kind)
                seg.add_reloc(Relocation(group.hunk_num, offset, width, addend, blk.kind, pc_relative))


def _add_externals(seg, ext_blk):
    for entry in ext_blk.payload:
        if entry.ext_type in EXT_DEFINITIONS:
            seg.definitions.append(XDefinition(entry.name, entry.value, entry.ext_type == ExtType.EXT_ABS, entry.ext_type))
        elif entry.ext_type in EXT_REFERENCE_KINDS:
            rtype, width = EXT_REFERENCE_KINDS[entry.ext_type]
            seg.references.append(XReference(entry.name, rtype, width, list(entry.offsets), entry.ext_type, entry.common_size))
        else:
            log(WARN, "hunk #%d: references of type %s to symbol %s not supported", seg.id, entry.ext_type.name, entry.name)


def build_image(block_file):
    """Create a BinImage from a HunkBlockFile."""
    image = BinImage(block_file.file_type)
    for hseg in assemble_segments(block_file):
        blk  = hseg.seg_blk
        size = hseg.size_longs * 4
        data = None
        if blk.kind != BlockType.HUNK_BSS:
            # pad the content with zeros up to the size of the segment
            data = blk.payload.data + bytes(size - len(blk.payload.data))
        seg = Segment(SEGMENT_TYPE_BY_BLOCK[blk.kind], size, data, hseg.name, hseg.mem_flags)
        seg.mem_attr = hseg.mem_attr
        seg.data_offset = blk.payload.data_offset or 0
        image.add_segment(seg)

        _add_relocs(seg, hseg.reloc_blks)
        if hseg.ext_blk is not None:
            _add_externals(seg, hseg.ext_blk)
        if hseg.symbol_blk is not None:
            seg.symbols = [Symbol(entry.name, entry.value) for entry in hseg.symbol_blk.payload]
        seg.debug_infos = list(hseg.debug_infos)
        log(DEBUG, "segment %s", seg)

    log(INFO, "image with %d segments, %d bytes in total", len(image.segments), image.get_size())
    return image


def load_image(provider):
    """Parse a Hunk file given as ByteProvider (or bytes) and build its BinImage."""
    return build_image(HunkBlockFile.from_reader(provider))
