#
# relocate.py - part of amihunk, a loader for AmigaOS Hunk executables, object files and ROMs
#               Assigning load addresses to the segments of a BinImage and applying the relocations
#


from logging import log, DEBUG
from struct import pack_into, unpack_from

from .constants import BlockType
from .errors import RelocationError, ErrorKind
from .image import BRANCH26_MASK



UNSIGNED_FORMATS = {1: '>B', 2: '>H', 4: '>L'}


def write_value(data, offset, value, width):
    """Write the lower width bytes of value big-endian at offset."""
    pack_into(UNSIGNED_FORMATS[width], data, offset, value & ((1 << (8 * width)) - 1))


def join_datas(datas, padding=0):
    """Concatenate segment buffers, each followed by padding zero bytes."""
    blob = bytearray()
    for data in datas:
        blob += data + bytes(padding)
    return blob



class Relocator(object):
    """Relocate a BinImage to given addresses."""

    def __init__(self, image):
        self.image = image


    def get_sizes(self):
        return [seg.size for seg in self.image.segments]


    def get_total_size(self, padding=0):
        return sum(size + padding for size in self.get_sizes())


    def get_seq_addrs(self, base_addr, padding=0):
        """Addresses for segments laid out one after the other, starting at base_addr."""
        addrs = []
        addr  = base_addr
        for size in self.get_sizes():
            addrs.append(addr)
            addr += size + padding
        return addrs


    def relocate(self, addrs):
        """Apply the relocations and return one patched buffer per segment."""
        segs = self.image.segments
        if len(segs) != len(addrs):
            raise ValueError(f"got {len(addrs)} addresses for {len(segs)} segments")

        datas = []
        for seg in segs:
            data = bytearray(seg.size)
            if seg.data is not None:
                data[0:len(seg.data)] = seg.data
            self._reloc_data(data, seg, addrs)
            datas.append(data)
        return datas


    def relocate_one_block(self, base_addr, padding=0):
        """Relocate all segments into one contiguous buffer starting at base_addr."""
        return join_datas(self.relocate(self.get_seq_addrs(base_addr, padding)), padding)


    def _reloc_data(self, data, seg, addrs):
        for to_id in seg.get_reloc_targets():
            if to_id < 0 or to_id >= len(addrs):
                raise RelocationError(f"hunk #{seg.id} contains relocations referencing unknown hunk #{to_id}",
                                      ErrorKind.UNKNOWN_TARGET_SEGMENT)
        # applied in the order of their blocks
        relocs = seg.get_relocs()
        for reloc in relocs:
            self._reloc(data, seg, reloc, addrs)
        if relocs:
            log(DEBUG, "applied %d relocations to hunk #%d at 0x%08x", len(relocs), seg.id, addrs[seg.id])


    @staticmethod
    def _reloc(data, seg, reloc, addrs):
        """Relocate one entry."""
        if reloc.offset + reloc.width > seg.size:
            raise RelocationError(f"relocation at offset 0x{reloc.offset:x} (width {reloc.width}) outside of hunk #{seg.id} "
                                  f"with {seg.size} bytes")

        value = addrs[reloc.target] + reloc.addend
        if reloc.pc_relative:
            value -= addrs[seg.id] + reloc.offset

        if reloc.kind == BlockType.HUNK_RELRELOC26:
            # only the branch displacement field of the instruction is replaced
            insn = unpack_from('>L', data, reloc.offset)[0]
            value = (insn & ~BRANCH26_MASK) | (value & BRANCH26_MASK)
        write_value(data, reloc.offset, value, reloc.width)
