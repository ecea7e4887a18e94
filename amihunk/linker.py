#
# linker.py - part of amihunk, a loader for AmigaOS Hunk executables, object files and ROMs
#             Resolution of the external symbols defined and referenced by the segments of an image
#


from logging import log, DEBUG, INFO, WARN
from recordclass import recordclass

from .constants import RefType, DEFS_SEGMENT_NAME, REFS_SEGMENT_NAME, DEFS_IMAGE_BASE_OFFSET, SLOT_SIZE, STARTUP_SYMBOL
from .errors import Diagnostic, HostError, RelocationError, ErrorKind
from .host import host_call, IMPORTED, USER_DEFINED
from .relocate import write_value



Slot = recordclass('Slot', ('name', 'value'))



class SlotStore(object):
    """Append-only region of long words, one per symbol. Existing slots never move."""

    def __init__(self, name, base, initialized):
        self.name        = name
        self.base        = base
        self.initialized = initialized
        self.slots       = []
        self._index      = {}


    def __len__(self):
        return len(self.slots)


    @property
    def size(self):
        return len(self.slots) * SLOT_SIZE


    @property
    def end(self):
        return self.base + self.size


    def address_of(self, index):
        return self.base + index * SLOT_SIZE


    def lookup(self, name):
        if name in self._index:
            return self.address_of(self._index[name])
        return None


    def add(self, name, value=None):
        if name in self._index:
            return self.address_of(self._index[name])
        self._index[name] = len(self.slots)
        self.slots.append(Slot(name, value))
        return self.address_of(self._index[name])


    def reserve(self, nslots):
        """Skip slots already allocated by an earlier load into the same program."""
        for i in range(0, nslots):
            self.slots.append(Slot(None, None))


    def content(self):
        """The initial content of the region, zero for slots without a value."""
        data = bytearray(self.size)
        for index, slot in enumerate(self.slots):
            write_value(data, index * SLOT_SIZE, slot.value or 0, SLOT_SIZE)
        return data



class ExternalLinker(object):
    """Binds the external definitions to addresses and patches the external references.

    Definitions with an absolute value get a slot in the DEFS region holding the value, references
    to names that are not known get a slot in the REFS region starting at the end of the image.
    """

    def __init__(self, symbols, image_base, last_sect_end):
        self.symbols       = symbols
        self.last_sect_end = last_sect_end
        self.defs          = SlotStore(DEFS_SEGMENT_NAME, image_base + DEFS_IMAGE_BASE_OFFSET, True)
        self.refs          = SlotStore(REFS_SEGMENT_NAME, last_sect_end, False)
        self.entry_points  = []
        self.diagnostics   = []


    def _label(self, address, name, origin):
        try:
            host_call('create_label', address, self.symbols.create_label, address, name, origin)
        except HostError as ex:
            log(WARN, "can't create label %s: %s", name, ex)


    def _lookup(self, name):
        return host_call('lookup_global', None, self.symbols.lookup_global, name)


    def define_absolute(self, name, value):
        addr = self._lookup(name)
        if addr is not None:
            return addr
        addr = self.defs.lookup(name)
        if addr is not None:
            return addr
        addr = self.defs.add(name, value)
        log(DEBUG, "absolute symbol %s = 0x%08x stored at 0x%08x", name, value, addr)
        self._label(addr, name, USER_DEFINED)
        return addr


    def define(self, name, addr):
        known = self._lookup(name)
        if known is not None:
            if known != addr:
                log(DEBUG, "symbol %s already defined at 0x%08x, ignoring definition at 0x%08x", name, known, addr)
            return known
        self._label(addr, name, USER_DEFINED)
        return addr


    def resolve_or_mint(self, name):
        addr = self._lookup(name)
        if addr is not None:
            return addr
        addr = self.refs.lookup(name)
        if addr is not None:
            return addr
        addr = self.refs.add(name)
        self.diagnostics.append(Diagnostic(ErrorKind.UNRESOLVED_EXTERNAL, name, addr))
        log(INFO, "unresolved external symbol %s, placeholder at 0x%08x", name, addr)
        self._label(addr, name, IMPORTED)
        return addr


    def link(self, image, addrs, datas):
        """Process the definitions and then the references of each segment, patching datas in place.

        A reference to a name that only a later segment defines gets a REFS slot, and the later
        definition reuses it.
        """
        for seg in image.segments:
            for xdef in seg.definitions:
                if xdef.absolute:
                    self.define_absolute(xdef.name, xdef.offset)
                    continue
                addr = self.define(xdef.name, addrs[seg.id] + xdef.offset)
                if xdef.name == STARTUP_SYMBOL and addr not in self.entry_points:
                    self.entry_points.append(addr)

            for xref in seg.references:
                target = self.resolve_or_mint(xref.name)
                for offset in xref.offsets:
                    self._patch(seg, datas[seg.id], addrs[seg.id], offset, xref, target)
        return datas


    def _patch(self, seg, data, seg_addr, offset, xref, target):
        if offset + xref.width > len(data):
            raise RelocationError(f"reference to {xref.name} at offset 0x{offset:x} outside of hunk #{seg.id}",
                                  ErrorKind.RELOC_OUT_OF_BOUNDS)
        from_addr = seg_addr + offset
        if xref.type == RefType.R_ABS:
            value = target
        elif xref.type == RefType.R_SD:
            value = target - self.last_sect_end
        else:
            value = target - from_addr
        log(DEBUG, "patching %s reference to %s at 0x%08x with 0x%08x", xref.type.name, xref.name, from_addr, value & 0xffffffff)
        write_value(data, offset, value, xref.width)
