#
# loader.py - part of amihunk, a loader for AmigaOS Hunk executables, object files and ROMs
#             Loading executables, object units and Kickstart ROM images into a program
#


from logging import log, DEBUG, INFO, WARN
from recordclass import recordclass

from .blockfile import HunkBlockFile, is_hunk_block_file
from .constants import (FileType, SegmentType, DEF_IMAGE_BASE, IMAGE_BASE_MIN, IMAGE_BASE_MAX, KICKSTART_MAGIC,
                        KICKSTART_END, ROM_SEGMENT_NAME, EXEC_BASE_ADDR, CUSTOM_BASE, CUSTOM_SIZE, STARTUP_SYMBOL,
                        ENTRY_SYMBOL, SLOT_SIZE)
from .errors import ConfigError, HostError, HunkParseError, ErrorKind
from .host import DictTypeCatalog, host_call, IMPORTED
from .image import build_image
from .linker import ExternalLinker
from .reader import ByteProvider, BytesProvider, ByteReader
from .relocate import Relocator
from .resident import ResidentScanner



LoadSpec   = recordclass('LoadSpec', ('kind', 'image_base'))
LoadResult = recordclass('LoadResult', ('file_type', 'image', 'addrs', 'datas', 'linker', 'residents', 'entry', 'diagnostics'))

# kinds of input
LOAD_HUNK      = 'hunk'
LOAD_KICKSTART = 'kickstart'



def validate_image_base(image_base):
    if not IMAGE_BASE_MIN <= image_base < IMAGE_BASE_MAX:
        raise ConfigError(f"image base 0x{image_base:x} outside of 0x{IMAGE_BASE_MIN:x}..0x{IMAGE_BASE_MAX - 1:x}")
    return image_base


def find_load_spec(provider):
    """Decide how to load the input. Returns None if it's neither a Hunk file nor a Kickstart image.

    For Hunk files the image base is 0, meaning the configured base is used. Kickstart images end
    at 0x1000000, so their base follows from their length.
    """
    if not isinstance(provider, ByteProvider):
        provider = BytesProvider(provider)
    if is_hunk_block_file(ByteReader(provider)):
        return LoadSpec(LOAD_HUNK, 0)
    length = provider.length()
    if 2 <= length <= KICKSTART_END and provider.read_range(0, 2) == KICKSTART_MAGIC:
        return LoadSpec(LOAD_KICKSTART, KICKSTART_END - length)
    return None



class HunkLoader(object):
    """Loads an input into a program (see host.MemoryProgram for what a program has to provide)."""

    def __init__(self, program, types=None, image_base=DEF_IMAGE_BASE, fd_libs=None, resolver=None):
        self.program    = program
        self.types      = types if types is not None else DictTypeCatalog()
        self.image_base = validate_image_base(image_base)
        self.fd_libs    = fd_libs
        self.resolver   = resolver


    def _host(self, operation, address, func, *args, **kwargs):
        """Call into the host, logging failures instead of aborting the load."""
        try:
            return host_call(operation, address, func, *args, **kwargs)
        except HostError as ex:
            log(WARN, "%s", ex)
            return None


    def load(self, provider):
        if not isinstance(provider, ByteProvider):
            provider = BytesProvider(provider)
        spec = find_load_spec(provider)
        if spec is None:
            raise HunkParseError("input is neither a Hunk file nor a Kickstart image", ErrorKind.UNKNOWN_BLOCK)

        if spec.kind == LOAD_KICKSTART:
            return self.load_kickstart(provider, spec.image_base)

        block_file = HunkBlockFile.from_reader(ByteReader(provider))
        if block_file.file_type == FileType.TYPE_LIB:
            log(INFO, "library file with %d blocks, nothing to load", len(block_file.blocks))
            return LoadResult(block_file.file_type, None, [], [], None, [], None, [])
        return self.load_executable(block_file)


    def load_executable(self, block_file):
        log(INFO, "loading %s at 0x%08x", block_file.file_type.name, self.image_base)
        image = build_image(block_file)
        relocator = Relocator(image)
        addrs = relocator.get_seq_addrs(self.image_base)
        datas = relocator.relocate(addrs)
        last_sect_end = max([addr + seg.size for addr, seg in zip(addrs, image.segments)] + [self.image_base])

        for seg in image.segments:
            self._create_segment(seg, addrs[seg.id], datas[seg.id])

        log(INFO, "resolving external symbols...")
        linker = ExternalLinker(self.program, self.image_base, last_sect_end)
        self._reserve_slots(linker.defs)
        self._reserve_slots(linker.refs)
        linker.link(image, addrs, datas)
        for seg in image.segments:
            if seg.references:
                self._write_back(seg, addrs[seg.id], datas[seg.id])
        self._materialize(linker.defs)
        self._materialize(linker.refs)
        for addr in linker.entry_points:
            self._set_function(addr, STARTUP_SYMBOL)

        self._create_exec_segment()
        self._create_custom_segment()
        residents, notes = self._scan_residents(addrs[0]) if addrs else ([], [])

        entry = None
        if image.is_exe and addrs:
            entry = addrs[0]
            self._set_function(entry, ENTRY_SYMBOL)

        for seg in image.segments:
            for symbol in seg.symbols:
                addr = addrs[seg.id] + symbol.offset
                self._host('create_label', addr, self.program.create_label, addr, symbol.name, IMPORTED)

        return LoadResult(image.file_type, image, addrs, datas, linker, residents, entry, linker.diagnostics + notes)


    def load_kickstart(self, provider, image_base):
        log(INFO, "loading Kickstart image with %d bytes at 0x%08x", provider.length(), image_base)
        data = provider.read_range(0, provider.length())
        self._host('create_block', image_base, self.program.create_block, ROM_SEGMENT_NAME, image_base,
                   data=data, read=True, write=False, execute=True)
        self._create_custom_segment()

        entry = image_base + 2
        residents, notes = self._scan_residents(entry)
        self._set_function(entry, ENTRY_SYMBOL)
        return LoadResult(FileType.TYPE_UNKNOWN, None, [image_base], [data], None, residents, entry, notes)


    def _create_segment(self, seg, addr, data):
        if seg.size == 0:
            log(DEBUG, "skipping empty hunk #%d", seg.id)
            return
        name = seg.name or "%s_%d" % (seg.type.name[13:], seg.id)
        if seg.type == SegmentType.SEGMENT_TYPE_BSS:
            self._host('create_block', addr, self.program.create_block, name, addr, size=seg.size,
                       read=True, write=True, execute=False, initialized=False)
        else:
            self._host('create_block', addr, self.program.create_block, name, addr, data=data,
                       read=True, write=seg.type == SegmentType.SEGMENT_TYPE_DATA,
                       execute=seg.type == SegmentType.SEGMENT_TYPE_CODE)


    def _write_back(self, seg, addr, data):
        if seg.type == SegmentType.SEGMENT_TYPE_BSS:
            log(WARN, "hunk #%d is a BSS hunk, can't patch references to external symbols in it", seg.id)
            return
        self._host('set_bytes', addr, self.program.set_bytes, addr, bytes(data))


    def _reserve_slots(self, store):
        # slots created by an earlier load into the same program keep their addresses
        block = self._host('get_block', store.base, self.program.get_block, store.name)
        if block is not None:
            store.base = block.start
            store.reserve(block.size // SLOT_SIZE)


    def _materialize(self, store):
        """Create or extend the memory block backing a DEFS / REFS region."""
        if not any(slot.name is not None for slot in store.slots):
            return
        block = self._host('get_block', store.base, self.program.get_block, store.name)
        if block is None:
            if store.initialized:
                block = self._host('create_block', store.base, self.program.create_block, store.name, store.base,
                                   data=store.content(), read=True, write=True)
            else:
                block = self._host('create_block', store.base, self.program.create_block, store.name, store.base,
                                   size=store.size, read=True, write=True, initialized=False)
        elif store.size > block.size:
            tail = self._host('create_block', block.end, self.program.create_block, store.name + '.exp', block.end,
                              size=store.size - block.size, read=True, write=True, initialized=False)
            if tail is None:
                return
            if store.initialized:
                tail = self._host('convert_to_initialized', tail.start, self.program.convert_to_initialized, tail, 0)
            block = self._host('join', block.start, self.program.join, block, tail)
        if block is None:
            return

        log(INFO, "%s region at 0x%08x with %d slots", store.name, store.base, len(store))
        content = store.content()
        for index, slot in enumerate(store.slots):
            if slot.name is None:
                continue
            addr = store.address_of(index)
            if store.initialized:
                self._host('set_bytes', addr, self.program.set_bytes, addr, content[index * SLOT_SIZE:(index + 1) * SLOT_SIZE])
            self._host('create_data', addr, self.program.create_data, addr, self.types.get('dword'))


    def _create_exec_segment(self):
        if self.program.get_block('EXEC') is not None:
            return
        self._host('create_block', EXEC_BASE_ADDR, self.program.create_block, 'EXEC', EXEC_BASE_ADDR, size=4,
                   read=True, write=False, initialized=False)
        self._host('create_data', EXEC_BASE_ADDR, self.program.create_data, EXEC_BASE_ADDR, self.types.pointer('ExecBase'))


    def _create_custom_segment(self):
        if self.program.get_block('Custom') is not None:
            return
        log(INFO, "creating custom chips memory block")
        self._host('create_block', CUSTOM_BASE, self.program.create_block, 'Custom', CUSTOM_BASE, size=CUSTOM_SIZE,
                   read=True, write=True, initialized=False)
        self._host('create_data', CUSTOM_BASE, self.program.create_data, CUSTOM_BASE, self.types.get('Custom'))
        self._host('create_label', CUSTOM_BASE, self.program.create_label, CUSTOM_BASE, 'Custom', IMPORTED)


    def _scan_residents(self, start):
        scanner = ResidentScanner(self.program, self.types, self.fd_libs, self.resolver)
        try:
            modules = scanner.scan(start)
        except HostError as ex:
            log(WARN, "scanning for resident modules stopped: %s", ex)
            modules = []
        return modules, scanner.diagnostics


    def _set_function(self, addr, name):
        self._host('declare_function', addr, self.program.declare_function, addr, name, ())
        self._host('add_entry_point', addr, self.program.add_entry_point, addr)
