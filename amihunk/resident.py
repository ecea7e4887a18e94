#
# resident.py - part of amihunk, a loader for AmigaOS Hunk executables, object files and ROMs
#               Scanning memory for resident modules (struct Resident) and decoding their
#               auto-init tables and library function tables
#


from logging import log, DEBUG, INFO, WARN
from struct import pack, unpack
from ctypes import BigEndianStructure, c_uint, sizeof
from recordclass import recordclass

from .constants import RTC_MATCHWORD, RTF_AUTOINIT, RESIDENT_SIZE, LIB_VECTOR_NAMES
from .errors import Diagnostic, ErrorKind, HostError, HunkError, InitDataError, FdParseError
from .fd import FdFunctionsInLibs
from .host import DataType, FunctionParam, host_call, ANALYSIS



ResidentModule = recordclass('ResidentModule', ('match_addr', 'flags', 'version', 'type', 'pri', 'name', 'id_string',
                                                'init_ptr', 'init_table_ptr', 'data_init_ptr', 'func_table_ptr',
                                                'init_func_ptr', 'functions', 'init_data'))
LibFunction    = recordclass('LibFunction', ('index', 'address', 'name', 'params'))
InitDataRecord = recordclass('InitDataRecord', ('address', 'dest', 'width', 'count', 'offset', 'values', 'length'))


# rt_MatchWord, rt_MatchTag, rt_EndSkip, rt_Flags, rt_Version, rt_Type, rt_Pri, rt_Name, rt_IdString, rt_Init
RESIDENT_FORMAT = '>HLLBBBbLLL'
MATCHWORD_BYTES = pack('>H', RTC_MATCHWORD)
MAX_NAME_LEN    = 256

# destination of the data of an InitData command
INIT_DEST_NEXT     = 0
INIT_DEST_REPEAT   = 1
INIT_DEST_OFFSET8  = 2
INIT_DEST_OFFSET24 = 3
INIT_WIDTHS = (4, 2, 1)


class InitTable(BigEndianStructure):
    _fields_ = [
        ('it_DataSize', c_uint),
        ('it_FuncTable', c_uint),
        ('it_DataInit', c_uint),
        ('it_InitFunc', c_uint),
    ]



def read_init_data(read_byte, addr):
    """Decode one InitData command (as used by exec's InitStruct()) at addr.

    read_byte is a function returning the byte at a given address. Raises InitDataError at the
    terminating zero command or at a command with an invalid size.
    """
    cmd = read_byte(addr)
    if cmd == 0:
        raise InitDataError(f"end of InitData at 0x{addr:08x}")
    dest  = (cmd >> 6) & 3
    size  = (cmd >> 4) & 3
    count = (cmd & 0x0f) + 1
    if size == 3:
        raise InitDataError(f"invalid InitData command 0x{cmd:02x} at 0x{addr:08x}")
    width = INIT_WIDTHS[size]

    pos = addr + 1
    offset = None
    if dest == INIT_DEST_OFFSET8:
        offset = read_byte(pos)
        pos += 1
    elif dest == INIT_DEST_OFFSET24:
        offset = (read_byte(pos) << 16) | (read_byte(pos + 1) << 8) | read_byte(pos + 2)
        pos += 3
    if width > 1 and pos & 1:
        pos += 1

    values = []
    for i in range(0, 1 if dest == INIT_DEST_REPEAT else count):
        value = 0
        for j in range(0, width):
            value = (value << 8) | read_byte(pos + j)
        values.append(value)
        pos += width

    # commands start at even addresses
    length = pos - addr + (pos & 1)
    return InitDataRecord(addr, dest, width, count, offset, values, length)



class ResidentScanner(object):
    """Finds resident modules in the memory of a program and annotates them.

    program must implement MemoryBuilder, SymbolSink, FunctionSink and DataSink.
    """

    def __init__(self, program, types, fd_libs=None, resolver=None):
        self.program  = program
        self.types    = types
        self.fd_libs  = fd_libs if fd_libs is not None else FdFunctionsInLibs()
        self.resolver = resolver
        self._asked   = set()
        self.diagnostics = []


    def _type(self, name, size):
        dtype = self.types.get(name) if self.types is not None else None
        return dtype if dtype is not None else DataType(name, size)


    def _read(self, addr, size):
        return host_call('read_bytes', addr, self.program.read_bytes, addr, size)


    def _read_byte(self, addr):
        return self._read(addr, 1)[0]


    def _read_short(self, addr):
        return unpack('>H', self._read(addr, 2))[0]


    def _read_int(self, addr):
        return unpack('>L', self._read(addr, 4))[0]


    def _annotate(self, operation, addr, func, *args):
        try:
            host_call(operation, addr, func, *args)
        except HostError as ex:
            log(WARN, "%s", ex)


    def _read_name(self, addr):
        chars = []
        for i in range(0, MAX_NAME_LEN):
            char = self._read_byte(addr + i)
            if char in (0x00, 0x0d, 0x0a):
                break
            chars.append(char)
        return bytes(chars).decode('latin-1')


    def scan(self, start):
        """Scan the memory from start on for resident modules and return them."""
        modules = []
        cursor  = start
        while True:
            addr = host_call('find', cursor, self.program.find, cursor, MATCHWORD_BYTES)
            if addr is None:
                break

            cursor = addr + 2
            try:
                match_tag = self._read_int(addr + 2)
            except HostError:
                continue
            if match_tag != addr:
                # RTC_MATCHWORD is just a value in the code or data
                continue

            try:
                modules.append(self.analyze(addr))
            except HunkError as ex:
                log(WARN, "can't decode resident module at 0x%08x: %s", addr, ex)

        log(INFO, "found %d resident modules", len(modules))
        return modules


    def analyze(self, addr):
        (matchword, match_tag, end_skip, flags, version, rtype, pri,
         name_ptr, id_ptr, init) = unpack(RESIDENT_FORMAT, self._read(addr, RESIDENT_SIZE))
        self._annotate('create_data', addr, self.program.create_data, addr, self._type('Resident', RESIDENT_SIZE))
        name = self._read_name(name_ptr)
        id_string = self._read_name(id_ptr) if id_ptr and host_call('contains', id_ptr, self.program.contains, id_ptr) else ''
        log(INFO, "resident module %s at 0x%08x, version %d, flags 0x%02x", name, addr, version, flags)

        module = ResidentModule(addr, flags, version, rtype, pri, name, id_string.strip(), init, None, None, None, None, [], [])
        if flags & RTF_AUTOINIT:
            self._analyze_init_table(module)
        return module


    def _analyze_init_table(self, module):
        addr = module.match_addr
        init = module.init_ptr
        table = InitTable.from_buffer_copy(self._read(init, sizeof(InitTable)))
        self._annotate('create_data', init, self.program.create_data, init, self._type('InitTable', sizeof(InitTable)))
        module.init_table_ptr = init
        module.func_table_ptr = table.it_FuncTable
        module.data_init_ptr  = table.it_DataInit
        module.init_func_ptr  = table.it_InitFunc

        params = [
            FunctionParam('libBase', 'void *', 'A6'),
            FunctionParam('seglist', 'void *', 'A0'),
            FunctionParam('lib', 'BaseLib *', 'D0'),
        ]
        self._declare(table.it_InitFunc, f"it_InitFunc_{addr:06X}", params)

        if table.it_DataInit != 0:
            self._annotate('create_label', table.it_DataInit, self.program.create_label,
                           table.it_DataInit, f"it_DataInit_{addr:06X}", ANALYSIS)
            module.init_data = self._walk_init_data(table.it_DataInit)

        self._annotate('create_label', table.it_FuncTable, self.program.create_label,
                       table.it_FuncTable, f"it_FuncTable_{addr:06X}", ANALYSIS)
        module.functions = self._decode_func_table(module.name, table.it_FuncTable)


    def _declare(self, addr, name, params):
        self._annotate('declare_function', addr, self.program.declare_function, addr, name, params)
        self._annotate('add_entry_point', addr, self.program.add_entry_point, addr)


    def _walk_init_data(self, addr):
        records = []
        while True:
            try:
                record = read_init_data(self._read_byte, addr)
            except (InitDataError, HostError) as ex:
                log(DEBUG, "InitData ends: %s", ex)
                break
            self._annotate('create_data', addr, self.program.create_data, addr, DataType('InitData', record.length))
            records.append(record)
            addr += record.length
        return records


    def _request_descriptors(self, lib_name):
        if lib_name in self._asked or self.resolver is None:
            return None
        self._asked.add(lib_name)
        try:
            lib_funcs = self.resolver.resolve(lib_name)
        except (FdParseError, OSError) as ex:
            log(WARN, "can't read function descriptions for %s: %s", lib_name, ex)
            return None
        if lib_funcs is not None:
            self.fd_libs.add(lib_funcs)
        return lib_funcs


    def _decode_func_table(self, rt_name, table_addr):
        lib_name = rt_name.replace('.', '_')
        fd_funcs = self.fd_libs.get_function_table_by_lib(lib_name)
        # the first word is -1 if the table contains 16 bit displacements instead of addresses
        is_relative = self._read_short(table_addr) == 0xffff

        functions = []
        i = 0
        while True:
            try:
                if is_relative:
                    slot = table_addr + (i + 1) * 2
                    disp = self._read_short(slot)
                    if disp == 0xffff:
                        break
                    if disp & 0x8000:
                        disp -= 0x10000
                    func_addr = table_addr + disp
                else:
                    slot = table_addr + i * 4
                    func_addr = self._read_int(slot)
            except HostError as ex:
                log(DEBUG, "function table of %s ends: %s", rt_name, ex)
                break

            if not host_call('contains', func_addr, self.program.contains, func_addr):
                break

            if fd_funcs is None and i >= len(LIB_VECTOR_NAMES):
                fd_funcs = self._request_descriptors(lib_name)
                if fd_funcs is None and i == len(LIB_VECTOR_NAMES):
                    self.diagnostics.append(Diagnostic(ErrorKind.DESCRIPTOR_MISSING, lib_name, table_addr))
                    log(INFO, "no function descriptions for %s, using generic names", lib_name)

            if is_relative:
                self._annotate('create_data', slot, self.program.create_data, slot, self._type('word', 2))
                self._annotate('add_reference', slot, self.program.add_reference, slot, func_addr)
            else:
                self._annotate('create_data', slot, self.program.create_data, slot, self._type('pointer', 4))

            fd_func = None
            if fd_funcs is not None and i >= len(LIB_VECTOR_NAMES):
                fd_func = fd_funcs.get_function_by_index(i - len(LIB_VECTOR_NAMES))

            if i < len(LIB_VECTOR_NAMES):
                name = LIB_VECTOR_NAMES[i]
            elif fd_func is not None:
                name = fd_func.name
            else:
                name = f"LibFunc_{i - len(LIB_VECTOR_NAMES):03d}"

            params = [FunctionParam('base', 'BaseLib *', 'A6')]
            if fd_func is not None:
                params += [FunctionParam(arg.name, arg.type or 'void *', arg.reg) for arg in fd_func.args]

            log(DEBUG, "library function #%d %s at 0x%08x", i, name, func_addr)
            self._declare(func_addr, name, params)
            functions.append(LibFunction(i, func_addr, name, params))
            i += 1
        return functions
