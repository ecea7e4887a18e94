#
# host.py - part of amihunk, a loader for AmigaOS Hunk executables, object files and ROMs
#           The interfaces to the program database the loader writes into, and an in-memory
#           implementation of them
#


from abc import ABC, abstractmethod
from bisect import insort
from logging import log, DEBUG
from struct import unpack
from recordclass import recordclass

from .errors import HostError, MemoryAccessError



DataType      = recordclass('DataType', ('name', 'size'))
FunctionParam = recordclass('FunctionParam', ('name', 'type', 'register'))
Function      = recordclass('Function', ('address', 'name', 'params'))
Label         = recordclass('Label', ('address', 'name', 'origin'))


# origin of a label
IMPORTED     = 'imported'
USER_DEFINED = 'user-defined'
ANALYSIS     = 'analysis'



class MemoryBuilder(ABC):
    @abstractmethod
    def create_block(self, name, address, data=None, size=None, read=True, write=False, execute=False, initialized=True):
        pass

    @abstractmethod
    def get_block(self, name):
        pass

    @abstractmethod
    def set_bytes(self, address, data):
        pass

    @abstractmethod
    def read_bytes(self, address, size):
        pass

    def read_byte(self, address):
        return self.read_bytes(address, 1)[0]

    def read_short(self, address):
        return unpack('>H', self.read_bytes(address, 2))[0]

    def read_int(self, address):
        return unpack('>L', self.read_bytes(address, 4))[0]

    @abstractmethod
    def contains(self, address):
        pass

    @abstractmethod
    def find(self, start, pattern):
        """Address of the first occurrence of pattern at or after start, or None."""
        pass

    @abstractmethod
    def join(self, first, second):
        pass

    @abstractmethod
    def convert_to_initialized(self, block, fill=0):
        pass


class SymbolSink(ABC):
    @abstractmethod
    def create_label(self, address, name, origin=IMPORTED):
        pass

    @abstractmethod
    def lookup_global(self, name):
        """Address of the global symbol name or None."""
        pass


class FunctionSink(ABC):
    @abstractmethod
    def declare_function(self, address, name, params=()):
        pass

    @abstractmethod
    def add_entry_point(self, address):
        pass


class DataSink(ABC):
    @abstractmethod
    def create_data(self, address, data_type):
        pass

    @abstractmethod
    def add_reference(self, from_addr, to_addr):
        pass


class TypeCatalog(ABC):
    @abstractmethod
    def get(self, name):
        """The named data type or None if the catalog doesn't know it."""
        pass

    def pointer(self, name):
        target = self.get(name)
        return DataType(f"{target.name} *" if target is not None else 'void *', 4)


class Prompt(ABC):
    @abstractmethod
    def ask_yes_no(self, question):
        pass

    @abstractmethod
    def pick_file(self, title, extensions):
        pass



class MemoryBlock(object):
    def __init__(self, name, start, size, data=None, read=True, write=False, execute=False):
        self.name    = name
        self.start   = start
        self.size    = size
        self.data    = data
        self.read    = read
        self.write   = write
        self.execute = execute

    def __repr__(self):
        return "MemoryBlock(%s, 0x%08x-0x%08x, %s%s%s%s)" % (
            self.name, self.start, self.end, 'r' if self.read else '-', 'w' if self.write else '-',
            'x' if self.execute else '-', '' if self.initialized else ', uninitialized')

    def __lt__(self, other):
        return self.start < other.start

    @property
    def end(self):
        return self.start + self.size

    @property
    def initialized(self):
        return self.data is not None

    def contains(self, address):
        return self.start <= address < self.end



class MemoryProgram(MemoryBuilder, SymbolSink, FunctionSink, DataSink):
    """A simple program database kept in memory, used by the command line tools and the tests."""

    def __init__(self):
        self.blocks       = []
        self.labels       = {}
        self.globals      = {}
        self.functions    = {}
        self.entry_points = []
        self.data         = {}
        self.references   = []


    # memory
    def create_block(self, name, address, data=None, size=None, read=True, write=False, execute=False, initialized=True):
        if size is None:
            size = len(data)
        if size <= 0:
            raise MemoryAccessError(f"block {name} has invalid size {size}")
        for block in self.blocks:
            if address < block.end and block.start < address + size:
                raise MemoryAccessError(f"block {name} at 0x{address:08x} overlaps {block}")

        content = None
        if data is not None:
            content = bytearray(data) + bytearray(max(0, size - len(data)))
        elif initialized:
            content = bytearray(size)
        block = MemoryBlock(name, address, size, content, read, write, execute)
        insort(self.blocks, block)
        log(DEBUG, "created %s", block)
        return block


    def get_block(self, name):
        for block in self.blocks:
            if block.name == name:
                return block
        return None


    def _block_at(self, address, size):
        for block in self.blocks:
            if block.contains(address):
                if address + size > block.end:
                    raise MemoryAccessError(f"access of {size} bytes at 0x{address:08x} crosses end of {block}")
                if not block.initialized:
                    raise MemoryAccessError(f"access at 0x{address:08x} to uninitialized {block}")
                return block
        raise MemoryAccessError(f"no memory at 0x{address:08x}")


    def set_bytes(self, address, data):
        block = self._block_at(address, len(data))
        pos = address - block.start
        block.data[pos:pos + len(data)] = data


    def read_bytes(self, address, size):
        block = self._block_at(address, size)
        pos = address - block.start
        return bytes(block.data[pos:pos + size])


    def contains(self, address):
        return any(block.contains(address) for block in self.blocks)


    def find(self, start, pattern):
        for block in self.blocks:
            if not block.initialized or block.end <= start:
                continue
            pos = block.data.find(pattern, max(0, start - block.start))
            if pos != -1:
                return block.start + pos
        return None


    def join(self, first, second):
        if first.end != second.start:
            raise MemoryAccessError(f"can't join {first} and {second}, they are not adjacent")
        if first.initialized != second.initialized:
            raise MemoryAccessError(f"can't join {first} and {second}, only one of them is initialized")
        if first.initialized:
            first.data += second.data
        first.size += second.size
        self.blocks.remove(second)
        return first


    def convert_to_initialized(self, block, fill=0):
        if not block.initialized:
            block.data = bytearray([fill]) * block.size
        return block


    # symbols
    def create_label(self, address, name, origin=IMPORTED):
        if name in self.globals:
            # names are unique, a second definition doesn't change anything
            return self.globals[name]
        self.globals[name] = address
        self.labels.setdefault(address, []).append(Label(address, name, origin))
        return address


    def lookup_global(self, name):
        return self.globals.get(name)


    def get_labels(self, address):
        return [label.name for label in self.labels.get(address, [])]


    # functions
    def declare_function(self, address, name, params=()):
        self.functions[address] = Function(address, name, list(params))
        self.create_label(address, name, IMPORTED)


    def add_entry_point(self, address):
        if address not in self.entry_points:
            self.entry_points.append(address)


    # data
    def create_data(self, address, data_type):
        self.data[address] = data_type


    def add_reference(self, from_addr, to_addr):
        self.references.append((from_addr, to_addr))



# a few structures from the NDK, enough to annotate what the loader finds
NDK_TYPES = (
    DataType('byte', 1),
    DataType('word', 2),
    DataType('dword', 4),
    DataType('pointer', 4),
    DataType('Resident', 26),
    DataType('InitTable', 16),
    DataType('Library', 34),
    DataType('ExecBase', 632),
    DataType('Custom', 0x200),
)


class DictTypeCatalog(TypeCatalog):
    def __init__(self, types=NDK_TYPES):
        self._types = {dtype.name: dtype for dtype in types}

    def get(self, name):
        return self._types.get(name)


class ConsolePrompt(Prompt):
    """Asks on the terminal."""

    def ask_yes_no(self, question):
        return input(f"{question} [y/N] ").strip().lower() in ('y', 'yes')

    def pick_file(self, title, extensions):
        path = input(f"{title} ({', '.join('*.' + ext for ext in extensions)}): ").strip()
        return path or None


def host_call(operation, address, func, *args, **kwargs):
    """Call into the host and report any failure as HostError."""
    try:
        return func(*args, **kwargs)
    except Exception as ex:
        raise HostError(operation, address, ex) from ex
