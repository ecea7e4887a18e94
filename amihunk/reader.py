#
# reader.py - part of amihunk, a loader for AmigaOS Hunk executables, object files and ROMs
#             Byte providers for the input and a big-endian cursor over them
#


import io
from abc import ABC, abstractmethod
from struct import unpack

from .constants import EXT_NAME_MASK
from .errors import HunkParseError, ErrorKind



class ByteProvider(ABC):
    """Random access to the bytes of an input. The loader never opens files itself."""

    @abstractmethod
    def length(self):
        pass

    @abstractmethod
    def read_range(self, offset, size):
        pass

    def read_byte(self, offset):
        return self.read_range(offset, 1)[0]

    def input_stream(self, offset=0):
        return io.BytesIO(self.read_range(offset, self.length() - offset))


class BytesProvider(ByteProvider):
    def __init__(self, data):
        self._data = bytes(data)

    def length(self):
        return len(self._data)

    def read_range(self, offset, size):
        if offset < 0 or size < 0 or offset + size > len(self._data):
            raise HunkParseError(f"read of {size} bytes at offset {offset} exceeds input of {len(self._data)} bytes",
                                 ErrorKind.UNEXPECTED_EOF)
        return self._data[offset:offset + size]


class FileProvider(BytesProvider):
    def __init__(self, fname):
        with open(fname, 'rb') as fobj:
            super(FileProvider, self).__init__(fobj.read())
        self.fname = fname



class ByteReader(object):
    """Big-endian cursor over a byte provider (or a bytes-like object)."""

    def __init__(self, provider, offset=0, end=None):
        if not isinstance(provider, ByteProvider):
            provider = BytesProvider(provider)
        self._provider = provider
        self._pos      = offset
        self._end      = provider.length() if end is None else end


    def tell(self):
        return self._pos


    def seek(self, pos):
        self._pos = pos


    def skip(self, nbytes):
        self._check(nbytes)
        self._pos += nbytes


    def remaining(self):
        return self._end - self._pos


    def at_end(self):
        return self._pos >= self._end


    def _check(self, nbytes):
        if self._pos + nbytes > self._end:
            raise HunkParseError(f"unexpected end of input at offset {self._pos} (wanted {nbytes} bytes)",
                                 ErrorKind.UNEXPECTED_EOF)


    def read_bytes(self, nbytes):
        self._check(nbytes)
        data = self._provider.read_range(self._pos, nbytes)
        self._pos += nbytes
        return data


    def read_byte(self):
        return self.read_bytes(1)[0]


    def read_short(self):
        return unpack('>H', self.read_bytes(2))[0]


    def read_word(self):
        return unpack('>L', self.read_bytes(4))[0]


    def read_int(self):
        return unpack('>l', self.read_bytes(4))[0]


    def peek_word(self):
        pos  = self._pos
        word = self.read_word()
        self._pos = pos
        return word


    def read_string(self, nchars):
        # names are padded with NUL bytes to a multiple of four
        data = self.read_bytes(nchars)
        end  = data.find(b'\x00')
        if end != -1:
            data = data[:end]
        return data.decode('latin-1')


    def read_name(self):
        nwords = self.read_word()
        if nwords == 0:
            return ''
        return self.read_name_size(nwords)


    def read_name_size(self, type_len):
        # the upper byte is used as symbol type in HUNK_EXT blocks
        return self.read_string((type_len & EXT_NAME_MASK) * 4)
