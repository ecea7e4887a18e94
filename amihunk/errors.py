#
# errors.py - part of amihunk, a loader for AmigaOS Hunk executables, object files and ROMs
#             The exceptions raised while parsing, relocating and annotating an image
#


from enum import IntEnum
from recordclass import recordclass



class ErrorKind(IntEnum):
    UNEXPECTED_EOF            = 1
    UNKNOWN_BLOCK             = 2
    INVALID_HUNK_BLOCK        = 3
    DUPLICATE_SYMBOLS_IN_HUNK = 4
    DUPLICATE_EXT             = 5
    RELOC_OUT_OF_BOUNDS       = 6
    UNKNOWN_TARGET_SEGMENT    = 7
    UNRESOLVED_EXTERNAL       = 8
    DESCRIPTOR_MISSING        = 9
    HOST_FAILURE              = 10


# conditions that are reported, not raised
Diagnostic = recordclass('Diagnostic', ('kind', 'subject', 'address'))


class HunkError(Exception):
    def __init__(self, message, kind=None):
        super(HunkError, self).__init__(message)
        self.kind = kind


class HunkParseError(HunkError):
    def __init__(self, message, kind=ErrorKind.INVALID_HUNK_BLOCK):
        super(HunkParseError, self).__init__(message, kind)


class RelocationError(HunkError):
    def __init__(self, message, kind=ErrorKind.RELOC_OUT_OF_BOUNDS):
        super(RelocationError, self).__init__(message, kind)


class HostError(HunkError):
    """A host collaborator (memory, symbols, functions) reported a failure."""

    def __init__(self, operation, address, inner):
        if address is None:
            message = f"{operation} failed: {inner}"
        else:
            message = f"{operation} at 0x{address:08x} failed: {inner}"
        super(HostError, self).__init__(message, ErrorKind.HOST_FAILURE)
        self.operation = operation
        self.address   = address
        self.inner     = inner


class MemoryAccessError(HunkError):
    def __init__(self, message):
        super(MemoryAccessError, self).__init__(message)


class InitDataError(HunkError):
    def __init__(self, message):
        super(InitDataError, self).__init__(message)


class FdParseError(HunkError):
    def __init__(self, message):
        super(FdParseError, self).__init__(message)


class ConfigError(HunkError):
    def __init__(self, message):
        super(ConfigError, self).__init__(message)
