#
# amihunk - a loader for AmigaOS Hunk executables, object files and ROMs
#


from .constants import BlockType, ExtType, FileType, SegmentType, RefType, MemFlags, DEF_IMAGE_BASE
from .errors import (ErrorKind, Diagnostic, HunkError, HunkParseError, RelocationError, HostError, MemoryAccessError,
                     InitDataError, FdParseError, ConfigError)
from .reader import ByteProvider, BytesProvider, FileProvider, ByteReader
from .blocks import BlockParser
from .blockfile import HunkBlockFile, peek_type, is_hunk_block_file
from .segments import HunkSegment, assemble_segments
from .image import BinImage, Segment, build_image, load_image
from .relocate import Relocator
from .linker import ExternalLinker, SlotStore
from .host import MemoryProgram, DictTypeCatalog
from .fd import FdFunctionsInLibs, FdLibFunctions, parse_fd, read_fd_file
from .resident import ResidentScanner
from .writer import HunkWriter, write_block_file
from .loader import HunkLoader, find_load_spec, validate_image_base
