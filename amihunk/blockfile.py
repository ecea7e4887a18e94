#
# blockfile.py - part of amihunk, a loader for AmigaOS Hunk executables, object files and ROMs
#                The sequence of blocks a Hunk file consists of
#


from logging import log, INFO

from .blocks import BlockParser
from .constants import BlockType, FileType, HUNK_TYPE_MASK
from .errors import HunkParseError, ErrorKind
from .reader import ByteReader



FILE_TYPE_BY_BLOCK = {
    BlockType.HUNK_HEADER: FileType.TYPE_LOADSEG,
    BlockType.HUNK_UNIT:   FileType.TYPE_UNIT,
    BlockType.HUNK_LIB:    FileType.TYPE_LIB,
}


def peek_type(reader):
    """Determine the type of file by looking at the first block without consuming it."""
    if not isinstance(reader, ByteReader):
        reader = ByteReader(reader)
    if reader.remaining() < 4:
        return FileType.TYPE_UNKNOWN
    return FILE_TYPE_BY_BLOCK.get(reader.peek_word() & HUNK_TYPE_MASK, FileType.TYPE_UNKNOWN)


def is_hunk_block_file(reader):
    return peek_type(reader) != FileType.TYPE_UNKNOWN



class HunkBlockFile(object):
    """The ordered list of blocks found in a Hunk file."""

    def __init__(self, blocks=None, file_type=FileType.TYPE_UNKNOWN):
        self.blocks    = [] if blocks is None else blocks
        self.file_type = file_type


    @classmethod
    def from_reader(cls, reader, is_exe=None):
        if not isinstance(reader, ByteReader):
            reader = ByteReader(reader)
        file_type = peek_type(reader)
        if is_exe is None:
            is_exe = file_type == FileType.TYPE_LOADSEG
        bf = cls(file_type=file_type)
        bf.read(reader, is_exe)
        return bf


    def read(self, reader, is_exe=False):
        parser = BlockParser(reader, is_exe)
        while not reader.at_end():
            if reader.remaining() < 4:
                raise HunkParseError(f"block tag at offset {reader.tell()} too short", ErrorKind.UNEXPECTED_EOF)
            self.blocks.append(parser.read_block())
        log(INFO, "read %d blocks, file type is %s", len(self.blocks), self.file_type.name)


    @property
    def is_exe(self):
        return self.file_type == FileType.TYPE_LOADSEG


    def get_block_type_names(self):
        return [block.kind.name for block in self.blocks]


