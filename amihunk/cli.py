#
# cli.py - part of amihunk, a loader for AmigaOS Hunk executables, object files and ROMs
#          Command line interface: load a file into an in-memory program and show what was found
#


import logging
from argparse import ArgumentParser
from logging import log, DEBUG, INFO, ERROR

from .constants import DEF_IMAGE_BASE
from .errors import ErrorKind, HunkError
from .fd import DirectoryDescriptorResolver, PromptDescriptorResolver
from .host import MemoryProgram, ConsolePrompt
from .loader import HunkLoader
from .reader import FileProvider
from .relocate import join_datas



def print_program(program, result):
    print("memory blocks:")
    for block in program.blocks:
        print("  %-12s 0x%08x-0x%08x %s%s%s" % (block.name, block.start, block.end, 'r' if block.read else '-',
                                              'w' if block.write else '-', 'x' if block.execute else '-'))
    if result.residents:
        print("resident modules:")
        for module in result.residents:
            print("  0x%08x %s (version %d, %d functions)" % (module.match_addr, module.name, module.version, len(module.functions)))
            for func in module.functions:
                print("    0x%08x %s" % (func.address, func.name))
    unresolved = [diag for diag in result.diagnostics if diag.kind == ErrorKind.UNRESOLVED_EXTERNAL]
    if unresolved:
        print("unresolved external symbols:")
        for diag in unresolved:
            print("  0x%08x %s" % (diag.address, diag.subject))
    missing = [diag for diag in result.diagnostics if diag.kind == ErrorKind.DESCRIPTOR_MISSING]
    if missing:
        print("libraries without function descriptions:")
        for diag in missing:
            print("  %s (function table at 0x%08x)" % (diag.subject, diag.address))
    print("entry points: %s" % ', '.join('0x%08x' % addr for addr in program.entry_points))



def main(argv=None):
    parser = ArgumentParser(description = 'Loader for AmigaOS executables, object files and Kickstart images')
    parser.add_argument('-b', '--base', dest = 'base', type = lambda x: int(x, 0), default = DEF_IMAGE_BASE,
                        help = 'address to load the hunks to (default 0x%x)' % DEF_IMAGE_BASE)
    parser.add_argument('-o', dest = 'ofname', type = str, help = 'write the relocated hunks as one block to this file')
    parser.add_argument('--fd-dir', dest = 'fd_dir', type = str, help = 'directory with .fd / .sfd files')
    parser.add_argument('--interactive', action = 'store_true', help = 'ask for .fd / .sfd files of unknown libraries')
    parser.add_argument('-v', dest = 'verbose', action = 'store_true', help = 'verbose output')
    parser.add_argument('file', help = 'executable, object file or Kickstart image')
    args = parser.parse_args(argv)
    logging.basicConfig(level = DEBUG if args.verbose else INFO, format = '%(levelname)s: %(message)s')

    resolver = None
    if args.fd_dir:
        resolver = DirectoryDescriptorResolver(args.fd_dir)
    elif args.interactive:
        resolver = PromptDescriptorResolver(ConsolePrompt())

    program = MemoryProgram()
    try:
        loader = HunkLoader(program, image_base = args.base, resolver = resolver)
        log(INFO, "loading %s...", args.file)
        result = loader.load(FileProvider(args.file))
    except (HunkError, OSError) as ex:
        log(ERROR, "can't load %s: %s", args.file, ex)
        return 1

    print_program(program, result)

    if args.ofname:
        if result.image is None:
            log(ERROR, "%s doesn't contain hunks that could be written", args.file)
            return 1
        blob = join_datas(result.datas)
        with open(args.ofname, 'wb') as ofile:
            ofile.write(blob)
        log(INFO, "wrote %d bytes relocated to 0x%08x to %s", len(blob), args.base, args.ofname)
    return 0


if __name__ == '__main__':
    raise SystemExit(main())
