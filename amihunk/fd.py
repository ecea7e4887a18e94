#
# fd.py - part of amihunk, a loader for AmigaOS Hunk executables, object files and ROMs
#         Reading of function description files (.fd and .sfd) for shared libraries
#


import os
import re
from abc import ABC, abstractmethod
from logging import log, DEBUG, INFO, WARN
from recordclass import recordclass

from .constants import LIB_FIRST_BIAS, LIB_VECTOR_SIZE
from .errors import FdParseError



FdArg      = recordclass('FdArg', ('name', 'reg', 'type'))
FdFunction = recordclass('FdFunction', ('name', 'args', 'bias', 'private', 'ret_type'))


FD_FUNC_RE   = re.compile(r'^([A-Za-z_]\w*)\s*\(([^)]*)\)\s*\(([^)]*)\)\s*$')
SFD_REGS_RE  = re.compile(r'\(([^()]*)\)\s*$')
SFD_PROTO_RE = re.compile(r'^(?P<ret>.*?)(?P<name>[A-Za-z_]\w*)\s*\((?P<args>.*)\)\s*$')
FUNC_PTR_RE  = re.compile(r'\(\s*\*\s*([A-Za-z_]\w*)\s*\)')
IDENT_RE     = re.compile(r'[A-Za-z_]\w*')
REGISTER_RE  = re.compile(r'^[AD][0-7]$')
SEPARATOR_RE = re.compile(r'[,/]')



class FdLibFunctions(object):
    """The functions of one library, indexed by their position after the four standard vectors."""

    def __init__(self, lib_name, base=None):
        self.lib_name  = lib_name
        self.base      = base
        self.functions = {}


    def __len__(self):
        return len(self.functions)


    def add(self, index, func):
        self.functions[index] = func


    def get_function_by_index(self, index):
        return self.functions.get(index)


    def get_function_by_name(self, name):
        for func in self.functions.values():
            if func.name == name:
                return func
        return None


    def ordered(self):
        return [self.functions[index] for index in sorted(self.functions)]



class FdFunctionsInLibs(object):
    """The function tables of all libraries we know about, by library name (e.g. exec_library)."""

    def __init__(self):
        self._libs = {}


    def __contains__(self, lib_name):
        return lib_name in self._libs


    def add(self, lib_funcs):
        self._libs[lib_funcs.lib_name] = lib_funcs


    def get_function_table_by_lib(self, lib_name):
        return self._libs.get(lib_name)


    def lib_names(self):
        return sorted(self._libs)



def lib_name_from_file(fname):
    name = os.path.splitext(os.path.basename(fname))[0].lower()
    if name.endswith('_lib'):
        name = name[:-4]
    return name + '_library'


def split_args(text):
    """Split a C argument list at the commas that are not inside parentheses."""
    args  = []
    depth = 0
    start = 0
    for pos, char in enumerate(text):
        if char == '(':
            depth += 1
        elif char == ')':
            depth -= 1
        elif char == ',' and depth == 0:
            args.append(text[start:pos].strip())
            start = pos + 1
    args.append(text[start:].strip())
    return [arg for arg in args if arg and arg != 'void']


def parse_c_arg(decl):
    match = FUNC_PTR_RE.search(decl)
    if match is not None:
        return match.group(1), decl
    names = IDENT_RE.findall(decl)
    if not names or decl == '...':
        return '...', decl
    name = names[-1]
    ctype = decl[:decl.rfind(name)].strip()
    return name, ctype


def parse_regs(text):
    regs = [reg.strip().upper() for reg in SEPARATOR_RE.split(text) if reg.strip()]
    return [reg for reg in regs if REGISTER_RE.match(reg)]


def _make_args(fname, lineno, names, types, regs):
    if len(names) != len(regs):
        log(WARN, "%s:%d: %d arguments but %d registers", fname, lineno, len(names), len(regs))
    return [FdArg(name, reg, ctype) for name, ctype, reg in zip(names, types, regs)]


def parse_fd(text, fname='<fd>', lib_name=None):
    """Parse the content of an .fd or .sfd file and return its FdLibFunctions."""
    base     = None
    bias     = LIB_FIRST_BIAS
    private  = False
    is_alias = False
    funcs    = []
    for lineno, line in enumerate(text.splitlines(), 1):
        line = line.strip()
        if not line or line.startswith('*'):
            continue

        if line.startswith('##') or line.startswith('=='):
            fields    = line[2:].split(None, 1)
            directive = fields[0].lower() if fields else ''
            value     = fields[1].strip() if len(fields) > 1 else ''
            if directive == 'base':
                base = value
            elif directive == 'bias':
                try:
                    bias = int(value)
                except ValueError:
                    raise FdParseError(f"{fname}:{lineno}: invalid bias '{value}'")
            elif directive == 'public':
                private = False
            elif directive == 'private':
                private = True
            elif directive == 'reserve':
                bias += int(value or '1') * LIB_VECTOR_SIZE
            elif directive in ('alias', 'varargs'):
                is_alias = True
            elif directive == 'libname' and lib_name is None:
                lib_name = value.replace('.', '_')
            elif directive == 'end':
                break
            else:
                log(DEBUG, "%s:%d: ignoring directive %s", fname, lineno, directive)
            continue

        match = FD_FUNC_RE.match(line)
        if match is not None:
            name = match.group(1)
            arg_names = [arg.strip() for arg in SEPARATOR_RE.split(match.group(2)) if arg.strip()]
            args = _make_args(fname, lineno, arg_names, [None] * len(arg_names), parse_regs(match.group(3)))
            ret_type = None
        else:
            regs = SFD_REGS_RE.search(line)
            proto = SFD_PROTO_RE.match(line[:regs.start()].strip()) if regs is not None else None
            if proto is None:
                raise FdParseError(f"{fname}:{lineno}: can't parse function '{line}'")
            name = proto.group('name')
            decls = [parse_c_arg(decl) for decl in split_args(proto.group('args'))]
            args = _make_args(fname, lineno, [decl[0] for decl in decls], [decl[1] for decl in decls], parse_regs(regs.group(1)))
            ret_type = proto.group('ret').strip() or None

        if is_alias:
            # an alias (or the varargs variant) shares the vector of the preceding function
            log(DEBUG, "%s:%d: %s is an alias", fname, lineno, name)
            is_alias = False
            continue
        funcs.append((bias, FdFunction(name, args, bias, private, ret_type)))
        bias += LIB_VECTOR_SIZE

    if lib_name is None:
        lib_name = lib_name_from_file(fname)
    lib_funcs = FdLibFunctions(lib_name, base)
    for bias, func in funcs:
        lib_funcs.add((bias - LIB_FIRST_BIAS) // LIB_VECTOR_SIZE, func)
    log(INFO, "read %d functions of %s from %s", len(lib_funcs), lib_name, fname)
    return lib_funcs


def read_fd_file(fname, lib_name=None):
    with open(fname, 'r', encoding='latin-1') as fobj:
        return parse_fd(fobj.read(), fname, lib_name)



class DescriptorResolver(ABC):
    @abstractmethod
    def resolve(self, lib_name):
        """Return the FdLibFunctions for lib_name (e.g. exec_library) or None."""
        pass


class MapDescriptorResolver(DescriptorResolver):
    def __init__(self, libs=None):
        self.libs = dict(libs or {})

    def resolve(self, lib_name):
        return self.libs.get(lib_name)


class DirectoryDescriptorResolver(DescriptorResolver):
    """Looks for <name>.sfd, <name>.fd, <base>_lib.sfd or <base>_lib.fd in a directory."""

    def __init__(self, directory):
        self.directory = directory

    def resolve(self, lib_name):
        base = lib_name.rsplit('_', 1)[0]
        for candidate in (lib_name + '.sfd', lib_name + '.fd', base + '_lib.sfd', base + '_lib.fd'):
            fname = os.path.join(self.directory, candidate)
            if os.path.isfile(fname):
                return read_fd_file(fname, lib_name)
        return None


class PromptDescriptorResolver(DescriptorResolver):
    """Asks the user for the description file."""

    def __init__(self, prompt):
        self.prompt = prompt

    def resolve(self, lib_name):
        if not self.prompt.ask_yes_no(f"Do you have {lib_name}.sfd file for this library?"):
            return None
        fname = self.prompt.pick_file("Select file...", ('fd', 'sfd'))
        if fname is None:
            return None
        return read_fd_file(fname, lib_name)
