import pytest

from amihunk.errors import FdParseError
from amihunk.fd import (FdFunctionsInLibs, DirectoryDescriptorResolver, PromptDescriptorResolver, parse_fd,
                        lib_name_from_file, split_args)
from amihunk.host import Prompt



EXEC_FD = """\
* "exec.library"
##base _SysBase
##bias 30
##private
Supervisor(userFunction)(a5)
##bias 120
##public
Forbid()()
AllocMem(byteSize,requirements)(d0/d1)
##end
"""

TEST_SFD = """\
==id $Id: test_lib.sfd,v 1.0 $
* a comment
==base _TestBase
==basetype struct Library *
==libname test.library
==bias 30
==public
LONG DoThis(LONG value) (d0)
==reserve 1
VOID DoThat(struct Hook *hook, APTR data, LONG (*cb)(APTR)) (a0,a1,a2)
==alias
VOID DoThatToo(struct Hook *hook, APTR data, LONG (*cb)(APTR)) (a0,a1,a2)
==varargs
VOID DoThatTags(struct Hook *hook, Tag tag, ...) (a0,a1)
APTR GetData() ()
==end
"""



def test_parse_fd():
    lib = parse_fd(EXEC_FD, 'exec_lib.fd')
    assert lib.lib_name == 'exec_library'
    assert lib.base == '_SysBase'
    supervisor = lib.get_function_by_index(0)
    assert supervisor.name == 'Supervisor'
    assert supervisor.private
    assert [(arg.name, arg.reg) for arg in supervisor.args] == [('userFunction', 'A5')]
    # bias 120 => index (120 - 30) / 6
    assert lib.get_function_by_index(15).name == 'Forbid'
    alloc = lib.get_function_by_name('AllocMem')
    assert alloc.bias == 126
    assert not alloc.private
    assert [(arg.name, arg.reg, arg.type) for arg in alloc.args] == [('byteSize', 'D0', None), ('requirements', 'D1', None)]
    assert lib.get_function_by_index(1) is None
    assert len(lib) == 3


def test_parse_sfd():
    lib = parse_fd(TEST_SFD, 'test_lib.sfd')
    assert lib.lib_name == 'test_library'
    assert lib.base == '_TestBase'
    assert [func.name for func in lib.ordered()] == ['DoThis', 'DoThat', 'GetData']
    do_this = lib.get_function_by_index(0)
    assert do_this.ret_type == 'LONG'
    assert [(arg.name, arg.reg, arg.type) for arg in do_this.args] == [('value', 'D0', 'LONG')]
    do_that = lib.get_function_by_index(2)
    assert [(arg.name, arg.reg) for arg in do_that.args] == [('hook', 'A0'), ('data', 'A1'), ('cb', 'A2')]
    assert do_that.args[0].type == 'struct Hook *'
    assert lib.get_function_by_index(3).name == 'GetData'
    assert lib.get_function_by_index(3).args == []


def test_explicit_lib_name_wins():
    lib = parse_fd(TEST_SFD, 'test_lib.sfd', 'other_library')
    assert lib.lib_name == 'other_library'


def test_invalid_line():
    with pytest.raises(FdParseError):
        parse_fd("##bias 30\nthis is not a function\n", 'bad.fd')


def test_invalid_bias():
    with pytest.raises(FdParseError):
        parse_fd("##bias thirty\n", 'bad.fd')


def test_helpers():
    assert lib_name_from_file('/usr/include/fd/dos_lib.fd') == 'dos_library'
    assert lib_name_from_file('graphics.sfd') == 'graphics_library'
    assert split_args('int a, void (*f)(int, int), char *b') == ['int a', 'void (*f)(int, int)', 'char *b']
    assert split_args('void') == []


def test_registry():
    libs = FdFunctionsInLibs()
    libs.add(parse_fd(EXEC_FD, 'exec_lib.fd'))
    assert 'exec_library' in libs
    assert libs.get_function_table_by_lib('dos_library') is None
    assert libs.lib_names() == ['exec_library']


def test_directory_resolver(tmp_path):
    (tmp_path / 'exec_lib.fd').write_text(EXEC_FD)
    resolver = DirectoryDescriptorResolver(str(tmp_path))
    lib = resolver.resolve('exec_library')
    assert lib.get_function_by_index(15).name == 'Forbid'
    assert resolver.resolve('dos_library') is None


class ScriptedPrompt(Prompt):
    def __init__(self, answer, fname):
        self.answer = answer
        self.fname = fname
        self.questions = []

    def ask_yes_no(self, question):
        self.questions.append(question)
        return self.answer

    def pick_file(self, title, extensions):
        assert extensions == ('fd', 'sfd')
        return self.fname


def test_prompt_resolver(tmp_path):
    fname = tmp_path / 'test_lib.sfd'
    fname.write_text(TEST_SFD)
    prompt = ScriptedPrompt(True, str(fname))
    lib = PromptDescriptorResolver(prompt).resolve('test_library')
    assert lib.lib_name == 'test_library'
    assert prompt.questions == ['Do you have test_library.sfd file for this library?']

    assert PromptDescriptorResolver(ScriptedPrompt(False, None)).resolve('test_library') is None
