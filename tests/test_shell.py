import pytest

from makerules.shell import (
    andand,
    andand_multiline,
    command_chain,
    environment_prefix,
    flatten_commands,
    guarded,
)


def test_flatten_commands_keeps_order_and_drops_empty():
    assert flatten_commands("a", ["b", ["c", ""]], (), "d") == ["a", "b", "c", "d"]


def test_andand():
    assert andand("cd foo", ["make", "make check"]) == "cd foo && make && make check"
    assert andand() == ""
    assert andand([], "") == ""


def test_andand_multiline():
    assert andand_multiline("cd foo", "make") == "cd foo && \\\nmake"
    assert andand_multiline("make") == "make"


@pytest.mark.parametrize(
    "condition,commands,expected",
    [
        ("[ -e foo-build ]", ["rm foo-build"], "if [ -e foo-build ]; then rm foo-build; fi"),
        (
            "[ -d foo-1.0 ]",
            ["cd foo-1.0", "make clean"],
            "if [ -d foo-1.0 ]; then cd foo-1.0 && make clean; fi",
        ),
    ],
)
def test_guarded(condition, commands, expected):
    assert guarded(condition, *commands) == expected


def test_guarded_needs_a_command():
    with pytest.raises(ValueError):
        guarded("[ -e foo ]")
    with pytest.raises(ValueError):
        guarded("[ -e foo ]", [], "")


def test_environment_prefix():
    assert environment_prefix({}) == []
    assert environment_prefix({"CFLAGS": "-O2", "PREFIX": "$(workdir)/opt"}) == [
        'export CFLAGS="-O2" PREFIX="$(workdir)/opt"'
    ]


def test_environment_prefix_escapes_values():
    env = {"MSG": 'say "hi" `now` \\o/'}
    assert environment_prefix(env) == ['export MSG="say \\"hi\\" \\`now\\` \\\\o/"']


def test_command_chain():
    env = {"CFLAGS": "-O2"}
    assert command_chain(env, "cd foo", ["make"]) == (
        'export CFLAGS="-O2" && \\\ncd foo && \\\nmake'
    )
    assert command_chain(env, "cd foo", "make", multiline=False) == (
        'export CFLAGS="-O2" && cd foo && make'
    )
    assert command_chain({}, "make") == "make"


def test_command_chain_without_commands_is_empty():
    assert command_chain({"CFLAGS": "-O2"}) == ""
    assert command_chain({"CFLAGS": "-O2"}, [], "") == ""
