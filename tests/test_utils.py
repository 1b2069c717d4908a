from typing import Sequence, Union

import pytest

from makerules.util import escape_shell


@pytest.mark.parametrize(
    "arg,expected",
    [
        ("foo bar", '"foo bar"'),
        ("foo=bar and baz", '"foo=bar and baz"'),
        ("$(workdir)/stage", r"\$\(workdir\)/stage"),
        ("$(workdir)/my stage", r'"\$(workdir)/my stage"'),
        (["yamllint", "-d", "relaxed", "my manifest.yaml"], 'yamllint -d relaxed "my manifest.yaml"'),
    ],
)
def test_escape_shell(arg: Union[str, Sequence[str]], expected: str) -> None:
    actual = escape_shell(arg) if isinstance(arg, str) else escape_shell(*arg)
    assert actual == expected
