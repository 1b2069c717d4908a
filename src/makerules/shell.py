"""Composition of shell command lines for rule recipes

Each recipe line is run by its own shell, so every command that belongs to a step has to
live on the same line. The helpers here join commands with `&&` so the first failing
command aborts the rest of the line, including any completion marker that follows.
"""

from typing import Iterable, Iterator, List, Mapping, Union

CommandGroup = Union[str, Iterable["CommandGroup"]]

AND_SEPARATOR = " && "
AND_MULTILINE_SEPARATOR = " && \\\n"


def flatten_commands(*commands: CommandGroup) -> List[str]:
    """Flatten commands and groups of commands into a single ordered list

    Empty strings are dropped, so an empty group contributes nothing to a chain.
    """
    return [c for c in _iter_commands(commands) if c]


def _iter_commands(commands: Iterable[CommandGroup]) -> Iterator[str]:
    for command in commands:
        if isinstance(command, str):
            yield command
        else:
            yield from _iter_commands(command)


def andand(*commands: CommandGroup) -> str:
    return AND_SEPARATOR.join(flatten_commands(*commands))


def andand_multiline(*commands: CommandGroup) -> str:
    return AND_MULTILINE_SEPARATOR.join(flatten_commands(*commands))


def guarded(condition: str, *commands: CommandGroup) -> str:
    """Run the commands only if the condition holds

    The resulting line succeeds when the condition does not hold, which is what the
    cleaning phases need to be re-runnable.
    """
    body = andand(*commands)
    if not body:
        raise ValueError("A guarded command needs at least one command to run")
    return f"if {condition}; then {body}; fi"


def _quote_env_value(value: str) -> str:
    escaped = value.replace("\\", "\\\\").replace('"', '\\"').replace("`", "\\`")
    return f'"{escaped}"'


def environment_prefix(environment: Mapping[str, str]) -> List[str]:
    """Render variable assignments as the leading element of a command chain

    Values are double quoted so that make and shell variables (`$(workdir)`, `$HOME`)
    still expand. An empty mapping renders as an empty list.
    """
    if not environment:
        return []
    assignments = " ".join(
        f"{key}={_quote_env_value(str(value))}" for key, value in environment.items()
    )
    return [f"export {assignments}"]


def command_chain(
    environment: Mapping[str, str],
    *commands: CommandGroup,
    multiline: bool = True,
) -> str:
    """Chain commands behind the environment assignments

    Returns the empty string when there is no real command to run, so callers never emit a
    line that only assigns variables.
    """
    real_commands = flatten_commands(*commands)
    if not real_commands:
        return ""
    joiner = andand_multiline if multiline else andand
    return joiner(environment_prefix(environment), real_commands)
