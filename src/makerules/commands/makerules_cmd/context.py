import argparse
import dataclasses
import logging
import os
from typing import (
    Optional,
    Sequence,
    Union,
    Callable,
    Dict,
)

from makerules.manifest import ProjectManifest, YAMLManifestParser
from makerules.util import _error, change_log_level


CommandHandler = Callable[["CommandContext"], None]
ArgparserConfigurator = Callable[[argparse.ArgumentParser], None]


def add_arg(
    *name_or_flags: str,
    **kwargs,
) -> ArgparserConfigurator:
    def _configurator(argparser: argparse.ArgumentParser) -> None:
        argparser.add_argument(
            *name_or_flags,
            **kwargs,
        )

    return _configurator


@dataclasses.dataclass(slots=True, frozen=True)
class CommandArg:
    parsed_args: argparse.Namespace


class CommandContext:
    """Per invocation state shared by the subcommand handlers

    The manifest is parsed on first use, with the `--use-cache` selection applied.
    """

    def __init__(
        self,
        parsed_args: argparse.Namespace,
    ) -> None:
        self.parsed_args = parsed_args
        self._manifest: Optional[ProjectManifest] = None

    def parse_manifest(self) -> ProjectManifest:
        manifest = self._manifest
        if manifest is None:
            manifest_path = self.parsed_args.manifest
            if not os.path.isfile(manifest_path):
                _error(f'The path "{manifest_path}" is not a file!')
            manifest = YAMLManifestParser(manifest_path).parse_manifest()
            cached = getattr(self.parsed_args, "use_cache", None)
            if cached:
                manifest = manifest.with_cached_components(frozenset(cached))
            self._manifest = manifest
        return manifest

    @property
    def selected_components(self) -> Sequence[str]:
        return getattr(self.parsed_args, "components", None) or []


class Subcommand:
    __slots__ = ("name", "help_description", "_handler", "_configurators")

    def __init__(
        self,
        name: str,
        handler: CommandHandler,
        *,
        help_description: Optional[str] = None,
        configurators: Sequence[ArgparserConfigurator] = (),
    ) -> None:
        self.name = name
        self.help_description = help_description
        self._handler = handler
        self._configurators = tuple(configurators)

    def add_to(self, subparsers: "argparse._SubParsersAction") -> None:
        parser = subparsers.add_parser(
            self.name,
            help=self.help_description,
            allow_abbrev=False,
        )
        for configurator in self._configurators:
            configurator(parser)

    def __call__(self, command_arg: CommandArg) -> None:
        context = CommandContext(command_arg.parsed_args)
        level = logging.INFO
        if context.parsed_args.debug_mode or os.environ.get("MAKERULES_DEBUG", "") != "":
            level = logging.DEBUG
        change_log_level(level)
        self._handler(context)


class DispatcherCommand:
    """Routes the parsed command line to the registered subcommand"""

    __slots__ = ("_subcommands", "_dest")

    def __init__(self, dest: str) -> None:
        self._subcommands: Dict[str, Subcommand] = {}
        self._dest = dest

    def register_subcommand(
        self,
        name: str,
        *,
        help_description: Optional[str] = None,
        argparser: Optional[
            Union[ArgparserConfigurator, Sequence[ArgparserConfigurator]]
        ] = None,
    ) -> Callable[[CommandHandler], Subcommand]:
        if argparser is None:
            configurators: Sequence[ArgparserConfigurator] = ()
        elif callable(argparser):
            configurators = (argparser,)
        else:
            configurators = argparser

        def _annotation_impl(func: CommandHandler) -> Subcommand:
            if name in self._subcommands:
                raise ValueError(f"Internal error: Multiple handlers for {name}")
            subcommand = Subcommand(
                name,
                func,
                help_description=help_description,
                configurators=configurators,
            )
            self._subcommands[name] = subcommand
            return subcommand

        return _annotation_impl

    def configure(self, argparser: argparse.ArgumentParser) -> None:
        subparsers = argparser.add_subparsers(
            dest=self._dest,
            required=True,
            metavar="COMMAND",
        )
        for subcommand in self._subcommands.values():
            subcommand.add_to(subparsers)

    def __call__(self, command_arg: CommandArg) -> None:
        v = getattr(command_arg.parsed_args, self._dest, None)
        assert (
            v in self._subcommands
        ), f"Internal error: {v} was accepted as a command, but it was not registered?"
        self._subcommands[v](command_arg)


ROOT_COMMAND = DispatcherCommand(dest="command")
