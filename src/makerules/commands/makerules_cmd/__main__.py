#!/usr/bin/python3 -B
import argparse
import sys
import textwrap
import traceback
from typing import (
    List,
    Optional,
    NoReturn,
    Sequence,
)

from makerules import __version__
from makerules.commands.makerules_cmd.context import (
    CommandContext,
    add_arg,
    ROOT_COMMAND,
    CommandArg,
)
from makerules.exceptions import MakeRulesRuntimeError
from makerules.rules import format_project, project_rules
from makerules.util import (
    _error,
    _info,
    _warn,
    ColorizedArgumentParser,
    program_name,
    setup_logging,
)


def _add_manifest_arg(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "manifest",
        metavar="MANIFEST",
        action="store",
        help="The project manifest (YAML) describing the components",
    )


def _add_component_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "-c",
        "--component",
        dest="components",
        action="append",
        type=str,
        default=[],
        help="Only act on the named component. Can be used multiple times."
        " By default, all components of the manifest are used in manifest order",
    )


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    description = textwrap.dedent(
        """\
    The `makerules` program generates build engine rules for the components of a project.

    Every component gets one rule per life cycle phase (unpack, patch, configure, build,
    check, install, ...). The phases are chained through completion markers, so an
    interrupted build resumes where it failed.
    """
    )

    parser: argparse.ArgumentParser = ColorizedArgumentParser(
        description=description,
        formatter_class=argparse.RawDescriptionHelpFormatter,
        allow_abbrev=False,
        prog=program_name(),
    )

    parser.add_argument("--version", action="version", version=__version__)
    parser.add_argument(
        "-d",
        "--debug",
        dest="debug_mode",
        action="store_true",
        default=False,
        help="Enable debug logging and raw stack traces on errors.",
    )

    ROOT_COMMAND.configure(parser)

    return parser.parse_args(argv)


@ROOT_COMMAND.register_subcommand(
    "generate",
    help_description="Generate the rules for the components of a manifest",
    argparser=[
        _add_manifest_arg,
        _add_component_args,
        add_arg(
            "-o",
            "--output",
            dest="output",
            action="store",
            default=None,
            help="Write the rules to this file instead of stdout",
        ),
        add_arg(
            "--use-cache",
            dest="use_cache",
            action="append",
            type=str,
            default=[],
            help="Install the named (cacheable) component from its cache archive."
            " Can be used multiple times",
        ),
    ],
)
def _generate(context: CommandContext) -> None:
    manifest = context.parse_manifest()
    rendered = format_project(
        manifest.project,
        manifest.platform,
        component_names=context.selected_components,
    )
    output = context.parsed_args.output
    if output is None:
        sys.stdout.write(rendered)
        return
    with open(output, "w", encoding="utf-8") as fd:
        fd.write(rendered)
    _info(f"Wrote the rules for {manifest.project.name} to {output}")


@ROOT_COMMAND.register_subcommand(
    "list-targets",
    help_description="List the targets (and their dependencies) generated for the components",
    argparser=[
        _add_manifest_arg,
        _add_component_args,
    ],
)
def _list_targets(context: CommandContext) -> None:
    manifest = context.parse_manifest()
    for component_rules in project_rules(
        manifest.project,
        manifest.platform,
        component_names=context.selected_components,
    ):
        for rule in component_rules.rules():
            if rule.dependencies:
                print(f"{rule.target}: {' '.join(rule.dependencies)}")
            else:
                print(f"{rule.target}:")


@ROOT_COMMAND.register_subcommand(
    "check-manifest",
    help_description="Check the manifest for errors, but do not write any rules",
    argparser=_add_manifest_arg,
)
def _check_manifest(context: CommandContext) -> None:
    manifest = context.parse_manifest()
    rule_count = 0
    for component_rules in project_rules(manifest.project, manifest.platform):
        rule_count += len(component_rules.rules())
    _info(
        f"The manifest {manifest.manifest_path} is valid"
        f" ({len(manifest.project.components)} components, {rule_count} rules)"
    )


def _setup_and_parse_args() -> argparse.Namespace:
    setup_logging()
    return parse_args()


def main() -> None:
    parsed_args = _setup_and_parse_args()
    try:
        ROOT_COMMAND(CommandArg(parsed_args))
    except MakeRulesRuntimeError as e:
        if parsed_args.debug_mode:
            _warn(
                "Re-raising original exception to show the full stack trace due to debug mode being active"
            )
            raise e
        _error(e.message)
    except AssertionError as e:
        _error_w_stack_trace(
            "Internal error in makerules",
            str(e),
            e,
            parsed_args.debug_mode,
            follow_warning=["Please file a bug against makerules with the full output."],
        )
    except Exception as e:
        _error_w_stack_trace(
            "Unhandled exception (Re-run with --debug to see the raw stack trace)",
            str(e),
            e,
            parsed_args.debug_mode,
            follow_warning=["Please file a bug against makerules with the full output."],
        )


def _error_w_stack_trace(
    warning: str,
    error_msg: str,
    stacktrace: BaseException,
    debug_mode: bool,
    follow_warning: Optional[List[str]] = None,
) -> "NoReturn":
    if debug_mode:
        _warn(
            "Re-raising original exception to show the full stack trace due to debug mode being active"
        )
        raise stacktrace
    _warn(warning)
    _warn("  ----- 8< ---- BEGIN STACK TRACE ---- 8< -----")
    traceback.print_exception(stacktrace)
    _warn("  ----- 8< ---- END STACK TRACE ---- 8< -----")
    if follow_warning:
        for line in follow_warning:
            _warn(line)
    _error(error_msg)


if __name__ == "__main__":
    main()
