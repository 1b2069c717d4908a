import argparse
import logging
import os
import re
import sys
from typing import (
    NoReturn,
    Optional,
    Tuple,
    Any,
)


_SPACE_RE = re.compile(r"\s")
_DOUBLE_ESCAPEES = re.compile(r'([\n`$"\\])')
_REGULAR_ESCAPEES = re.compile(r'([\s!"$()*+#;<>?@\[\]\\`|~])')
_DEFAULT_LOGGER: Optional[logging.Logger] = None


def _fallback_print(level: str, msg: str, prog: Optional[str]) -> None:
    me = os.path.basename(sys.argv[0]) if prog is None else prog
    print(f"{me}: {level}: {msg}", file=sys.stderr)


def _debug_log(msg: str) -> None:
    if _DEFAULT_LOGGER is not None:
        _DEFAULT_LOGGER.debug(msg)


def _info(msg: str) -> None:
    # Info messages are dropped until logging is set up
    if _DEFAULT_LOGGER is not None:
        _DEFAULT_LOGGER.info(msg)


def _warn(msg: str) -> None:
    if _DEFAULT_LOGGER is not None:
        _DEFAULT_LOGGER.warning(msg)
    else:
        _fallback_print("warning", msg, None)


def _error(msg: str, *, prog: Optional[str] = None) -> "NoReturn":
    if _DEFAULT_LOGGER is not None:
        _DEFAULT_LOGGER.error(msg)
    else:
        _fallback_print("error", msg, prog)
    sys.exit(1)


class ColorizedArgumentParser(argparse.ArgumentParser):
    def error(self, message: str) -> NoReturn:
        self.print_usage(sys.stderr)
        _error(message, prog=self.prog)


def _backslash_escape(m: re.Match[str]) -> str:
    return "\\" + m.group(0)


def _escape_shell_word(w: str) -> str:
    if _SPACE_RE.search(w):
        w = _DOUBLE_ESCAPEES.sub(_backslash_escape, w)
        return f'"{w}"'
    return _REGULAR_ESCAPEES.sub(_backslash_escape, w)


def escape_shell(*args: str) -> str:
    return " ".join(_escape_shell_word(w) for w in args)


def _check_color() -> Tuple[bool, bool, Optional[str]]:
    requested_color = os.environ.get(
        "MAKERULES_COLORS", "never" if "NO_COLOR" in os.environ else "auto"
    )
    bad_request = None
    if requested_color not in {"auto", "always", "never"}:
        bad_request = requested_color
        requested_color = "auto"

    if requested_color == "auto":
        stdout_color = sys.stdout.isatty()
        stderr_color = sys.stderr.isatty()
    else:
        enable = requested_color == "always"
        stdout_color = enable
        stderr_color = enable
    return stdout_color, stderr_color, bad_request


def program_name() -> str:
    name = os.path.basename(sys.argv[0])
    if name.endswith(".py"):
        name = name[:-3]
    if name == "__main__":
        name = os.path.basename(os.path.dirname(sys.argv[0]))
    if name == "makerules_cmd":
        name = "makerules"
    return name


def change_log_level(
    log_level: int,
) -> None:
    if _DEFAULT_LOGGER is not None:
        _DEFAULT_LOGGER.setLevel(log_level)
    logging.getLogger("").setLevel(log_level)


def _stream_handler(stream: Any, use_color: bool) -> logging.StreamHandler:
    color_format = (
        "{bold}{name}{reset}: {bold}{log_color}{levelnamelower}{reset}: {message}"
    )
    colorless_format = "{name}: {levelnamelower}: {message}"
    if use_color:
        import colorlog

        handler = colorlog.StreamHandler(stream)
        handler.setFormatter(
            colorlog.ColoredFormatter(color_format, style="{", force_color=True)
        )
        return handler
    handler = logging.StreamHandler(stream)
    handler.setFormatter(logging.Formatter(colorless_format, style="{"))
    return handler


class _LevelRangeFilter(logging.Filter):
    def __init__(self, *, below: Optional[int] = None, at_least: Optional[int] = None):
        super().__init__()
        self.below = below
        self.at_least = at_least

    def filter(self, record: logging.LogRecord) -> bool:
        if self.below is not None and record.levelno >= self.below:
            return False
        return self.at_least is None or record.levelno >= self.at_least


def _record_factory_with_lowercase_level() -> None:
    old_factory = logging.getLogRecordFactory()

    def record_factory(*args: Any, **kwargs: Any) -> logging.LogRecord:
        record = old_factory(*args, **kwargs)
        record.levelnamelower = record.levelname.lower()
        return record

    logging.setLogRecordFactory(record_factory)


def setup_logging() -> logging.Logger:
    """Log INFO and DEBUG to stdout, WARNING and above to stderr

    Must be called once per process, before any of the logging helpers are used.
    """
    global _DEFAULT_LOGGER
    if _DEFAULT_LOGGER is not None:
        raise RuntimeError("Logging has already been configured")
    stdout_color, stderr_color, bad_request = _check_color()

    stdout_handler = _stream_handler(sys.stdout, stdout_color)
    stdout_handler.addFilter(_LevelRangeFilter(below=logging.WARNING))
    stderr_handler = _stream_handler(sys.stderr, stderr_color)
    stderr_handler.addFilter(_LevelRangeFilter(at_least=logging.WARNING))

    root_logger = logging.getLogger()
    root_logger.addHandler(stdout_handler)
    root_logger.addHandler(stderr_handler)
    root_logger.setLevel(logging.INFO)
    _record_factory_with_lowercase_level()

    _DEFAULT_LOGGER = logging.getLogger(program_name())
    if bad_request:
        _DEFAULT_LOGGER.warning(
            f'Invalid color request for "{bad_request}" in MAKERULES_COLORS.'
            ' Resetting to "auto".'
        )
    return _DEFAULT_LOGGER
