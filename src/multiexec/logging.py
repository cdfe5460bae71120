"""Output channels for multiexec.

multiexec writes to two places:

- the console channel: banner lines (``<cwd> $ <command>``), the ✓/✗ status
  line of each invocation and the labeled echo of teed child output. This
  is human-facing and normally shares stdout with the children;
- the diagnostics channel: standard library loggers named after the
  multiexec modules, always on stderr, optionally mirrored to a file.

When stdout carries machine-readable results (``--format json``) the
console channel moves to stderr as well, so stdout holds nothing else.
"""

import logging
import sys
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable, Generator, TextIO

CONSOLE_FORMAT = "%(levelname)s [%(name)s] %(message)s"
DETAILED_FORMAT = "%(asctime)s %(levelname)s [%(name)s:%(funcName)s:%(lineno)d] %(message)s"

# Below DEBUG: batch expansion and per-invocation records
TRACE = 5
logging.addLevelName(TRACE, "TRACE")

LEVEL_NAMES = {
    "trace": TRACE,
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}

# -v count -> level; -vvv and beyond is TRACE
_VERBOSITY = (logging.WARNING, logging.INFO, logging.DEBUG, TRACE)


def resolve_level(verbosity: int = 0, name: str | None = None) -> int:
    """Pick the diagnostics level from a -v count or an explicit name.

    An explicit name wins over the count.

    Raises:
        ValueError: If name is not one of LEVEL_NAMES
    """
    if name is not None:
        try:
            return LEVEL_NAMES[name.lower()]
        except KeyError:
            raise ValueError(f"Invalid log level: {name}. Valid levels: {', '.join(LEVEL_NAMES)}") from None
    return _VERBOSITY[max(0, min(verbosity, len(_VERBOSITY) - 1))]


def configure_logging(level: int = logging.WARNING, log_file: str | Path | None = None) -> None:
    """Route the diagnostics channel to stderr and, optionally, a file.

    Replaces any handlers already on the root logger, so calling it again
    reconfigures rather than duplicating output.
    """
    root = logging.getLogger()
    for handler in root.handlers[:]:
        root.removeHandler(handler)
    root.setLevel(level)

    console = logging.StreamHandler(sys.stderr)
    console.setFormatter(logging.Formatter(CONSOLE_FORMAT if level > logging.DEBUG else DETAILED_FORMAT))
    root.addHandler(console)

    if log_file:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(path)
        file_handler.setFormatter(logging.Formatter(DETAILED_FORMAT))
        root.addHandler(file_handler)


def console_streams(reserve_stdout: bool = False) -> tuple[TextIO, TextIO]:
    """Streams for the console channel as (primary, errors).

    Resolved at call time so that redirected sys.stdout/sys.stderr are
    honored. With ``reserve_stdout`` both are stderr.
    """
    if reserve_stdout:
        return sys.stderr, sys.stderr
    return sys.stdout, sys.stderr


def console_sink(stream: TextIO) -> Callable[..., None]:
    """Log sink printing banner and status lines to stream."""

    def sink(*parts: Any) -> None:
        print(*parts, file=stream, flush=True)

    return sink


@contextmanager
def batch_scope(logger: logging.Logger, invocations: int, parallel: bool) -> Generator[None, None, None]:
    """Log the start and outcome of a batch at DEBUG level.

    Example:
        >>> with batch_scope(logger, 3, parallel=True):
        ...     ...
        DEBUG: Batch of 3 invocation(s) started (parallel)
        DEBUG: Batch of 3 invocation(s) finished in 0.42s
    """
    how = "parallel" if parallel else "sequential"
    logger.debug(f"Batch of {invocations} invocation(s) started ({how})")
    started = time.perf_counter()
    try:
        yield
    except BaseException as e:
        logger.debug(
            f"Batch of {invocations} invocation(s) aborted after "
            f"{time.perf_counter() - started:.2f}s: {type(e).__name__}: {e}"
        )
        raise
    logger.debug(f"Batch of {invocations} invocation(s) finished in {time.perf_counter() - started:.2f}s")
