"""Output multiplexing for captured child processes.

Two things happen to every chunk read from a child's stdout or stderr:

- it is appended verbatim to an OutputCapture, which keeps per-stream text
  and one interleaved copy in arrival order;
- it is pushed into a LinePrefixer, which writes complete lines to the
  terminal with a label in front, so output from concurrent invocations
  stays attributable and never shares a line.
"""

import asyncio
import codecs
import re
from typing import Any, Callable

CHUNK_SIZE = 64 * 1024

_LINE_BREAK = re.compile(r"\r\n?")


class OutputCapture:
    """Exact capture of one child's output.

    Example:
        >>> capture = OutputCapture()
        >>> capture.feed("stdout", "a\\n")
        >>> capture.feed("stderr", "b\\n")
        >>> capture.output
        'a\\nb\\n'
    """

    def __init__(self) -> None:
        self._parts: dict[str, list[str]] = {"stdout": [], "stderr": []}
        self._combined: list[str] = []

    def feed(self, stream: str, text: str) -> None:
        """Record a chunk from ``stream`` ("stdout" or "stderr")."""
        self._parts[stream].append(text)
        self._combined.append(text)

    @property
    def stdout(self) -> str:
        return "".join(self._parts["stdout"])

    @property
    def stderr(self) -> str:
        return "".join(self._parts["stderr"])

    @property
    def output(self) -> str:
        return "".join(self._combined)


class LinePrefixer:
    """Line-buffered writer that labels every line.

    Carriage returns are turned into line breaks for display, so progress
    bars render as discrete lines. A trailing partial line is kept until
    the next chunk completes it, or until ``end()``.

    Attributes:
        dest: Text stream written to
        label: Text put in front of every line
    """

    def __init__(self, dest: Any, label: str = "") -> None:
        self.dest = dest
        self.label = label
        self._buffer = ""

    def push(self, text: str) -> None:
        """Add a chunk and write every line it completes in one write."""
        work = self._buffer + text
        held = ""
        # A trailing CR may be the first half of a CRLF split across chunks.
        if work.endswith("\r"):
            work, held = work[:-1], "\r"
        *lines, rest = _LINE_BREAK.sub("\n", work).split("\n")
        self._buffer = rest + held
        if lines:
            self._write("".join(f"{self.label}{line}\n" for line in lines))

    def end(self) -> None:
        """Flush a remaining partial line as a final labeled line."""
        rest = self._buffer
        self._buffer = ""
        if rest.endswith("\r"):
            rest = rest[:-1]
        if rest:
            self._write(f"{self.label}{rest}\n")

    def _write(self, data: str) -> None:
        self.dest.write(data)
        self.dest.flush()


async def pump_stream(reader: asyncio.StreamReader, on_text: Callable[[str], None]) -> None:
    """Read a stream to EOF, handing decoded text to ``on_text``.

    Decoding is incremental, so a UTF-8 sequence split across two reads is
    delivered intact.
    """
    decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
    while True:
        chunk = await reader.read(CHUNK_SIZE)
        if not chunk:
            break
        text = decoder.decode(chunk)
        if text:
            on_text(text)
    tail = decoder.decode(b"", final=True)
    if tail:
        on_text(tail)
