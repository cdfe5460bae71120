"""Tests for output capture and line prefixing."""

import asyncio
import io

import pytest

from multiexec.multiplexer import LinePrefixer, OutputCapture, pump_stream


class CountingStream(io.StringIO):
    """StringIO that records each write call."""

    def __init__(self) -> None:
        super().__init__()
        self.writes: list[str] = []

    def write(self, s: str) -> int:
        self.writes.append(s)
        return super().write(s)


class TestOutputCapture:
    """Tests for OutputCapture."""

    def test_per_stream_and_interleaved(self):
        capture = OutputCapture()
        capture.feed("stdout", "a")
        capture.feed("stderr", "b\r")
        capture.feed("stdout", "c\n")

        assert capture.stdout == "ac\n"
        assert capture.stderr == "b\r"
        assert capture.output == "ab\rc\n"

    def test_empty(self):
        capture = OutputCapture()
        assert capture.stdout == capture.stderr == capture.output == ""


class TestLinePrefixer:
    """Tests for LinePrefixer."""

    def test_complete_lines(self):
        dest = io.StringIO()
        prefixer = LinePrefixer(dest, "app | ")
        prefixer.push("one\ntwo\n")

        assert dest.getvalue() == "app | one\napp | two\n"

    def test_partial_line_carried_over(self):
        dest = io.StringIO()
        prefixer = LinePrefixer(dest, "> ")
        prefixer.push("hel")
        assert dest.getvalue() == ""

        prefixer.push("lo\nwor")
        assert dest.getvalue() == "> hello\n"

        prefixer.push("ld\n")
        assert dest.getvalue() == "> hello\n> world\n"

    def test_carriage_return_becomes_line(self):
        dest = io.StringIO()
        prefixer = LinePrefixer(dest, "> ")
        prefixer.push("10%\r50%\r100%\n")

        assert dest.getvalue() == "> 10%\n> 50%\n> 100%\n"

    def test_crlf_split_across_chunks(self):
        dest = io.StringIO()
        prefixer = LinePrefixer(dest, "> ")
        prefixer.push("a\r")
        prefixer.push("\nb\r\n")

        assert dest.getvalue() == "> a\n> b\n"

    def test_end_flushes_partial_line(self):
        dest = io.StringIO()
        prefixer = LinePrefixer(dest, "> ")
        prefixer.push("no newline")
        prefixer.end()

        assert dest.getvalue() == "> no newline\n"

    def test_end_twice_is_noop(self):
        dest = io.StringIO()
        prefixer = LinePrefixer(dest, "> ")
        prefixer.push("x")
        prefixer.end()
        prefixer.end()

        assert dest.getvalue() == "> x\n"

    def test_end_with_trailing_carriage_return(self):
        dest = io.StringIO()
        prefixer = LinePrefixer(dest, "")
        prefixer.push("50%\r")
        prefixer.end()

        assert dest.getvalue() == "50%\n"

    def test_one_write_per_push(self):
        dest = CountingStream()
        prefixer = LinePrefixer(dest, "> ")
        prefixer.push("a\nb\nc\n")

        assert dest.writes == ["> a\n> b\n> c\n"]

    def test_empty_lines_kept(self):
        dest = io.StringIO()
        prefixer = LinePrefixer(dest, "> ")
        prefixer.push("a\n\nb\n")

        assert dest.getvalue() == "> a\n> \n> b\n"


class TestPumpStream:
    """Tests for pump_stream."""

    @pytest.mark.asyncio
    async def test_reads_to_eof(self):
        reader = asyncio.StreamReader()
        reader.feed_data(b"hello ")
        reader.feed_data(b"world\n")
        reader.feed_eof()

        chunks: list[str] = []
        await pump_stream(reader, chunks.append)

        assert "".join(chunks) == "hello world\n"

    @pytest.mark.asyncio
    async def test_split_utf8_sequence(self):
        encoded = "héllo ✓\n".encode()
        reader = asyncio.StreamReader()
        chunks: list[str] = []
        task = asyncio.create_task(pump_stream(reader, chunks.append))
        for i in range(len(encoded)):
            reader.feed_data(encoded[i:i + 1])
            await asyncio.sleep(0)
        reader.feed_eof()
        await task

        assert "".join(chunks) == "héllo ✓\n"

    @pytest.mark.asyncio
    async def test_invalid_bytes_replaced(self):
        reader = asyncio.StreamReader()
        reader.feed_data(b"ok\xff\n")
        reader.feed_eof()

        chunks: list[str] = []
        await pump_stream(reader, chunks.append)

        assert "".join(chunks) == "ok�\n"
