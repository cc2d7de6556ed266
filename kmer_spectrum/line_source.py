"""
Line Source: first pipeline stage.

Reads raw text, drops header lines (those starting with the header marker)
and empty lines, and yields each remaining line unchanged. A line longer
than the configured maximum is fatal; it is never truncated. The CLI opens
input as latin-1, so one character is one byte and the limit is in bytes.
"""

from __future__ import annotations

from typing import Iterator, Optional, TextIO

from tqdm import tqdm

from .config import HEADER_MARKER, MAX_LINE_LENGTH
from .exceptions import InputTooLargeError
from .log import get_logger

LOGGER = get_logger("line_source")


class LineSource:
    """
    Iterable over the sequence lines of a text stream.

    Counters are updated as the stream is consumed:
      lines_read    every physical line, headers and empty lines included
      header_lines  lines starting with header_marker
      empty_lines   lines with no characters after stripping the line ending
    """

    def __init__(self, stream: TextIO,
                 header_marker: str = HEADER_MARKER,
                 max_line_length: int = MAX_LINE_LENGTH,
                 progress: bool = False):
        self.stream = stream
        self.header_marker = header_marker
        self.max_line_length = max_line_length
        self.progress = progress
        self.lines_read = 0
        self.header_lines = 0
        self.empty_lines = 0

    def _read_line(self) -> Optional[str]:
        # bounded read: never pull more than limit + "\r\n" into memory
        raw = self.stream.readline(self.max_line_length + 2)
        if not raw:
            return None
        self.lines_read += 1
        line = raw[:-1] if raw.endswith("\n") else raw
        if line.endswith("\r"):
            line = line[:-1]
        if len(line) > self.max_line_length:
            raise InputTooLargeError(self.lines_read, len(line), self.max_line_length)
        return line

    def __iter__(self) -> Iterator[str]:
        with tqdm(desc="reading lines", unit=" lines", disable=not self.progress) as bar:
            while True:
                line = self._read_line()
                if line is None:
                    break
                bar.update(1)
                if not line:
                    self.empty_lines += 1
                    LOGGER.debug("Skipping empty line %d.", self.lines_read)
                    continue
                if line.startswith(self.header_marker):
                    self.header_lines += 1
                    continue
                yield line

