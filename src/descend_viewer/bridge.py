"""
Parser Bridge - runs the external parser and extracts its syntax tree.

The parser is a Lua program. It may print any number of diagnostic lines
before the JSON document holding the syntax tree, which is always the last
non-blank line of its standard output.
"""
import asyncio
import json
import logging
import os
from dataclasses import dataclass
from typing import Callable, List, Optional, Tuple, Union

from . import syntax
from .errors import DecodeError, ProcessError
from .syntax import SyntaxNode

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 5.0
CHUNK_SIZE = 4096

Sink = Callable[[str], None]


@dataclass
class ParseFailure:
    """The parser ran but its output held no syntax tree.

    ``raw_output`` is the last non-blank line of standard output, the one
    that failed to decode. It is empty when the parser printed nothing.
    """
    raw_output: str = ""


ParseResult = Union[SyntaxNode, ParseFailure]


def split_lines(pending: bytes, chunk: bytes) -> Tuple[List[str], bytes]:
    """Append ``chunk`` to ``pending`` and cut off every complete line.

    Returns the complete lines (decoded, without line endings) and the bytes
    of the unterminated tail. The tail stays undecoded so a chunk boundary in
    the middle of a multi-byte character does not corrupt it.
    """
    *complete, tail = (pending + chunk).split(b"\n")
    return [decode_line(raw) for raw in complete], tail


def decode_line(raw: bytes) -> str:
    return raw.decode("utf-8", errors="replace").rstrip("\r")


def is_blank(line: str) -> bool:
    return not line.strip()


class LastLine:
    """Keeps the last non-blank line seen as the result candidate."""

    def __init__(self):
        self.line: Optional[str] = None

    def push(self, line: str) -> Optional[str]:
        """Record ``line`` and return the line that should be logged instead, if any."""
        if is_blank(line):
            return line

        previous, self.line = self.line, line
        return previous


def decode_payload(line: Optional[str]) -> SyntaxNode:
    """Decode the result line of the parser."""
    if line is None:
        raise DecodeError("Parser output is empty")

    try:
        obj = json.loads(line)
    except ValueError as e:
        raise DecodeError(f"Last line of output is not valid JSON: {e}", line) from e

    return syntax.decode(obj)


class ParserBridge:
    """Spawns one parser process per parse request."""

    def __init__(self, lua_path: str, main_path: str,
                 stdout: Optional[Sink] = None, stderr: Optional[Sink] = None,
                 timeout: float = DEFAULT_TIMEOUT):
        self.lua_path = lua_path
        self.main_path = os.path.normpath(main_path)
        self.stdout = stdout or (lambda line: logger.debug("parser: %s", line))
        self.stderr = stderr or (lambda line: logger.warning("parser: %s", line))
        self.timeout = timeout

    def arguments(self, path: Optional[str] = None, source: Optional[str] = None,
                  entry: Optional[str] = None, inline: bool = False) -> List[str]:
        """Command line for a parse request."""
        args = [self.lua_path, self.main_path, "-mode=parse"]

        if entry:
            args.append(f"-entry={entry}")
        if inline and source is not None:
            args.append(f"-src={source}")
        if path:
            args.append(f"-input={os.path.abspath(path)}")

        return args

    async def parse(self, path: Optional[str] = None, source: Optional[str] = None,
                    entry: Optional[str] = None, inline: bool = False) -> ParseResult:
        """Parse a file (``path``) or literal ``source`` starting at rule ``entry``.

        Literal source is written to the parser's standard input unless
        ``inline`` is set, in which case it is passed with ``-src``.
        Raises :class:`ProcessError` when the parser cannot run to completion.
        """
        args = self.arguments(path, source, entry, inline)
        stdin_data = None
        if source is not None and not inline:
            stdin_data = (source + "\n").encode("utf-8")

        try:
            process = await asyncio.create_subprocess_exec(
                *args,
                stdin=asyncio.subprocess.PIPE if stdin_data is not None else asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise ProcessError(f"Unable to start parser '{self.lua_path}': {e}") from e

        result = LastLine()

        try:
            await asyncio.wait_for(self._communicate(process, stdin_data, result), self.timeout)
        except asyncio.TimeoutError:
            if process.returncode is None:
                process.kill()
            await process.wait()
            raise ProcessError(f"Parser timed out after {self.timeout:g}s", process.returncode) from None

        if process.returncode < 0:
            raise ProcessError(f"Parser was killed by signal {-process.returncode}", process.returncode)
        if process.returncode > 0:
            logger.warning("Parser exited with status %d", process.returncode)

        try:
            return decode_payload(result.line)
        except DecodeError as e:
            logger.warning("%s\n\t%s", e, e.raw_output)
            return ParseFailure(e.raw_output)

    async def _communicate(self, process, stdin_data: Optional[bytes], result: LastLine):
        def on_stdout(line: str):
            forwarded = result.push(line)
            if forwarded is not None:
                self.stdout(forwarded)

        await asyncio.gather(
            self._feed(process.stdin, stdin_data),
            self._read(process.stdout, on_stdout),
            self._read(process.stderr, self.stderr),
        )
        await process.wait()

    @staticmethod
    async def _feed(stream, data: Optional[bytes]):
        if stream is None:
            return

        try:
            stream.write(data)
            await stream.drain()
        except (BrokenPipeError, ConnectionResetError):
            logger.debug("Parser closed its input before reading the source")
        finally:
            stream.close()

    @staticmethod
    async def _read(stream, emit: Sink):
        pending = b""

        while True:
            chunk = await stream.read(CHUNK_SIZE)
            if not chunk:
                break

            lines, pending = split_lines(pending, chunk)
            for line in lines:
                emit(line)

        # Output that does not end with a newline still counts as a line
        if pending:
            emit(decode_line(pending))
