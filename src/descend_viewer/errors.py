"""
Descend Viewer - Error types
"""
from typing import Optional


class ViewerError(Exception):
    """Base class for all viewer errors."""


class ConfigError(ViewerError):
    """Invalid or missing command line parameters."""


class ProcessError(ViewerError):
    """The parser process could not be started, timed out or was killed."""

    def __init__(self, message: str, returncode: Optional[int] = None):
        super().__init__(message)
        self.returncode = returncode


class DecodeError(ViewerError):
    """The last line of parser output is not a JSON document."""

    def __init__(self, message: str, raw_output: str = ""):
        super().__init__(message)
        self.raw_output = raw_output


class FileAccessError(ViewerError):
    """A static asset or watched path could not be read."""

    def __init__(self, message: str, path: str = "", status: int = 500):
        super().__init__(message)
        self.path = path
        self.status = status


class TransportError(ViewerError):
    """An event frame could not be written to a connection."""
