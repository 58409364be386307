"""
Descend Viewer - Configuration

Command line parameters have the form ``-name=value`` or ``-name``. Values
missing from the command line are taken from ``DESCEND_<NAME>`` environment
variables, which may be set in a ``.env`` file.
"""
import os
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional

from dotenv import find_dotenv, load_dotenv

from .errors import ConfigError

# Base paths
BASE_DIR = os.path.dirname(os.path.abspath(__file__))
STATIC_DIR = os.path.join(BASE_DIR, "static")

ENV_PREFIX = "DESCEND_"
DEFAULT_HOST = "localhost"
DEFAULT_TIMEOUT = 5.0

# Parameter names and their help descriptions
PARAMETERS = {
    "port": "Port to host the server on. If unspecified, an available port is used and the viewer is opened",
    "root": "Root directory of the language files to view (default: current directory)",
    "lua": "Lua executable path",
    "main": "Main lua file of the language program",
    "entry": "Entry rule used when the viewer does not name one",
    "timeout": f"Seconds a single parse may take (default: {DEFAULT_TIMEOUT:g})",
    "print": "Print the syntax tree of the given file to the console instead of serving the viewer",
    "log": "Print the language program's output to the console",
    "help": "Show this help",
}


@dataclass
class Options:
    """Settings for one viewer run, built once at startup."""
    lua: str
    main: str
    root: str = "."
    port: Optional[int] = None
    entry: Optional[str] = None
    timeout: float = DEFAULT_TIMEOUT
    print_file: Optional[str] = None
    log: bool = False
    host: str = DEFAULT_HOST
    static_dir: str = STATIC_DIR

    @property
    def program_dir(self) -> str:
        return os.path.dirname(os.path.abspath(self.main))

    @classmethod
    def from_args(cls, params: Mapping[str, Optional[str]],
                  environ: Optional[Mapping[str, str]] = None) -> "Options":
        """Validate parsed parameters. Raises :class:`ConfigError`."""
        if environ is None:
            environ = os.environ

        unknown = sorted(set(params) - set(PARAMETERS))
        if unknown:
            names = ", ".join(f"-{name}" for name in unknown)
            raise ConfigError(f"Unknown parameter(s): {names} (see -help)")

        def value(name: str) -> Optional[str]:
            if params.get(name):
                return params[name]
            return environ.get(ENV_PREFIX + name.upper()) or None

        lua = value("lua")
        if not lua:
            raise ConfigError("No Lua runtime specified, use -lua=<path>")

        main = value("main")
        if not main:
            raise ConfigError("No language program specified, use -main=<path>")

        options = cls(lua=lua, main=main, entry=value("entry"), log="log" in params)
        options.root = value("root") or "."
        if "print" in params and not params["print"]:
            raise ConfigError("-print needs a file, use -print=<file>")
        options.print_file = params.get("print")

        port = value("port")
        if port:
            try:
                options.port = int(port)
            except ValueError:
                raise ConfigError(f"Port must be a number, got '{port}'") from None
            if not 0 <= options.port <= 65535:
                raise ConfigError(f"Port out of range: {options.port}")

        timeout = value("timeout")
        if timeout:
            try:
                options.timeout = float(timeout)
            except ValueError:
                raise ConfigError(f"Timeout must be a number of seconds, got '{timeout}'") from None
            if options.timeout <= 0:
                raise ConfigError("Timeout must be positive")

        return options


def parse_args(argv: List[str]) -> Dict[str, Optional[str]]:
    """Key-value map of ``-key=value`` arguments; bare ``-key`` maps to None."""
    params = {}

    for arg in argv:
        if not arg.startswith("-"):
            continue

        key, sep, value = arg[1:].partition("=")
        params[key] = value if sep else None

    return params


def wants_help(params: Mapping[str, Optional[str]]) -> bool:
    return not params or "help" in params


def help_text() -> str:
    names = sorted(PARAMETERS)
    width = max(len(name) for name in names)

    return "\n".join(f"-{name.ljust(width)}\t{PARAMETERS[name]}" for name in names)


def load_environment() -> bool:
    """Load a ``.env`` file from the working directory or its parents."""
    path = find_dotenv(usecwd=True)
    return bool(path) and load_dotenv(path)
