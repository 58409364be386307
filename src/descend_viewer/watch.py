"""
File watchers that turn file changes into viewer events.
"""
import logging
import os
from typing import Callable, Optional

from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

from .config import Options
from .errors import FileAccessError
from .events import FILE_MOD, PROGRAM_MOD, RELOAD, EventChannel

logger = logging.getLogger(__name__)


class ChangeHandler(FileSystemEventHandler):
    """Calls ``callback`` with the path of every changed file."""

    def __init__(self, callback: Callable[[str], None]):
        super().__init__()
        self.callback = callback

    def on_modified(self, event):
        if not event.is_directory:
            self.callback(os.fsdecode(event.src_path))

    def on_created(self, event):
        self.on_modified(event)

    def on_moved(self, event):
        # Editors that save through a temporary file end with a move
        if not event.is_directory:
            self.callback(os.fsdecode(event.dest_path))


def relative_path(root: str, path: str) -> str:
    return os.path.relpath(os.path.abspath(path), os.path.abspath(root)).replace(os.sep, "/")


def watch(observer: Observer, path: str, callback: Callable[[str], None]):
    """Schedule ``callback`` for changes below ``path``."""
    if not os.path.exists(path):
        raise FileAccessError(f"No such file or directory '{path}'", path, 404)

    try:
        observer.schedule(ChangeHandler(callback), path, recursive=True)
    except OSError as e:
        raise FileAccessError(f"Unable to watch '{path}': {e}", path) from e


def start_watchers(options: Options, channel: EventChannel,
                   observer: Optional[Observer] = None) -> Observer:
    """Watch the viewer assets, the language program and the source root."""
    observer = observer or Observer()
    root = os.path.abspath(options.root)

    def on_assets(path):
        logger.info("Viewer asset modified: %s", path)
        channel.broadcast(RELOAD)

    def on_program(path):
        logger.info("Language program modified in file: %s", path)
        channel.broadcast(PROGRAM_MOD)

    def on_file(path):
        file = relative_path(root, path)
        logger.info("Language file modified: %s", file)
        channel.broadcast(FILE_MOD, file)

    watches = [
        (options.static_dir, on_assets),
        (options.program_dir, on_program),
        (root, on_file),
    ]

    for path, callback in watches:
        try:
            watch(observer, path, callback)
        except FileAccessError as e:
            logger.warning("Not watching: %s", e)

    observer.start()
    return observer
