#!/usr/bin/env python3
"""
Descend Viewer - Main Entry Point
Shows the syntax tree produced by a language program, live.

Usage:
    descend-viewer -lua=<lua> -main=<main.lua> [-root=<dir>] [-port=<port>]
    descend-viewer -lua=<lua> -main=<main.lua> -print=<file>   # console viewer
    descend-viewer -help
"""
import asyncio
import logging
import os
import sys
import webbrowser
from typing import List, Optional

from werkzeug.serving import make_server

from .bridge import ParseFailure, ParserBridge
from .config import Options, help_text, load_environment, parse_args, wants_help
from .errors import ConfigError
from .events import EventChannel
from .server import create_app
from .tree import DisplayNode, placeholder, render_ascii, transform
from .viewer import EventStream, ViewerController
from .watch import relative_path, start_watchers

logger = logging.getLogger(__name__)
program_logger = logging.getLogger("descend_viewer.program")


def setup_logging():
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)-7s %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )
    # Request lines of the development server are noise here
    logging.getLogger("werkzeug").setLevel(logging.WARNING)


def create_bridge(options: Options) -> ParserBridge:
    """Parser bridge whose program output is shown only with -log."""
    def discard(line: str):
        pass

    return ParserBridge(
        options.lua,
        options.main,
        stdout=program_logger.info if options.log else discard,
        timeout=options.timeout,
    )


def print_banner(url: str, options: Options):
    print(f"""
╔════════════════════════════════════════════════════════════════════╗
║   🌳 Descend Syntax Tree Viewer                                    ║
╚════════════════════════════════════════════════════════════════════╝
    """)
    print(f"🚀 Started viewer at {url}")
    print(f"📁 Source root: {os.path.abspath(options.root)}")
    print(f"📜 Language program: {os.path.abspath(options.main)}")
    print("📌 Press Ctrl+C to stop\n")


def run_server(options: Options, bridge: ParserBridge, channel: EventChannel) -> int:
    """Serve the browser viewer until interrupted."""
    app = create_app(options, bridge, channel)
    server = make_server(options.host, options.port or 0, app, threaded=True)
    url = f"http://{options.host}:{server.server_port}"

    print_banner(url, options)
    observer = start_watchers(options, channel)

    # Without an explicit port nobody knows where to look, so open it
    if options.port is None:
        webbrowser.open(url)

    try:
        server.serve_forever()
    except KeyboardInterrupt:
        print("\n👋 Stopping viewer")
    finally:
        channel.close()
        observer.stop()
        observer.join()
        server.server_close()

    return 0


def create_console(options: Options, bridge: ParserBridge) -> ViewerController:
    """Controller that prints the tree of ``options.print_file`` to the console."""
    def fetch(file: str, rule: str) -> DisplayNode:
        path = os.path.join(options.root, file)
        result = asyncio.run(bridge.parse(path=path, entry=rule or options.entry))

        if isinstance(result, ParseFailure):
            return placeholder(f"No tree for {file}")
        return transform(result)

    def render(node: DisplayNode):
        text = render_ascii(node)
        print(text)

        lines = text.splitlines()
        return max((len(line) for line in lines), default=0), len(lines)

    # Same form as the paths of fileMod events
    file = relative_path(options.root, os.path.join(options.root, options.print_file))
    return ViewerController(fetch, render, file=file, rule=options.entry or "")


def run_console(options: Options, bridge: ParserBridge, channel: EventChannel) -> int:
    """Print the tree of one file and reprint it whenever it changes."""
    controller = create_console(options, bridge)
    controller.refresh()

    channel.subscribe(EventStream(controller))
    observer = start_watchers(options, channel)
    print("👀 Watching for changes, press Ctrl+C to stop\n")

    try:
        while observer.is_alive():
            observer.join(1)
    except KeyboardInterrupt:
        print("\n👋 Stopping viewer")
    finally:
        channel.close()
        observer.stop()
        observer.join()

    return 0


def main(argv: Optional[List[str]] = None) -> int:
    params = parse_args(sys.argv[1:] if argv is None else argv)

    # Show help if no parameters are given
    if wants_help(params):
        print(help_text())
        return 0

    load_environment()

    try:
        options = Options.from_args(params)
    except ConfigError as e:
        print(f"❌ {e}", file=sys.stderr)
        return 2

    setup_logging()
    bridge = create_bridge(options)
    channel = EventChannel()

    if options.print_file:
        return run_console(options, bridge, channel)
    return run_server(options, bridge, channel)


if __name__ == "__main__":
    sys.exit(main())
