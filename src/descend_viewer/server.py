"""
Viewer HTTP server

Routes:
- GET /events              -> server-sent events stream
- GET /parse/<file>?<rule> -> syntax tree of a file as emitted by the parser
- GET /tree/<file>?<rule>  -> display tree of a file, ready for rendering
- GET /files               -> files below the source root
- GET /<path>              -> viewer page assets
"""
import logging
import os
from typing import Optional
from urllib.parse import unquote

from flask import Flask, Response, jsonify, request
from flask_cors import CORS
from werkzeug.security import safe_join

from .bridge import ParseFailure, ParserBridge
from .config import Options
from .errors import FileAccessError, ProcessError
from .events import EventChannel, QueueStream
from .serve import files_of, send_file
from .syntax import SyntaxNode
from .tree import transform

logger = logging.getLogger(__name__)


def create_app(options: Options, bridge: Optional[ParserBridge] = None,
               channel: Optional[EventChannel] = None) -> Flask:
    """Build the viewer application around one parser bridge and event channel."""
    if bridge is None:
        bridge = ParserBridge(options.lua, options.main, timeout=options.timeout)
    if channel is None:
        channel = EventChannel()

    app = Flask(__name__, static_folder=None)
    # Branch order is meaningful, keep keys as the parser wrote them
    app.json.sort_keys = False
    app.config['BRIDGE'] = bridge
    app.config['CHANNEL'] = channel

    CORS(app, resources={r"/(events|parse|tree|files)(/.*)?": {"origins": "*"}})

    async def run_parser(file: str) -> Optional[SyntaxNode]:
        """Parse a source file below the root, None if no tree was produced."""
        rule = unquote(request.query_string.decode('utf-8')) or options.entry
        path = safe_join(os.path.abspath(options.root), file)

        if path is None or not os.path.isfile(path):
            logger.warning("Unable to read file: %s", file)
            return None

        try:
            result = await bridge.parse(path=path, entry=rule)
        except ProcessError as e:
            logger.error("Parsing '%s' failed: %s", file, e)
            return None

        if isinstance(result, ParseFailure):
            return None
        return result

    @app.route('/events')
    def events():
        stream = QueueStream()
        connection = channel.subscribe(stream)

        def generate():
            try:
                yield ": connected\n\n"
                yield from stream
            finally:
                stream.close()
                channel.unsubscribe(connection)

        return Response(generate(), mimetype='text/event-stream', headers={
            'Cache-Control': 'no-cache',
            'Connection': 'keep-alive',
        })

    @app.route('/parse/<path:file>')
    async def parse(file):
        node = await run_parser(file)
        return jsonify(node.to_json() if node is not None else {})

    @app.route('/tree/<path:file>')
    async def tree(file):
        node = await run_parser(file)
        return jsonify(transform(node).to_dict() if node is not None else {})

    @app.route('/files')
    def files():
        try:
            return jsonify(files_of(options.root))
        except FileAccessError as e:
            logger.warning("Unable to list files: %s", e)
            return jsonify([])

    @app.route('/', defaults={'file': ''})
    @app.route('/<path:file>')
    def asset(file):
        return send_file(options.static_dir, file)

    return app
