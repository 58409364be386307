"""
Static file serving for the viewer page.
"""
import html
import logging
import os
import re
from typing import List

from flask import Response
from werkzeug.security import safe_join

from .errors import FileAccessError

logger = logging.getLogger(__name__)

CONTENT_TYPES = {
    '.ico': 'image/x-icon',
    '.html': 'text/html',
    '.js': 'text/javascript',
    '.json': 'application/json',
    '.css': 'text/css',
    '.png': 'image/png',
    '.jpg': 'image/jpeg',
    '.wav': 'audio/wav',
    '.mp3': 'audio/mpeg',
    '.svg': 'image/svg+xml',
    '.pdf': 'application/pdf',
    '.doc': 'application/msword',
}

ERROR_PAGE = 'error.html'

FALLBACK_ERROR_HTML = '''<!DOCTYPE html>
<html>
<head><meta charset="utf-8"><title>Error</title></head>
<body>
</body>
</html>
'''


def get_content_type(file: str) -> str:
    """MIME type of a file, by extension."""
    return CONTENT_TYPES.get(os.path.splitext(file)[1].lower(), 'text/plain')


def resolve(root: str, file: str) -> str:
    """Absolute location of ``file`` inside ``root``.

    Directories resolve to their index file, ``index.<ext>`` where ``ext`` is
    the extension of the requested name, ``html`` if it has none.
    """
    relative = file.strip('/')
    location = safe_join(root, relative) if relative else os.path.abspath(root)

    if location is None:
        raise FileAccessError(f"Invalid path '{file}'", file, 404)
    if not os.path.exists(location):
        raise FileAccessError(f"No such file '{file}'", file, 404)

    if os.path.isdir(location):
        ext = os.path.splitext(relative)[1].lstrip('.')
        index = f"index.{ext or 'html'}"
        return resolve(root, f"{relative}/{index}" if relative else index)

    return location


def send_file(root: str, file: str) -> Response:
    """Response holding the file at ``file`` relative to ``root``, or an error page."""
    try:
        location = resolve(root, file)
        with open(location, 'rb') as f:
            content = f.read()
    except FileAccessError as e:
        return error_page(root, str(e), e.status)
    except OSError as e:
        logger.warning("Unable to read '%s': %s", file, e)
        return error_page(root, str(e), 500)

    return Response(content, mimetype=get_content_type(location))


def error_page(root: str, message: str, status: int = 200) -> Response:
    """HTML page showing ``message``."""
    try:
        with open(os.path.join(root, ERROR_PAGE), encoding='utf-8') as f:
            page = f.read()
    except OSError:
        page = FALLBACK_ERROR_HTML

    text = html.escape(message, quote=True)
    body = re.sub(r'<body>(\s*)</body>', lambda m: f'<body><div>{text}</div></body>', page, count=1)

    return Response(body, status=status, mimetype='text/html')


def files_of(root: str) -> List[str]:
    """Every file below ``root``, as sorted paths relative to it."""
    if not os.path.isdir(root):
        raise FileAccessError(f"No such directory '{root}'", root, 404)

    files = []
    for dirpath, _, filenames in os.walk(root):
        for name in filenames:
            path = os.path.relpath(os.path.join(dirpath, name), root)
            files.append(path.replace(os.sep, '/'))

    return sorted(files)
