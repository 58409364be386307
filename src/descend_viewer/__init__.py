# Descend Viewer
from .bridge import ParseFailure, ParserBridge
from .events import EventChannel
from .tree import DisplayNode, NodeKind, transform

__all__ = ['ParseFailure', 'ParserBridge', 'EventChannel', 'DisplayNode', 'NodeKind', 'transform']
__version__ = '1.0.0'
