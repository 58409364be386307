"""
Viewer Controller

Keeps the file/rule selection of a viewer, refetches the display tree when
the selection changes or a relevant event arrives, and preserves the scroll
position across re-renders. The browser page (static/viewer.js) follows the
same rules; this module drives the console viewer.
"""
import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Callable, Optional, Tuple

from .errors import ViewerError
from .events import FILE_MOD, PROGRAM_MOD, RELOAD, decode_event
from .tree import DisplayNode

logger = logging.getLogger(__name__)

ZOOM_MIN = 0.1
ZOOM_MAX = 2.0
# Wheel delta that changes the zoom factor by 1
ZOOM_STEP = 1000.0

LEFT_BUTTON = 0
RIGHT_BUTTON = 2


def clamp(value: float, low: float, high: float) -> float:
    return min(max(low, value), high)


def clamp_zoom(zoom: float) -> float:
    return clamp(zoom, ZOOM_MIN, ZOOM_MAX)


def should_pan(button: int, on_background: bool) -> bool:
    """Left button pans only on the tree background, right button always."""
    if button == LEFT_BUTTON:
        return on_background
    return button == RIGHT_BUTTON


@dataclass(frozen=True)
class Viewport:
    """Visible window onto the rendered tree. Every transform returns a new viewport."""
    width: float = 0.0
    height: float = 0.0
    content_width: float = 0.0
    content_height: float = 0.0
    scroll_x: float = 0.0
    scroll_y: float = 0.0
    zoom: float = 1.0

    @property
    def max_scroll_x(self) -> float:
        return max(0.0, self.content_width - self.width)

    @property
    def max_scroll_y(self) -> float:
        return max(0.0, self.content_height - self.height)

    def scroll_to(self, x: float, y: float) -> "Viewport":
        return replace(
            self,
            scroll_x=clamp(x, 0.0, self.max_scroll_x),
            scroll_y=clamp(y, 0.0, self.max_scroll_y),
        )

    def clamp_scroll(self) -> "Viewport":
        return self.scroll_to(self.scroll_x, self.scroll_y)

    def resize_content(self, width: float, height: float) -> "Viewport":
        """New content size, keeping the scroll offset where it still fits."""
        return replace(self, content_width=width, content_height=height).clamp_scroll()

    def drag(self, start: "Viewport", dx: float, dy: float) -> "Viewport":
        """Pan by the pointer movement since the drag started at ``start``."""
        return self.scroll_to(start.scroll_x - dx, start.scroll_y - dy)

    def zoom_by(self, delta_y: float) -> "Viewport":
        """Apply a wheel delta, keeping the centre of the view in place."""
        zoom = clamp_zoom(self.zoom - delta_y / ZOOM_STEP)
        ratio = zoom / self.zoom

        zoomed = replace(
            self,
            zoom=zoom,
            content_width=self.content_width * ratio,
            content_height=self.content_height * ratio,
        )
        return zoomed.scroll_to(
            (self.scroll_x + self.width / 2) * ratio - self.width / 2,
            (self.scroll_y + self.height / 2) * ratio - self.height / 2,
        )


class ViewState(Enum):
    IDLE = "idle"
    FETCHING = "fetching"
    DISPLAYING = "displaying"
    ERROR = "error"


Fetch = Callable[[str, str], Any]
Render = Callable[[DisplayNode], Tuple[float, float]]


def as_display_node(payload: Any) -> Optional[DisplayNode]:
    """Accept a display node or its JSON form; anything else is not a tree."""
    if isinstance(payload, DisplayNode):
        return payload
    if isinstance(payload, dict) and 'label' in payload:
        try:
            return DisplayNode.from_dict(payload)
        except (KeyError, TypeError, ValueError):
            return None
    return None


class ViewerController:
    """Selection state machine of one viewer.

    ``fetch(file, rule)`` returns a display tree (or its JSON form);
    ``render(tree)`` draws it and returns the size of the drawn content.
    Every fetch gets a sequence number and only the response to the most
    recent one is displayed.
    """

    def __init__(self, fetch: Fetch, render: Render, file: str = "", rule: str = "",
                 viewport: Optional[Viewport] = None):
        self.fetch = fetch
        self.render = render
        self.file = file
        self.rule = rule
        self.viewport = viewport or Viewport()
        self.state = ViewState.IDLE
        self.tree: Optional[DisplayNode] = None
        self.error: Optional[Exception] = None
        self._sequence = 0

    @property
    def sequence(self) -> int:
        return self._sequence

    def select(self, file: Optional[str] = None, rule: Optional[str] = None) -> bool:
        """Commit a new file and/or rule and fetch its tree."""
        if file is not None:
            self.file = file
        if rule is not None:
            self.rule = rule
        return self.refresh()

    def begin_fetch(self) -> int:
        self._sequence += 1
        self.state = ViewState.FETCHING
        return self._sequence

    def complete(self, sequence: int, payload: Any) -> bool:
        """Display a response; returns False if it was stale or not a tree."""
        if sequence != self._sequence:
            logger.debug("Discarding response %d, latest request is %d", sequence, self._sequence)
            return False

        node = as_display_node(payload)
        if node is None:
            self.fail(sequence, ViewerError(f"No syntax tree for '{self.file}'"))
            return False

        previous = self.viewport
        # render reports the unzoomed size
        width, height = self.render(node)
        self.viewport = previous.resize_content(width * previous.zoom, height * previous.zoom)
        self.tree = node
        self.error = None
        self.state = ViewState.DISPLAYING
        return True

    def fail(self, sequence: int, error: Exception) -> bool:
        """Record a failed fetch; the last displayed tree stays as it is."""
        if sequence != self._sequence:
            return False

        logger.warning("Unable to display '%s': %s", self.file, error)
        self.error = error
        self.state = ViewState.ERROR
        return True

    def refresh(self) -> bool:
        """Fetch and display the tree of the current selection."""
        if not self.file:
            return False

        sequence = self.begin_fetch()
        try:
            payload = self.fetch(self.file, self.rule)
        except (ViewerError, OSError) as e:
            self.fail(sequence, e)
            return False

        return self.complete(sequence, payload)

    def handle_event(self, event_type: str, data: Any = None) -> bool:
        """React to a channel event; returns whether a refetch happened."""
        if event_type in (RELOAD, PROGRAM_MOD):
            return self.refresh()
        if event_type == FILE_MOD:
            if data == self.file:
                return self.refresh()
            return False

        logger.error("Unrecognized server event: %s", event_type)
        return False


class EventStream:
    """Channel stream that feeds events straight into a controller."""

    def __init__(self, controller: ViewerController):
        self.controller = controller
        self.closed = False

    def write(self, text: str):
        event_type, data = decode_event(text)
        self.controller.handle_event(event_type, data)

    def close(self):
        self.closed = True
