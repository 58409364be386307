import pytest

from descend_viewer.errors import ProcessError
from descend_viewer.events import FILE_MOD, PROGRAM_MOD, RELOAD, EventChannel
from descend_viewer.tree import DisplayNode, NodeKind
from descend_viewer.viewer import (ZOOM_MAX, ZOOM_MIN, EventStream, Viewport, ViewerController, ViewState,
                                   clamp_zoom, should_pan)


def leaf(label):
    return DisplayNode(label=label, tag="X", kind=NodeKind.VALUE)


# ---------- Viewport ----------

@pytest.mark.parametrize("requested, expected", [(0.01, ZOOM_MIN), (-3, ZOOM_MIN), (5, ZOOM_MAX), (1.5, 1.5)])
def test_clamp_zoom(requested, expected):
    assert clamp_zoom(requested) == expected


def test_zoom_by_is_clamped():
    viewport = Viewport(width=100, height=100, content_width=1000, content_height=1000)

    assert viewport.zoom_by(5000).zoom == ZOOM_MIN
    assert viewport.zoom_by(-5000).zoom == ZOOM_MAX
    assert viewport.zoom_by(-500).zoom == pytest.approx(1.5)


def test_zoom_keeps_centre_in_place():
    viewport = Viewport(width=200, height=100, content_width=2000, content_height=1000,
                        scroll_x=400, scroll_y=200)

    zoomed = viewport.zoom_by(-1000)

    assert zoomed.zoom == ZOOM_MAX
    assert zoomed.content_width == pytest.approx(4000)
    # Centre (500, 250) maps to (1000, 500)
    assert zoomed.scroll_x == pytest.approx(1000 - 100)
    assert zoomed.scroll_y == pytest.approx(500 - 50)


def test_scroll_is_clamped_to_content():
    viewport = Viewport(width=100, height=50, content_width=300, content_height=80)

    assert viewport.scroll_to(-10, -10).scroll_x == 0
    assert viewport.scroll_to(-10, -10).scroll_y == 0
    assert viewport.scroll_to(1000, 1000).scroll_x == 200
    assert viewport.scroll_to(1000, 1000).scroll_y == 30


def test_scroll_when_content_is_smaller_than_view():
    viewport = Viewport(width=500, height=500, content_width=100, content_height=100)

    assert viewport.scroll_to(50, 50).scroll_x == 0


def test_zoom_out_never_leaves_negative_scroll():
    viewport = Viewport(width=100, height=100, content_width=1000, content_height=1000, scroll_x=0, scroll_y=0)

    zoomed = viewport.zoom_by(900)

    assert zoomed.scroll_x == 0 and zoomed.scroll_y == 0


def test_drag_moves_against_pointer():
    start = Viewport(width=100, height=100, content_width=1000, content_height=1000, scroll_x=300, scroll_y=300)

    moved = start.drag(start, 50, -20)

    assert (moved.scroll_x, moved.scroll_y) == (250, 320)
    assert start.drag(start, 1000, 1000).scroll_x == 0


def test_resize_content_keeps_scroll_when_possible():
    viewport = Viewport(width=100, height=100, content_width=1000, content_height=1000, scroll_x=300, scroll_y=600)

    resized = viewport.resize_content(500, 500)

    assert (resized.scroll_x, resized.scroll_y) == (300, 400)


@pytest.mark.parametrize("button, on_background, expected", [
    (0, True, True),
    (0, False, False),
    (2, False, True),
    (2, True, True),
    (1, True, False),
])
def test_should_pan(button, on_background, expected):
    assert should_pan(button, on_background) is expected


# ---------- Controller ----------

class Recorder:
    def __init__(self, responses=None, size=(400, 300)):
        self.responses = responses or {}
        self.size = size
        self.requests = []
        self.rendered = []

    def fetch(self, file, rule):
        self.requests.append((file, rule))
        response = self.responses.get(file, leaf(file))
        if isinstance(response, Exception):
            raise response
        return response

    def render(self, node):
        self.rendered.append(node)
        return self.size


def test_controller_starts_idle_and_needs_a_file():
    recorder = Recorder()
    controller = ViewerController(recorder.fetch, recorder.render)

    assert controller.state is ViewState.IDLE
    assert controller.refresh() is False
    assert recorder.requests == []


def test_select_fetches_and_displays():
    recorder = Recorder()
    controller = ViewerController(recorder.fetch, recorder.render, rule="entry")

    assert controller.select(file="main.dt") is True

    assert recorder.requests == [("main.dt", "entry")]
    assert controller.state is ViewState.DISPLAYING
    assert controller.tree == leaf("main.dt")


def test_display_accepts_json_trees():
    recorder = Recorder({"main.dt": {"label": "expr", "tag": "", "kind": "invalid", "children": []}})
    controller = ViewerController(recorder.fetch, recorder.render, file="main.dt")

    assert controller.refresh() is True
    assert controller.tree.kind is NodeKind.INVALID


def test_display_restores_scroll_within_new_bounds():
    recorder = Recorder(size=(500, 500))
    viewport = Viewport(width=100, height=100, content_width=1000, content_height=1000, scroll_x=300, scroll_y=600)
    controller = ViewerController(recorder.fetch, recorder.render, file="main.dt", viewport=viewport)

    controller.refresh()

    assert (controller.viewport.scroll_x, controller.viewport.scroll_y) == (300, 400)


def test_refresh_after_zoom_keeps_scroll():
    recorder = Recorder(size=(2000, 1000))
    viewport = Viewport(width=200, height=100, content_width=2000, content_height=1000).zoom_by(-1000)
    viewport = viewport.scroll_to(3500, 1800)
    controller = ViewerController(recorder.fetch, recorder.render, file="main.dt", viewport=viewport)

    controller.refresh()

    assert controller.viewport.zoom == ZOOM_MAX
    assert controller.viewport.content_width == pytest.approx(4000)
    assert (controller.viewport.scroll_x, controller.viewport.scroll_y) == (3500, 1800)


def test_failed_fetch_keeps_last_tree():
    recorder = Recorder()
    controller = ViewerController(recorder.fetch, recorder.render, file="main.dt")
    controller.refresh()

    recorder.responses["main.dt"] = ProcessError("timed out")
    assert controller.refresh() is False

    assert controller.state is ViewState.ERROR
    assert controller.tree == leaf("main.dt")
    assert isinstance(controller.error, ProcessError)


def test_empty_response_is_an_error():
    recorder = Recorder({"main.dt": {}})
    controller = ViewerController(recorder.fetch, recorder.render, file="main.dt")

    assert controller.refresh() is False
    assert controller.state is ViewState.ERROR
    assert recorder.rendered == []


def test_stale_responses_are_discarded():
    recorder = Recorder()
    controller = ViewerController(recorder.fetch, recorder.render, file="main.dt")

    first = controller.begin_fetch()
    second = controller.begin_fetch()

    assert controller.complete(second, leaf("new")) is True
    assert controller.complete(first, leaf("old")) is False
    assert controller.fail(first, ProcessError("late")) is False
    assert controller.tree == leaf("new")
    assert controller.state is ViewState.DISPLAYING


def test_events_trigger_refetch():
    recorder = Recorder()
    controller = ViewerController(recorder.fetch, recorder.render, file="lib/util.dt")

    assert controller.handle_event(PROGRAM_MOD) is True
    assert controller.handle_event(RELOAD) is True
    assert controller.handle_event(FILE_MOD, "main.dt") is False
    assert controller.handle_event(FILE_MOD, "lib/util.dt") is True
    assert controller.handle_event("unknown") is False

    assert len(recorder.requests) == 3


def test_event_stream_feeds_controller_through_channel():
    recorder = Recorder()
    controller = ViewerController(recorder.fetch, recorder.render, file="main.dt")
    channel = EventChannel()
    channel.subscribe(EventStream(controller))

    channel.broadcast(FILE_MOD, "main.dt")
    channel.broadcast(FILE_MOD, "other.dt")

    assert recorder.requests == [("main.dt", "")]
