"""
Tests for the interactive corner editor.
"""
from __future__ import annotations

import math

import pytest

from docscan.editor import (
    CornerEditor,
    EditorState,
    PointerEvent,
    PointerKind,
    PointerPhase,
)
from docscan.errors import InvalidInputError
from docscan.geometry import CornerSet, Point

CORNERS = CornerSet(((100, 100), (300, 100), (300, 250), (100, 250)))


def _editor(**kwargs) -> CornerEditor:
    # Image shown at twice its natural size
    return CornerEditor(CORNERS, natural_size=(400, 300), display_size=(800, 600), **kwargs)


def _mouse(phase: PointerPhase, x: float, y: float) -> PointerEvent:
    return PointerEvent(x, y, phase, PointerKind.MOUSE)


def test_drag_moves_only_the_grabbed_corner():
    editor = _editor()
    editor.handle(_mouse(PointerPhase.DOWN, 600, 500))
    assert editor.state is EditorState.DRAGGING
    assert editor.dragging_index == 2

    assert editor.handle(_mouse(PointerPhase.MOVE, 700, 560)) is True
    assert editor.corners[2] == Point(350, 280)
    assert [editor.corners[i] for i in (0, 1, 3)] == [CORNERS[0], CORNERS[1], CORNERS[3]]

    editor.handle(_mouse(PointerPhase.UP, 700, 560))
    assert editor.state is EditorState.IDLE
    assert editor.corners[2] == Point(350, 280)


def test_press_outside_hit_radius_starts_no_drag():
    editor = _editor()
    # 25 image pixels from the top-left corner, outside the 20px mouse radius
    editor.handle(_mouse(PointerPhase.DOWN, 250, 200))
    assert editor.state is EditorState.IDLE
    assert editor.handle(_mouse(PointerPhase.MOVE, 260, 210)) is False
    assert editor.corners == CORNERS


def test_touch_has_a_larger_hit_radius():
    editor = _editor()
    assert editor.hit_test(Point(125, 100), PointerKind.MOUSE) is None
    assert editor.hit_test(Point(125, 100), PointerKind.TOUCH) == 0
    assert editor.hit_test(Point(120, 100), PointerKind.MOUSE) is None
    assert editor.hit_test(Point(119.9, 100), PointerKind.MOUSE) == 0


def test_overlapping_corners_resolve_to_lowest_index():
    crowded = CornerSet(((100, 100), (110, 100), (300, 250), (100, 250)))
    editor = CornerEditor(crowded, natural_size=(400, 300))
    assert editor.hit_test(Point(105, 100)) == 0
    assert editor.hit_test(Point(112, 100)) == 0
    assert editor.hit_test(Point(125, 100)) == 1


def test_hover_tracks_the_pointer():
    editor = _editor()
    editor.handle(_mouse(PointerPhase.MOVE, 204, 200))
    assert editor.state is EditorState.HOVERING
    assert editor.hovered_index == 0

    editor.handle(_mouse(PointerPhase.MOVE, 400, 400))
    assert editor.state is EditorState.IDLE
    assert editor.hovered_index is None


def test_press_on_hovered_corner_switches_to_dragging():
    editor = _editor()
    editor.handle(_mouse(PointerPhase.MOVE, 600, 200))
    assert editor.hovered_index == 1
    editor.handle(_mouse(PointerPhase.DOWN, 600, 200))
    assert editor.state is EditorState.DRAGGING
    assert editor.hovered_index is None


@pytest.mark.parametrize("phase", [PointerPhase.LEAVE, PointerPhase.CANCEL])
def test_leaving_or_cancelling_ends_the_drag(phase):
    editor = _editor()
    editor.handle(_mouse(PointerPhase.DOWN, 200, 200))
    editor.handle(_mouse(PointerPhase.MOVE, 220, 220))
    editor.handle(PointerEvent(math.nan, math.nan, phase))
    assert editor.state is EditorState.IDLE
    assert editor.corners[0] == Point(110, 110)
    assert editor.handle(_mouse(PointerPhase.MOVE, 300, 300)) is False
    assert editor.corners[0] == Point(110, 110)


def test_corners_are_never_reordered():
    editor = _editor()
    # Drag the top-left corner past the bottom-right one
    editor.handle(_mouse(PointerPhase.DOWN, 200, 200))
    editor.handle(_mouse(PointerPhase.MOVE, 700, 580))
    editor.handle(_mouse(PointerPhase.UP, 700, 580))
    assert list(editor.corners) == [(350, 290), (300, 100), (300, 250), (100, 250)]


def test_events_are_ignored_while_scale_is_degenerate():
    editor = CornerEditor(CORNERS, natural_size=(0, 0), display_size=(800, 600))
    assert editor.scale == (0.0, 0.0)
    assert editor.handle(_mouse(PointerPhase.DOWN, 200, 200)) is False
    assert editor.state is EditorState.IDLE
    with pytest.raises(InvalidInputError):
        editor.to_image(10, 10)

    editor.set_natural_size(400, 300)
    editor.handle(_mouse(PointerPhase.DOWN, 200, 200))
    assert editor.dragging_index == 0


def test_non_finite_pointer_position_is_ignored():
    editor = _editor()
    editor.handle(_mouse(PointerPhase.DOWN, 200, 200))
    assert editor.handle(_mouse(PointerPhase.MOVE, math.nan, 220)) is False
    assert editor.corners == CORNERS
    assert editor.state is EditorState.DRAGGING


def test_independent_axis_scales():
    editor = CornerEditor(CORNERS, natural_size=(400, 300), display_size=(200, 600))
    assert editor.scale == (0.5, 2.0)
    assert editor.to_image(50, 200) == Point(100, 100)
    assert editor.to_display(Point(300, 250)) == Point(150, 500)
    assert list(editor.corners_for_display()) == [(50, 200), (150, 200), (150, 500), (50, 500)]


def test_resizing_the_display_keeps_image_corners():
    editor = _editor()
    editor.set_display_size(400, 300)
    assert editor.scale == (1.0, 1.0)
    assert editor.corners == CORNERS
    editor.handle(_mouse(PointerPhase.DOWN, 300, 250))
    assert editor.dragging_index == 2


def test_clamp_keeps_corners_inside_the_image():
    editor = _editor(clamp_to_image=True)
    editor.handle(_mouse(PointerPhase.DOWN, 600, 500))
    editor.handle(_mouse(PointerPhase.MOVE, 1000, -40))
    assert editor.corners[2] == Point(400, 0)


def test_unclamped_corners_may_leave_the_image():
    editor = _editor()
    editor.handle(_mouse(PointerPhase.DOWN, 600, 500))
    editor.handle(_mouse(PointerPhase.MOVE, 1000, -40))
    assert editor.corners[2] == Point(500, -20)


def test_on_change_receives_every_edit():
    seen = []
    editor = _editor(on_change=seen.append)
    editor.handle(_mouse(PointerPhase.DOWN, 600, 200))
    editor.handle(_mouse(PointerPhase.MOVE, 610, 200))
    editor.handle(_mouse(PointerPhase.MOVE, 620, 200))
    editor.handle(_mouse(PointerPhase.UP, 620, 200))
    assert [c[1] for c in seen] == [Point(305, 100), Point(310, 100)]
    assert seen[-1] is editor.corners


def test_reset_drops_the_drag():
    editor = _editor()
    editor.handle(_mouse(PointerPhase.DOWN, 600, 500))
    moved = CornerSet(((0, 0), (10, 0), (10, 10), (0, 10)))
    editor.reset(moved)
    assert editor.state is EditorState.IDLE
    assert editor.corners == moved


def test_hit_radius_override():
    editor = _editor(mouse_hit_radius=30)
    assert editor.hit_radius() == 30
    assert editor.hit_test(Point(125, 100)) == 0


def test_mouse_events_from_client_coordinates():
    event = PointerEvent.from_mouse("mousedown", 650, 540, offset=(50, 40))
    assert event == PointerEvent(600, 500, PointerPhase.DOWN, PointerKind.MOUSE)
    assert PointerEvent.from_mouse("mouseleave", 0, 0).phase is PointerPhase.LEAVE
    with pytest.raises(InvalidInputError):
        PointerEvent.from_mouse("click", 0, 0)


def test_touch_events_track_the_first_touch():
    editor = _editor()
    start = PointerEvent.from_touch("touchstart", [(660, 500), (10, 10)], offset=(0, 0))
    assert start.kind is PointerKind.TOUCH
    # 30 image pixels away: only within the touch radius
    editor.handle(start)
    assert editor.dragging_index == 2

    editor.handle(PointerEvent.from_touch("touchmove", [(620, 520)]))
    assert editor.corners[2] == Point(310, 260)

    end = PointerEvent.from_touch("touchend", [])
    assert end.phase is PointerPhase.UP and math.isnan(end.x)
    editor.handle(end)
    assert editor.state is EditorState.IDLE

    with pytest.raises(InvalidInputError):
        PointerEvent.from_touch("touchhold", [])


def test_editor_without_corners_ignores_events():
    editor = CornerEditor(None, natural_size=(400, 300))
    assert editor.handle(_mouse(PointerPhase.DOWN, 100, 100)) is False
    assert editor.state is EditorState.IDLE
    assert editor.corners_for_display() is None
    with pytest.raises(InvalidInputError):
        editor.move_corner(0, Point(1, 1))

    editor.reset(CORNERS)
    editor.handle(_mouse(PointerPhase.DOWN, 100, 100))
    assert editor.dragging_index == 0
