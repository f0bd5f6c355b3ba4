from dataclasses import replace

import pytest

from omr_config import PANEL_LAYOUT, NumeralSystem
from omr_layout import (
    LayoutError,
    PanelKind,
    build_digit_panel,
    build_label_panel,
    build_label_strip,
    check_panel,
)


def test_roll_panel_value_is_row():
    panel = build_digit_panel(PanelKind.ROLL, "Roll", 6, NumeralSystem.LATIN, 40.0, 30.0)
    assert (panel.rows, panel.cols) == (10, 6)
    assert panel.value_axis == "row"
    for row in range(10):
        for col in range(6):
            bubble = panel.bubble_at(row, col)
            assert (bubble.row, bubble.column) == (row, col)
            assert bubble.value == row
            assert bubble.label == str(row)


def test_digit_panel_geometry():
    panel = build_digit_panel(PanelKind.SUBJECT_CODE, "Code", 3, NumeralSystem.BENGALI, 10.0, 20.0)
    assert panel.width == pytest.approx(3 * PANEL_LAYOUT.digit_column_width)
    assert panel.values[5] == "৫"

    # Digit 0 sits below the header and the write-in row.
    first = panel.bubble_at(0, 0)
    assert first.y == pytest.approx(20.0 + PANEL_LAYOUT.header_height + PANEL_LAYOUT.write_in_height
                                    + PANEL_LAYOUT.row_pitch / 2)
    xs = [panel.bubble_at(0, col).x for col in range(3)]
    assert xs == sorted(xs)
    assert xs[0] - 10.0 == pytest.approx(10.0 + panel.width - xs[-1])


def test_class_panel_rows_align_with_digit_rows():
    labels = [str(level) for level in range(6, 13)]
    classes = build_label_panel(PanelKind.CLASS, "Class", labels, 0.0, 30.0)
    roll = build_digit_panel(PanelKind.ROLL, "Roll", 6, NumeralSystem.LATIN, 30.0, 30.0)
    assert (classes.rows, classes.cols) == (7, 1)
    for row in range(7):
        assert classes.bubble_at(row, 0).y == pytest.approx(roll.bubble_at(row, 0).y)
        assert classes.bubble_at(row, 0).label == labels[row]


def test_set_code_strip_encodes_along_columns():
    strip = build_label_strip(PanelKind.SET_CODE, "Set", ["ক", "খ", "গ", "ঘ"], 100.0, 50.0)
    assert (strip.rows, strip.cols) == (1, 4)
    assert strip.value_axis == "column"
    assert [b.value for b in strip.bubbles] == [0, 1, 2, 3]
    assert [b.label for b in strip.bubbles] == ["ক", "খ", "গ", "ঘ"]
    assert len({b.y for b in strip.bubbles}) == 1


def test_label_panel_rejects_rows_past_its_box():
    labels = [str(level) for level in range(1, 13)]
    with pytest.raises(LayoutError):
        build_label_panel(PanelKind.CLASS, "Class", labels, 0.0, 30.0)


def test_check_panel_rejects_transposed_values():
    panel = build_digit_panel(PanelKind.ROLL, "Roll", 6, NumeralSystem.LATIN, 0.0, 0.0)
    transposed = tuple(replace(b, value=b.column) for b in panel.bubbles)
    with pytest.raises(LayoutError):
        check_panel(replace(panel, bubbles=transposed))


def test_check_panel_rejects_duplicate_and_missing_cells():
    panel = build_label_panel(PanelKind.SET_CODE, "Set", ["A", "B", "C"], 0.0, 0.0)
    duplicated = (panel.bubbles[0], panel.bubbles[0], panel.bubbles[2])
    with pytest.raises(LayoutError):
        check_panel(replace(panel, bubbles=duplicated))
    with pytest.raises(LayoutError):
        check_panel(replace(panel, bubbles=panel.bubbles[:2]))


def test_check_panel_rejects_misaligned_row():
    panel = build_digit_panel(PanelKind.SUBJECT_CODE, "Code", 3, NumeralSystem.LATIN, 0.0, 0.0)
    bubbles = list(panel.bubbles)
    bubbles[4] = replace(bubbles[4], y=bubbles[4].y + 1.0)
    with pytest.raises(LayoutError):
        check_panel(replace(panel, bubbles=tuple(bubbles)))
