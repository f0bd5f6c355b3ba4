import math
from dataclasses import replace

import pytest

from omr_config import BOARD_GRID, NORMAL_GRID_TIERS, NumeralSystem
from omr_layout import LayoutError, build_answer_columns, check_answer_columns, partition_questions


@pytest.mark.parametrize("columns", [2, 3, 4])
@pytest.mark.parametrize("count", range(1, 101))
def test_partition_covers_every_question_once(count, columns):
    ranges = partition_questions(count, columns)
    covered = [q for start, end in ranges for q in range(start, end + 1)]
    assert covered == list(range(1, count + 1))

    # No empty trailing columns, never more than requested.
    per_column = math.ceil(count / columns)
    assert len(ranges) <= columns
    assert len(ranges) == math.ceil(count / per_column)
    assert all(end >= start for start, end in ranges)


def test_partition_edge_cases():
    assert partition_questions(0, 3) == []
    with pytest.raises(ValueError):
        partition_questions(10, 0)
    # 10 questions in 4 columns leave the last column short.
    assert partition_questions(10, 4) == [(1, 3), (4, 6), (7, 9), (10, 10)]


def test_thirty_questions_in_three_columns():
    columns = build_answer_columns(30, 3, grid=NORMAL_GRID_TIERS[0])
    assert [c.question_range for c in columns] == [(1, 10), (11, 20), (21, 30)]
    for column in columns:
        assert len(column.rows) == 10
        assert all(len(row.bubbles) == 4 for row in column.rows)
    check_answer_columns(columns, 30)


def test_hundred_questions_fill_four_columns_of_25():
    columns = build_answer_columns(100, 4)
    assert [c.question_range for c in columns] == [(1, 25), (26, 50), (51, 75), (76, 100)]
    assert [len(c.rows) for c in columns] == [25, 25, 25, 25]


def test_rows_grow_down_and_options_grow_right():
    columns = build_answer_columns(12, 2, column_xs=[20.0, 80.0], top=50.0)
    first = columns[0]
    assert first.x == 20.0
    assert first.rows[0].bubbles[0].y == pytest.approx(50.0 + BOARD_GRID.header_height + BOARD_GRID.row_pitch / 2)
    for row_index, row in enumerate(first.rows):
        assert [b.column for b in row.bubbles] == [0, 1, 2, 3]
        assert [b.option_index for b in row.bubbles] == [0, 1, 2, 3]
        assert all(b.row == row_index for b in row.bubbles)
        xs = [b.x for b in row.bubbles]
        assert xs == sorted(xs)
    ys = [row.bubbles[0].y for row in first.rows]
    assert all(b - a == pytest.approx(BOARD_GRID.row_pitch) for a, b in zip(ys, ys[1:]))
    assert columns[1].rows[0].bubbles[0].question_column == 1


def test_labels_follow_numeral_and_option_scripts():
    columns = build_answer_columns(12, 2, NumeralSystem.BENGALI)
    row = columns[1].rows[2]
    assert row.question == 9
    assert row.label == "৯"
    assert [b.label for b in row.bubbles] == ["ক", "খ", "গ", "ঘ"]

    mixed = build_answer_columns(12, 2, NumeralSystem.LATIN, NumeralSystem.BENGALI)
    assert mixed[0].rows[0].label == "1"
    assert mixed[0].rows[0].bubbles[0].label == "ক"


def test_too_few_column_positions_rejected():
    with pytest.raises(ValueError):
        build_answer_columns(30, 3, column_xs=[0.0, 50.0])


def test_check_rejects_gaps_and_reordering():
    columns = build_answer_columns(30, 3)
    with pytest.raises(LayoutError):
        check_answer_columns(columns, 31)
    with pytest.raises(LayoutError):
        check_answer_columns((columns[1], columns[0], columns[2]), 30)
    shortened = replace(columns[0], rows=columns[0].rows[:-1])
    with pytest.raises(LayoutError):
        check_answer_columns((shortened,) + columns[1:], 30)


def test_check_rejects_transposed_bubbles():
    columns = build_answer_columns(8, 2)
    row = columns[0].rows[0]
    swapped = tuple(replace(b, row=b.column, column=b.row) for b in row.bubbles)
    broken_rows = (replace(row, bubbles=swapped),) + columns[0].rows[1:]
    with pytest.raises(LayoutError):
        check_answer_columns((replace(columns[0], rows=broken_rows), columns[1]), 8)
