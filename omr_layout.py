"""Procedural generation of bubble coordinates for OMR templates.

This module holds the layout data model and the two bubble builders shared by
both sheet variants:

- the answer grid builder, which partitions questions column-major and lays
  out one row of option bubbles per question;
- the identity panel builder, which lays out digit grids (roll number, subject
  code) and label columns (class, set code).

Both follow one indexing convention: ``row`` grows with ``y`` and ``column``
grows with ``x``. Digit panels store the digit value in ``row`` and the digit
position in ``column``; answer rows store the option in ``column``. Every
panel and column set is checked against that convention when it is built.
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from typing import Iterator, List, Optional, Sequence, Tuple

from omr_config import (
    ANSWER_OPTIONS,
    BOARD_GRID,
    FORMAT_DPI,
    PANEL_LAYOUT,
    AnswerGridLayout,
    IdentityPanelLayout,
    NumeralSystem,
    Palette,
    TemplateConfig,
)
from omr_geometry import cell_centers
from omr_markers import FiducialMarker
from omr_numerals import format_number, format_option


class LayoutError(RuntimeError):
    """A built layout breaks an invariant the scanner relies on."""


class PanelKind(str, Enum):
    ROLL = "roll"
    SUBJECT_CODE = "subject_code"
    CLASS = "class"
    SET_CODE = "set_code"


class DecorationKind(str, Enum):
    TEXT = "text"
    RULE = "rule"
    DASHED_RULE = "dashed_rule"
    BOX = "box"
    FILLED_BOX = "filled_box"
    CHECKBOX = "checkbox"
    CIRCLE = "circle"
    TIMING_MARK = "timing_mark"


@dataclass(frozen=True)
class BubbleCoordinate:
    """Represents a bubble's position and metadata."""
    x: float  # centre, mm from the left edge
    y: float  # centre, mm from the top edge
    radius: float

    row: Optional[int] = None
    column: Optional[int] = None
    value: Optional[int] = None
    label: str = ""

    # Answer bubble metadata (None for identity bubbles)
    question: Optional[int] = None
    option_index: Optional[int] = None
    question_column: Optional[int] = None


@dataclass(frozen=True)
class BubblePanel:
    """A fixed-purpose identity field encoded as a grid of bubbles.

    ``value_axis`` names the axis that carries the encoded value: ``"row"``
    for vertical panels (digits, class, set code) and ``"column"`` for the
    horizontal set-code strip.
    """
    kind: PanelKind
    header: str
    rows: int
    cols: int
    values: Tuple[str, ...]
    value_axis: str
    bubbles: Tuple[BubbleCoordinate, ...]
    x: float
    y: float
    width: float
    height: float

    @property
    def cell_positions(self) -> Tuple[BubbleCoordinate, ...]:
        return self.bubbles

    def bubble_at(self, row: int, column: int) -> BubbleCoordinate:
        return self.bubbles[row * self.cols + column]


@dataclass(frozen=True)
class AnswerRow:
    question: int
    label: str
    bubbles: Tuple[BubbleCoordinate, ...]


@dataclass(frozen=True)
class AnswerColumn:
    index: int
    question_range: Tuple[int, int]
    rows: Tuple[AnswerRow, ...]
    x: float
    y: float
    width: float
    row_pitch: float
    header_height: float = 0.0

    @property
    def height(self) -> float:
        return self.header_height + len(self.rows) * self.row_pitch


@dataclass(frozen=True)
class Decoration:
    """Anything printed that a scanner does not sample.

    Rules run from ``(x, y)`` to ``(x + width, y + height)``; circles use
    ``(x, y)`` as centre and ``width`` as diameter; boxes have their top-left
    at ``(x, y)``. Single-line text is vertically centred on ``y`` and
    anchored at ``x`` according to ``align``; text with a non-zero box size
    wraps inside that box. Colours name a palette field or one of
    ``"black"``, ``"white"``, ``"muted"``, ``"ink"``.
    """
    kind: DecorationKind
    x: float
    y: float
    width: float = 0.0
    height: float = 0.0
    text: str = ""
    font_size: float = 0.0  # points
    color: str = "black"
    fill: Optional[str] = None
    align: str = "left"
    bold: bool = False
    line_width: float = 0.3
    rotate: int = 0


@dataclass(frozen=True)
class Page:
    index: int
    width: float
    height: float
    markers: Tuple[FiducialMarker, ...]
    identity_panels: Tuple[BubblePanel, ...]
    answer_columns: Tuple[AnswerColumn, ...]
    decorations: Tuple[Decoration, ...]
    break_after: bool = False

    def bubbles(self) -> Iterator[BubbleCoordinate]:
        for panel in self.identity_panels:
            yield from panel.bubbles
        for column in self.answer_columns:
            for row in column.rows:
                yield from row.bubbles

    @property
    def question_count(self) -> int:
        return sum(len(column.rows) for column in self.answer_columns)


@dataclass(frozen=True)
class LayoutDocument:
    version: str
    config: TemplateConfig
    palette: Palette
    pages: Tuple[Page, ...]


# ---------------------------------------------------------------------------
# Answer grid
# ---------------------------------------------------------------------------

def partition_questions(item_count: int, column_count: int) -> List[Tuple[int, int]]:
    """Split questions ``1..item_count`` into contiguous column ranges."""
    if column_count <= 0:
        raise ValueError(f"column_count must be positive, got {column_count}")
    if item_count <= 0:
        return []

    per_column = math.ceil(item_count / column_count)
    ranges = []
    for col in range(column_count):
        start = col * per_column + 1
        if start > item_count:
            break
        ranges.append((start, min((col + 1) * per_column, item_count)))
    return ranges


def build_answer_columns(
    item_count: int,
    column_count: int,
    numerals: NumeralSystem = NumeralSystem.LATIN,
    option_script: Optional[NumeralSystem] = None,
    grid: AnswerGridLayout = BOARD_GRID,
    column_xs: Optional[Sequence[float]] = None,
    top: float = 0.0,
) -> Tuple[AnswerColumn, ...]:
    """Generate answer columns with one row of option bubbles per question.

    Args:
        column_xs: Left edge of each column; packed from 0 when omitted
        top: Top edge of the columns (the header row, if any, starts here)
    """
    ranges = partition_questions(item_count, column_count)
    if column_xs is None:
        column_xs = [i * (grid.column_width + grid.column_gap) for i in range(len(ranges))]
    elif len(column_xs) < len(ranges):
        raise ValueError(f"need {len(ranges)} column positions, got {len(column_xs)}")

    script = option_script or numerals
    option_labels = [format_option(opt, script) for opt in range(ANSWER_OPTIONS)]
    option_offsets = cell_centers(grid.options_width, ANSWER_OPTIONS)
    first_row_top = top + grid.header_height

    columns = []
    for index, (start, end) in enumerate(ranges):
        x0 = column_xs[index]
        rows = []
        for row, question in enumerate(range(start, end + 1)):
            y = first_row_top + (row + 0.5) * grid.row_pitch
            bubbles = tuple(
                BubbleCoordinate(
                    x=x0 + grid.label_width + offset,
                    y=y,
                    radius=grid.radius,
                    row=row,
                    column=opt,
                    value=opt,
                    label=option_labels[opt],
                    question=question,
                    option_index=opt,
                    question_column=index,
                )
                for opt, offset in enumerate(option_offsets)
            )
            rows.append(AnswerRow(question, format_number(question, numerals), bubbles))

        columns.append(AnswerColumn(
            index=index,
            question_range=(start, end),
            rows=tuple(rows),
            x=x0,
            y=top,
            width=grid.column_width,
            row_pitch=grid.row_pitch,
            header_height=grid.header_height,
        ))
    return tuple(columns)


def check_answer_columns(columns: Sequence[AnswerColumn], item_count: int) -> None:
    """Raise ``LayoutError`` unless the columns cover ``1..item_count`` exactly."""
    expected = 1
    previous_x = None
    for column in columns:
        start, end = column.question_range
        if start != expected or end < start:
            raise LayoutError(
                f"column {column.index} covers {start}-{end}, expected to start at {expected}"
            )
        questions = [row.question for row in column.rows]
        if questions != list(range(start, end + 1)):
            raise LayoutError(f"column {column.index} rows do not match range {start}-{end}")
        if previous_x is not None and column.x <= previous_x:
            raise LayoutError(f"column {column.index} is not right of the previous column")
        previous_x = column.x

        previous_y = None
        for row_index, row in enumerate(column.rows):
            if len(row.bubbles) != ANSWER_OPTIONS:
                raise LayoutError(f"question {row.question} has {len(row.bubbles)} options")
            _check_line(row.bubbles, "column", f"question {row.question}")
            for bubble in row.bubbles:
                if bubble.row != row_index or bubble.question != row.question:
                    raise LayoutError(f"question {row.question} bubble carries wrong row metadata")
                if bubble.question_column != column.index:
                    raise LayoutError(f"question {row.question} bubble carries wrong column metadata")
            y = row.bubbles[0].y
            if previous_y is not None and y <= previous_y:
                raise LayoutError(f"question {row.question} is not below the previous row")
            previous_y = y
        expected = end + 1

    if expected - 1 != max(item_count, 0):
        raise LayoutError(f"columns cover 1-{expected - 1}, expected 1-{item_count}")


# ---------------------------------------------------------------------------
# Identity panels
# ---------------------------------------------------------------------------

def _grid_panel(
    kind: PanelKind,
    header: str,
    values: Tuple[str, ...],
    value_axis: str,
    rows: int,
    xs: Sequence[float],
    row_top: float,
    row_pitch: float,
    radius: float,
    box: Tuple[float, float, float, float],
) -> BubblePanel:
    bubbles = []
    for row in range(rows):
        y = row_top + (row + 0.5) * row_pitch
        for col, x in enumerate(xs):
            value = row if value_axis == "row" else col
            bubbles.append(BubbleCoordinate(
                x=x,
                y=y,
                radius=radius,
                row=row,
                column=col,
                value=value,
                label=values[value],
            ))

    x, y, width, height = box
    panel = BubblePanel(
        kind=kind,
        header=header,
        rows=rows,
        cols=len(xs),
        values=values,
        value_axis=value_axis,
        bubbles=tuple(bubbles),
        x=x,
        y=y,
        width=width,
        height=height,
    )
    check_panel(panel)
    return panel


def build_digit_panel(
    kind: PanelKind,
    header: str,
    digits: int,
    numerals: NumeralSystem,
    x: float,
    y: float,
    layout: IdentityPanelLayout = PANEL_LAYOUT,
) -> BubblePanel:
    """Digit grid: one column per digit position, one row per digit 0-9."""
    width = digits * layout.digit_column_width
    values = tuple(format_number(digit, numerals) for digit in range(10))
    xs = [x + offset for offset in cell_centers(width, digits)]
    row_top = y + layout.header_height + layout.write_in_height
    return _grid_panel(
        kind, header, values, "row", 10, xs, row_top, layout.row_pitch,
        layout.radius, (x, y, width, layout.panel_height),
    )


def build_label_panel(
    kind: PanelKind,
    header: str,
    labels: Sequence[str],
    x: float,
    y: float,
    layout: IdentityPanelLayout = PANEL_LAYOUT,
) -> BubblePanel:
    """Single column of labelled bubbles, rows aligned with digit panel rows."""
    width = layout.label_panel_width
    row_top = y + layout.header_height + layout.write_in_height
    return _grid_panel(
        kind, header, tuple(labels), "row", len(labels), [x + width / 2], row_top,
        layout.row_pitch, layout.radius, (x, y, width, layout.panel_height),
    )


def build_label_strip(
    kind: PanelKind,
    header: str,
    labels: Sequence[str],
    x: float,
    y: float,
    layout: IdentityPanelLayout = PANEL_LAYOUT,
) -> BubblePanel:
    """Single row of labelled bubbles starting at ``x``."""
    pitch = layout.strip_pitch
    xs = [x + (i + 0.5) * pitch for i in range(len(labels))]
    return _grid_panel(
        kind, header, tuple(labels), "column", 1, xs, y, pitch,
        layout.radius, (x, y, len(labels) * pitch, pitch),
    )


def check_panel(panel: BubblePanel) -> None:
    """Raise ``LayoutError`` if the panel breaks the row/column convention."""
    name = panel.kind.value
    if panel.value_axis not in ("row", "column"):
        raise LayoutError(f"{name}: unknown value axis {panel.value_axis!r}")
    if len(panel.bubbles) != panel.rows * panel.cols:
        raise LayoutError(
            f"{name}: {len(panel.bubbles)} bubbles for a {panel.rows}x{panel.cols} grid"
        )
    span = panel.rows if panel.value_axis == "row" else panel.cols
    if len(panel.values) != span:
        raise LayoutError(f"{name}: {len(panel.values)} labels for {span} values")

    seen = set()
    for bubble in panel.bubbles:
        key = (bubble.row, bubble.column)
        if key in seen:
            raise LayoutError(f"{name}: duplicate cell {key}")
        seen.add(key)
        if not (0 <= bubble.row < panel.rows and 0 <= bubble.column < panel.cols):
            raise LayoutError(f"{name}: cell {key} outside the grid")
        expected = bubble.row if panel.value_axis == "row" else bubble.column
        if bubble.value != expected:
            raise LayoutError(f"{name}: cell {key} encodes {bubble.value}, expected {expected}")
        if bubble.label != panel.values[expected]:
            raise LayoutError(f"{name}: cell {key} labelled {bubble.label!r}")
        if bubble.y + bubble.radius > panel.y + panel.height + 1e-6:
            raise LayoutError(f"{name}: cell {key} runs below the panel box")

    for row in range(panel.rows):
        _check_line([panel.bubble_at(row, col) for col in range(panel.cols)], "column", f"{name} row {row}")
    for col in range(panel.cols):
        _check_line([panel.bubble_at(row, col) for row in range(panel.rows)], "row", f"{name} column {col}")


def _check_line(bubbles: Sequence[BubbleCoordinate], axis: str, where: str) -> None:
    """Bubbles along one line share a coordinate and advance along the other."""
    if axis == "column":
        fixed = [b.y for b in bubbles]
        moving = [b.x for b in bubbles]
        indices = [b.column for b in bubbles]
    else:
        fixed = [b.x for b in bubbles]
        moving = [b.y for b in bubbles]
        indices = [b.row for b in bubbles]

    if indices != list(range(len(bubbles))):
        raise LayoutError(f"{where}: {axis} indices {indices} out of order")
    if any(abs(value - fixed[0]) > 1e-6 for value in fixed):
        raise LayoutError(f"{where}: bubbles are not aligned")
    if any(b <= a for a, b in zip(moving, moving[1:])):
        raise LayoutError(f"{where}: positions do not increase with {axis}")


# ---------------------------------------------------------------------------
# JSON projection
# ---------------------------------------------------------------------------

def _r(value: float) -> float:
    return round(value, 3)


def _bubble_dict(bubble: BubbleCoordinate) -> dict:
    return {
        "x": _r(bubble.x),
        "y": _r(bubble.y),
        "radius": _r(bubble.radius),
        "row": bubble.row,
        "column": bubble.column,
        "value": bubble.value,
        "label": bubble.label,
    }


def layout_to_dict(document: LayoutDocument) -> dict:
    """Scanner-facing description of a document's sampled geometry."""
    config = document.config
    pages = []
    for page in document.pages:
        markers = []
        for marker in page.markers:
            notch = marker.notch_rect()
            markers.append({
                "corner": marker.corner.value,
                "x": _r(marker.x),
                "y": _r(marker.y),
                "size": _r(marker.size),
                "has_notch": marker.has_notch,
                "hole": [_r(v) for v in marker.hole_rect()],
                "notch": [_r(v) for v in notch] if notch else None,
            })
        panels = [
            {
                "kind": panel.kind.value,
                "header": panel.header,
                "rows": panel.rows,
                "cols": panel.cols,
                "value_axis": panel.value_axis,
                "values": list(panel.values),
                "bubbles": [_bubble_dict(b) for b in panel.bubbles],
            }
            for panel in page.identity_panels
        ]
        columns = [
            {
                "index": column.index,
                "start": column.question_range[0],
                "end": column.question_range[1],
                "questions": [
                    {
                        "number": row.question,
                        "label": row.label,
                        "bubbles": [_bubble_dict(b) for b in row.bubbles],
                    }
                    for row in column.rows
                ],
            }
            for column in page.answer_columns
        ]
        pages.append({
            "index": page.index,
            "width": page.width,
            "height": page.height,
            "markers": markers,
            "identity_panels": panels,
            "answer_columns": columns,
        })

    return {
        "version": document.version,
        "units": "mm",
        "dpi": FORMAT_DPI,
        "variant": config.variant.value,
        "question_count": config.question_count,
        "numeral_system": config.numeral_system.value,
        "option_script": config.option_script.value,
        "pages": pages,
    }
