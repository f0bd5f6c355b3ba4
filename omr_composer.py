"""Compose a complete OMR template from a ``TemplateConfig``.

Composition is one synchronous pass:

    normalize -> markers -> identity panels -> answer columns -> page(s)

The board and normal sheets share the marker placer and both bubble builders;
only the arrangement around them differs, which lives in one strategy class
per variant.
"""
from __future__ import annotations

import logging
import math
from dataclasses import replace
from typing import List, Mapping, Optional, Sequence, Tuple, Union
from urllib.parse import parse_qsl

from omr_config import (
    BOARD_QUESTION_TIERS,
    DEFAULT_CLASS_LEVELS,
    DEFAULT_CONFIG,
    DEFAULT_THEME,
    DOUBLE_PAGE_COLUMNS,
    DOUBLE_PAGE_MAX_QUESTIONS,
    LAYOUT_VERSION,
    MAX_CLASS_LEVELS,
    MAX_SET_CODES,
    NORMAL_COLUMN_RANGE,
    NORMAL_DEFAULT_QUESTIONS,
    NORMAL_QUESTION_RANGE,
    PALETTES,
    ROLL_DIGITS,
    SUBJECT_CODE_DIGITS,
    AnswerGridLayout,
    ColorTheme,
    HeaderSize,
    IdentityPanelLayout,
    InfoEntryMode,
    MarkerConfig,
    NumeralSystem,
    PageGeometry,
    TemplateConfig,
    Variant,
)
from omr_geometry import cell_centers, css_px_to_mm, css_px_to_pt, distribute
from omr_layout import (
    AnswerColumn,
    BubblePanel,
    Decoration,
    DecorationKind,
    LayoutDocument,
    Page,
    PanelKind,
    build_answer_columns,
    build_digit_panel,
    build_label_panel,
    build_label_strip,
    check_answer_columns,
    check_panel,
    partition_questions,
)
from omr_markers import place_markers
from omr_numerals import caption, default_set_codes, format_number, parse_number

logger = logging.getLogger(__name__)

BOARD_DEFAULT_QUESTIONS = 100
RULE_KEYS = ("rule_1", "rule_2", "rule_3", "rule_4")
PT_TO_MM = 25.4 / 72


# ---------------------------------------------------------------------------
# Normalisation
# ---------------------------------------------------------------------------

def _coerce(enum_cls, value, default, what: str):
    if isinstance(value, enum_cls):
        return value
    if isinstance(value, str):
        try:
            return enum_cls(value.strip().lower())
        except ValueError:
            pass
    logger.warning("Unknown %s %r, using %s", what, value, default.value)
    return default


def _to_int(value) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if math.isfinite(value) else None
    if isinstance(value, str):
        try:
            return parse_number(value)
        except ValueError:
            return None
    return None


def _clamp(value: int, low: int, high: int) -> int:
    return max(low, min(high, value))


def board_question_tier(count: Optional[int]) -> int:
    """Round a requested count up to the nearest board tier."""
    if count is None:
        return BOARD_DEFAULT_QUESTIONS
    for tier in BOARD_QUESTION_TIERS:
        if count <= tier:
            return tier
    return BOARD_QUESTION_TIERS[-1]


def board_questions_per_column(count: int) -> int:
    return 25 if count == 100 else 20


def _set_codes(labels: Sequence[str], script: NumeralSystem) -> Tuple[str, ...]:
    codes: List[str] = []
    for label in labels or ():
        label = str(label).strip()
        if len(label) != 1 or label in codes:
            logger.warning("Dropping set code %r", label)
            continue
        codes.append(label)
    if len(codes) > MAX_SET_CODES:
        logger.warning("Keeping the first %d of %d set codes", MAX_SET_CODES, len(codes))
        codes = codes[:MAX_SET_CODES]
    if not codes:
        return default_set_codes(script)
    return tuple(codes)


def _class_levels(levels: Sequence[int]) -> Tuple[int, ...]:
    cleaned: List[int] = []
    for level in levels or ():
        value = _to_int(level)
        if value is None or value < 0 or value in cleaned:
            logger.warning("Dropping class level %r", level)
            continue
        cleaned.append(value)
    if len(cleaned) > MAX_CLASS_LEVELS:
        logger.warning("Keeping the first %d of %d class levels", MAX_CLASS_LEVELS, len(cleaned))
        cleaned = cleaned[:MAX_CLASS_LEVELS]
    return tuple(cleaned) or DEFAULT_CLASS_LEVELS


def normalize_config(config: TemplateConfig) -> TemplateConfig:
    """Clamp and default every field so the config always renders.

    Never raises; each adjustment is logged. Applying it twice gives the same
    result as applying it once.
    """
    variant = _coerce(Variant, config.variant, Variant.NORMAL, "variant")
    numerals = _coerce(NumeralSystem, config.numeral_system, NumeralSystem.BENGALI, "numeral system")
    if config.option_script is None:
        option_script = numerals
    else:
        option_script = _coerce(NumeralSystem, config.option_script, numerals, "option script")
    theme = _coerce(ColorTheme, config.color_theme, DEFAULT_THEME, "colour theme")
    header_size = _coerce(HeaderSize, config.header_size, HeaderSize.SMALL, "header size")
    info_mode = _coerce(InfoEntryMode, config.info_entry_mode, InfoEntryMode.DIGITAL, "info entry mode")

    requested = _to_int(config.question_count)
    if variant == Variant.BOARD:
        question_count = board_question_tier(requested)
        columns = math.ceil(question_count / board_questions_per_column(question_count))
        pages = 1
    else:
        pages = 2 if (_to_int(config.pages_per_sheet) or 1) >= 2 else 1
        if requested is None:
            question_count = NORMAL_DEFAULT_QUESTIONS
        else:
            question_count = _clamp(requested, *NORMAL_QUESTION_RANGE)
        if pages == 2:
            columns = DOUBLE_PAGE_COLUMNS
            question_count = min(question_count, DOUBLE_PAGE_MAX_QUESTIONS)
        else:
            columns = _clamp(_to_int(config.columns) or NORMAL_COLUMN_RANGE[0], *NORMAL_COLUMN_RANGE)

    if question_count != requested:
        logger.info("Question count %r set to %d for %s sheet", config.question_count, question_count, variant.value)
    if variant == Variant.NORMAL and columns != config.columns:
        logger.info("Columns %r set to %d", config.columns, columns)
    if variant == Variant.NORMAL and pages != config.pages_per_sheet:
        logger.info("Pages per sheet %r set to %d", config.pages_per_sheet, pages)

    return replace(
        config,
        variant=variant,
        question_count=question_count,
        columns=columns,
        pages_per_sheet=pages,
        numeral_system=numerals,
        option_script=option_script,
        set_code_labels=_set_codes(config.set_code_labels, option_script),
        class_levels=_class_levels(config.class_levels),
        color_theme=theme,
        header_size=header_size,
        info_entry_mode=info_mode,
    )


def config_from_query(
    params: Union[str, Mapping[str, str]],
    base: Optional[TemplateConfig] = None,
) -> TemplateConfig:
    """Apply the dashboard's deep-link parameters (type, qCount, examId)."""
    if isinstance(params, str):
        params = dict(parse_qsl(params.lstrip("?")))
    config = base or TemplateConfig()
    changes = {}

    raw_count = params.get("qCount")
    if raw_count:
        count = _to_int(raw_count)
        if count is not None and 0 < count <= 100:
            changes["question_count"] = count
        else:
            logger.warning("Ignoring qCount=%r", raw_count)

    raw_type = params.get("type")
    if raw_type in (Variant.BOARD.value, Variant.NORMAL.value):
        changes["variant"] = Variant(raw_type)
    elif raw_type:
        logger.warning("Ignoring type=%r", raw_type)

    exam_id = params.get("examId")
    if exam_id:
        changes["exam_id"] = exam_id

    return replace(config, **changes)


# ---------------------------------------------------------------------------
# Page assembly helpers
# ---------------------------------------------------------------------------

def _estimate_width(text: str, size: float) -> float:
    return len(text) * size * 0.5 * PT_TO_MM


class _SheetBuilder:
    """Collects decorations for one page in drawing order."""

    def __init__(self, config: TemplateConfig, geom: PageGeometry) -> None:
        self.config = config
        self.geom = geom
        self.decorations: List[Decoration] = []

    @property
    def center_x(self) -> float:
        return self.geom.width / 2

    def caption(self, key: str) -> str:
        return caption(key, self.config.numeral_system)

    def add(self, kind: DecorationKind, x: float, y: float, **kwargs) -> None:
        self.decorations.append(Decoration(kind, x, y, **kwargs))

    def text(self, x: float, y: float, text: str, size: float, **kwargs) -> None:
        if text:
            self.add(DecorationKind.TEXT, x, y, text=text, font_size=size, **kwargs)

    def paragraph(self, x: float, y: float, width: float, height: float, text: str, size: float, **kwargs) -> None:
        self.add(DecorationKind.TEXT, x, y, width=width, height=height, text=text, font_size=size, **kwargs)

    def rule(self, x0: float, y0: float, x1: float, y1: float, **kwargs) -> None:
        self.add(DecorationKind.RULE, x0, y0, width=x1 - x0, height=y1 - y0, **kwargs)

    def box(self, x: float, y: float, width: float, height: float, **kwargs) -> None:
        self.add(DecorationKind.BOX, x, y, width=width, height=height, **kwargs)

    def fill(self, x: float, y: float, width: float, height: float, fill: str) -> None:
        self.add(DecorationKind.FILLED_BOX, x, y, width=width, height=height, fill=fill, color=fill)

    def timing_mark(self, x: float, y: float, width: float, height: float) -> None:
        self.add(DecorationKind.TIMING_MARK, x, y, width=width, height=height, fill="black")

    def field(self, x: float, y: float, width: float, key: str, size: float, color: str = "border") -> None:
        """A caption followed by a dashed write-in line."""
        label = self.caption(key)
        self.text(x, y, label, size, bold=True)
        start = x + _estimate_width(label, size) + 2
        self.add(DecorationKind.DASHED_RULE, start, y + 1.5, width=max(x + width - start, 1.0), color=color)

    def rules_list(self, x: float, y: float, width: float, line_height: float, size: float) -> None:
        for i, key in enumerate(RULE_KEYS):
            self.paragraph(x, y + i * line_height, width, line_height, self.caption(key), size)


def markers_for_page(geom: PageGeometry) -> MarkerConfig:
    """Default marker geometry scaled to the page's size relative to A4."""
    a4 = DEFAULT_CONFIG["geometry"]
    base = DEFAULT_CONFIG["markers"]
    factor = min(geom.width / a4.width, geom.height / a4.height)
    if math.isclose(factor, 1.0):
        return base
    logger.debug("Scaling markers by %.3f for a %.0fx%.0f mm page", factor, geom.width, geom.height)
    return base.scaled(factor)


class LayoutStrategy:
    """Variant-specific arrangement around the shared builders."""

    def __init__(
        self,
        geom: Optional[PageGeometry] = None,
        markers: Optional[MarkerConfig] = None,
        panels: Optional[IdentityPanelLayout] = None,
    ) -> None:
        self.geom = geom or DEFAULT_CONFIG["geometry"]
        self.markers = markers or markers_for_page(self.geom)
        self.panels = panels or DEFAULT_CONFIG["panels"]
        self.board_grid: AnswerGridLayout = DEFAULT_CONFIG["board_grid"]
        self.normal_grids: Tuple[AnswerGridLayout, ...] = DEFAULT_CONFIG["normal_grids"]

    def compose_page(self, config: TemplateConfig) -> Page:
        sheet = _SheetBuilder(config, self.geom)
        markers = place_markers(self.geom, self.markers)
        top = self.compose_header(sheet)
        identity_panels, top = self.compose_identity(sheet, top)
        answer_columns = self.compose_answers(sheet, top)
        return Page(
            index=0,
            width=self.geom.width,
            height=self.geom.height,
            markers=markers,
            identity_panels=tuple(identity_panels),
            answer_columns=answer_columns,
            decorations=tuple(sheet.decorations),
        )

    @property
    def content_bottom(self) -> float:
        return self.geom.height - self.markers.inset

    def compose_header(self, sheet: _SheetBuilder) -> float:
        raise NotImplementedError

    def compose_identity(self, sheet: _SheetBuilder, top: float) -> Tuple[List[BubblePanel], float]:
        raise NotImplementedError

    def compose_answers(self, sheet: _SheetBuilder, top: float) -> Tuple[AnswerColumn, ...]:
        raise NotImplementedError

    def _branding(self, sheet: _SheetBuilder, top: float, address_color: str) -> float:
        config = sheet.config
        title_h = css_px_to_mm(config.title_font_size) * 1.25
        address_h = css_px_to_mm(config.address_font_size) * 1.25
        sheet.text(sheet.center_x, top + title_h / 2, config.institution_name,
                   css_px_to_pt(config.title_font_size), align="center", bold=True)
        sheet.text(sheet.center_x, top + title_h + address_h / 2, config.address,
                   css_px_to_pt(config.address_font_size), align="center", bold=True, color=address_color)
        return top + title_h + address_h


# ---------------------------------------------------------------------------
# Board sheet
# ---------------------------------------------------------------------------

WARNING_STRIP_WIDTH = 174.6
WARNING_STRIP_HEIGHT = 9.5
WARNING_STRIP_TOP = 6.0
# Printed "do not mark" pattern: c = empty circle, b = solid bar.
WARNING_PATTERN = "cc" + "b" * 9 + "cbcbc"
BOARD_HEADER_TOP = 20.0
BOARD_INSTRUCTION_WIDTH = 44.0


class BoardLayout(LayoutStrategy):
    def compose_header(self, sheet: _SheetBuilder) -> float:
        self._warning_strip(sheet)
        config = sheet.config
        if config.info_entry_mode == InfoEntryMode.MANUAL and config.header_size == HeaderSize.SMALL:
            height = css_px_to_mm(22) * 1.25
            sheet.text(sheet.center_x, BOARD_HEADER_TOP + height / 2, config.institution_name,
                       css_px_to_pt(22), align="center", bold=True)
            return BOARD_HEADER_TOP + height + 4
        return self._branding(sheet, BOARD_HEADER_TOP, "black") + 4

    def _warning_strip(self, sheet: _SheetBuilder) -> None:
        x = sheet.center_x - WARNING_STRIP_WIDTH / 2
        sheet.fill(x, WARNING_STRIP_TOP, WARNING_STRIP_WIDTH, WARNING_STRIP_HEIGHT, "tint1")
        sheet.text(sheet.center_x, WARNING_STRIP_TOP + 2.6, sheet.caption("warning"), 9.75,
                   align="center", bold=True, color="accent_strong")

        circle, bar, gap = 3.7, 2.6, 1.06
        widths = [circle if kind == "c" else bar for kind in WARNING_PATTERN]
        total = sum(widths) + gap * (len(widths) - 1)
        cursor = sheet.center_x - total / 2
        y = WARNING_STRIP_TOP + 5.4
        for kind, width in zip(WARNING_PATTERN, widths):
            if kind == "c":
                sheet.add(DecorationKind.CIRCLE, cursor + circle / 2, y + circle / 2, width=circle, fill="white")
            else:
                sheet.timing_mark(cursor, y, bar, circle)
            cursor += width + gap

    def compose_identity(self, sheet: _SheetBuilder, top: float) -> Tuple[List[BubblePanel], float]:
        config = sheet.config
        if config.info_entry_mode == InfoEntryMode.DIGITAL:
            return self._digital_identity(sheet, top)
        if config.header_size == HeaderSize.SMALL:
            return self._manual_small_identity(sheet, top)
        return self._manual_big_identity(sheet, top)

    def _digital_identity(self, sheet: _SheetBuilder, top: float) -> Tuple[List[BubblePanel], float]:
        config = sheet.config
        layout = self.panels
        numerals = config.numeral_system
        widths = [
            layout.label_panel_width,
            ROLL_DIGITS * layout.digit_column_width,
            SUBJECT_CODE_DIGITS * layout.digit_column_width,
            layout.label_panel_width,
            BOARD_INSTRUCTION_WIDTH,
        ]
        gap = (self.geom.inner_width - sum(widths)) / (len(widths) - 1)
        xs = []
        cursor = self.geom.margin
        for width in widths:
            xs.append(cursor)
            cursor += width + gap

        class_labels = [format_number(level, numerals) for level in config.class_levels]
        panels = [
            build_label_panel(PanelKind.CLASS, sheet.caption("class"), class_labels, xs[0], top, layout),
            build_digit_panel(PanelKind.ROLL, sheet.caption("roll"), ROLL_DIGITS, numerals, xs[1], top, layout),
            build_digit_panel(PanelKind.SUBJECT_CODE, sheet.caption("subject_code"), SUBJECT_CODE_DIGITS,
                              numerals, xs[2], top, layout),
            build_label_panel(PanelKind.SET_CODE, sheet.caption("set_code"), config.set_code_labels,
                              xs[3], top, layout),
        ]

        # Alternate digit columns are tinted: even ones on the roll panel, odd ones on subject code.
        rows_top = top + layout.header_height + layout.write_in_height
        rows_height = 10 * layout.row_pitch
        for panel, parity in ((panels[1], 0), (panels[2], 1)):
            for col in range(panel.cols):
                if col % 2 == parity:
                    sheet.fill(panel.x + col * layout.digit_column_width, rows_top,
                               layout.digit_column_width, rows_height, "tint2")

        self._instructions(sheet, xs[4], top, BOARD_INSTRUCTION_WIDTH, layout.panel_height)
        return panels, top + layout.panel_height

    def _instructions(self, sheet: _SheetBuilder, x: float, top: float, width: float, height: float) -> None:
        sheet.fill(x, top, width, 6.0, "accent_mid")
        sheet.text(x + width / 2, top + 3.0, sheet.caption("rules"), 9, align="center", bold=True, color="white")
        sheet.rules_list(x + 1, top + 8, width - 2, 9.5, 7)
        signature_h = min(28.0, height - 48)
        signature_top = top + height - signature_h
        sheet.box(x + 1, signature_top, width - 2, signature_h, color="border")
        sheet.paragraph(x + 2, signature_top + signature_h - 10, width - 4, 9, sheet.caption("signature"), 8,
                        align="center")

    def _manual_small_identity(self, sheet: _SheetBuilder, top: float) -> Tuple[List[BubblePanel], float]:
        left = self.geom.margin
        right = self.geom.width - self.geom.margin

        exam_keys = (("exam_half_yearly", "exam_annual"), ("exam_model_test", "exam_other"))
        for col, keys in enumerate(exam_keys):
            for row, key in enumerate(keys):
                x = left + 2 + col * 50
                y = top + 2 + row * 8
                sheet.add(DecorationKind.CHECKBOX, x, y, width=5.3, height=5.3, color="border", line_width=0.53)
                sheet.text(x + 7.4, y + 2.65, sheet.caption(key), 11, bold=True)

        box_w, box_h = 74.0, 18.5
        box_x = right - box_w
        sheet.box(box_x, top, box_w, box_h, color="border")
        sheet.fill(box_x, top, 5.3, box_h, "accent_mid")
        sheet.text(box_x + 2.65, top + box_h / 2, sheet.caption("rules"), 8, align="center",
                   bold=True, color="white", rotate=90)
        sheet.rules_list(box_x + 6.3, top + 0.8, box_w - 7.3, 4.3, 5.5)

        strip_top = top + box_h + 2.5
        labels = sheet.config.set_code_labels
        strip_w = len(labels) * self.panels.strip_pitch
        strip_x = right - strip_w - 2
        sheet.box(box_x, strip_top, box_w, self.panels.strip_pitch, color="border")
        sheet.rule(strip_x - 1, strip_top, strip_x - 1, strip_top + self.panels.strip_pitch, color="border")
        sheet.text((box_x + strip_x - 1) / 2, strip_top + self.panels.strip_pitch / 2,
                   sheet.caption("question_set_code"), 10, align="center", bold=True)
        strip = build_label_strip(PanelKind.SET_CODE, sheet.caption("set_code"), labels,
                                  strip_x, strip_top, self.panels)

        band_top = strip_top + self.panels.strip_pitch + 3
        band_bottom = band_top + 24
        sheet.rule(left, band_top, right, band_top, color="border", line_width=0.53)
        sheet.rule(left, band_bottom, right, band_bottom, color="border", line_width=0.53)
        inner = right - left - 4
        first = band_top + 7
        second = band_top + 17
        sheet.field(left + 2, first, inner * 0.6 - 6, "name", 12)
        sheet.field(left + 2 + inner * 0.6, first, inner * 0.4, "field_roll", 12)
        for i, key in enumerate(("field_class", "field_subject", "field_department")):
            sheet.field(left + 2 + i * inner / 3, second, inner / 3 - 6, key, 12)
        return [strip], band_bottom + 2

    def _manual_big_identity(self, sheet: _SheetBuilder, top: float) -> Tuple[List[BubblePanel], float]:
        left = self.geom.margin
        right_w = 53.0
        box_w = self.geom.inner_width - right_w - 4
        height = 70.0
        sheet.box(left, top, box_w, height, color="border")

        title = sheet.caption("examinee_info")
        sheet.text(left + box_w / 2, top + 6, title, 12, align="center", bold=True)
        half = _estimate_width(title, 12) / 2
        sheet.rule(left + box_w / 2 - half, top + 8.5, left + box_w / 2 + half, top + 8.5, color="accent_strong")

        x = left + 4
        inner = box_w - 8
        sheet.field(x, top + 17, inner, "name", 11)
        thirds = (0.375, 0.25, 0.375)
        for y, keys in ((top + 29, ("field_class", "field_roll", "field_department")),
                        (top + 41, ("field_subject", "field_paper", "field_subject_code"))):
            cursor = x
            for share, key in zip(thirds, keys):
                sheet.field(cursor, y, inner * share - 4, key, 11)
                cursor += inner * share
        sheet.field(x, top + 53, inner, "field_date", 11)

        self._instructions(sheet, left + box_w + 4, top, right_w, height)
        return [], top + height + 2

    def compose_answers(self, sheet: _SheetBuilder, top: float) -> Tuple[AnswerColumn, ...]:
        config = sheet.config
        grid = self.board_grid
        sheet.text(sheet.center_x, top + 5, sheet.caption("sheet_title"), 11, align="center", bold=True)
        top += 10

        per_column = board_questions_per_column(config.question_count)
        used = math.ceil(config.question_count / per_column)
        start_x = sheet.center_x - grid.columns_width(used) / 2
        xs = [start_x + i * (grid.column_width + grid.column_gap) for i in range(used)]
        columns = build_answer_columns(
            config.question_count, config.columns, config.numeral_system,
            config.option_script, grid, xs, top,
        )

        option_w = grid.options_width / 4
        for column in columns:
            rows_h = len(column.rows) * grid.row_pitch
            for option in (0, 2):
                sheet.fill(column.x + grid.label_width + option * option_w, top + grid.header_height,
                           option_w, rows_h, "tint2")
            sheet.text(column.x + grid.label_width / 2, top + grid.header_height / 2,
                       sheet.caption("question"), 9, align="center", bold=True)
            sheet.text(column.x + grid.label_width + grid.options_width / 2, top + grid.header_height / 2,
                       sheet.caption("answer"), 9, align="center", bold=True)

        bottom = max((column.y + column.height for column in columns), default=top)
        if bottom > self.content_bottom:
            logger.warning("Board answer grid overflows the page by %.1f mm", bottom - self.content_bottom)
        return columns


# ---------------------------------------------------------------------------
# Normal sheet
# ---------------------------------------------------------------------------

NORMAL_HEADER_TOP = 15.0
NORMAL_HEADER_WIDTH = 130.0
FRAME_WIDTH = 176.0
FRAME_BORDER = 1.3
STRIP_HEIGHT = 6.35
STRIP_MARK = (6.35, 5.3)
TRACK_MARK = (4.2, 2.6)
END_MARK_WIDTH = 2.1
FRAME_PADDING = 4.2


def pick_grid(
    rows: int,
    available: float,
    tiers: Sequence[AnswerGridLayout] = DEFAULT_CONFIG["normal_grids"],
) -> AnswerGridLayout:
    """Largest normal grid tier whose rows fit in ``available`` mm."""
    for grid in tiers:
        if rows * grid.row_pitch <= available:
            return grid
    logger.warning("%d rows do not fit in %.1f mm even at the densest pitch", rows, available)
    return tiers[-1]


class NormalLayout(LayoutStrategy):
    def compose_header(self, sheet: _SheetBuilder) -> float:
        bottom = self._branding(sheet, NORMAL_HEADER_TOP, "ink")
        left = sheet.center_x - NORMAL_HEADER_WIDTH / 2
        right = sheet.center_x + NORMAL_HEADER_WIDTH / 2
        sheet.rule(left + 5.3, bottom + 3.2, right - 5.3, bottom + 3.2, color="muted")
        sheet.rule(left + 14.8, bottom + 4.3, right - 14.8, bottom + 4.3, color="muted")
        return bottom + 6

    def compose_identity(self, sheet: _SheetBuilder, top: float) -> Tuple[List[BubblePanel], float]:
        # Normal sheets take identity as handwriting only.
        left = sheet.center_x - NORMAL_HEADER_WIDTH / 2 + 5.3
        width = NORMAL_HEADER_WIDTH - 10.6
        half = (width - 4) / 2
        y = top + 5
        sheet.field(left, y, width, "name", 11, color="muted")
        for keys in (("field_class", "field_section"), ("field_subject", "field_paper")):
            y += 8.5
            sheet.field(left, y, half, keys[0], 11, color="muted")
            sheet.field(left + half + 4, y, half, keys[1], 11, color="muted")
        y += 8.5
        sheet.field(left, y, width, "field_roll", 11, color="muted")
        return [], y + 5

    def compose_answers(self, sheet: _SheetBuilder, top: float) -> Tuple[AnswerColumn, ...]:
        config = sheet.config
        frame_x = sheet.center_x - FRAME_WIDTH / 2
        frame_right = frame_x + FRAME_WIDTH
        rows_top = top + FRAME_BORDER + STRIP_HEIGHT + FRAME_PADDING
        bottom_allowance = FRAME_PADDING + STRIP_HEIGHT + FRAME_BORDER

        rows = math.ceil(config.question_count / config.columns)
        grid = pick_grid(rows, self.content_bottom - bottom_allowance - rows_top, self.normal_grids)

        region_x = frame_x + FRAME_BORDER + 3 * FRAME_PADDING
        region_w = frame_right - FRAME_BORDER - 3 * FRAME_PADDING - region_x
        used = len(partition_questions(config.question_count, config.columns))
        xs = [region_x + center - grid.column_width / 2 for center in cell_centers(region_w, used)]
        columns = build_answer_columns(
            config.question_count, config.columns, config.numeral_system,
            config.option_script, grid, xs, rows_top,
        )

        frame_bottom = rows_top + rows * grid.row_pitch + bottom_allowance
        sheet.box(frame_x, top, FRAME_WIDTH, frame_bottom - top, color="black", line_width=FRAME_BORDER)
        self._timing_strips(sheet, columns, frame_x, frame_right, top, frame_bottom)
        self._timing_tracks(sheet, columns, frame_x, frame_right)
        return columns

    def _timing_strips(
        self,
        sheet: _SheetBuilder,
        columns: Sequence[AnswerColumn],
        frame_x: float,
        frame_right: float,
        top: float,
        bottom: float,
    ) -> None:
        mark_w, mark_h = STRIP_MARK
        inner_left = frame_x + FRAME_BORDER + 0.5
        inner_right = frame_right - FRAME_BORDER - 0.5
        top_y = top + FRAME_BORDER
        bottom_y = bottom - FRAME_BORDER - mark_h
        sheet.rule(frame_x, top_y + STRIP_HEIGHT, frame_right, top_y + STRIP_HEIGHT)
        sheet.rule(frame_x, bottom - FRAME_BORDER - STRIP_HEIGHT, frame_right, bottom - FRAME_BORDER - STRIP_HEIGHT)

        for y in (top_y, bottom_y):
            sheet.timing_mark(inner_left, y, mark_w, mark_h)
            for column in columns:
                first = column.rows[0].bubbles[0].x
                last = column.rows[0].bubbles[-1].x
                for x in (first, last):
                    sheet.timing_mark(x - mark_w / 2, y, mark_w, mark_h)

        # Three narrow marks close the top strip, one closes the bottom strip.
        end_w = END_MARK_WIDTH
        group = 3 * end_w + 2 * end_w / 2
        for offset in distribute(group - end_w, 3):
            sheet.timing_mark(inner_right - group + offset, top_y, end_w, mark_h)
        sheet.timing_mark(inner_right - end_w, bottom_y, end_w, mark_h)

    def _timing_tracks(
        self,
        sheet: _SheetBuilder,
        columns: Sequence[AnswerColumn],
        frame_x: float,
        frame_right: float,
    ) -> None:
        if not columns:
            return
        mark_w, mark_h = TRACK_MARK
        left_x = frame_x + FRAME_BORDER + FRAME_PADDING
        right_x = frame_right - FRAME_BORDER - FRAME_PADDING - mark_w
        for row in columns[0].rows:
            y = row.bubbles[0].y - mark_h / 2
            sheet.timing_mark(left_x, y, mark_w, mark_h)
            sheet.timing_mark(right_x, y, mark_w, mark_h)


STRATEGIES = {
    Variant.BOARD: BoardLayout,
    Variant.NORMAL: NormalLayout,
}


def compose_document(
    config: TemplateConfig,
    geom: Optional[PageGeometry] = None,
    markers: Optional[MarkerConfig] = None,
) -> LayoutDocument:
    """Build the full layout for ``config``.

    The normal variant's two-page mode repeats the same page: both are
    complete sheets meant for two physical copies.
    """
    normalized = normalize_config(config)
    strategy = STRATEGIES[normalized.variant](geom, markers)
    page = strategy.compose_page(normalized)

    count = normalized.pages_per_sheet
    pages = tuple(
        replace(page, index=index, break_after=index < count - 1)
        for index in range(count)
    )
    for built in pages:
        check_answer_columns(built.answer_columns, normalized.question_count)
        for panel in built.identity_panels:
            check_panel(panel)

    logger.debug(
        "Composed %s sheet: %d questions, %d columns, %d page(s)",
        normalized.variant.value, normalized.question_count, len(page.answer_columns), count,
    )
    return LayoutDocument(
        version=LAYOUT_VERSION,
        config=normalized,
        palette=PALETTES[normalized.color_theme],
        pages=pages,
    )
