"""Shared configuration for OMR template layout and rendering.

This module contains every layout parameter used by the composer, the PDF
renderer and the layout self-check, so a generated sheet and the code that
inspects it can never drift apart.

All lengths are millimetres measured from the top-left corner of the page,
with ``y`` growing downward. Geometry values here are part of the printed
format: changing any of them requires bumping ``LAYOUT_VERSION``.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple, Union

# Frozen format constants.
FORMAT_DPI = 200
LAYOUT_VERSION = "1.0"
MM_PER_INCH = 25.4

ANSWER_OPTIONS = 4


class Variant(str, Enum):
    BOARD = "board"
    NORMAL = "normal"


class NumeralSystem(str, Enum):
    LATIN = "latin"
    BENGALI = "bengali"


class HeaderSize(str, Enum):
    SMALL = "small"
    BIG = "big"


class InfoEntryMode(str, Enum):
    DIGITAL = "digital"
    MANUAL = "manual"


class Corner(str, Enum):
    TOP_LEFT = "top_left"
    TOP_RIGHT = "top_right"
    BOTTOM_LEFT = "bottom_left"
    BOTTOM_RIGHT = "bottom_right"


class ColorTheme(str, Enum):
    RED = "red"
    GRAY = "gray"
    BLUE = "blue"
    GREEN = "green"
    PURPLE = "purple"
    ORANGE = "orange"
    CYAN = "cyan"
    PINK = "pink"
    YELLOW = "yellow"
    LIME = "lime"


@dataclass(frozen=True)
class Palette:
    """Colours a theme resolves to (hex strings)."""
    accent_strong: str
    accent_mid: str
    border: str
    tint1: str
    tint2: str


PALETTES = {
    ColorTheme.RED: Palette("#e11d48", "#f43f5e", "#f43f5e", "#fff1f2", "#fda4af"),
    ColorTheme.GRAY: Palette("#4b5563", "#6b7280", "#6b7280", "#f9fafb", "#e5e7eb"),
    ColorTheme.BLUE: Palette("#2563eb", "#3b82f6", "#3b82f6", "#eff6ff", "#93c5fd"),
    ColorTheme.GREEN: Palette("#16a34a", "#22c55e", "#22c55e", "#f0fdf4", "#86efac"),
    ColorTheme.PURPLE: Palette("#9333ea", "#a855f7", "#a855f7", "#faf5ff", "#d8b4fe"),
    ColorTheme.ORANGE: Palette("#ea580c", "#f97316", "#f97316", "#fff7ed", "#fdba74"),
    ColorTheme.CYAN: Palette("#0891b2", "#06b6d4", "#06b6d4", "#ecfeff", "#67e8f9"),
    ColorTheme.PINK: Palette("#db2777", "#ec4899", "#ec4899", "#fdf2f8", "#f9a8d4"),
    ColorTheme.YELLOW: Palette("#ca8a04", "#eab308", "#eab308", "#fefce8", "#fde047"),
    ColorTheme.LIME: Palette("#65a30d", "#84cc16", "#84cc16", "#f7fee7", "#bef264"),
}

DEFAULT_THEME = ColorTheme.RED


@dataclass(frozen=True)
class PageGeometry:
    """Page dimensions and content margin (A4)."""
    width: float = 210.0
    height: float = 297.0
    margin: float = 16.0

    @property
    def inner_width(self) -> float:
        return self.width - 2 * self.margin

    @property
    def inner_height(self) -> float:
        return self.height - 2 * self.margin


@dataclass(frozen=True)
class MarkerConfig:
    """Corner fiducial marker geometry."""
    size: float = 10.0
    inset: float = 5.0
    hole_ratio: float = 2.5
    notch_ratio: float = 2.5
    notched_corners: Tuple[Corner, ...] = (Corner.TOP_RIGHT, Corner.BOTTOM_RIGHT)

    @property
    def hole_size(self) -> float:
        return self.size / self.hole_ratio

    @property
    def notch_size(self) -> float:
        return self.size / self.notch_ratio

    def scaled(self, factor: float) -> "MarkerConfig":
        """Marker geometry for a page ``factor`` times the size of A4."""
        return MarkerConfig(
            size=self.size * factor,
            inset=self.inset * factor,
            hole_ratio=self.hole_ratio,
            notch_ratio=self.notch_ratio,
            notched_corners=self.notched_corners,
        )


@dataclass(frozen=True)
class AnswerGridLayout:
    """Answer column dimensions and bubble pitch."""
    row_pitch: float
    bubble_diameter: float
    label_width: float
    column_width: float
    column_gap: float
    header_height: float = 0.0

    @property
    def radius(self) -> float:
        return self.bubble_diameter / 2

    @property
    def options_width(self) -> float:
        return self.column_width - self.label_width

    def columns_width(self, columns: int) -> float:
        """Total width of ``columns`` answer columns with their gaps."""
        if columns <= 0:
            return 0.0
        return columns * self.column_width + (columns - 1) * self.column_gap


@dataclass(frozen=True)
class IdentityPanelLayout:
    """Identity bubble panel dimensions."""
    header_height: float = 6.0
    write_in_height: float = 6.6
    row_pitch: float = 6.35
    bubble_diameter: float = 4.8
    digit_column_width: float = 8.0
    label_panel_width: float = 24.0
    panel_height: float = 80.0
    strip_pitch: float = 8.4

    @property
    def radius(self) -> float:
        return self.bubble_diameter / 2


BOARD_GRID = AnswerGridLayout(
    row_pitch=5.8,
    bubble_diameter=4.5,
    label_width=10.0,
    column_width=42.3,
    column_gap=2.1,
    header_height=6.6,
)

# Normal sheets pick the largest tier whose rows fit the page.
NORMAL_GRID_TIERS = (
    AnswerGridLayout(row_pitch=7.4, bubble_diameter=5.8, label_width=8.0, column_width=37.0, column_gap=4.0),
    AnswerGridLayout(row_pitch=5.8, bubble_diameter=4.6, label_width=8.0, column_width=37.0, column_gap=4.0),
    AnswerGridLayout(row_pitch=4.6, bubble_diameter=3.8, label_width=8.0, column_width=37.0, column_gap=4.0),
    AnswerGridLayout(row_pitch=3.3, bubble_diameter=2.8, label_width=8.0, column_width=37.0, column_gap=4.0),
)

PANEL_LAYOUT = IdentityPanelLayout()

BOARD_QUESTION_TIERS = (40, 60, 80, 100)
NORMAL_QUESTION_RANGE = (10, 100)
NORMAL_DEFAULT_QUESTIONS = 30
NORMAL_COLUMN_RANGE = (2, 4)
DOUBLE_PAGE_COLUMNS = 3
DOUBLE_PAGE_MAX_QUESTIONS = 30
ROLL_DIGITS = 6
SUBJECT_CODE_DIGITS = 3
MAX_SET_CODES = 4
# The class panel shares the digit panels' 10-row box.
MAX_CLASS_LEVELS = 10
DEFAULT_CLASS_LEVELS = (6, 7, 8, 9, 10, 11, 12)


@dataclass(frozen=True)
class TemplateConfig:
    """Everything the user can choose about a sheet.

    Raw values (strings from a query string, out-of-range numbers) are allowed
    here; ``omr_composer.normalize_config`` turns them into a valid config.
    """
    variant: Union[Variant, str] = Variant.NORMAL
    question_count: Union[int, str] = NORMAL_DEFAULT_QUESTIONS
    columns: int = 3
    pages_per_sheet: int = 1
    numeral_system: Union[NumeralSystem, str] = NumeralSystem.BENGALI
    option_script: Optional[Union[NumeralSystem, str]] = None
    set_code_labels: Tuple[str, ...] = ()
    class_levels: Tuple[int, ...] = DEFAULT_CLASS_LEVELS
    color_theme: Union[ColorTheme, str] = DEFAULT_THEME
    header_size: Union[HeaderSize, str] = HeaderSize.SMALL
    info_entry_mode: Union[InfoEntryMode, str] = InfoEntryMode.DIGITAL
    institution_name: str = ""
    address: str = ""
    title_font_size: float = 24
    address_font_size: float = 14
    exam_id: Optional[str] = None


# Default configuration instance
DEFAULT_CONFIG = {
    'geometry': PageGeometry(),
    'markers': MarkerConfig(),
    'panels': PANEL_LAYOUT,
    'board_grid': BOARD_GRID,
    'normal_grids': NORMAL_GRID_TIERS,
}
