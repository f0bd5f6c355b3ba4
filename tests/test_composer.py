import json
import logging
from dataclasses import replace

import pytest

from omr_composer import (
    board_question_tier,
    compose_document,
    config_from_query,
    markers_for_page,
    normalize_config,
    pick_grid,
)
from omr_config import (
    DEFAULT_CLASS_LEVELS,
    LAYOUT_VERSION,
    MAX_CLASS_LEVELS,
    NORMAL_GRID_TIERS,
    PALETTES,
    ColorTheme,
    HeaderSize,
    InfoEntryMode,
    MarkerConfig,
    NumeralSystem,
    PageGeometry,
    TemplateConfig,
    Variant,
)
from omr_layout import PanelKind, layout_to_dict

BOARD = TemplateConfig(variant=Variant.BOARD, question_count=100, numeral_system=NumeralSystem.LATIN)
NORMAL = TemplateConfig(variant=Variant.NORMAL, numeral_system=NumeralSystem.LATIN)


@pytest.mark.parametrize(
    "requested, tier, columns",
    [(1, 40, 2), (40, 40, 2), (41, 60, 3), (60, 60, 3), (61, 80, 4), (80, 80, 4), (81, 100, 4), (150, 100, 4)],
)
def test_board_count_rounds_up_to_tier(requested, tier, columns):
    config = normalize_config(replace(BOARD, question_count=requested))
    assert config.question_count == tier
    assert config.columns == columns
    assert config.pages_per_sheet == 1


def test_board_tier_without_count():
    assert board_question_tier(None) == 100


@pytest.mark.parametrize(
    "requested, expected",
    [(5, 10), (10, 10), (57, 57), (150, 100), ("abc", 30), ("২৫", 25), (float("nan"), 30),
     (float("inf"), 30), (float("-inf"), 30)],
)
def test_normal_count_is_clamped(requested, expected):
    assert normalize_config(replace(NORMAL, question_count=requested)).question_count == expected


@pytest.mark.parametrize("requested, expected", [(1, 2), (2, 2), (3, 3), (4, 4), (9, 4)])
def test_normal_columns_are_clamped(requested, expected):
    assert normalize_config(replace(NORMAL, columns=requested)).columns == expected


def test_two_pages_force_three_columns_and_cap_questions():
    config = normalize_config(replace(NORMAL, pages_per_sheet=2, columns=4, question_count=50))
    assert config.pages_per_sheet == 2
    assert config.columns == 3
    assert config.question_count == 30


def test_enums_are_coerced_from_strings():
    config = normalize_config(TemplateConfig(
        variant="BOARD", numeral_system="latin", color_theme="Blue", header_size="big", info_entry_mode="manual",
    ))
    assert config.variant is Variant.BOARD
    assert config.numeral_system is NumeralSystem.LATIN
    assert config.color_theme is ColorTheme.BLUE
    assert config.header_size is HeaderSize.BIG
    assert config.info_entry_mode is InfoEntryMode.MANUAL


def test_unknown_theme_falls_back_to_red(caplog):
    with caplog.at_level(logging.WARNING, logger="omr_composer"):
        config = normalize_config(replace(NORMAL, color_theme="magenta"))
    assert config.color_theme is ColorTheme.RED
    assert "magenta" in caplog.text


def test_option_script_follows_numerals_unless_set():
    assert normalize_config(NORMAL).option_script is NumeralSystem.LATIN
    mixed = normalize_config(replace(NORMAL, option_script="bengali"))
    assert mixed.numeral_system is NumeralSystem.LATIN
    assert mixed.option_script is NumeralSystem.BENGALI


def test_set_codes_are_cleaned():
    config = normalize_config(replace(NORMAL, set_code_labels=("A", "A", "BC", " B ", "C", "D", "E")))
    assert config.set_code_labels == ("A", "B", "C", "D")
    assert normalize_config(TemplateConfig()).set_code_labels == ("ক", "খ", "গ", "ঘ")


def test_class_levels_are_cleaned():
    assert normalize_config(replace(NORMAL, class_levels=(9, 9, -1, 10))).class_levels == (9, 10)
    assert normalize_config(replace(NORMAL, class_levels=())).class_levels == DEFAULT_CLASS_LEVELS


def test_class_levels_are_capped_to_the_panel(caplog):
    config = replace(BOARD, class_levels=tuple(range(1, 20)))
    with caplog.at_level(logging.WARNING, logger="omr_composer"):
        assert normalize_config(config).class_levels == tuple(range(1, MAX_CLASS_LEVELS + 1))
    assert "class levels" in caplog.text

    page = compose_document(config).pages[0]
    classes = next(panel for panel in page.identity_panels if panel.kind == PanelKind.CLASS)
    assert classes.rows == MAX_CLASS_LEVELS
    lowest = max(b.y + b.radius for b in classes.bubbles)
    assert lowest <= classes.y + classes.height
    first_answer = page.answer_columns[0].rows[0].bubbles[0]
    assert lowest < first_answer.y - first_answer.radius


@pytest.mark.parametrize(
    "config",
    [
        TemplateConfig(),
        replace(BOARD, question_count=55),
        replace(NORMAL, question_count="x", columns=7, pages_per_sheet=5),
        replace(NORMAL, pages_per_sheet=2, question_count=99, color_theme="nope"),
        TemplateConfig(variant="weird", numeral_system="klingon", set_code_labels=("X", "X", "Y")),
    ],
)
def test_normalize_is_idempotent(config):
    once = normalize_config(config)
    assert normalize_config(once) == once


def test_query_string_parameters():
    config = config_from_query("?type=board&qCount=60&examId=abc123")
    assert config.variant is Variant.BOARD
    assert config.question_count == 60
    assert config.exam_id == "abc123"


@pytest.mark.parametrize("query", ["qCount=0", "qCount=150", "qCount=ten", "type=poster"])
def test_invalid_query_values_are_ignored(query):
    base = TemplateConfig(question_count=44)
    assert config_from_query(query, base) == base


def test_query_mapping_is_accepted():
    config = config_from_query({"type": "normal", "qCount": "25"}, BOARD)
    assert config.variant is Variant.NORMAL
    assert config.question_count == 25


def test_pick_grid_prefers_largest_tier_that_fits():
    assert pick_grid(10, 200.0) == NORMAL_GRID_TIERS[0]
    assert pick_grid(34, 200.0) == NORMAL_GRID_TIERS[1]
    assert pick_grid(500, 200.0) == NORMAL_GRID_TIERS[-1]
    assert pick_grid(10, 200.0, NORMAL_GRID_TIERS[2:]) == NORMAL_GRID_TIERS[2]


def test_markers_scale_with_the_page():
    assert markers_for_page(PageGeometry()) == MarkerConfig()

    a3 = PageGeometry(width=297.0, height=420.0)
    page = compose_document(NORMAL, geom=a3).pages[0]
    factor = min(297.0 / 210.0, 420.0 / 297.0)
    assert (page.width, page.height) == (297.0, 420.0)
    for marker in page.markers:
        assert marker.size == pytest.approx(MarkerConfig().size * factor)
        assert marker.hole_size == pytest.approx(MarkerConfig().hole_size * factor)
    top_left = page.markers[0]
    assert top_left.x == pytest.approx(MarkerConfig().inset * factor)


def test_normal_thirty_questions_three_columns():
    document = compose_document(replace(NORMAL, question_count=30, columns=3))
    assert len(document.pages) == 1
    page = document.pages[0]
    assert [c.question_range for c in page.answer_columns] == [(1, 10), (11, 20), (21, 30)]
    assert all(len(c.rows) == 10 for c in page.answer_columns)
    assert page.identity_panels == ()


def test_board_hundred_questions():
    document = compose_document(replace(BOARD, question_count=100))
    page = document.pages[0]
    assert [c.question_range for c in page.answer_columns] == [(1, 25), (26, 50), (51, 75), (76, 100)]
    assert page.question_count == 100


def test_two_page_normal_sheet_repeats_the_page():
    document = compose_document(replace(NORMAL, pages_per_sheet=2, columns=4, question_count=45))
    assert document.config.columns == 3
    first, second = document.pages
    assert (first.index, second.index) == (0, 1)
    assert first.break_after and not second.break_after
    assert first.question_count == second.question_count == 30
    assert len(first.answer_columns) == 3
    assert first.answer_columns == second.answer_columns
    assert first.decorations == second.decorations
    assert first.markers == second.markers


def test_board_digital_identity_panels():
    page = compose_document(BOARD).pages[0]
    kinds = [panel.kind for panel in page.identity_panels]
    assert kinds == [PanelKind.CLASS, PanelKind.ROLL, PanelKind.SUBJECT_CODE, PanelKind.SET_CODE]
    roll = page.identity_panels[1]
    assert roll.cols == 6
    assert all(b.value == b.row for b in roll.bubbles)
    classes = page.identity_panels[0]
    assert classes.values == tuple(str(level) for level in DEFAULT_CLASS_LEVELS)
    xs = [panel.x for panel in page.identity_panels]
    assert xs == sorted(xs)


def test_board_manual_small_carries_set_code_strip():
    config = replace(BOARD, info_entry_mode=InfoEntryMode.MANUAL, header_size=HeaderSize.SMALL)
    page = compose_document(config).pages[0]
    assert [p.kind for p in page.identity_panels] == [PanelKind.SET_CODE]
    assert page.identity_panels[0].value_axis == "column"


def test_board_manual_big_has_no_panels():
    config = replace(BOARD, info_entry_mode=InfoEntryMode.MANUAL, header_size=HeaderSize.BIG)
    assert compose_document(config).pages[0].identity_panels == ()


def _inside_markers(bubble, page):
    for marker in page.markers:
        if (marker.x - bubble.radius <= bubble.x <= marker.x + marker.size + bubble.radius
                and marker.y - bubble.radius <= bubble.y <= marker.y + marker.size + bubble.radius):
            return True
    return False


@pytest.mark.parametrize(
    "config",
    [replace(BOARD, question_count=n) for n in (40, 60, 80, 100)]
    + [replace(BOARD, info_entry_mode=InfoEntryMode.MANUAL, header_size=size) for size in HeaderSize]
    + [replace(NORMAL, question_count=n, columns=c) for n in (10, 30, 61, 100) for c in (2, 3, 4)],
)
def test_every_bubble_stays_on_the_page(config):
    document = compose_document(config)
    bottom = document.pages[0].height - MarkerConfig().inset
    for page in document.pages:
        for bubble in page.bubbles():
            assert bubble.radius <= bubble.x and bubble.x + bubble.radius <= page.width
            assert bubble.radius <= bubble.y and bubble.y + bubble.radius <= bottom
            assert not _inside_markers(bubble, page)


def test_palette_is_resolved():
    document = compose_document(replace(NORMAL, color_theme="blue"))
    assert document.palette == PALETTES[ColorTheme.BLUE]
    assert document.version == LAYOUT_VERSION


def test_layout_json_describes_every_bubble():
    document = compose_document(BOARD)
    data = json.loads(json.dumps(layout_to_dict(document), ensure_ascii=False))
    assert data["version"] == LAYOUT_VERSION
    assert data["units"] == "mm"
    assert data["dpi"] == 200
    assert data["variant"] == "board"
    page = data["pages"][0]
    assert [m["corner"] for m in page["markers"]] == ["top_left", "top_right", "bottom_left", "bottom_right"]
    assert [m["has_notch"] for m in page["markers"]] == [False, True, False, True]
    assert sum(len(c["questions"]) for c in page["answer_columns"]) == 100
    roll = next(p for p in page["identity_panels"] if p["kind"] == "roll")
    assert len(roll["bubbles"]) == 60
