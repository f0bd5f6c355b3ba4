import json
import logging

import pytest

fitz = pytest.importorskip("fitz")

from omr_composer import compose_document
from omr_config import PALETTES, ColorTheme, NumeralSystem, TemplateConfig, Variant
from omr_sheet_generator import (
    build_parser,
    config_from_args,
    hex_to_rgb,
    main,
    render_document,
    resolve_color,
    write_layout_json,
)

LATIN_BOARD = TemplateConfig(variant=Variant.BOARD, question_count=60, numeral_system=NumeralSystem.LATIN)


def _open(data):
    return fitz.open(stream=data, filetype="pdf")


def test_render_produces_a4_pdf():
    data = render_document(compose_document(LATIN_BOARD))
    assert data.startswith(b"%PDF")
    doc = _open(data)
    try:
        assert doc.page_count == 1
        rect = doc[0].rect
        assert rect.width == pytest.approx(595.28, abs=0.1)
        assert rect.height == pytest.approx(841.89, abs=0.1)
        assert "Q." in doc[0].get_text()
    finally:
        doc.close()


def test_two_copies_render_two_pages():
    config = TemplateConfig(variant=Variant.NORMAL, pages_per_sheet=2, numeral_system=NumeralSystem.LATIN)
    doc = _open(render_document(compose_document(config)))
    try:
        assert doc.page_count == 2
    finally:
        doc.close()


def test_missing_font_file_falls_back(tmp_path, caplog):
    with caplog.at_level(logging.WARNING, logger="omr_sheet_generator"):
        data = render_document(compose_document(LATIN_BOARD), font_file=tmp_path / "missing.ttf")
    assert data.startswith(b"%PDF")
    assert "missing.ttf" in caplog.text


def test_colour_roles():
    palette = PALETTES[ColorTheme.BLUE]
    assert hex_to_rgb("#ff0000") == (1.0, 0.0, 0.0)
    assert resolve_color("black", palette) == (0.0, 0.0, 0.0)
    assert resolve_color("accent_strong", palette) == hex_to_rgb(palette.accent_strong)
    assert resolve_color(None, palette) is None


def test_layout_json_file(tmp_path):
    target = tmp_path / "out" / "layout.json"
    write_layout_json(compose_document(LATIN_BOARD), target)
    data = json.loads(target.read_text(encoding="utf-8"))
    assert data["question_count"] == 60
    assert len(data["pages"][0]["answer_columns"]) == 3


def test_cli_arguments_build_config():
    args = build_parser().parse_args([
        "--query", "type=board&qCount=70&examId=e1",
        "--numerals", "latin",
        "--set-codes", "A, B,C",
        "--theme", "green",
    ])
    config = config_from_args(args)
    assert config.variant is Variant.BOARD
    assert config.question_count == 70
    assert config.exam_id == "e1"
    assert config.numeral_system == "latin"
    assert config.set_code_labels == ("A", "B", "C")
    assert config.color_theme == "green"


def test_cli_flags_override_query():
    args = build_parser().parse_args(["--query", "type=board", "--variant", "normal", "--questions", "25"])
    config = config_from_args(args)
    assert config.variant == "normal"
    assert config.question_count == "25"


def test_main_writes_pdf_and_json(tmp_path):
    pdf = tmp_path / "sheet.pdf"
    layout = tmp_path / "sheet.json"
    code = main(["--variant", "normal", "--questions", "40", "--columns", "4", "--numerals", "latin",
                 "--out", str(pdf), "--json", str(layout)])
    assert code == 0
    assert pdf.read_bytes().startswith(b"%PDF")
    data = json.loads(layout.read_text(encoding="utf-8"))
    assert [c["start"] for c in data["pages"][0]["answer_columns"]] == [1, 11, 21, 31]


def test_main_previews_pages(tmp_path):
    pdf = tmp_path / "sheet.pdf"
    preview = tmp_path / "png"
    assert main(["--variant", "normal", "--pages", "2", "--numerals", "latin",
                 "--out", str(pdf), "--preview", str(preview)]) == 0
    assert sorted(p.name for p in preview.iterdir()) == ["sheet_p1.png", "sheet_p2.png"]
