"""Render an OMR template to PDF and export its layout as JSON.

The composer decides where everything goes; this module only draws a
``LayoutDocument`` with PyMuPDF:

- decorations (branding, rules, instructions, timing marks) first;
- identity panels and answer columns with their bubbles on top;
- the four corner markers last, so nothing can cover them.

Run as a script (or through the ``omr-sheet`` console entry point) to write
the PDF, and optionally the layout JSON and PNG previews, to disk.
"""
from __future__ import annotations

import argparse
import json
import logging
from dataclasses import replace
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

import fitz  # PyMuPDF

from omr_composer import compose_document, config_from_query
from omr_config import PANEL_LAYOUT, Palette, TemplateConfig, Variant
from omr_geometry import mm_to_pt
from omr_layout import (
    AnswerColumn,
    BubbleCoordinate,
    BubblePanel,
    Decoration,
    DecorationKind,
    LayoutDocument,
    PanelKind,
    layout_to_dict,
)
from omr_markers import FiducialMarker
from omr_processor import check_layout_pdf
from pdf_to_image import pdf_to_images

logger = logging.getLogger(__name__)

RGB = Tuple[float, float, float]

FIXED_COLORS = {
    "black": "#000000",
    "white": "#ffffff",
    "muted": "#9ca3af",
    "ink": "#4b5563",
}
BASELINE_SHIFT = 0.35  # fraction of the font size from mid-line to baseline
MAX_SHRINK_STEPS = 4
ALIGNMENTS = {"left": fitz.TEXT_ALIGN_LEFT, "center": fitz.TEXT_ALIGN_CENTER, "right": fitz.TEXT_ALIGN_RIGHT}


def hex_to_rgb(value: str) -> RGB:
    value = value.lstrip("#")
    return tuple(int(value[i:i + 2], 16) / 255 for i in (0, 2, 4))


def resolve_color(role: Optional[str], palette: Palette) -> Optional[RGB]:
    """Map a colour role (palette field or fixed name) to an RGB triple."""
    if role is None:
        return None
    if role in FIXED_COLORS:
        return hex_to_rgb(FIXED_COLORS[role])
    if role.startswith("#"):
        return hex_to_rgb(role)
    return hex_to_rgb(getattr(palette, role))


class TextStyle:
    """Font selection and measurement for one render."""

    def __init__(self, font_file: Optional[Path] = None) -> None:
        self.font_file: Optional[str] = None
        if font_file is not None:
            if Path(font_file).is_file():
                self.font_file = str(font_file)
            else:
                logger.warning("Font file %s not found, falling back to Helvetica", font_file)
        if self.font_file:
            self._regular = self._bold = fitz.Font(fontfile=self.font_file)
        else:
            self._regular = fitz.Font("helv")
            self._bold = fitz.Font("hebo")
        self._warned_script = False

    def fontname(self, bold: bool) -> str:
        if self.font_file:
            return "omrfont"
        return "hebo" if bold else "helv"

    def kwargs(self, bold: bool) -> dict:
        options = {"fontname": self.fontname(bold)}
        if self.font_file:
            options["fontfile"] = self.font_file
        return options

    def width(self, text: str, size: float, bold: bool = False) -> float:
        font = self._bold if bold else self._regular
        return font.text_length(text, fontsize=size)

    def check_script(self, text: str) -> None:
        if self.font_file or self._warned_script or text.isascii():
            return
        logger.warning("Non-Latin text without --font-file; glyphs may be missing")
        self._warned_script = True


def _pt(value: float) -> float:
    return mm_to_pt(value)


def _rect(x: float, y: float, width: float, height: float) -> fitz.Rect:
    return fitz.Rect(_pt(x), _pt(y), _pt(x + width), _pt(y + height))


def draw_text(
    page: fitz.Page,
    style: TextStyle,
    x: float,
    y: float,
    text: str,
    size: float,
    color: RGB,
    align: str = "left",
    bold: bool = False,
    rotate: int = 0,
) -> None:
    """Single line of text vertically centred on ``y`` (mm)."""
    if not text:
        return
    style.check_script(text)
    length = style.width(text, size, bold)
    if rotate == 90:
        # Runs bottom to top; centred on (x, y).
        point = fitz.Point(_pt(x) + size * BASELINE_SHIFT, _pt(y) + length / 2)
    else:
        left = _pt(x)
        if align == "center":
            left -= length / 2
        elif align == "right":
            left -= length
        point = fitz.Point(left, _pt(y) + size * BASELINE_SHIFT)
    page.insert_text(point, text, fontsize=size, color=color, rotate=rotate, **style.kwargs(bold))


def draw_decoration(page: fitz.Page, style: TextStyle, decoration: Decoration, palette: Palette) -> None:
    kind = decoration.kind
    color = resolve_color(decoration.color, palette)
    fill = resolve_color(decoration.fill, palette)
    width = _pt(decoration.line_width)

    if kind == DecorationKind.TEXT:
        if decoration.width > 0 and decoration.height > 0:
            style.check_script(decoration.text)
            # insert_textbox writes nothing when the text does not fit; shrink and retry.
            size = decoration.font_size
            for _ in range(MAX_SHRINK_STEPS):
                spare = page.insert_textbox(
                    _rect(decoration.x, decoration.y, decoration.width, decoration.height),
                    decoration.text,
                    fontsize=size,
                    color=color,
                    align=ALIGNMENTS.get(decoration.align, fitz.TEXT_ALIGN_LEFT),
                    **style.kwargs(decoration.bold),
                )
                if spare >= 0:
                    break
                size *= 0.85
            else:
                logger.warning("Text does not fit its box: %r", decoration.text[:30])
        else:
            draw_text(page, style, decoration.x, decoration.y, decoration.text, decoration.font_size,
                      color, decoration.align, decoration.bold, decoration.rotate)
        return

    shape = page.new_shape()
    if kind in (DecorationKind.RULE, DecorationKind.DASHED_RULE):
        start = fitz.Point(_pt(decoration.x), _pt(decoration.y))
        end = fitz.Point(_pt(decoration.x + decoration.width), _pt(decoration.y + decoration.height))
        shape.draw_line(start, end)
        dashes = "[2 2] 0" if kind == DecorationKind.DASHED_RULE else None
        shape.finish(color=color, width=width, dashes=dashes)
    elif kind == DecorationKind.CIRCLE:
        center = fitz.Point(_pt(decoration.x), _pt(decoration.y))
        shape.draw_circle(center, _pt(decoration.width / 2))
        shape.finish(color=color, fill=fill, width=width)
    elif kind in (DecorationKind.FILLED_BOX, DecorationKind.TIMING_MARK):
        shape.draw_rect(_rect(decoration.x, decoration.y, decoration.width, decoration.height))
        shape.finish(color=fill or color, fill=fill or color, width=0)
    else:
        # BOX and CHECKBOX
        shape.draw_rect(_rect(decoration.x, decoration.y, decoration.width, decoration.height))
        shape.finish(color=color, fill=fill, width=width)
    shape.commit()


def draw_bubble(
    page: fitz.Page,
    style: TextStyle,
    bubble: BubbleCoordinate,
    outline: RGB,
    text_color: RGB,
) -> None:
    shape = page.new_shape()
    shape.draw_circle(fitz.Point(_pt(bubble.x), _pt(bubble.y)), _pt(bubble.radius))
    shape.finish(color=outline, fill=(1, 1, 1), width=_pt(0.25))
    shape.commit()
    if bubble.label:
        size = _pt(bubble.radius) * 1.1
        draw_text(page, style, bubble.x, bubble.y, bubble.label, size, text_color, align="center")


def draw_identity_panel(page: fitz.Page, style: TextStyle, panel: BubblePanel, palette: Palette,
                        header_height: float, write_in_height: float) -> None:
    """Frame, header band, write-in boxes and bubbles of one panel."""
    border = resolve_color("border", palette)
    shape = page.new_shape()
    shape.draw_rect(_rect(panel.x, panel.y, panel.width, panel.height))
    shape.finish(color=border, width=_pt(0.4))
    if panel.value_axis == "row":
        shape.draw_rect(_rect(panel.x, panel.y, panel.width, header_height))
        shape.finish(color=border, fill=resolve_color("tint1", palette), width=_pt(0.4))
    shape.commit()

    if panel.value_axis == "row":
        draw_text(page, style, panel.x + panel.width / 2, panel.y + header_height / 2, panel.header, 8,
                  resolve_color("accent_strong", palette), align="center", bold=True)
        if panel.kind in (PanelKind.ROLL, PanelKind.SUBJECT_CODE):
            cell = panel.width / panel.cols
            boxes = page.new_shape()
            for col in range(panel.cols):
                boxes.draw_rect(_rect(panel.x + col * cell, panel.y + header_height, cell, write_in_height))
            boxes.finish(color=border, width=_pt(0.3))
            boxes.commit()

    for bubble in panel.bubbles:
        draw_bubble(page, style, bubble, resolve_color("border", palette), resolve_color("accent_strong", palette))


def draw_answer_column(
    page: fitz.Page,
    style: TextStyle,
    column: AnswerColumn,
    palette: Palette,
    variant: Variant,
) -> None:
    if not column.rows:
        return
    # Options sit at the centres of equal cells that follow the label cell.
    first, second = column.rows[0].bubbles[:2]
    label_width = first.x - column.x - (second.x - first.x) / 2
    first_row_top = column.y + column.header_height

    if variant == Variant.BOARD:
        border = resolve_color("border", palette)
        shape = page.new_shape()
        shape.draw_rect(_rect(column.x, column.y, column.width, column.height))
        shape.draw_line(fitz.Point(_pt(column.x + label_width), _pt(column.y)),
                        fitz.Point(_pt(column.x + label_width), _pt(column.y + column.height)))
        for index in range(len(column.rows)):
            y = first_row_top + index * column.row_pitch
            shape.draw_line(fitz.Point(_pt(column.x), _pt(y)), fitz.Point(_pt(column.x + column.width), _pt(y)))
        shape.finish(color=border, width=_pt(0.25))
        shape.commit()
        outline = border
        text_color = resolve_color("accent_strong", palette)
        label_x, align = column.x + label_width / 2, "center"
    else:
        outline = resolve_color("black", palette)
        text_color = resolve_color("ink", palette)
        label_x, align = column.x + label_width - 1.0, "right"

    for row in column.rows:
        size = _pt(column.row_pitch) * 0.55
        draw_text(page, style, label_x, row.bubbles[0].y, row.label, size, resolve_color("black", palette),
                  align=align, bold=True)
        for bubble in row.bubbles:
            draw_bubble(page, style, bubble, outline, text_color)


def draw_fiducial_markers(page: fitz.Page, markers: Sequence[FiducialMarker]) -> None:
    """Solid square, light hole, then the notch block on top."""
    shape = page.new_shape()
    for marker in markers:
        shape.draw_rect(_rect(marker.x, marker.y, marker.size, marker.size))
    shape.finish(color=(0, 0, 0), fill=(0, 0, 0), width=0)
    for marker in markers:
        shape.draw_rect(_rect(*marker.hole_rect()))
    shape.finish(color=(1, 1, 1), fill=(1, 1, 1), width=0)
    notches = [marker.notch_rect() for marker in markers if marker.has_notch]
    for notch in notches:
        shape.draw_rect(_rect(*notch))
    if notches:
        shape.finish(color=(0, 0, 0), fill=(0, 0, 0), width=0)
    shape.commit()


def render_document(
    document: LayoutDocument,
    font_file: Optional[Path] = None,
    header_height: Optional[float] = None,
    write_in_height: Optional[float] = None,
) -> bytes:
    """Render every page of ``document`` and return the PDF bytes."""
    header_height = PANEL_LAYOUT.header_height if header_height is None else header_height
    write_in_height = PANEL_LAYOUT.write_in_height if write_in_height is None else write_in_height
    style = TextStyle(font_file)
    palette = document.palette
    variant = document.config.variant

    pdf = fitz.open()
    try:
        for layout_page in document.pages:
            page = pdf.new_page(width=_pt(layout_page.width), height=_pt(layout_page.height))
            for decoration in layout_page.decorations:
                draw_decoration(page, style, decoration, palette)
            for panel in layout_page.identity_panels:
                draw_identity_panel(page, style, panel, palette, header_height, write_in_height)
            for column in layout_page.answer_columns:
                draw_answer_column(page, style, column, palette, variant)
            draw_fiducial_markers(page, layout_page.markers)
        pdf.set_metadata({"title": "OMR answer sheet", "subject": f"layout {document.version}"})
        return pdf.tobytes()
    finally:
        pdf.close()


def ensure_output_directory(path: Path) -> None:
    path.mkdir(parents=True, exist_ok=True)


def write_layout_json(document: LayoutDocument, output_path: Path) -> None:
    ensure_output_directory(output_path.parent)
    output_path.write_text(json.dumps(layout_to_dict(document), ensure_ascii=False, indent=2), encoding="utf-8")


def generate_omr_sheet(
    output_path: Path,
    config: Optional[TemplateConfig] = None,
    font_file: Optional[Path] = None,
) -> LayoutDocument:
    """Compose ``config`` and write the PDF to ``output_path``."""
    document = compose_document(config or TemplateConfig())
    ensure_output_directory(output_path.parent)
    output_path.write_bytes(render_document(document, font_file))
    logger.info("Wrote %d page(s) to %s", len(document.pages), output_path)
    return document


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Generate a printable OMR answer sheet.")
    parser.add_argument("--variant", choices=[v.value for v in Variant], help="Sheet dialect")
    parser.add_argument("--questions", type=str, help="Number of questions (digits in either script)")
    parser.add_argument("--columns", type=int, help="Answer columns for normal sheets (2-4)")
    parser.add_argument("--pages", type=int, help="Copies per sheet for normal sheets (1-2)")
    parser.add_argument("--numerals", help="Numeral system: latin or bengali")
    parser.add_argument("--option-script", help="Script for option letters (defaults to --numerals)")
    parser.add_argument("--theme", help="Colour theme name")
    parser.add_argument("--header", help="Board header size: small or big")
    parser.add_argument("--info", help="Board info entry: digital or manual")
    parser.add_argument("--institution", help="Institution name")
    parser.add_argument("--address", help="Institution address")
    parser.add_argument("--title-size", type=float, help="Title font size in CSS pixels")
    parser.add_argument("--address-size", type=float, help="Address font size in CSS pixels")
    parser.add_argument("--set-codes", help="Comma-separated set code letters")
    parser.add_argument("--query", help="Dashboard query string, e.g. 'type=board&qCount=60'")
    parser.add_argument("--font-file", type=Path, help="TrueType font covering Bengali glyphs")
    parser.add_argument("--out", type=Path, default=Path("sheets") / "omr_sheet.pdf", help="Output PDF path")
    parser.add_argument("--json", type=Path, help="Also write the layout JSON here")
    parser.add_argument("--preview", type=Path, help="Also rasterise pages as PNGs into this directory")
    parser.add_argument("--check", action="store_true", help="Rasterise the PDF and verify markers and bubbles")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    return parser


def config_from_args(args: argparse.Namespace) -> TemplateConfig:
    config = TemplateConfig()
    if args.query:
        config = config_from_query(args.query, config)

    overrides = {
        "variant": args.variant,
        "question_count": args.questions,
        "columns": args.columns,
        "pages_per_sheet": args.pages,
        "numeral_system": args.numerals,
        "option_script": args.option_script,
        "color_theme": args.theme,
        "header_size": args.header,
        "info_entry_mode": args.info,
        "institution_name": args.institution,
        "address": args.address,
        "title_font_size": args.title_size,
        "address_font_size": args.address_size,
    }
    changes = {key: value for key, value in overrides.items() if value is not None}
    if args.set_codes:
        changes["set_code_labels"] = tuple(code.strip() for code in args.set_codes.split(","))
    return replace(config, **changes)


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    document = generate_omr_sheet(args.out, config_from_args(args), args.font_file)
    if args.json:
        write_layout_json(document, args.json)
        logger.info("Wrote layout JSON to %s", args.json)
    if args.preview:
        for path in pdf_to_images(args.out, args.preview):
            logger.info("Wrote preview %s", path)
    if args.check:
        if not check_layout_pdf(args.out, list(document.pages), args.preview):
            logger.error("Self-check failed for %s", args.out)
            return 1
        logger.info("Self-check passed")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
