"""Rasterise OMR sheet PDFs at the format resolution."""
from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Union

import fitz  # PyMuPDF
import numpy as np

from omr_config import FORMAT_DPI

logger = logging.getLogger(__name__)

PdfSource = Union[Path, str, bytes]


def _open(source: PdfSource) -> fitz.Document:
    if isinstance(source, bytes):
        return fitz.open(stream=source, filetype="pdf")
    return fitz.open(str(source))


def _matrix() -> fitz.Matrix:
    zoom = FORMAT_DPI / 72  # 72 is the PDF default resolution
    return fitz.Matrix(zoom, zoom)


def render_page_gray(source: PdfSource, page_index: int = 0) -> np.ndarray:
    """Render one page to a ``uint8`` grayscale array (rows, cols)."""
    doc = _open(source)
    try:
        pix = doc[page_index].get_pixmap(matrix=_matrix(), colorspace=fitz.csGRAY, alpha=False)
        image = np.frombuffer(pix.samples, dtype=np.uint8).reshape(pix.height, pix.stride)
        return image[:, :pix.width].copy()
    finally:
        doc.close()


def pdf_to_images(pdf_path: Path, output_dir: Path) -> List[Path]:
    """Convert every page of a PDF to a PNG in ``output_dir``.

    Args:
        pdf_path: Input PDF file
        output_dir: Directory for ``<stem>_p<n>.png`` files

    Returns:
        Paths of the written images, in page order
    """
    output_dir.mkdir(parents=True, exist_ok=True)
    written = []
    doc = _open(pdf_path)
    try:
        for page in doc:
            target = output_dir / f"{Path(pdf_path).stem}_p{page.number + 1}.png"
            page.get_pixmap(matrix=_matrix()).save(str(target))
            written.append(target)
    finally:
        doc.close()
    logger.info("Converted %s to %d image(s)", pdf_path, len(written))
    return written


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    pdf_path = Path("sheets/omr_sheet.pdf")
    if not pdf_path.exists():
        logger.error("PDF not found: %s", pdf_path)
    else:
        pdf_to_images(pdf_path, Path("sheets"))
