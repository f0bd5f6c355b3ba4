"""Check a rendered OMR page against the layout it was drawn from.

This is the encoder's own proof that a printed page is decodable:

- Detect the four corner markers and read which of them carry a notch.
- Map the emitted bubble coordinates onto the image through the markers.
- Sample every bubble's fill state at those coordinates.

It is not a scanning backend: there is no answer key, scoring or
student lookup here.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, FrozenSet, List, Optional, Tuple

import cv2
import numpy as np

from omr_config import Corner, MarkerConfig
from omr_geometry import mm_to_px
from omr_layout import BubbleCoordinate, Page
from omr_markers import rotated_signature
from pdf_to_image import render_page_gray

logger = logging.getLogger(__name__)

AREA_TOLERANCE = 0.4
NOTCH_DARK_FRACTION = 0.12
FILL_THRESHOLD = 0.5


@dataclass
class Bubble:
    """A sampled bubble in image pixels."""
    x: int
    y: int
    radius: int
    is_filled: bool = False
    fill_intensity: float = 0.0  # 0.0 = empty, 1.0 = completely filled
    source: Optional[BubbleCoordinate] = None


@dataclass
class DetectedMarker:
    corner: Corner
    center: Tuple[float, float]
    bbox: Tuple[int, int, int, int]
    has_notch: bool = False


@dataclass
class SelfCheckReport:
    markers: Dict[Corner, DetectedMarker] = field(default_factory=dict)
    signature: FrozenSet[Corner] = frozenset()
    upright: bool = False
    bubbles: List[Bubble] = field(default_factory=list)

    @property
    def filled(self) -> List[Bubble]:
        return [bubble for bubble in self.bubbles if bubble.is_filled]

    @property
    def ok(self) -> bool:
        return len(self.markers) == 4 and self.upright


def to_gray(image: np.ndarray) -> np.ndarray:
    return cv2.cvtColor(image, cv2.COLOR_BGR2GRAY) if image.ndim == 3 else image


def detect_fiducial_markers(
    image: np.ndarray,
    markers_cfg: Optional[MarkerConfig] = None,
) -> Optional[Dict[Corner, DetectedMarker]]:
    """Find the corner marker closest to each image corner.

    Returns:
        Mapping of page corner to marker, or None if any corner is missing.
    """
    markers_cfg = markers_cfg or MarkerConfig()
    gray = to_gray(image)
    _, binary = cv2.threshold(gray, 127, 255, cv2.THRESH_BINARY_INV)
    contours, _ = cv2.findContours(binary, cv2.RETR_EXTERNAL, cv2.CHAIN_APPROX_SIMPLE)

    expected_area = mm_to_px(markers_cfg.size) ** 2
    candidates = []
    for contour in contours:
        area = cv2.contourArea(contour)
        if abs(area - expected_area) > expected_area * AREA_TOLERANCE:
            continue
        x, y, w, h = cv2.boundingRect(contour)
        aspect_ratio = float(w) / h if h > 0 else 0
        if 0.7 < aspect_ratio < 1.3:
            candidates.append((x + w / 2, y + h / 2, (x, y, w, h)))

    height, width = gray.shape[:2]
    corners = {
        Corner.TOP_LEFT: (0, 0),
        Corner.TOP_RIGHT: (width, 0),
        Corner.BOTTOM_LEFT: (0, height),
        Corner.BOTTOM_RIGHT: (width, height),
    }
    found: Dict[Corner, DetectedMarker] = {}
    used = set()
    for corner, (cx, cy) in corners.items():
        best = None
        for index, (mx, my, bbox) in enumerate(candidates):
            if index in used:
                continue
            distance = (mx - cx) ** 2 + (my - cy) ** 2
            if best is None or distance < best[0]:
                best = (distance, index)
        if best is None:
            logger.warning("No marker found near %s", corner.value)
            return None
        used.add(best[1])
        mx, my, bbox = candidates[best[1]]
        found[corner] = DetectedMarker(corner, (mx, my), bbox, marker_has_notch(gray, bbox, markers_cfg))
    return found


def marker_has_notch(gray: np.ndarray, bbox: Tuple[int, int, int, int], markers_cfg: MarkerConfig) -> bool:
    """A notch darkens one corner of the marker's light hole."""
    x, y, w, h = bbox
    hole_w = w / markers_cfg.hole_ratio
    hole_h = h / markers_cfg.hole_ratio
    x0 = int(round(x + (w - hole_w) / 2)) + 1
    y0 = int(round(y + (h - hole_h) / 2)) + 1
    x1 = int(round(x + (w + hole_w) / 2)) - 1
    y1 = int(round(y + (h + hole_h) / 2)) - 1
    hole = gray[y0:y1, x0:x1]
    if hole.size == 0:
        return False

    mid_y, mid_x = hole.shape[0] // 2, hole.shape[1] // 2
    quadrants = (hole[:mid_y, :mid_x], hole[:mid_y, mid_x:], hole[mid_y:, :mid_x], hole[mid_y:, mid_x:])
    darkest = max(float(np.mean(quadrant < 127)) for quadrant in quadrants if quadrant.size)
    return darkest >= NOTCH_DARK_FRACTION


def read_signature(markers: Dict[Corner, DetectedMarker]) -> FrozenSet[Corner]:
    return frozenset(corner for corner, marker in markers.items() if marker.has_notch)


def expected_signature(markers_cfg: Optional[MarkerConfig] = None) -> FrozenSet[Corner]:
    return frozenset(markers_cfg.notched_corners if markers_cfg else MarkerConfig().notched_corners)


def is_upside_down(signature: FrozenSet[Corner], markers_cfg: Optional[MarkerConfig] = None) -> bool:
    return signature == rotated_signature(expected_signature(markers_cfg))


def page_transform(page: Page, detected: Dict[Corner, DetectedMarker]) -> np.ndarray:
    """Perspective transform from page millimetres to image pixels."""
    src = []
    dst = []
    for marker in page.markers:
        cx, cy = marker.center
        src.append([cx, cy])
        dst.append(list(detected[marker.corner].center))
    return cv2.getPerspectiveTransform(np.float32(src), np.float32(dst))


def analyze_bubble_fill(gray: np.ndarray, x: int, y: int, radius: int, threshold: float) -> Tuple[bool, float]:
    """Analyze whether a bubble is filled by comparing interior to background ring.

    Args:
        gray: Grayscale image
        x, y: Bubble center coordinates
        radius: Bubble radius
        threshold: Fill threshold (0.0 to 1.0)

    Returns:
        (is_filled, fill_intensity) tuple
    """
    h, w = gray.shape
    reach = int(np.ceil(radius * 1.8)) + 1
    x0, y0 = max(x - reach, 0), max(y - reach, 0)
    x1, y1 = min(x + reach + 1, w), min(y + reach + 1, h)
    if x1 <= x0 or y1 <= y0:
        return False, 0.0
    roi = gray[y0:y1, x0:x1].astype(float)

    y_grid, x_grid = np.ogrid[y0:y1, x0:x1]
    distance_from_center = np.sqrt((x_grid - x) ** 2 + (y_grid - y) ** 2)

    # Interior stays clear of the printed outline; the ring sits just outside it.
    interior_mask = distance_from_center <= radius * 0.7
    background_mask = (distance_from_center >= radius * 1.2) & (distance_from_center <= radius * 1.8)

    interior_pixels = roi[interior_mask]
    background_pixels = roi[background_mask]
    if interior_pixels.size == 0 or background_pixels.size == 0:
        return False, 0.0

    interior_mean = np.mean(interior_pixels)
    background_mean = np.mean(background_pixels)
    if background_mean > 0:
        darkness_ratio = (background_mean - interior_mean) / background_mean
    else:
        darkness_ratio = 0.0

    fill_intensity = float(max(0.0, min(1.0, darkness_ratio)))
    return fill_intensity >= threshold, fill_intensity


def sample_page_bubbles(
    image: np.ndarray,
    page: Page,
    detected: Optional[Dict[Corner, DetectedMarker]] = None,
    threshold: float = FILL_THRESHOLD,
) -> List[Bubble]:
    """Sample every bubble of ``page`` at its emitted coordinate.

    Without detected markers the image is assumed to be an unrotated render
    at ``FORMAT_DPI``.
    """
    gray = to_gray(image)
    coords = list(page.bubbles())
    if not coords:
        return []

    if detected:
        matrix = page_transform(page, detected)
        points = np.float32([[[c.x, c.y]] for c in coords])
        mapped = cv2.perspectiveTransform(points, matrix).reshape(-1, 2)
        left, right = page.markers[0], page.markers[1]
        span_px = np.subtract(detected[right.corner].center, detected[left.corner].center)
        scale = float(np.linalg.norm(span_px)) / (right.x - left.x)
    else:
        mapped = np.array([[mm_to_px(c.x), mm_to_px(c.y)] for c in coords])
        scale = mm_to_px(1.0)

    sampled = []
    for coord, (px, py) in zip(coords, mapped):
        x, y = int(round(px)), int(round(py))
        radius = max(1, int(round(coord.radius * scale)))
        is_filled, intensity = analyze_bubble_fill(gray, x, y, radius, threshold)
        sampled.append(Bubble(x, y, radius, is_filled, intensity, coord))
    return sampled


def verify_page_image(image: np.ndarray, page: Page, markers_cfg: Optional[MarkerConfig] = None) -> SelfCheckReport:
    """Detect markers, read the orientation and sample all bubbles."""
    report = SelfCheckReport()
    detected = detect_fiducial_markers(image, markers_cfg)
    if detected is None:
        logger.warning("Page %d: corner markers not found", page.index)
        return report

    report.markers = detected
    report.signature = read_signature(detected)
    report.upright = report.signature == expected_signature(markers_cfg)
    if not report.upright:
        if is_upside_down(report.signature, markers_cfg):
            logger.warning("Page %d is upside down", page.index)
        else:
            logger.warning("Page %d: unexpected notch signature %s", page.index,
                           sorted(corner.value for corner in report.signature))
        return report

    report.bubbles = sample_page_bubbles(image, page, detected)
    logger.info("Page %d: %d bubbles sampled, %d marked", page.index, len(report.bubbles), len(report.filled))
    return report


def overlay_samples(image: np.ndarray, report: SelfCheckReport) -> np.ndarray:
    """Draw detected markers and marked bubbles for inspection."""
    output = cv2.cvtColor(image, cv2.COLOR_GRAY2BGR) if image.ndim == 2 else image.copy()
    for marker in report.markers.values():
        x, y, w, h = marker.bbox
        color = (0, 0, 255) if marker.has_notch else (0, 160, 0)
        cv2.rectangle(output, (x, y), (x + w, y + h), color, 2)
    pink_color = (255, 0, 255)
    for bubble in report.filled:
        cv2.circle(output, (bubble.x, bubble.y), bubble.radius + 2, pink_color, 2)
    return output


def check_layout_pdf(pdf_path: Path, layout_pages: List[Page], output_dir: Optional[Path] = None) -> bool:
    """Rasterise each page of a generated PDF and verify it."""
    ok = True
    for page in layout_pages:
        gray = render_page_gray(pdf_path, page.index)
        report = verify_page_image(gray, page)
        ok = ok and report.ok
        if output_dir is not None:
            output_dir.mkdir(parents=True, exist_ok=True)
            cv2.imwrite(str(output_dir / f"check_p{page.index + 1}.png"), overlay_samples(gray, report))
    return ok
