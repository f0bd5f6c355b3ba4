"""Corner fiducial markers.

Every page carries four solid squares with a light square hole in the middle.
Two of them also carry a notch block in one corner of the square, so the set
of notched corners tells an upright page from one rotated by 180 degrees.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import FrozenSet, Iterable, Optional, Tuple

from omr_config import Corner, MarkerConfig, PageGeometry
from omr_geometry import distribute

Rect = Tuple[float, float, float, float]

# Corner of the marker square that holds the notch, per page corner.
NOTCH_ANCHORS = {
    Corner.TOP_RIGHT: Corner.BOTTOM_LEFT,
    Corner.BOTTOM_RIGHT: Corner.TOP_RIGHT,
    Corner.TOP_LEFT: Corner.BOTTOM_RIGHT,
    Corner.BOTTOM_LEFT: Corner.TOP_LEFT,
}

MARKER_ORDER = (Corner.TOP_LEFT, Corner.TOP_RIGHT, Corner.BOTTOM_LEFT, Corner.BOTTOM_RIGHT)


@dataclass(frozen=True)
class FiducialMarker:
    """One corner marker; ``x``/``y`` is the top-left of the square."""
    corner: Corner
    x: float
    y: float
    size: float
    hole_size: float
    has_notch: bool
    notch_size: float = 0.0

    @property
    def center(self) -> Tuple[float, float]:
        return self.x + self.size / 2, self.y + self.size / 2

    def hole_rect(self) -> Rect:
        offset = (self.size - self.hole_size) / 2
        return self.x + offset, self.y + offset, self.hole_size, self.hole_size

    def notch_rect(self) -> Optional[Rect]:
        if not self.has_notch:
            return None
        anchor = NOTCH_ANCHORS[self.corner]
        far = self.size - self.notch_size
        dx = far if anchor in (Corner.TOP_RIGHT, Corner.BOTTOM_RIGHT) else 0.0
        dy = far if anchor in (Corner.BOTTOM_LEFT, Corner.BOTTOM_RIGHT) else 0.0
        return self.x + dx, self.y + dy, self.notch_size, self.notch_size


def place_markers(
    geom: PageGeometry,
    markers: MarkerConfig,
) -> Tuple[FiducialMarker, ...]:
    """Place the four corner markers of a page (TL, TR, BL, BR)."""
    half = markers.size / 2
    lead = markers.inset + half
    xs = [lead + p for p in distribute(geom.width - 2 * lead, 2)]
    ys = [lead + p for p in distribute(geom.height - 2 * lead, 2)]
    centers = {
        Corner.TOP_LEFT: (xs[0], ys[0]),
        Corner.TOP_RIGHT: (xs[1], ys[0]),
        Corner.BOTTOM_LEFT: (xs[0], ys[1]),
        Corner.BOTTOM_RIGHT: (xs[1], ys[1]),
    }

    placed = []
    for corner in MARKER_ORDER:
        cx, cy = centers[corner]
        notched = corner in markers.notched_corners
        placed.append(FiducialMarker(
            corner=corner,
            x=cx - half,
            y=cy - half,
            size=markers.size,
            hole_size=markers.hole_size,
            has_notch=notched,
            notch_size=markers.notch_size if notched else 0.0,
        ))
    return tuple(placed)


def orientation_signature(markers: Iterable[FiducialMarker]) -> FrozenSet[Corner]:
    """Corners whose marker carries a notch."""
    return frozenset(marker.corner for marker in markers if marker.has_notch)


def rotated_signature(signature: Iterable[Corner]) -> FrozenSet[Corner]:
    """Where notched corners end up after the sheet is turned 180 degrees."""
    opposite = {
        Corner.TOP_LEFT: Corner.BOTTOM_RIGHT,
        Corner.BOTTOM_RIGHT: Corner.TOP_LEFT,
        Corner.TOP_RIGHT: Corner.BOTTOM_LEFT,
        Corner.BOTTOM_LEFT: Corner.TOP_RIGHT,
    }
    return frozenset(opposite[corner] for corner in signature)
