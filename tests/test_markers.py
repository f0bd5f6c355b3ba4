import pytest

from omr_config import Corner, MarkerConfig, PageGeometry
from omr_markers import MARKER_ORDER, orientation_signature, place_markers, rotated_signature


def _markers(geom=None, cfg=None):
    return {m.corner: m for m in place_markers(geom or PageGeometry(), cfg or MarkerConfig())}


def test_four_markers_in_fixed_order():
    placed = place_markers(PageGeometry(), MarkerConfig())
    assert tuple(m.corner for m in placed) == MARKER_ORDER


def test_markers_are_inset_from_page_edges():
    geom = PageGeometry()
    markers = _markers(geom)
    assert markers[Corner.TOP_LEFT].x == pytest.approx(5.0)
    assert markers[Corner.TOP_LEFT].y == pytest.approx(5.0)
    br = markers[Corner.BOTTOM_RIGHT]
    assert br.x + br.size == pytest.approx(geom.width - 5.0)
    assert br.y + br.size == pytest.approx(geom.height - 5.0)


@pytest.mark.parametrize("geom", [PageGeometry(), PageGeometry(width=216.0, height=279.0)])
def test_markers_mirror_about_both_centre_lines(geom):
    markers = _markers(geom)
    tl, tr = markers[Corner.TOP_LEFT].center, markers[Corner.TOP_RIGHT].center
    bl, br = markers[Corner.BOTTOM_LEFT].center, markers[Corner.BOTTOM_RIGHT].center
    assert tl[0] + tr[0] == pytest.approx(geom.width)
    assert bl[0] + br[0] == pytest.approx(geom.width)
    assert tl[1] + bl[1] == pytest.approx(geom.height)
    assert tr[1] + br[1] == pytest.approx(geom.height)


def test_exactly_right_hand_markers_are_notched():
    placed = place_markers(PageGeometry(), MarkerConfig())
    assert sum(m.has_notch for m in placed) == 2
    assert orientation_signature(placed) == {Corner.TOP_RIGHT, Corner.BOTTOM_RIGHT}


def test_signature_changes_under_half_turn():
    signature = orientation_signature(place_markers(PageGeometry(), MarkerConfig()))
    rotated = rotated_signature(signature)
    assert rotated == {Corner.TOP_LEFT, Corner.BOTTOM_LEFT}
    assert rotated != signature


def test_hole_and_notch_geometry():
    markers = _markers()
    tr = markers[Corner.TOP_RIGHT]
    hx, hy, hw, hh = tr.hole_rect()
    assert hw == hh == pytest.approx(4.0)
    assert hx + hw / 2 == pytest.approx(tr.center[0])
    assert hy + hh / 2 == pytest.approx(tr.center[1])

    # Bottom-left corner of the top-right marker.
    nx, ny, nw, _ = tr.notch_rect()
    assert nx == pytest.approx(tr.x)
    assert ny + nw == pytest.approx(tr.y + tr.size)

    # Top-right corner of the bottom-right marker.
    br = markers[Corner.BOTTOM_RIGHT]
    nx, ny, nw, _ = br.notch_rect()
    assert nx + nw == pytest.approx(br.x + br.size)
    assert ny == pytest.approx(br.y)

    assert markers[Corner.TOP_LEFT].notch_rect() is None


def test_marker_config_scales_with_page():
    scaled = MarkerConfig().scaled(1.5)
    assert scaled.size == pytest.approx(15.0)
    assert scaled.inset == pytest.approx(7.5)
    assert scaled.hole_size == pytest.approx(6.0)
    assert scaled.notched_corners == MarkerConfig().notched_corners
