import math

import pytest

from services.geometry_service import derive_boundary
from services.schemas import ValidationError
from conftest import FIELD_RING


def test_square_field_metrics():
    boundary = derive_boundary(FIELD_RING)
    # ~105.6 m x 111.2 m ≈ 2.9 acres
    assert 2.7 < boundary.area < 3.1
    assert 0.42 < boundary.perimeter < 0.45
    assert math.isclose(boundary.center_latitude, 18.5205, abs_tol=1e-9)
    assert math.isclose(boundary.center_longitude, 73.8505, abs_tol=1e-9)


def test_closing_point_is_optional():
    closed = derive_boundary(FIELD_RING)
    opened = derive_boundary(FIELD_RING[:-1])
    assert math.isclose(closed.area, opened.area)
    assert math.isclose(closed.perimeter, opened.perimeter)
    assert len(opened.coordinates) == 4


def test_winding_direction_does_not_matter():
    forward = derive_boundary(FIELD_RING)
    backward = derive_boundary(list(reversed(FIELD_RING)))
    assert math.isclose(forward.area, backward.area)


@pytest.mark.parametrize("coordinates", [
    None,
    [],
    [[73.85, 18.52], [73.86, 18.52]],
    [[73.85, 18.52], [73.85, 18.52], [73.86, 18.53], [73.85, 18.52]],
    [[73.85, 18.52], [73.86, 18.53], [73.87, 18.54]],
    [[73.85, 18.52], [73.86], [73.87, 18.54]],
    [[200, 18.52], [73.86, 18.52], [73.87, 18.54]],
    [["east", 18.52], [73.86, 18.52], [73.87, 18.54]],
])
def test_invalid_rings_are_rejected(coordinates):
    with pytest.raises(ValidationError) as exc:
        derive_boundary(coordinates)
    assert exc.value.field == "coordinates"
