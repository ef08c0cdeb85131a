"""Tests for the postal-code geo resolver."""

from __future__ import annotations

import pytest

from pi_finder.errors import NotFoundError, ValidationError
from pi_finder.services.geo import Coordinate, ZipcodeGeoResolver, is_valid_zip

TABLE = {
    "77030": Coordinate(29.7079, -95.4018),
    "77005": Coordinate(29.7180, -95.4235),
    "77401": Coordinate(29.7024, -95.4613),
    "77573": Coordinate(29.5024, -95.0897),
    "75201": Coordinate(32.7876, -96.7994),
}


@pytest.mark.parametrize("value, expected", [("77030", True), ("7703", False), ("77030-1234", False), ("", False), (None, False)])
def test_is_valid_zip(value, expected) -> None:
    assert is_valid_zip(value) is expected


def test_resolve_origin_distinguishes_invalid_from_unknown() -> None:
    resolver = ZipcodeGeoResolver(TABLE)

    with pytest.raises(ValidationError):
        resolver.resolve_origin("abcde")
    with pytest.raises(NotFoundError):
        resolver.resolve_origin("00001")
    assert resolver.resolve_origin("77030") == TABLE["77030"]


def test_radius_includes_origin_and_nearby_codes() -> None:
    resolver = ZipcodeGeoResolver(TABLE)

    nearby = resolver.postal_codes_within_radius("77030", 5)
    wider = resolver.postal_codes_within_radius("77030", 50)

    assert nearby == frozenset({"77030", "77005", "77401"})
    assert "77573" in wider
    assert "75201" not in wider
    assert resolver.postal_codes_within_radius("77030", 0) == frozenset({"77030"})


def test_distance_is_symmetric_miles() -> None:
    resolver = ZipcodeGeoResolver(TABLE)

    forward = resolver.distance("77030", "75201")
    backward = resolver.distance("75201", "77030")

    assert forward == pytest.approx(backward)
    assert 215 < forward < 235


def test_default_table_knows_houston_medical_center() -> None:
    resolver = ZipcodeGeoResolver()

    origin = resolver.resolve_origin("77030")

    assert origin.latitude == pytest.approx(29.7, abs=0.2)
    assert "77030" in resolver.postal_codes_within_radius("77030", 15)
