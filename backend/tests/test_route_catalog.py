"""Tests for route stop synthesis."""

from bustrack.core.route_catalog import (
    normalize_route_number,
    synthesize_stops,
    virtual_stops,
    waypoint_names,
)
from bustrack.models.tables import Stop


def make_stop(stop_id: int, name: str, lat: float, lng: float) -> Stop:
    return Stop(id=stop_id, name=name, lat=lat, lng=lng, city="Hyderabad")


def test_normalize_route_number():
    assert normalize_route_number(" 222r ") == "222R"
    assert normalize_route_number(None) == ""


def test_waypoint_names_order():
    names = waypoint_names("Ameerpet", "SR Nagar, ESI,  Erragadda", "Hitech City")
    assert names == ["Ameerpet", "SR Nagar", "ESI", "Erragadda", "Hitech City"]


def test_waypoint_names_skips_empty_segments():
    assert waypoint_names(None, "A,, ,B,", "") == ["A", "B"]
    assert waypoint_names("", None, None) == []


def test_synthesize_stops_sequence_and_eta():
    known = [
        make_stop(1, "Ameerpet", 17.4375, 78.4483),
        make_stop(2, "SR Nagar", 17.4410, 78.4420),
        make_stop(3, "ESI", 17.4470, 78.4300),
    ]
    names = waypoint_names("ameerpet", "SR NAGAR, Esi, Erragadda", "Hitech City")
    stops = synthesize_stops(names, known)

    assert [s.sequence for s in stops] == [1, 2, 3, 4, 5]
    assert [s.eta_minutes for s in stops] == [0, 10, 20, 30, 40]
    assert [s.is_major for s in stops] == [True, False, False, False, True]
    # Matched names take the stop's canonical spelling
    assert [s.name for s in stops[:3]] == ["Ameerpet", "SR Nagar", "ESI"]
    assert stops[1].stop_id == 2
    assert stops[1].has_coordinates


def test_synthesize_stops_unmatched_become_placeholders():
    stops = synthesize_stops(["Nowhere", "Ameerpet"], [make_stop(1, "Ameerpet", 17.4375, 78.4483)])
    placeholder = stops[0]
    assert placeholder.name == "Nowhere"
    assert placeholder.stop_id is None
    assert not placeholder.has_coordinates
    assert stops[1].has_coordinates


def test_virtual_stops_sorted_by_name():
    tagged = [
        make_stop(7, "Nampally", 17.3920, 78.4680),
        make_stop(5, "Koti", 17.3850, 78.4800),
        make_stop(6, "abids", 17.3930, 78.4760),
    ]
    stops = virtual_stops(tagged)
    assert [s.name for s in stops] == ["abids", "Koti", "Nampally"]
    assert [s.sequence for s in stops] == [1, 2, 3]
    assert [s.eta_minutes for s in stops] == [0, 15, 30]
    assert not any(s.is_major for s in stops)
