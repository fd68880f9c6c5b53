import json

import pytest

from tests.conftest import make_upload
from travelmap.errors import PersistenceError, TravelMapError
from travelmap.services.trips import TripsService, travel_stats
from travelmap.storage.schemas import Trip, TripsDocument
from travelmap.storage.trips_store import export_all_data

SEED = {
    "profile": {"title": "Our trips", "subtitle": ""},
    "homeCountry": "RU",
    "visited": [
        {"countryName": "Georgia", "iso2": "GE", "continent": "Asia", "year": "2019", "cities": [], "notes": "", "photos": []},
        {"countryName": "Turkey", "iso2": "TR", "continent": "Europe", "year": "", "cities": [], "notes": "", "photos": []},
    ],
}


@pytest.fixture
def seed_path(tmp_path):
    path = tmp_path / "trips.json"
    path.write_text(json.dumps(SEED), encoding="utf-8")
    return path


@pytest.fixture
def trips(trips_store, seed_path):
    service = TripsService(trips_store, seed_path)
    service.load()
    return service


def test_load_seeds_store_from_bundled_file(trips, trips_store):
    assert trips.data.profile.title == "Our trips"
    assert [t.iso2 for t in trips_store.get_trips_data().visited] == ["GE", "TR"]


def test_load_prefers_stored_document(trips_store, seed_path):
    trips_store.save_trips_data(TripsDocument(visited=[Trip("FR", "France", "Europe")]))
    service = TripsService(trips_store, seed_path)
    assert [t.iso2 for t in service.load().visited] == ["FR"]


def test_missing_seed_is_an_error(trips_store, tmp_path):
    with pytest.raises(TravelMapError):
        TripsService(trips_store, tmp_path / "nope.json").load()


def test_add_country_keeps_list_sorted_and_ignores_bad_codes(trips, trips_store):
    assert trips.add_country("fr").country_name == "France"
    assert trips.add_country("FR") is None
    assert trips.add_country("XX") is None
    assert trips.add_country("") is None

    assert [t.iso2 for t in trips.visited()] == ["FR", "GE", "TR"]
    assert [t.iso2 for t in trips_store.get_trips_data().visited] == ["FR", "GE", "TR"]


def test_failed_save_keeps_previous_state(trips, trips_store, monkeypatch):
    def broken_save(data):
        raise PersistenceError("offline")

    monkeypatch.setattr(trips_store, "save_trips_data", broken_save)
    with pytest.raises(PersistenceError):
        trips.add_country("FR")
    assert [t.iso2 for t in trips.visited()] == ["GE", "TR"]


def test_remove_and_update(trips, trips_store):
    trips.update_trip("ge", year="2020", cities=["Tbilisi"])
    trips.update_notes("GE", "Khachapuri everywhere")
    trips.remove_country("TR")

    stored = trips_store.get_trips_data()
    assert [t.iso2 for t in stored.visited] == ["GE"]
    assert stored.visited[0].year == "2020"
    assert stored.visited[0].cities == ["Tbilisi"]
    assert stored.visited[0].notes == "Khachapuri everywhere"

    with pytest.raises(ValueError):
        trips.update_trip("GE", altitude=3000)
    assert trips.update_trip("ZZ", year="1999") is None


def test_home_country_counts_as_visited(trips):
    assert trips.visited_iso_codes() == ["GE", "TR", "RU"]
    assert trips.home_country == "RU"


def test_stats_for_ten_countries():
    visited = [Trip(f"C{i}", f"Country {i}", "Europe" if i < 6 else "Asia") for i in range(10)]
    stats = travel_stats(visited)
    assert stats.countries_visited == 10
    assert stats.world_percentage == 5
    assert stats.most_visited_continent == "Europe"
    assert stats.continent_counts == {"Europe": 6, "Asia": 4}


def test_stats_without_trips():
    stats = travel_stats([])
    assert stats.world_percentage == 0
    assert stats.most_visited_continent == "N/A"


def test_neighbours_do_not_wrap(trips):
    assert trips.neighbours("GE") == (None, "TR")
    assert trips.neighbours("TR") == ("GE", None)
    assert trips.neighbours("FR") == (None, None)


def test_filter_by_displayed_name_and_continent(trips):
    assert [t.iso2 for t in trips.filter_trips("гру")] == ["GE"]
    assert [t.iso2 for t in trips.filter_trips(continent="Europe")] == ["TR"]
    assert trips.continents() == ["Asia", "Europe"]


def test_add_options_exclude_visited(trips):
    codes = {c.iso2 for c in trips.add_options()}
    assert "GE" not in codes
    assert "FR" in codes
    assert [c.iso2 for c in trips.add_options("франц")] == ["FR"]


def test_export_contains_trips_and_photo_metadata(trips, trips_store, photo_store):
    photo_store.save_photo("GE", make_upload())
    payload = json.loads(export_all_data(trips_store, photo_store))

    assert payload["version"] == 1
    assert "exportedAt" in payload
    assert [t["iso2"] for t in payload["trips"]["visited"]] == ["GE", "TR"]
    assert len(payload["photos"]) == 1
    assert payload["photos"][0]["countryIso"] == "GE"


def test_store_level_notes_update(trips, trips_store):
    trips_store.update_trip_notes("tr", "Simit for breakfast")
    assert trips_store.get_trips_data().visited[1].notes == "Simit for breakfast"
    assert trips.load().visited[1].notes == "Simit for breakfast"
