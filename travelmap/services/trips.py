"""The collection of visited places and everything derived from it."""

from __future__ import annotations

import copy
import json
import logging
import math
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, NamedTuple, Optional

from travelmap import config
from travelmap.errors import TravelMapError
from travelmap.storage.schemas import Trip, TripsDocument, normalize_iso2
from travelmap.storage.trips_store import TripsStore
from travelmap.utils.i18n import country_name

logger = logging.getLogger(__name__)


class Country(NamedTuple):
    name: str
    iso2: str
    continent: str
    lat: float
    lon: float


COUNTRY_CATALOG: List[Country] = [
    Country("Afghanistan", "AF", "Asia", 33.9, 67.7),
    Country("Albania", "AL", "Europe", 41.2, 20.2),
    Country("Algeria", "DZ", "Africa", 28.0, 1.7),
    Country("Andorra", "AD", "Europe", 42.5, 1.5),
    Country("Angola", "AO", "Africa", -11.2, 17.9),
    Country("Argentina", "AR", "South America", -38.4, -63.6),
    Country("Armenia", "AM", "Asia", 40.1, 45.0),
    Country("Australia", "AU", "Oceania", -25.3, 133.8),
    Country("Austria", "AT", "Europe", 47.5, 14.6),
    Country("Azerbaijan", "AZ", "Asia", 40.1, 47.6),
    Country("Belgium", "BE", "Europe", 50.5, 4.5),
    Country("Brazil", "BR", "South America", -14.2, -51.9),
    Country("Canada", "CA", "North America", 56.1, -106.3),
    Country("China", "CN", "Asia", 35.9, 104.2),
    Country("Colombia", "CO", "South America", 4.6, -74.3),
    Country("Czechia", "CZ", "Europe", 49.8, 15.5),
    Country("Denmark", "DK", "Europe", 56.3, 9.5),
    Country("Ecuador", "EC", "South America", -1.8, -78.2),
    Country("Estonia", "EE", "Europe", 58.6, 25.0),
    Country("Ethiopia", "ET", "Africa", 9.1, 40.5),
    Country("Finland", "FI", "Europe", 61.9, 25.7),
    Country("France", "FR", "Europe", 46.2, 2.2),
    Country("Georgia", "GE", "Asia", 42.3, 43.4),
    Country("Germany", "DE", "Europe", 51.2, 10.5),
    Country("Hong Kong", "HK", "Asia", 22.3, 114.2),
    Country("Hungary", "HU", "Europe", 47.2, 19.5),
    Country("India", "IN", "Asia", 20.6, 79.0),
    Country("Indonesia", "ID", "Asia", -0.8, 113.9),
    Country("Israel", "IL", "Asia", 31.0, 34.9),
    Country("Italy", "IT", "Europe", 41.9, 12.6),
    Country("Jordan", "JO", "Asia", 30.6, 36.2),
    Country("Kazakhstan", "KZ", "Asia", 48.0, 66.9),
    Country("Kyrgyzstan", "KG", "Asia", 41.2, 74.8),
    Country("Malaysia", "MY", "Asia", 4.2, 102.0),
    Country("Mexico", "MX", "North America", 23.6, -102.6),
    Country("Nigeria", "NG", "Africa", 9.1, 8.7),
    Country("Norway", "NO", "Europe", 60.5, 8.5),
    Country("Paraguay", "PY", "South America", -23.4, -58.4),
    Country("Poland", "PL", "Europe", 51.9, 19.1),
    Country("Portugal", "PT", "Europe", 39.4, -8.2),
    Country("Romania", "RO", "Europe", 45.9, 25.0),
    Country("Russia", "RU", "Europe", 61.5, 105.3),
    Country("Singapore", "SG", "Asia", 1.35, 103.8),
    Country("South Africa", "ZA", "Africa", -30.6, 22.9),
    Country("Spain", "ES", "Europe", 40.5, -3.7),
    Country("Sweden", "SE", "Europe", 60.1, 18.6),
    Country("Thailand", "TH", "Asia", 15.9, 101.0),
    Country("Turkey", "TR", "Europe", 39.0, 35.2),
    Country("Turkmenistan", "TM", "Asia", 39.0, 59.6),
    Country("Ukraine", "UA", "Europe", 48.4, 31.2),
    Country("United Arab Emirates", "AE", "Asia", 23.4, 53.8),
    Country("United Kingdom", "GB", "Europe", 55.4, -3.4),
    Country("United States", "US", "North America", 37.1, -95.7),
    Country("Uruguay", "UY", "South America", -32.5, -55.8),
    Country("Uzbekistan", "UZ", "Asia", 41.4, 64.6),
]

CATALOG_BY_ISO: Dict[str, Country] = {country.iso2: country for country in COUNTRY_CATALOG}


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


@dataclass
class TravelStats:
    countries_visited: int
    world_percentage: int
    most_visited_continent: str
    continent_counts: Dict[str, int] = field(default_factory=dict)


def travel_stats(visited: List[Trip], total_countries: int = config.TOTAL_COUNTRIES_IN_WORLD) -> TravelStats:
    counts: Dict[str, int] = {}
    for trip in visited:
        counts[trip.continent] = counts.get(trip.continent, 0) + 1
    # max() keeps the first continent reached on ties
    most_visited = max(counts, key=counts.get) if counts else "N/A"
    return TravelStats(
        countries_visited=len(visited),
        world_percentage=round_half_up(len(visited) / total_countries * 100),
        most_visited_continent=most_visited,
        continent_counts=counts,
    )


class TripsService:
    """In-memory view of the trips document; every change rewrites the whole document."""

    def __init__(self, store: TripsStore, seed_path: Path = config.SEED_TRIPS_PATH) -> None:
        self._store = store
        self._seed_path = Path(seed_path)
        self._data: Optional[TripsDocument] = None

    @property
    def data(self) -> TripsDocument:
        if self._data is None:
            return self.load()
        return self._data

    def _read_seed(self) -> TripsDocument:
        try:
            with open(self._seed_path, "r", encoding="utf-8") as f:
                payload = json.load(f)
        except (OSError, ValueError) as exc:
            raise TravelMapError(f"Could not load trips data from {self._seed_path}: {exc}") from exc
        return TripsDocument.from_dict(payload)

    def load(self) -> TripsDocument:
        """Stored document if there is one, otherwise the bundled seed (which is then stored)."""
        data = self._store.get_trips_data()
        if data is None:
            logger.info("No stored trips document, seeding from %s", self._seed_path)
            data = self._read_seed()
            self._store.save_trips_data(data)
        self._data = data
        return data

    def _commit(self, data: TripsDocument) -> TripsDocument:
        # Only replace the in-memory copy once the write went through.
        self._store.save_trips_data(data)
        self._data = data
        return data

    def _edited_copy(self) -> TripsDocument:
        return copy.deepcopy(self.data)

    @property
    def home_country(self) -> Optional[str]:
        return self.data.home_country

    def visited(self) -> List[Trip]:
        return list(self.data.visited)

    def visited_iso_codes(self) -> List[str]:
        """Codes to highlight on the map; the home country always counts as visited."""
        codes: List[str] = []
        for trip in self.data.visited:
            code = normalize_iso2(trip.iso2)
            if code and code not in codes:
                codes.append(code)
        home = self.data.home_country
        if home and home not in codes:
            codes.append(home)
        return codes

    def trip_by_iso(self, iso2: str) -> Optional[Trip]:
        code = normalize_iso2(iso2)
        return next((trip for trip in self.data.visited if trip.iso2 == code), None)

    def continents(self) -> List[str]:
        return sorted({trip.continent for trip in self.data.visited})

    def travel_stats(self) -> TravelStats:
        return travel_stats(self.data.visited)

    def add_country(self, iso2: str) -> Optional[Trip]:
        """Add a catalog country; unknown or already visited codes are ignored."""
        code = normalize_iso2(iso2)
        if not code or self.trip_by_iso(code) is not None:
            return None
        info = CATALOG_BY_ISO.get(code)
        if info is None:
            logger.warning("Ignoring unknown country code %s", code)
            return None

        trip = Trip(iso2=info.iso2, country_name=info.name, continent=info.continent)
        data = self._edited_copy()
        data.visited = sorted(data.visited + [trip], key=lambda t: t.country_name.casefold())
        self._commit(data)
        return trip

    def remove_country(self, iso2: str) -> None:
        code = normalize_iso2(iso2)
        data = self._edited_copy()
        data.visited = [trip for trip in data.visited if trip.iso2 != code]
        self._commit(data)

    def update_trip(self, iso2: str, **updates) -> Optional[Trip]:
        """Apply field updates (``year``, ``cities``, ``notes`` ...) to one trip."""
        code = normalize_iso2(iso2)
        data = self._edited_copy()
        updated = None
        for trip in data.visited:
            if trip.iso2 != code:
                continue
            for name, value in updates.items():
                if not hasattr(trip, name) or name == "iso2":
                    raise ValueError(f"Unknown trip field: {name}")
                setattr(trip, name, value)
            updated = trip
        if updated is None:
            return None
        self._commit(data)
        return updated

    def update_notes(self, iso2: str, notes: str) -> Optional[Trip]:
        return self.update_trip(iso2, notes=notes)

    def neighbours(self, iso2: str) -> tuple[Optional[str], Optional[str]]:
        """Previous and next visited country codes, without wrapping around."""
        codes = [trip.iso2 for trip in self.data.visited]
        code = normalize_iso2(iso2)
        if code not in codes:
            return None, None
        index = codes.index(code)
        prev_code = codes[index - 1] if index > 0 else None
        next_code = codes[index + 1] if index < len(codes) - 1 else None
        return prev_code, next_code

    def filter_trips(self, query: str = "", continent: Optional[str] = None) -> List[Trip]:
        """Search by displayed country name, optionally within one continent."""
        needle = (query or "").strip().casefold()
        result = []
        for trip in self.data.visited:
            if continent and trip.continent != continent:
                continue
            if needle and needle not in country_name(trip.iso2, trip.country_name).casefold():
                continue
            result.append(trip)
        return result

    def add_options(self, query: str = "") -> List[Country]:
        """Catalog countries not visited yet, matching the query, sorted by display name."""
        visited = {trip.iso2 for trip in self.data.visited}
        needle = (query or "").strip().casefold()
        options = [
            country
            for country in COUNTRY_CATALOG
            if country.iso2 not in visited and needle in country_name(country.iso2, country.name).casefold()
        ]
        return sorted(options, key=lambda c: country_name(c.iso2, c.name))