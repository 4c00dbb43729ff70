"""Resolve free-text location fields to a canonical Location.

Strategies run in a fixed order and the first hit wins:

  place_id     exact Location.place_id lookup             high
  suburb       legacy Suburb by name -> its place_id       high
  city         legacy City by name -> its place_id         medium
  province     legacy Province by name -> its place_id     low
  coordinates  Location inside a +/- bbox of the point     medium
  none         nothing matched                             low

Province is tried before coordinates even though it carries lower confidence;
that ordering is kept as-is.

The matcher only reads. It is shared by the backfill and by the read-only
analysis report so both see identical results.
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence, TypeVar

from sqlalchemy import Float, cast, func, select
from sqlalchemy.orm import Session

from db.models import City, Location, Province, Suburb

HIGH = "high"
MEDIUM = "medium"
LOW = "low"

BY_PLACE_ID = "place_id"
BY_SUBURB = "suburb"
BY_CITY = "city"
BY_PROVINCE = "province"
BY_COORDINATES = "coordinates"
BY_NONE = "none"

STRATEGIES = (BY_PLACE_ID, BY_SUBURB, BY_CITY, BY_PROVINCE, BY_COORDINATES, BY_NONE)

DEFAULT_BBOX_DEGREES = 0.05

T = TypeVar("T")


@dataclass(frozen=True)
class ExtractedLocation:
    province: Optional[str] = None
    city: Optional[str] = None
    suburb: Optional[str] = None
    address: Optional[str] = None
    latitude: Optional[str] = None
    longitude: Optional[str] = None


@dataclass(frozen=True)
class MatchResult:
    confidence: str
    matched_by: str
    location_id: Optional[int] = None
    # Legacy ids behind the match, when the strategy went through them
    province_id: Optional[int] = None
    city_id: Optional[int] = None
    suburb_id: Optional[int] = None

    @property
    def matched(self) -> bool:
        return self.location_id is not None


NO_MATCH = MatchResult(confidence=LOW, matched_by=BY_NONE)


def _clean(value: Optional[str]) -> str:
    return (value or "").strip()


def _same_name(a: Optional[str], b: Optional[str]) -> bool:
    return _clean(a).lower() == _clean(b).lower()


def parse_coordinate(value: object) -> Optional[float]:
    """Float for a finite numeric value/string, else None. Never raises."""
    if value is None or isinstance(value, bool):
        return None
    try:
        out = float(str(value).strip())
    except (TypeError, ValueError):
        return None
    return out if math.isfinite(out) else None


def _narrow(candidates: List[T], parent_name: Callable[[T], Optional[str]], hint: Optional[str]) -> List[T]:
    # Prefer candidates under the hinted parent; keep all when the hint matches none
    if not _clean(hint):
        return candidates
    preferred = [c for c in candidates if _same_name(parent_name(c), hint)]
    return preferred or candidates


class LocationMatcher:
    def __init__(self, session: Session, bbox_degrees: float = DEFAULT_BBOX_DEGREES):
        self.session = session
        self.bbox_degrees = bbox_degrees

    # -- public -----------------------------------------------------------

    def resolve(self, extracted: ExtractedLocation, place_id: Optional[str] = None) -> MatchResult:
        for strategy in (
            self._by_place_id,
            self._by_suburb,
            self._by_city,
            self._by_province,
            self._by_coordinates,
        ):
            result = strategy(extracted, place_id)
            if result is not None:
                return result
        return NO_MATCH

    def resolve_place_id(self, place_id: Optional[str]) -> Optional[MatchResult]:
        return self._by_place_id(ExtractedLocation(), place_id)

    def resolve_from_foreign_keys(
        self,
        suburb_id: Optional[int] = None,
        city_id: Optional[int] = None,
        province_id: Optional[int] = None,
    ) -> Optional[MatchResult]:
        """Resolve through legacy FKs a row already carries, most specific first."""
        if suburb_id is not None:
            suburb = self.session.get(Suburb, suburb_id)
            if suburb is not None:
                result = self._suburb_result(suburb)
                if result is not None:
                    return result
        if city_id is not None:
            city = self.session.get(City, city_id)
            if city is not None:
                result = self._city_result(city)
                if result is not None:
                    return result
        if province_id is not None:
            province = self.session.get(Province, province_id)
            if province is not None:
                return self._province_result(province)
        return None

    def location_id_for_place(self, place_id: Optional[str]) -> Optional[int]:
        pid = _clean(place_id)
        if not pid:
            return None
        return self.session.execute(
            select(Location.id).where(Location.place_id == pid).limit(1)
        ).scalar_one_or_none()

    # -- strategies -------------------------------------------------------

    def _by_place_id(self, extracted: ExtractedLocation, place_id: Optional[str]) -> Optional[MatchResult]:
        loc_id = self.location_id_for_place(place_id)
        if loc_id is None:
            return None
        return MatchResult(confidence=HIGH, matched_by=BY_PLACE_ID, location_id=loc_id)

    def _by_suburb(self, extracted: ExtractedLocation, place_id: Optional[str]) -> Optional[MatchResult]:
        candidates = self._named(Suburb, extracted.suburb)
        candidates = _narrow(candidates, lambda s: s.city.name if s.city else None, extracted.city)
        return self._first(candidates, self._suburb_result)

    def _by_city(self, extracted: ExtractedLocation, place_id: Optional[str]) -> Optional[MatchResult]:
        candidates = self._named(City, extracted.city)
        candidates = _narrow(candidates, lambda c: c.province.name if c.province else None, extracted.province)
        return self._first(candidates, self._city_result)

    def _by_province(self, extracted: ExtractedLocation, place_id: Optional[str]) -> Optional[MatchResult]:
        return self._first(self._named(Province, extracted.province), self._province_result)

    def _by_coordinates(self, extracted: ExtractedLocation, place_id: Optional[str]) -> Optional[MatchResult]:
        lat = parse_coordinate(extracted.latitude)
        lng = parse_coordinate(extracted.longitude)
        if lat is None or lng is None:
            return None
        d = self.bbox_degrees
        loc_lat = cast(Location.latitude, Float)
        loc_lng = cast(Location.longitude, Float)
        loc_id = self.session.execute(
            select(Location.id)
            .where(
                Location.latitude.isnot(None),
                Location.longitude.isnot(None),
                loc_lat.between(lat - d, lat + d),
                loc_lng.between(lng - d, lng + d),
            )
            .order_by(Location.id)
            .limit(1)
        ).scalar_one_or_none()
        if loc_id is None:
            return None
        return MatchResult(confidence=MEDIUM, matched_by=BY_COORDINATES, location_id=loc_id)

    # -- helpers ----------------------------------------------------------

    def _named(self, model, name: Optional[str]) -> list:
        wanted = _clean(name).lower()
        if not wanted:
            return []
        return list(
            self.session.execute(
                select(model).where(func.lower(func.trim(model.name)) == wanted).order_by(model.id)
            ).scalars()
        )

    @staticmethod
    def _first(candidates: Sequence[T], to_result: Callable[[T], Optional[MatchResult]]) -> Optional[MatchResult]:
        for candidate in candidates:
            result = to_result(candidate)
            if result is not None:
                return result
        return None

    def _suburb_result(self, suburb: Suburb) -> Optional[MatchResult]:
        loc_id = self.location_id_for_place(suburb.place_id)
        if loc_id is None:
            return None
        return MatchResult(
            confidence=HIGH,
            matched_by=BY_SUBURB,
            location_id=loc_id,
            suburb_id=suburb.id,
            city_id=suburb.city_id,
            province_id=suburb.city.province_id if suburb.city else None,
        )

    def _city_result(self, city: City) -> Optional[MatchResult]:
        loc_id = self.location_id_for_place(city.place_id)
        if loc_id is None:
            return None
        return MatchResult(
            confidence=MEDIUM,
            matched_by=BY_CITY,
            location_id=loc_id,
            city_id=city.id,
            province_id=city.province_id,
        )

    def _province_result(self, province: Province) -> Optional[MatchResult]:
        loc_id = self.location_id_for_place(province.place_id)
        if loc_id is None:
            return None
        return MatchResult(confidence=LOW, matched_by=BY_PROVINCE, location_id=loc_id, province_id=province.id)


def resolve_location(
    session: Session,
    extracted: ExtractedLocation,
    place_id: Optional[str] = None,
    bbox_degrees: float = DEFAULT_BBOX_DEGREES,
) -> MatchResult:
    return LocationMatcher(session, bbox_degrees=bbox_degrees).resolve(extracted, place_id)
