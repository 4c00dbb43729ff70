"""Build and refresh the canonical Location tree from the legacy per-level tables.

Levels are processed strictly parent-first. Each level returns a LevelResult
whose ``ids`` map (legacy id -> Location id) is handed to the next level, so
children always attach to the Location assigned to their parent in this run.

Upserts are keyed by place_id. Legacy rows without a place_id get a fresh
Location on every run; re-running is only idempotent for rows that carry one.
"""
from __future__ import annotations

import logging
import re
from dataclasses import asdict, dataclass, field
from typing import Dict, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from db.models import City, Location, Province, Suburb
from scripts.lib.engine_config import EngineConfig
from scripts.lib.location_matcher import parse_coordinate
from scripts.lib.location_text import seo_content, slugify, unique_slug

_log = logging.getLogger(__name__)

# legacy row id -> canonical Location id, for one hierarchy level
IdLookup = Dict[int, int]


def _checked_coordinates(loc_type: str, legacy) -> Tuple[Optional[str], Optional[str]]:
    """Legacy lat/lng as a valid pair of decimal strings, else (None, None)."""
    lat = (legacy.latitude or "").strip() or None
    lng = (legacy.longitude or "").strip() or None
    if lat is None and lng is None:
        return None, None
    flat, flng = parse_coordinate(lat), parse_coordinate(lng)
    if flat is None or flng is None or not (-90.0 <= flat <= 90.0 and -180.0 <= flng <= 180.0):
        _log.warning("%s %s (%r): dropping malformed coordinates latitude=%r longitude=%r",
                     loc_type, legacy.id, legacy.name, legacy.latitude, legacy.longitude)
        return None, None
    return lat, lng


class UpsertConflict(Exception):
    """An insert collided with an existing place_id."""

    def __init__(self, place_id: Optional[str], cause: Exception):
        super().__init__(f"place_id {place_id!r} already taken: {cause}")
        self.place_id = place_id


@dataclass
class LevelResult:
    ids: IdLookup = field(default_factory=dict)
    created: int = 0
    updated: int = 0
    skipped: int = 0

    @property
    def synced(self) -> int:
        return len(self.ids)


@dataclass
class SyncSummary:
    provinces_synced: int = 0
    cities_synced: int = 0
    suburbs_synced: int = 0
    created: int = 0
    updated: int = 0
    skipped: int = 0
    dry_run: bool = True

    def add(self, level: str, result: LevelResult) -> None:
        setattr(self, f"{level}_synced", result.synced)
        self.created += result.created
        self.updated += result.updated
        self.skipped += result.skipped

    def as_dict(self) -> dict:
        return asdict(self)


class LocationSynchronizer:
    def __init__(self, session: Session, config: Optional[EngineConfig] = None):
        self.session = session
        self.config = config or EngineConfig()
        # (type, parent_id) -> {slug: location_id}
        self._slugs: Dict[Tuple[str, Optional[int]], Dict[str, int]] = {}

    def sync(self, dry_run: bool = True) -> SyncSummary:
        """Run all three levels in one transaction; roll back when dry_run."""
        summary = SyncSummary(dry_run=dry_run)
        try:
            provinces = self.sync_provinces()
            summary.add("provinces", provinces)
            cities = self.sync_cities(provinces.ids)
            summary.add("cities", cities)
            suburbs = self.sync_suburbs(cities.ids)
            summary.add("suburbs", suburbs)
            if dry_run:
                self.session.rollback()
            else:
                self.session.commit()
        except BaseException:
            self.session.rollback()
            raise
        finally:
            # Slug scopes describe this transaction only
            self._slugs.clear()
        return summary

    def sync_provinces(self) -> LevelResult:
        result = LevelResult()
        for prov in self.session.execute(select(Province).order_by(Province.id)).scalars().all():
            seo = seo_content(prov.name, "province", site_name=self.config.site_name)
            self._record(result, prov, self._upsert("province", prov, None, seo))
        _log.info("provinces: %d synced (%d created, %d updated, %d skipped)",
                  result.synced, result.created, result.updated, result.skipped)
        return result

    def sync_cities(self, province_ids: IdLookup) -> LevelResult:
        result = LevelResult()
        for city in self.session.execute(select(City).order_by(City.id)).scalars().all():
            parent_id = province_ids.get(city.province_id)
            if parent_id is None:
                _log.warning("city %s (%r): province %s was not synced; skipping", city.id, city.name, city.province_id)
                result.skipped += 1
                continue
            seo = seo_content(city.name, "city", province=city.province.name if city.province else None,
                              site_name=self.config.site_name)
            self._record(result, city, self._upsert("city", city, parent_id, seo))
        _log.info("cities: %d synced (%d created, %d updated, %d skipped)",
                  result.synced, result.created, result.updated, result.skipped)
        return result

    def sync_suburbs(self, city_ids: IdLookup) -> LevelResult:
        result = LevelResult()
        for sub in self.session.execute(select(Suburb).order_by(Suburb.id)).scalars().all():
            parent_id = city_ids.get(sub.city_id)
            if parent_id is None:
                _log.warning("suburb %s (%r): city %s was not synced; skipping", sub.id, sub.name, sub.city_id)
                result.skipped += 1
                continue
            city = sub.city
            province = city.province if city else None
            seo = seo_content(
                sub.name,
                "suburb",
                province=province.name if province else None,
                city=city.name if city else None,
                site_name=self.config.site_name,
            )
            self._record(result, sub, self._upsert("suburb", sub, parent_id, seo))
        _log.info("suburbs: %d synced (%d created, %d updated, %d skipped)",
                  result.synced, result.created, result.updated, result.skipped)
        return result

    # -- upsert -----------------------------------------------------------

    @staticmethod
    def _record(result: LevelResult, legacy, outcome: Tuple[Optional[int], str]) -> None:
        loc_id, action = outcome
        if loc_id is None:
            result.skipped += 1
            return
        result.ids[legacy.id] = loc_id
        if action == "created":
            result.created += 1
        else:
            result.updated += 1

    def _upsert(self, loc_type: str, legacy, parent_id: Optional[int], seo) -> Tuple[Optional[int], str]:
        place_id = (legacy.place_id or "").strip() or None
        existing = self._find_by_place(place_id)
        if existing is not None:
            self._apply(existing, loc_type, legacy, parent_id, place_id, seo)
            self.session.flush()
            return existing.id, "updated"
        try:
            return self._insert(loc_type, legacy, parent_id, place_id, seo), "created"
        except UpsertConflict as conflict:
            _log.warning("%s %s (%r): %s; retrying as update", loc_type, legacy.id, legacy.name, conflict)
        try:
            with self.session.begin_nested():
                existing = self._find_by_place(place_id)
                if existing is None:
                    raise LookupError(f"no Location holds place_id {place_id!r}")
                self._apply(existing, loc_type, legacy, parent_id, place_id, seo)
            return existing.id, "updated"
        except (IntegrityError, LookupError) as e:
            _log.warning("%s %s (%r): update-by-place_id failed, skipping: %s", loc_type, legacy.id, legacy.name, e)
            return None, "skipped"

    def _insert(self, loc_type: str, legacy, parent_id: Optional[int], place_id: Optional[str], seo) -> int:
        slug = self._slug_for(loc_type, parent_id, legacy.name)
        lat, lng = _checked_coordinates(loc_type, legacy)
        loc = Location(
            name=legacy.name,
            slug=slug,
            type=loc_type,
            parent_id=parent_id,
            place_id=place_id,
            latitude=lat,
            longitude=lng,
            description=seo.description,
            seo_title=seo.title,
            seo_description=seo.description,
            property_count=0,
        )
        try:
            with self.session.begin_nested():
                self.session.add(loc)
        except IntegrityError as e:
            raise UpsertConflict(place_id, e) from e
        self._scope(loc_type, parent_id)[slug] = loc.id
        return loc.id

    def _apply(self, loc: Location, loc_type: str, legacy, parent_id: Optional[int], place_id: Optional[str], seo) -> None:
        # Release the row's own slug so it can keep it
        old_scope = self._scope(loc.type, loc.parent_id)
        if old_scope.get(loc.slug) == loc.id:
            del old_scope[loc.slug]
        slug = self._slug_for(loc_type, parent_id, legacy.name, current=loc.slug)
        loc.name = legacy.name
        loc.slug = slug
        loc.type = loc_type
        loc.parent_id = parent_id
        loc.place_id = place_id
        loc.latitude, loc.longitude = _checked_coordinates(loc_type, legacy)
        # Editorial SEO copy wins over the generated one
        if not loc.seo_title:
            loc.seo_title = seo.title
        if not loc.seo_description:
            loc.seo_description = seo.description
        if not loc.description:
            loc.description = seo.description
        self._scope(loc_type, parent_id)[slug] = loc.id

    def _find_by_place(self, place_id: Optional[str]) -> Optional[Location]:
        if not place_id:
            return None
        return self.session.execute(
            select(Location).where(Location.place_id == place_id).limit(1)
        ).scalar_one_or_none()

    # -- slugs ------------------------------------------------------------

    def _scope(self, loc_type: str, parent_id: Optional[int]) -> Dict[str, int]:
        key = (loc_type, parent_id)
        if key not in self._slugs:
            q = select(Location.slug, Location.id).where(Location.type == loc_type)
            q = q.where(Location.parent_id.is_(None) if parent_id is None else Location.parent_id == parent_id)
            self._slugs[key] = {slug: loc_id for slug, loc_id in self.session.execute(q)}
        return self._slugs[key]

    def _slug_for(self, loc_type: str, parent_id: Optional[int], name: str, current: Optional[str] = None) -> str:
        base = slugify(name) or "location"
        taken = self._scope(loc_type, parent_id)
        # Keep an already-suffixed slug stable across runs
        if current and current not in taken and re.fullmatch(rf"{re.escape(base)}(-\d+)?", current):
            return current
        return unique_slug(base, taken)


def backfill_legacy_slugs(session: Session) -> Dict[str, int]:
    """Fill NULL slugs on provinces/cities/suburbs, unique within each parent.

    Writes go to the session only; the caller commits or rolls back.
    """
    counts = {"provinces": 0, "cities": 0, "suburbs": 0}
    for key, model, parent_col in (
        ("provinces", Province, None),
        ("cities", City, "province_id"),
        ("suburbs", Suburb, "city_id"),
    ):
        taken: Dict[Optional[int], set] = {}
        for row in session.execute(select(model).where(model.slug.isnot(None))).scalars().all():
            taken.setdefault(getattr(row, parent_col) if parent_col else None, set()).add(row.slug)
        for row in session.execute(select(model).where(model.slug.is_(None)).order_by(model.id)).scalars().all():
            scope = taken.setdefault(getattr(row, parent_col) if parent_col else None, set())
            row.slug = unique_slug(slugify(row.name), scope)
            scope.add(row.slug)
            counts[key] += 1
            _log.debug("%s %s: slug -> %s", key, row.id, row.slug)
        session.flush()
    return counts
