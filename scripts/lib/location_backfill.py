"""Populate location foreign keys on dependent tables (properties, developments).

Only rows whose location_id is still NULL are visited, in id order, one page
of ``batch_size`` at a time. Assigned keys are sticky: a row that already
has a location_id is never revisited, and FKs already set on a row are never
overwritten. A stopped run can simply be started again.
"""
from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Callable, Optional

from sqlalchemy import select
from sqlalchemy.exc import DBAPIError
from sqlalchemy.orm import Session

from db.models import DEPENDENT_TABLES
from scripts.lib.location_matcher import ExtractedLocation, LocationMatcher, MatchResult, parse_coordinate

_log = logging.getLogger(__name__)

UPDATED = "updated"
SKIPPED = "skipped"
ERRORED = "errored"

FK_FIELDS = ("province_id", "city_id", "suburb_id")


class RowResolutionError(ValueError):
    """A single row's location data cannot be processed."""


@dataclass
class BackfillSummary:
    table: str
    dry_run: bool = True
    processed: int = 0
    updated: int = 0
    skipped: int = 0
    errored: int = 0
    batches: int = 0
    by_strategy: Counter = field(default_factory=Counter)
    by_confidence: Counter = field(default_factory=Counter)

    def count(self, outcome: str, result: Optional[MatchResult] = None) -> None:
        self.processed += 1
        setattr(self, outcome, getattr(self, outcome) + 1)
        if result is not None and outcome == UPDATED:
            self.by_strategy[result.matched_by] += 1
            self.by_confidence[result.confidence] += 1

    def as_dict(self) -> dict:
        return {
            "table": self.table,
            "dry_run": self.dry_run,
            "processed": self.processed,
            "updated": self.updated,
            "skipped": self.skipped,
            "errored": self.errored,
            "batches": self.batches,
            "by_strategy": dict(self.by_strategy),
            "by_confidence": dict(self.by_confidence),
        }


def _text(value) -> Optional[str]:
    s = (str(value) if value is not None else "").strip()
    return s or None


def _coordinate_problem(lat: Optional[str], lng: Optional[str]) -> Optional[str]:
    if (lat is None) != (lng is None):
        return f"incomplete coordinates: latitude={lat!r} longitude={lng!r}"
    if lat is None:
        return None
    flat, flng = parse_coordinate(lat), parse_coordinate(lng)
    if flat is None or flng is None:
        return f"unparseable coordinates: latitude={lat!r} longitude={lng!r}"
    if not (-90.0 <= flat <= 90.0 and -180.0 <= flng <= 180.0):
        return f"coordinates out of range: latitude={lat!r} longitude={lng!r}"
    return None


def extract_location_fields(row, strict: bool = True) -> ExtractedLocation:
    """Pull the matcher's input out of a dependent row.

    Coordinates must come as a parseable pair. A bad pair raises
    RowResolutionError, or with ``strict=False`` is dropped so the other
    fields can still be matched.
    """
    lat = _text(getattr(row, "latitude", None))
    lng = _text(getattr(row, "longitude", None))
    problem = _coordinate_problem(lat, lng)
    if problem is not None:
        if strict:
            raise RowResolutionError(problem)
        lat = lng = None
    return ExtractedLocation(
        province=_text(row.province),
        city=_text(row.city),
        suburb=_text(row.suburb),
        address=_text(row.address),
        latitude=lat,
        longitude=lng,
    )


BatchCallback = Callable[[int, BackfillSummary], None]


class LocationBackfill:
    def __init__(
        self,
        session: Session,
        matcher: LocationMatcher,
        batch_size: int = 100,
        dry_run: bool = True,
        on_batch: Optional[BatchCallback] = None,
    ):
        if batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        self.session = session
        self.matcher = matcher
        self.batch_size = batch_size
        self.dry_run = dry_run
        self.on_batch = on_batch

    def run(self, table: str) -> BackfillSummary:
        try:
            model = DEPENDENT_TABLES[table]
        except KeyError:
            raise ValueError(f"unknown table {table!r}; expected one of {sorted(DEPENDENT_TABLES)}") from None
        summary = BackfillSummary(table=table, dry_run=self.dry_run)
        last_id = 0
        while True:
            # Keyset paging: rows assigned in live mode drop out of the filter,
            # so an offset would skip rows
            rows = self.session.execute(
                select(model)
                .where(model.location_id.is_(None), model.id > last_id)
                .order_by(model.id)
                .limit(self.batch_size)
            ).scalars().all()
            if not rows:
                break
            for row in rows:
                outcome, result = self.process_row(row)
                summary.count(outcome, result)
            last_id = rows[-1].id
            if not self.dry_run:
                self.session.commit()
            self.session.expunge_all()
            summary.batches += 1
            if self.on_batch is not None:
                self.on_batch(summary.batches, summary)
        return summary

    def resolve_row(self, row) -> MatchResult:
        """place_id first, then FKs already on the row, then the full matcher chain.

        Bad coordinates are left out of matching. They only fail the row, as
        RowResolutionError, when nothing else matched.
        """
        try:
            extracted = extract_location_fields(row)
            coord_error = None
        except RowResolutionError as e:
            extracted = extract_location_fields(row, strict=False)
            coord_error = e
        result = self.matcher.resolve_place_id(row.place_id)
        if result is None:
            result = self.matcher.resolve_from_foreign_keys(row.suburb_id, row.city_id, row.province_id)
        if result is None:
            result = self.matcher.resolve(extracted, row.place_id)
        if coord_error is not None:
            if not result.matched:
                raise coord_error
            _log.warning("%s %s: %s; ignored", row.__tablename__, row.id, coord_error)
        return result

    def process_row(self, row):
        """Return (outcome, match result or None) for one row; stage the write in live mode."""
        try:
            result = self.resolve_row(row)
        except RowResolutionError as e:
            _log.warning("%s %s: %s", row.__tablename__, row.id, e)
            return ERRORED, None
        except DBAPIError:
            raise
        except Exception:
            _log.exception("%s %s: unexpected error while resolving location", row.__tablename__, row.id)
            return ERRORED, None
        if not result.matched:
            _log.debug("%s %s: no match", row.__tablename__, row.id)
            return SKIPPED, result
        _log.debug("%s %s: -> location %s via %s (%s)", row.__tablename__, row.id,
                   result.location_id, result.matched_by, result.confidence)
        if not self.dry_run:
            self._assign(row, result)
        return UPDATED, result

    @staticmethod
    def _assign(row, result: MatchResult) -> None:
        row.location_id = result.location_id
        for name in FK_FIELDS:
            value = getattr(result, name)
            if value is not None and getattr(row, name) is None:
                setattr(row, name, value)
