"""Read-only audit of the canonical location hierarchy.

Nothing here raises for a broken invariant; every problem comes back as a
CheckResult with passed=False for someone to fix by hand.
"""
from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy import and_, func, or_, select
from sqlalchemy.orm import Session, aliased

from db.models import City, Development, Location, Property, Province, Suburb
from scripts.lib.engine_config import EngineConfig

# How many offending rows to list in details
SAMPLE_LIMIT = 10


@dataclass
class CheckResult:
    name: str
    passed: bool
    details: Dict[str, Any] = field(default_factory=dict)

    def as_dict(self) -> dict:
        return asdict(self)


def _pct(part: int, whole: int) -> int:
    return round(100 * part / whole) if whole else 0


class LocationVerifier:
    def __init__(self, session: Session, config: Optional[EngineConfig] = None):
        self.session = session
        self.config = config or EngineConfig()

    def checks(self) -> List[Callable[[], CheckResult]]:
        return [
            self.check_orphans,
            self.check_province_roots,
            lambda: self.check_parent_type("city", "province"),
            lambda: self.check_parent_type("suburb", "city"),
            lambda: self.check_legacy_slugs(Province, "provinces"),
            lambda: self.check_legacy_slugs(City, "cities"),
            lambda: self.check_legacy_slugs(Suburb, "suburbs"),
            self.check_duplicate_slugs,
            self.check_duplicate_place_ids,
            self.check_population,
            self.check_seo_fields,
            lambda: self.check_linkage(Property, "properties"),
            lambda: self.check_linkage(Development, "developments"),
        ]

    def verify(self) -> List[CheckResult]:
        return [check() for check in self.checks()]

    # -- structural -------------------------------------------------------

    def _count(self, stmt) -> int:
        return int(self.session.execute(select(func.count()).select_from(stmt.subquery())).scalar_one())

    def check_orphans(self) -> CheckResult:
        parent = aliased(Location)
        stmt = (
            select(Location.id, Location.name, Location.parent_id)
            .outerjoin(parent, Location.parent_id == parent.id)
            .where(Location.parent_id.isnot(None), parent.id.is_(None))
        )
        sample = [dict(r._mapping) for r in self.session.execute(stmt.limit(SAMPLE_LIMIT))]
        orphaned = self._count(stmt)
        return CheckResult("no orphaned parent references", orphaned == 0,
                           {"orphaned": orphaned, "sample": sample})

    def check_province_roots(self) -> CheckResult:
        stmt = select(Location.id).where(Location.type == "province", Location.parent_id.isnot(None))
        bad = self._count(stmt)
        return CheckResult("province locations have no parent", bad == 0, {"provinces_with_parent": bad})

    def check_parent_type(self, child_type: str, parent_type: str) -> CheckResult:
        parent = aliased(Location)
        stmt = (
            select(Location.id, Location.name)
            .outerjoin(parent, Location.parent_id == parent.id)
            .where(
                Location.type == child_type,
                or_(Location.parent_id.is_(None), parent.id.is_(None), parent.type != parent_type),
            )
        )
        bad = self._count(stmt)
        sample = [dict(r._mapping) for r in self.session.execute(stmt.limit(SAMPLE_LIMIT))]
        return CheckResult(f"{child_type} locations have {parent_type} parents", bad == 0,
                           {"violations": bad, "sample": sample})

    def check_legacy_slugs(self, model, label: str) -> CheckResult:
        total = self._count(select(model.id))
        missing = self._count(select(model.id).where(model.slug.is_(None)))
        return CheckResult(f"all {label} have slugs", missing == 0, {"total": total, "without_slug": missing})

    def check_duplicate_slugs(self) -> CheckResult:
        stmt = (
            select(Location.type, Location.parent_id, Location.slug, func.count().label("members"))
            .group_by(Location.type, Location.parent_id, Location.slug)
            .having(func.count() > 1)
        )
        groups = [dict(r._mapping) for r in self.session.execute(stmt)]
        return CheckResult("slugs unique within (type, parent)", not groups,
                           {"duplicate_groups": len(groups), "sample": groups[:SAMPLE_LIMIT]})

    def check_duplicate_place_ids(self) -> CheckResult:
        stmt = (
            select(Location.place_id, func.count().label("members"))
            .where(Location.place_id.isnot(None))
            .group_by(Location.place_id)
            .having(func.count() > 1)
        )
        groups = [dict(r._mapping) for r in self.session.execute(stmt)]
        return CheckResult("place ids unique", not groups, {"duplicate_place_ids": len(groups),
                                                            "sample": groups[:SAMPLE_LIMIT]})

    # -- coverage ---------------------------------------------------------

    def check_population(self) -> CheckResult:
        locations = self._count(select(Location.id))
        provinces = self._count(select(Province.id))
        cities = self._count(select(City.id))
        suburbs = self._count(select(Suburb.id))
        expected = provinces + cities + suburbs
        return CheckResult(
            "locations table is populated",
            locations >= expected * self.config.populated_ratio,
            {"locations": locations, "expected_minimum": expected,
             "provinces": provinces, "cities": cities, "suburbs": suburbs},
        )

    def check_seo_fields(self) -> CheckResult:
        total = self._count(select(Location.id))
        missing = self._count(
            select(Location.id).where(or_(Location.seo_title.is_(None), Location.seo_description.is_(None)))
        )
        return CheckResult(
            "locations carry SEO fields",
            missing <= total * (1 - self.config.seo_ratio),
            {"total": total, "without_seo": missing, "percentage": _pct(missing, total)},
        )

    def check_linkage(self, model, label: str) -> CheckResult:
        total = self._count(select(model.id))
        linked = self._count(select(model.id).where(model.location_id.isnot(None)))
        # A linked row whose location no longer exists is a real problem
        dangling = self._count(
            select(model.id)
            .outerjoin(Location, model.location_id == Location.id)
            .where(and_(model.location_id.isnot(None), Location.id.is_(None)))
        )
        return CheckResult(
            f"{label} linked to locations",
            dangling == 0,
            {"total": total, "with_location_id": linked, "percentage": _pct(linked, total),
             "dangling": dangling},
        )
