from __future__ import annotations

from sqlalchemy import func, select

from db.models import City, Location, Property, Province, Suburb
from scripts.lib.engine_config import EngineConfig
from scripts.lib.location_sync import LocationSynchronizer, backfill_legacy_slugs
from scripts.lib.location_verify import LocationVerifier


def _by_name(results):
    return {r.name: r for r in results}


def _clean_tree(session):
    backfill_legacy_slugs(session)
    session.commit()
    LocationSynchronizer(session).sync(dry_run=False)


def test_clean_tree_passes_everything(session, legacy):
    _clean_tree(session)
    results = LocationVerifier(session).verify()
    assert len(results) == 13
    failed = [r.name for r in results if not r.passed]
    assert failed == []


def test_missing_legacy_slugs_fail(session, synced):
    results = _by_name(LocationVerifier(session).verify())
    check = results["all suburbs have slugs"]
    assert not check.passed
    assert check.details == {"total": 4, "without_slug": 4}


def test_orphaned_parent_is_reported(loose_session):
    s = loose_session
    s.add(Location(id=1, name="Nowhere", slug="nowhere", type="suburb", parent_id=999))
    s.commit()
    results = _by_name(LocationVerifier(s).verify())
    orphans = results["no orphaned parent references"]
    assert not orphans.passed
    assert orphans.details["orphaned"] == 1
    assert orphans.details["sample"][0]["parent_id"] == 999
    assert not results["suburb locations have city parents"].passed


def test_wrong_parent_type_is_reported(session):
    prov = Location(name="Gauteng", slug="gauteng", type="province")
    session.add(prov)
    session.flush()
    session.add(Location(name="Sandton", slug="sandton", type="suburb", parent_id=prov.id))
    session.add(Location(name="Rogue", slug="rogue", type="province", parent_id=prov.id))
    session.commit()
    results = _by_name(LocationVerifier(session).verify())
    assert not results["suburb locations have city parents"].passed
    assert results["suburb locations have city parents"].details["violations"] == 1
    assert not results["province locations have no parent"].passed
    assert results["city locations have province parents"].passed


def test_duplicate_slugs_within_parent(session):
    prov = Location(name="Gauteng", slug="gauteng", type="province")
    session.add(prov)
    session.flush()
    session.add_all([
        Location(name="Midrand", slug="midrand", type="city", parent_id=prov.id),
        Location(name="Midrand", slug="midrand", type="city", parent_id=prov.id),
    ])
    session.commit()
    check = LocationVerifier(session).check_duplicate_slugs()
    assert not check.passed
    assert check.details["duplicate_groups"] == 1
    assert check.details["sample"][0]["members"] == 2


def test_same_slug_under_different_parents_is_fine(session, legacy):
    _clean_tree(session)
    check = LocationVerifier(session).check_duplicate_slugs()
    assert check.passed


def test_population_and_seo_thresholds(session, legacy):
    _clean_tree(session)
    session.execute(Location.__table__.update().values(seo_title=None))
    session.commit()
    verifier = LocationVerifier(session)
    assert not verifier.check_seo_fields().passed
    assert verifier.check_population().passed
    assert LocationVerifier(session, EngineConfig(seo_ratio=0.0)).check_seo_fields().passed


def test_population_fails_when_sync_never_ran(session, legacy):
    check = LocationVerifier(session).check_population()
    assert not check.passed
    assert check.details["expected_minimum"] == 9


def test_dangling_property_link_fails(loose_session):
    s = loose_session
    s.add(Property(title="Ghost", location_id=42))
    s.commit()
    check = LocationVerifier(s).check_linkage(Property, "properties")
    assert not check.passed
    assert check.details["dangling"] == 1
    assert check.details["percentage"] == 100


def test_verify_is_read_only(session, synced):
    counts = [session.execute(select(func.count(m.id))).scalar_one() for m in (Location, Province, City, Suburb)]
    LocationVerifier(session).verify()
    assert not session.new and not session.dirty and not session.deleted
    after = [session.execute(select(func.count(m.id))).scalar_one() for m in (Location, Province, City, Suburb)]
    assert after == counts
