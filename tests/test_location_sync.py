from __future__ import annotations

import logging

import pytest
from sqlalchemy import func, select

from db.models import City, Location, Province, Suburb
from scripts.lib.engine_config import EngineConfig
from scripts.lib.location_sync import LocationSynchronizer, backfill_legacy_slugs
from scripts.lib.location_text import seo_content


def _count(session) -> int:
    return session.execute(select(func.count(Location.id))).scalar_one()


def test_sync_builds_hierarchy(session, legacy, loc_by_place):
    summary = LocationSynchronizer(session).sync(dry_run=False)
    assert (summary.provinces_synced, summary.cities_synced, summary.suburbs_synced) == (2, 3, 4)
    assert summary.created == 9 and summary.updated == 0 and summary.skipped == 0
    assert _count(session) == 9

    for loc in session.execute(select(Location)).scalars():
        if loc.type == "province":
            assert loc.parent_id is None
        else:
            parent = session.get(Location, loc.parent_id)
            assert parent is not None
            assert parent.type == {"city": "province", "suburb": "city"}[loc.type]

    sandton = loc_by_place("ChIJ_sandton")
    assert sandton.parent_id == loc_by_place("ChIJ_joburg").id
    assert sandton.slug == "sandton"
    assert sandton.latitude == "-26.1076"
    assert sandton.seo_title == "Sandton Properties for Sale & Rent | Johannesburg, Gauteng"


def test_second_run_creates_nothing_new(session, legacy):
    sync = LocationSynchronizer(session)
    sync.sync(dry_run=False)
    before = {loc.place_id: (loc.id, loc.slug) for loc in session.execute(select(Location)).scalars()}

    summary = sync.sync(dry_run=False)
    assert summary.created == 0
    assert summary.updated == 9
    after = {loc.place_id: (loc.id, loc.slug) for loc in session.execute(select(Location)).scalars()}
    assert after == before


def test_rows_without_place_id_are_inserted_each_run(session, legacy):
    session.add(Suburb(city_id=legacy.cape_town, name="Green Point"))
    session.commit()
    sync = LocationSynchronizer(session)
    sync.sync(dry_run=False)
    first = _count(session)
    summary = sync.sync(dry_run=False)
    assert summary.created == 1
    assert _count(session) == first + 1


def test_rivonias_under_different_cities_stay_distinct(session, legacy, loc_by_place):
    LocationSynchronizer(session).sync(dry_run=False)
    jhb = loc_by_place("ChIJ_rivonia_jhb")
    pta = loc_by_place("ChIJ_rivonia_pta")
    assert jhb.id != pta.id
    assert jhb.slug == pta.slug == "rivonia"
    assert jhb.parent_id != pta.parent_id


def test_same_parent_collision_gets_suffix(session, legacy):
    session.add_all([
        Suburb(city_id=legacy.joburg, name="Sandton", place_id="ChIJ_sandton_2"),
        Suburb(city_id=legacy.joburg, name="sandton!", place_id="ChIJ_sandton_3"),
    ])
    session.commit()
    sync = LocationSynchronizer(session)
    sync.sync(dry_run=False)
    slugs = sorted(
        session.execute(select(Location.slug).where(Location.name.ilike("sandton%"))).scalars()
    )
    assert slugs == ["sandton", "sandton-2", "sandton-3"]

    # Suffixes are kept on the next run
    sync.sync(dry_run=False)
    again = sorted(
        session.execute(select(Location.slug).where(Location.name.ilike("sandton%"))).scalars()
    )
    assert again == slugs


def test_dry_run_rolls_back(session, legacy):
    summary = LocationSynchronizer(session).sync(dry_run=True)
    assert summary.dry_run
    assert summary.created == 9
    assert _count(session) == 0


def test_dry_run_and_live_report_the_same(session, legacy):
    sync = LocationSynchronizer(session)
    dry = sync.sync(dry_run=True).as_dict()
    live = sync.sync(dry_run=False).as_dict()
    dry.pop("dry_run")
    live.pop("dry_run")
    assert dry == live


def test_update_refreshes_fields_but_keeps_editorial_seo(session, legacy, loc_by_place):
    sync = LocationSynchronizer(session)
    sync.sync(dry_run=False)
    loc = loc_by_place("ChIJ_capetown")
    loc.seo_title = "Hand written"
    city = session.get(City, legacy.cape_town)
    city.name = "Cape Town Central"
    session.commit()

    sync.sync(dry_run=False)
    loc = loc_by_place("ChIJ_capetown")
    assert loc.name == "Cape Town Central"
    assert loc.slug == "cape-town-central"
    assert loc.seo_title == "Hand written"


def test_insert_conflict_retries_as_update(session, synced, monkeypatch, loc_by_place):
    sync = LocationSynchronizer(session)
    real = sync._find_by_place
    calls = []

    def stale_then_real(place_id):
        # First lookup misses, as if another writer inserted the row meanwhile
        calls.append(place_id)
        return None if len(calls) == 1 else real(place_id)

    monkeypatch.setattr(sync, "_find_by_place", stale_then_real)
    prov = session.get(Province, synced.gauteng)
    loc_id, action = sync._upsert("province", prov, None, seo_content(prov.name, "province"))
    assert action == "updated"
    assert loc_id == loc_by_place("ChIJ_gauteng").id
    assert _count(session) == 9


def test_unresolvable_conflict_skips_row(session, synced, monkeypatch):
    sync = LocationSynchronizer(session)
    monkeypatch.setattr(sync, "_find_by_place", lambda place_id: None)
    prov = session.get(Province, synced.gauteng)
    assert sync._upsert("province", prov, None, seo_content(prov.name, "province")) == (None, "skipped")
    assert _count(session) == 9


def test_shared_place_id_updates_one_location(session, legacy, loc_by_place):
    session.add(Province(name="Gauteng Duplicate", place_id="ChIJ_gauteng"))
    session.commit()
    summary = LocationSynchronizer(session).sync(dry_run=False)
    assert summary.provinces_synced == 3
    assert session.execute(
        select(func.count(Location.id)).where(Location.place_id == "ChIJ_gauteng")
    ).scalar_one() == 1
    assert loc_by_place("ChIJ_gauteng").name == "Gauteng Duplicate"


def test_children_of_unsynced_parents_are_skipped(session, legacy):
    sync = LocationSynchronizer(session)
    provinces = sync.sync_provinces()
    only_gauteng = {legacy.gauteng: provinces.ids[legacy.gauteng]}
    cities = sync.sync_cities(only_gauteng)
    assert cities.synced == 2
    assert cities.skipped == 1
    assert legacy.cape_town not in cities.ids
    session.rollback()


def test_malformed_legacy_coordinates_are_stored_as_null(session, legacy, loc_by_place, caplog):
    session.get(City, legacy.pretoria).latitude = "abc"
    session.get(Suburb, legacy.sandton).latitude = ""
    session.add(Suburb(city_id=legacy.cape_town, name="Clifton", place_id="ChIJ_clifton",
                       latitude="-95.0", longitude="18.37"))
    session.commit()
    with caplog.at_level(logging.WARNING, logger="scripts.lib.location_sync"):
        summary = LocationSynchronizer(session).sync(dry_run=False)
    assert summary.created == 10 and summary.skipped == 0
    for place_id in ("ChIJ_pretoria", "ChIJ_sandton", "ChIJ_clifton"):
        loc = loc_by_place(place_id)
        assert (loc.latitude, loc.longitude) == (None, None), place_id
    joburg = loc_by_place("ChIJ_joburg")
    assert (joburg.latitude, joburg.longitude) == ("-26.2041", "28.0473")
    assert "dropping malformed coordinates" in caplog.text


def test_resync_clears_coordinates_that_went_bad(session, synced, loc_by_place):
    session.get(Suburb, synced.sea_point).longitude = "east"
    session.commit()
    LocationSynchronizer(session).sync(dry_run=False)
    sea_point = loc_by_place("ChIJ_seapoint")
    assert (sea_point.latitude, sea_point.longitude) == (None, None)


def test_failed_sync_drops_slug_cache(session, legacy, monkeypatch, loc_by_place):
    sync = LocationSynchronizer(session)

    class Boom(Exception):
        pass

    real_sync_suburbs = sync.sync_suburbs

    def fail(city_ids):
        real_sync_suburbs(city_ids)
        raise Boom()

    monkeypatch.setattr(sync, "sync_suburbs", fail)
    with pytest.raises(Boom):
        sync.sync(dry_run=False)
    assert sync._slugs == {}
    assert _count(session) == 0

    monkeypatch.undo()
    summary = sync.sync(dry_run=False)
    assert summary.created == 9
    assert loc_by_place("ChIJ_rivonia_jhb").slug == "rivonia"
    assert loc_by_place("ChIJ_rivonia_pta").slug == "rivonia"


def test_site_name_comes_from_config(session, legacy, loc_by_place):
    LocationSynchronizer(session, EngineConfig(site_name="Example Homes")).sync(dry_run=False)
    assert loc_by_place("ChIJ_wcape").seo_title.endswith("| Example Homes")


def test_backfill_legacy_slugs(session, legacy):
    session.add_all([
        Suburb(city_id=legacy.pretoria, name="Rivonia", slug="rivonia"),
        Suburb(city_id=legacy.pretoria, name="Rivonia!"),
    ])
    session.get(Suburb, legacy.rivonia_jhb).slug = "rivonia"
    session.commit()

    counts = backfill_legacy_slugs(session)
    session.commit()
    assert counts == {"provinces": 2, "cities": 3, "suburbs": 4}
    for model in (Province, City, Suburb):
        assert session.execute(select(func.count(model.id)).where(model.slug.is_(None))).scalar_one() == 0

    assert session.get(Suburb, legacy.rivonia_pta).slug == "rivonia-2"
    assert session.get(City, legacy.cape_town).slug == "cape-town"
    pretoria_slugs = session.execute(
        select(Suburb.slug).where(Suburb.city_id == legacy.pretoria)
    ).scalars().all()
    assert len(pretoria_slugs) == len(set(pretoria_slugs))
