from __future__ import annotations

import sys
from pathlib import Path
from types import SimpleNamespace

import pytest

PROJECT_ROOT = Path(__file__).resolve().parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from db.models import Base, City, Location, Province, Suburb
from db.session import make_engine, make_session_factory


def _memory_session(enforce_foreign_keys: bool = True):
    engine = make_engine("sqlite://", enforce_foreign_keys=enforce_foreign_keys)
    Base.metadata.create_all(bind=engine)
    return engine, make_session_factory(engine)()


@pytest.fixture
def session():
    engine, s = _memory_session()
    try:
        yield s
    finally:
        s.close()
        engine.dispose()


@pytest.fixture
def loose_session():
    # FK enforcement off so tests can plant broken parent references
    engine, s = _memory_session(enforce_foreign_keys=False)
    try:
        yield s
    finally:
        s.close()
        engine.dispose()


def seed_legacy(session) -> SimpleNamespace:
    """Two provinces, three cities, and suburbs including two Rivonias under different cities."""
    gauteng = Province(name="Gauteng", code="GP", place_id="ChIJ_gauteng", latitude="-26.2708", longitude="28.1123")
    wcape = Province(name="Western Cape", code="WC", place_id="ChIJ_wcape", latitude="-33.2278", longitude="21.8569")
    session.add_all([gauteng, wcape])
    session.flush()

    joburg = City(province_id=gauteng.id, name="Johannesburg", place_id="ChIJ_joburg",
                  latitude="-26.2041", longitude="28.0473")
    pretoria = City(province_id=gauteng.id, name="Pretoria", place_id="ChIJ_pretoria",
                    latitude="-25.7479", longitude="28.2293")
    cape_town = City(province_id=wcape.id, name="Cape Town", place_id="ChIJ_capetown",
                     latitude="-33.9249", longitude="18.4241")
    session.add_all([joburg, pretoria, cape_town])
    session.flush()

    sandton = Suburb(city_id=joburg.id, name="Sandton", place_id="ChIJ_sandton",
                     latitude="-26.1076", longitude="28.0567")
    rivonia_jhb = Suburb(city_id=joburg.id, name="Rivonia", place_id="ChIJ_rivonia_jhb",
                         latitude="-26.0570", longitude="28.0600")
    rivonia_pta = Suburb(city_id=pretoria.id, name="Rivonia", place_id="ChIJ_rivonia_pta",
                         latitude="-25.8000", longitude="28.3000")
    sea_point = Suburb(city_id=cape_town.id, name="Sea Point", place_id="ChIJ_seapoint",
                       latitude="-33.9150", longitude="18.3870")
    session.add_all([sandton, rivonia_jhb, rivonia_pta, sea_point])
    session.commit()

    return SimpleNamespace(
        gauteng=gauteng.id, wcape=wcape.id,
        joburg=joburg.id, pretoria=pretoria.id, cape_town=cape_town.id,
        sandton=sandton.id, rivonia_jhb=rivonia_jhb.id, rivonia_pta=rivonia_pta.id, sea_point=sea_point.id,
    )


def location_for(session, place_id: str) -> Location:
    from sqlalchemy import select

    return session.execute(select(Location).where(Location.place_id == place_id)).scalar_one()


@pytest.fixture
def legacy(session) -> SimpleNamespace:
    return seed_legacy(session)


@pytest.fixture
def synced(session, legacy) -> SimpleNamespace:
    """Legacy rows plus a committed canonical tree."""
    from scripts.lib.location_sync import LocationSynchronizer

    LocationSynchronizer(session).sync(dry_run=False)
    return legacy


@pytest.fixture
def loc_by_place(session):
    return lambda place_id: location_for(session, place_id)
