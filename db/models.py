from __future__ import annotations

from datetime import datetime

from sqlalchemy import (
    Column,
    Integer,
    String,
    DateTime,
    Text,
    ForeignKey,
    Index,
)
from sqlalchemy.orm import declarative_base, declared_attr, relationship


Base = declarative_base()

LOCATION_TYPES = ("province", "city", "suburb")

# Expected parent type for each canonical level (None = root)
PARENT_TYPE = {"province": None, "city": "province", "suburb": "city"}


class Location(Base):
    """Canonical, slug-addressable location node (province > city > suburb)."""

    __tablename__ = "locations"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(200), nullable=False)
    # Unique within (type, parent_id) only; duplicates are reported by the verifier
    slug = Column(String(200), nullable=False, index=True)
    type = Column(String(16), nullable=False, index=True)
    parent_id = Column(Integer, ForeignKey("locations.id", ondelete="SET NULL"), nullable=True, index=True)
    # Natural idempotency key for sync upserts
    place_id = Column(String(255), nullable=True, unique=True)
    description = Column(Text, nullable=True)
    latitude = Column(String(50), nullable=True)
    longitude = Column(String(50), nullable=True)
    property_count = Column(Integer, nullable=True)
    seo_title = Column(String(255), nullable=True)
    seo_description = Column(Text, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    parent = relationship("Location", remote_side=[id], backref="children", foreign_keys=[parent_id])

    __table_args__ = (
        Index("ix_locations_type_parent_slug", "type", "parent_id", "slug"),
    )

    def __repr__(self) -> str:  # pragma: no cover - trivial
        return f"<Location id={self.id} {self.type}:{self.slug} parent={self.parent_id}>"


# Legacy per-level tables. Seeded by other subsystems; the engine reads them
# (and only fills in missing slugs on explicit request).


class Province(Base):
    __tablename__ = "provinces"

    id = Column(Integer, primary_key=True)
    name = Column(String(100), nullable=False, index=True)
    code = Column(String(10), nullable=True)
    slug = Column(String(100), nullable=True, index=True)
    place_id = Column(String(255), nullable=True, index=True)
    latitude = Column(String(20), nullable=True)
    longitude = Column(String(21), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    cities = relationship("City", back_populates="province", cascade="all, delete-orphan")

    def __repr__(self) -> str:  # pragma: no cover - trivial
        return f"<Province id={self.id} name={self.name}>"


class City(Base):
    __tablename__ = "cities"

    id = Column(Integer, primary_key=True)
    province_id = Column(Integer, ForeignKey("provinces.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(150), nullable=False, index=True)
    slug = Column(String(100), nullable=True, index=True)
    place_id = Column(String(255), nullable=True, index=True)
    latitude = Column(String(20), nullable=True)
    longitude = Column(String(21), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    province = relationship("Province", back_populates="cities")
    suburbs = relationship("Suburb", back_populates="city", cascade="all, delete-orphan")

    def __repr__(self) -> str:  # pragma: no cover - trivial
        return f"<City id={self.id} name={self.name} province={self.province_id}>"


class Suburb(Base):
    __tablename__ = "suburbs"

    id = Column(Integer, primary_key=True)
    city_id = Column(Integer, ForeignKey("cities.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(200), nullable=False, index=True)
    slug = Column(String(100), nullable=True, index=True)
    place_id = Column(String(255), nullable=True, index=True)
    latitude = Column(String(20), nullable=True)
    longitude = Column(String(21), nullable=True)
    postal_code = Column(String(10), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    city = relationship("City", back_populates="suburbs")

    def __repr__(self) -> str:  # pragma: no cover - trivial
        return f"<Suburb id={self.id} name={self.name} city={self.city_id}>"


class _LocatedMixin:
    """Free-text location fields plus the foreign keys the backfill populates."""

    province = Column(String(100), nullable=True)
    city = Column(String(150), nullable=True)
    suburb = Column(String(200), nullable=True)
    address = Column(Text, nullable=True)
    place_id = Column(String(255), nullable=True)
    latitude = Column(String(50), nullable=True)
    longitude = Column(String(50), nullable=True)

    # Foreign keys on a mixin must be produced per mapped class
    @declared_attr
    def province_id(cls):
        return Column(Integer, ForeignKey("provinces.id", ondelete="SET NULL"), nullable=True, index=True)

    @declared_attr
    def city_id(cls):
        return Column(Integer, ForeignKey("cities.id", ondelete="SET NULL"), nullable=True, index=True)

    @declared_attr
    def suburb_id(cls):
        return Column(Integer, ForeignKey("suburbs.id", ondelete="SET NULL"), nullable=True, index=True)

    @declared_attr
    def location_id(cls):
        return Column(Integer, ForeignKey("locations.id", ondelete="SET NULL"), nullable=True, index=True)


class Property(_LocatedMixin, Base):
    __tablename__ = "properties"

    id = Column(Integer, primary_key=True)
    title = Column(String(255), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self) -> str:  # pragma: no cover - trivial
        return f"<Property id={self.id} location={self.location_id}>"


class Development(_LocatedMixin, Base):
    __tablename__ = "developments"

    id = Column(Integer, primary_key=True)
    name = Column(String(255), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self) -> str:  # pragma: no cover - trivial
        return f"<Development id={self.id} location={self.location_id}>"


# Dependent tables the backfill knows how to walk, keyed by CLI name
DEPENDENT_TABLES = {
    "property": Property,
    "development": Development,
}
