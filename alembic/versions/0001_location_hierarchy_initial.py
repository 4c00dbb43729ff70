"""location hierarchy initial schema

Revision ID: 0001_location_hierarchy_initial
Revises:
Create Date: 2026-10-19
"""
from __future__ import annotations

import sqlalchemy as sa

from alembic import op

revision = '0001_location_hierarchy_initial'
down_revision = None
branch_labels = None
depends_on = None


def _has_table(name: str) -> bool:
    return name in sa.inspect(op.get_bind()).get_table_names()


def _timestamps() -> list:
    return [
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
    ]


def _located_columns() -> list:
    return [
        sa.Column('province', sa.String(length=100), nullable=True),
        sa.Column('city', sa.String(length=150), nullable=True),
        sa.Column('suburb', sa.String(length=200), nullable=True),
        sa.Column('address', sa.Text(), nullable=True),
        sa.Column('place_id', sa.String(length=255), nullable=True),
        sa.Column('latitude', sa.String(length=50), nullable=True),
        sa.Column('longitude', sa.String(length=50), nullable=True),
        sa.Column('province_id', sa.Integer(), sa.ForeignKey('provinces.id', ondelete='SET NULL'), nullable=True),
        sa.Column('city_id', sa.Integer(), sa.ForeignKey('cities.id', ondelete='SET NULL'), nullable=True),
        sa.Column('suburb_id', sa.Integer(), sa.ForeignKey('suburbs.id', ondelete='SET NULL'), nullable=True),
        sa.Column('location_id', sa.Integer(), sa.ForeignKey('locations.id', ondelete='SET NULL'), nullable=True),
    ]


def upgrade() -> None:
    if not _has_table('locations'):
        op.create_table(
            'locations',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('name', sa.String(length=200), nullable=False),
            sa.Column('slug', sa.String(length=200), nullable=False),
            sa.Column('type', sa.String(length=16), nullable=False),
            sa.Column('parent_id', sa.Integer(), sa.ForeignKey('locations.id', ondelete='SET NULL'), nullable=True),
            sa.Column('place_id', sa.String(length=255), nullable=True, unique=True),
            sa.Column('description', sa.Text(), nullable=True),
            sa.Column('latitude', sa.String(length=50), nullable=True),
            sa.Column('longitude', sa.String(length=50), nullable=True),
            sa.Column('property_count', sa.Integer(), nullable=True),
            sa.Column('seo_title', sa.String(length=255), nullable=True),
            sa.Column('seo_description', sa.Text(), nullable=True),
            *_timestamps(),
        )
        op.create_index('ix_locations_id', 'locations', ['id'])
        op.create_index('ix_locations_slug', 'locations', ['slug'])
        op.create_index('ix_locations_type', 'locations', ['type'])
        op.create_index('ix_locations_parent_id', 'locations', ['parent_id'])
        op.create_index('ix_locations_type_parent_slug', 'locations', ['type', 'parent_id', 'slug'])

    if not _has_table('provinces'):
        op.create_table(
            'provinces',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('name', sa.String(length=100), nullable=False),
            sa.Column('code', sa.String(length=10), nullable=True),
            sa.Column('slug', sa.String(length=100), nullable=True),
            sa.Column('place_id', sa.String(length=255), nullable=True),
            sa.Column('latitude', sa.String(length=20), nullable=True),
            sa.Column('longitude', sa.String(length=21), nullable=True),
            *_timestamps(),
        )
        op.create_index('ix_provinces_name', 'provinces', ['name'])
        op.create_index('ix_provinces_slug', 'provinces', ['slug'])
        op.create_index('ix_provinces_place_id', 'provinces', ['place_id'])

    if not _has_table('cities'):
        op.create_table(
            'cities',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('province_id', sa.Integer(), sa.ForeignKey('provinces.id', ondelete='CASCADE'), nullable=False),
            sa.Column('name', sa.String(length=150), nullable=False),
            sa.Column('slug', sa.String(length=100), nullable=True),
            sa.Column('place_id', sa.String(length=255), nullable=True),
            sa.Column('latitude', sa.String(length=20), nullable=True),
            sa.Column('longitude', sa.String(length=21), nullable=True),
            *_timestamps(),
        )
        op.create_index('ix_cities_province_id', 'cities', ['province_id'])
        op.create_index('ix_cities_name', 'cities', ['name'])
        op.create_index('ix_cities_slug', 'cities', ['slug'])
        op.create_index('ix_cities_place_id', 'cities', ['place_id'])

    if not _has_table('suburbs'):
        op.create_table(
            'suburbs',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('city_id', sa.Integer(), sa.ForeignKey('cities.id', ondelete='CASCADE'), nullable=False),
            sa.Column('name', sa.String(length=200), nullable=False),
            sa.Column('slug', sa.String(length=100), nullable=True),
            sa.Column('place_id', sa.String(length=255), nullable=True),
            sa.Column('latitude', sa.String(length=20), nullable=True),
            sa.Column('longitude', sa.String(length=21), nullable=True),
            sa.Column('postal_code', sa.String(length=10), nullable=True),
            *_timestamps(),
        )
        op.create_index('ix_suburbs_city_id', 'suburbs', ['city_id'])
        op.create_index('ix_suburbs_name', 'suburbs', ['name'])
        op.create_index('ix_suburbs_slug', 'suburbs', ['slug'])
        op.create_index('ix_suburbs_place_id', 'suburbs', ['place_id'])

    for table, label_col in (('properties', 'title'), ('developments', 'name')):
        if _has_table(table):
            continue
        op.create_table(
            table,
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column(label_col, sa.String(length=255), nullable=True),
            *_located_columns(),
            *_timestamps(),
        )
        for col in ('province_id', 'city_id', 'suburb_id', 'location_id'):
            op.create_index(f'ix_{table}_{col}', table, [col])


def downgrade() -> None:
    for table in ('developments', 'properties', 'suburbs', 'cities', 'provinces', 'locations'):
        if _has_table(table):
            op.drop_table(table)
