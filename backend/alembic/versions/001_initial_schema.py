"""Create drivers, stops, stop_routes, routes, route_stops and buses tables.

Revision ID: 001
Revises:
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa

revision = "001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "drivers",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(120), nullable=False),
        sa.Column("email", sa.String(255), nullable=False, unique=True),
        sa.Column("phone", sa.String(32), nullable=False),
        sa.Column("password_hash", sa.String(255), nullable=False),
        sa.Column("license_number", sa.String(64), nullable=False, unique=True),
        sa.Column("bus_number", sa.String(20), nullable=True),
        sa.Column("route_type", sa.String(10), nullable=False),
        sa.Column("home_city", sa.String(120), nullable=True),
        sa.Column("operating_cities", sa.JSON, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_table(
        "stops",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("lat", sa.Float, nullable=False),
        sa.Column("lng", sa.Float, nullable=False),
        sa.Column("city", sa.String(120), nullable=True),
        sa.Column("landmark", sa.String(255), nullable=True),
        sa.Column("external_ref", sa.String(64), nullable=True, unique=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_stops_lat_lng", "stops", ["lat", "lng"])
    op.create_index("ix_stops_city", "stops", ["city"])
    op.create_table(
        "stop_routes",
        sa.Column("stop_id", sa.Integer, sa.ForeignKey("stops.id"), primary_key=True),
        sa.Column("route_number", sa.String(20), primary_key=True),
    )
    op.create_index("ix_stop_routes_route_number", "stop_routes", ["route_number"])
    op.create_table(
        "routes",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("route_number", sa.String(20), nullable=False, unique=True),
        sa.Column("route_name", sa.String(255), nullable=False),
        sa.Column("city", sa.String(120), nullable=False),
        sa.Column("from", sa.String(255), nullable=True),
        sa.Column("to", sa.String(255), nullable=True),
        sa.Column("via_text", sa.Text, nullable=True),
        sa.Column("notes", sa.Text, nullable=True),
        sa.Column("total_distance", sa.Float, nullable=True),
        sa.Column("average_duration", sa.Float, nullable=True),
    )
    op.create_table(
        "route_stops",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("route_id", sa.Integer, sa.ForeignKey("routes.id"), nullable=False),
        sa.Column("stop_id", sa.Integer, sa.ForeignKey("stops.id"), nullable=False),
        sa.Column("sequence", sa.Integer, nullable=False),
        sa.Column("is_major", sa.Boolean, nullable=False),
        sa.Column("estimated_time_from_start", sa.Integer, nullable=False),
        sa.UniqueConstraint("route_id", "sequence", name="uq_route_stop_sequence"),
    )
    op.create_table(
        "buses",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("bus_number", sa.String(20), nullable=False),
        sa.Column("route_type", sa.String(10), nullable=False),
        sa.Column("driver_id", sa.Integer, sa.ForeignKey("drivers.id"), nullable=False),
        sa.Column("status", sa.String(10), nullable=False),
        sa.Column("lat", sa.Float, nullable=True),
        sa.Column("lng", sa.Float, nullable=True),
        sa.Column("heading", sa.Float, nullable=False),
        sa.Column("speed", sa.Float, nullable=False),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("ended_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_updated", sa.DateTime(timezone=True), nullable=True),
        sa.Column("operating_city", sa.String(120), nullable=True),
        sa.Column("route_number", sa.String(20), nullable=True),
        sa.Column("source_city", sa.String(120), nullable=True),
        sa.Column("destination_city", sa.String(120), nullable=True),
        sa.Column("start_location", sa.String(255), nullable=True),
        sa.Column("end_location", sa.String(255), nullable=True),
        sa.Column("scheduled_departure", sa.String(5), nullable=True),
    )
    op.create_index("ix_buses_driver_status", "buses", ["driver_id", "status"])
    op.create_index("ix_buses_status_route", "buses", ["status", "route_number"])
    op.create_index(
        "uq_buses_driver_active", "buses", ["driver_id"], unique=True,
        postgresql_where=sa.text("status = 'active'"),
        sqlite_where=sa.text("status = 'active'"),
    )


def downgrade() -> None:
    op.drop_table("buses")
    op.drop_table("route_stops")
    op.drop_table("routes")
    op.drop_table("stop_routes")
    op.drop_table("stops")
    op.drop_table("drivers")
