import datetime

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from bustrack.models.base import Base


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


class Driver(Base):
    __tablename__ = "drivers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    phone: Mapped[str] = mapped_column(String(32), nullable=False)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    license_number: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    bus_number: Mapped[str | None] = mapped_column(String(20), nullable=True)
    route_type: Mapped[str] = mapped_column(String(10), nullable=False, default="both")  # city, express, both
    home_city: Mapped[str | None] = mapped_column(String(120), nullable=True)
    operating_cities: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    created_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )


class Stop(Base):
    __tablename__ = "stops"
    __table_args__ = (
        Index("ix_stops_lat_lng", "lat", "lng"),
        Index("ix_stops_city", "city"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    lat: Mapped[float] = mapped_column(Float, nullable=False)
    lng: Mapped[float] = mapped_column(Float, nullable=False)
    city: Mapped[str | None] = mapped_column(String(120), nullable=True)
    landmark: Mapped[str | None] = mapped_column(String(255), nullable=True)
    external_ref: Mapped[str | None] = mapped_column(String(64), nullable=True, unique=True)  # e.g. "osm:node/123"
    created_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )

    route_links: Mapped[list["StopRoute"]] = relationship(
        back_populates="stop", cascade="all, delete-orphan", order_by="StopRoute.route_number",
        lazy="selectin",
    )

    @property
    def routes(self) -> list[str]:
        return [link.route_number for link in self.route_links]


class StopRoute(Base):
    """Route number tag on a stop; the set only ever grows."""

    __tablename__ = "stop_routes"

    stop_id: Mapped[int] = mapped_column(Integer, ForeignKey("stops.id"), primary_key=True)
    route_number: Mapped[str] = mapped_column(String(20), primary_key=True, index=True)

    stop: Mapped["Stop"] = relationship(back_populates="route_links")


class Route(Base):
    __tablename__ = "routes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    route_number: Mapped[str] = mapped_column(String(20), nullable=False, unique=True)
    route_name: Mapped[str] = mapped_column(String(255), nullable=False)
    city: Mapped[str] = mapped_column(String(120), nullable=False)
    from_: Mapped[str | None] = mapped_column("from", String(255), nullable=True)
    to: Mapped[str | None] = mapped_column(String(255), nullable=True)
    via_text: Mapped[str | None] = mapped_column(Text, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    total_distance: Mapped[float | None] = mapped_column(Float, nullable=True)  # km
    average_duration: Mapped[float | None] = mapped_column(Float, nullable=True)  # minutes

    stops: Mapped[list["RouteStop"]] = relationship(
        back_populates="route", order_by="RouteStop.sequence", cascade="all, delete-orphan",
        lazy="selectin",
    )


class RouteStop(Base):
    __tablename__ = "route_stops"
    __table_args__ = (
        UniqueConstraint("route_id", "sequence", name="uq_route_stop_sequence"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    route_id: Mapped[int] = mapped_column(Integer, ForeignKey("routes.id"), nullable=False)
    stop_id: Mapped[int] = mapped_column(Integer, ForeignKey("stops.id"), nullable=False)
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)  # 1-based traversal order
    is_major: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    estimated_time_from_start: Mapped[int] = mapped_column(Integer, nullable=False, default=0)  # minutes

    route: Mapped["Route"] = relationship(back_populates="stops")
    stop: Mapped["Stop"] = relationship(lazy="joined")


class Bus(Base):
    __tablename__ = "buses"
    __table_args__ = (
        Index("ix_buses_driver_status", "driver_id", "status"),
        Index("ix_buses_status_route", "status", "route_number"),
        # At most one active bus per driver
        Index(
            "uq_buses_driver_active", "driver_id", unique=True,
            postgresql_where=text("status = 'active'"),
            sqlite_where=text("status = 'active'"),
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    bus_number: Mapped[str] = mapped_column(String(20), nullable=False)
    route_type: Mapped[str] = mapped_column(String(10), nullable=False)  # city, express
    driver_id: Mapped[int] = mapped_column(Integer, ForeignKey("drivers.id"), nullable=False)
    status: Mapped[str] = mapped_column(String(10), nullable=False, default="inactive")
    lat: Mapped[float | None] = mapped_column(Float, nullable=True)
    lng: Mapped[float | None] = mapped_column(Float, nullable=True)
    heading: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    speed: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)  # km/h
    started_at: Mapped[datetime.datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    ended_at: Mapped[datetime.datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    last_updated: Mapped[datetime.datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True, default=_utcnow
    )

    # City service
    operating_city: Mapped[str | None] = mapped_column(String(120), nullable=True)
    route_number: Mapped[str | None] = mapped_column(String(20), nullable=True)
    # Express service
    source_city: Mapped[str | None] = mapped_column(String(120), nullable=True)
    destination_city: Mapped[str | None] = mapped_column(String(120), nullable=True)

    # Trip metadata
    start_location: Mapped[str | None] = mapped_column(String(255), nullable=True)
    end_location: Mapped[str | None] = mapped_column(String(255), nullable=True)
    scheduled_departure: Mapped[str | None] = mapped_column(String(5), nullable=True)  # "HH:MM"
