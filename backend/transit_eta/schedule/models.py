"""
SQLAlchemy models for the pruned timetable snapshots.

One SQLite file per agency family, built offline from the published GTFS
exports and limited to a rolling window of service dates. Times are
minutes since midnight of the service date and may exceed 1440.
"""

from sqlalchemy import Column, Float, ForeignKey, Index, Integer, String
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class Stop(Base):
    __tablename__ = "stops"

    stop_id = Column(String, primary_key=True)
    name = Column(String, nullable=False)
    lat = Column(Float)
    lon = Column(Float)


class Route(Base):
    __tablename__ = "routes"

    route_id = Column(String, primary_key=True)
    short_name = Column(String)
    long_name = Column(String)


class Trip(Base):
    __tablename__ = "trips"

    trip_id = Column(String, primary_key=True)
    route_id = Column(String, ForeignKey("routes.route_id"), nullable=False)
    service_id = Column(String, nullable=False, index=True)
    headsign = Column(String)
    direction_id = Column(Integer)


class StopTime(Base):
    __tablename__ = "stop_times"

    trip_id = Column(String, ForeignKey("trips.trip_id"), primary_key=True)
    sequence = Column(Integer, primary_key=True)
    stop_id = Column(String, ForeignKey("stops.stop_id"), nullable=False)
    arrival_minutes = Column(Integer)
    departure_minutes = Column(Integer, nullable=False)

    __table_args__ = (Index("idx_stop_times_stop", "stop_id", "departure_minutes"),)


class Service(Base):
    """Active (service_id, date) pairs; date is YYYYMMDD."""

    __tablename__ = "services"

    service_id = Column(String, primary_key=True)
    date = Column(Integer, primary_key=True)
